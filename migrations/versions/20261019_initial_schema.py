"""Initial schema: blocks, equipment, production jobs, stands, finished goods, shipments

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. blocks (immutable geometry, status annotation)
2. machines and trolleys
3. production_jobs with the partial unique index on open (block, stage) jobs
4. stands (row x position grid, per-stand capacity)
5. finished_goods and shipments
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None

OPEN_JOB_PREDICATE = "status IN ('pending', 'in_progress', 'paused')"


def upgrade():
    # ==========================================================================
    # 1. BLOCKS
    # ==========================================================================
    op.create_table('blocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_number', sa.String(length=64), nullable=False),
        sa.Column('block_type', sa.String(length=64), nullable=False),
        sa.Column('marka', sa.String(length=128), nullable=True),
        sa.Column('mine_name', sa.String(length=128), nullable=True),
        sa.Column('vehicle_number', sa.String(length=64), nullable=True),
        sa.Column('length', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('width', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('height', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('density', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('net_weight', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('block_weight', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('color', sa.String(length=64), nullable=False),
        sa.Column('photo_front', sa.String(length=512), nullable=True),
        sa.Column('photo_back', sa.String(length=512), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('date_received', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('block_number', name='uq_blocks_block_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('blocks', schema=None) as batch_op:
        batch_op.create_index('ix_blocks_status', ['status'], unique=False)

    # ==========================================================================
    # 2. EQUIPMENT
    # ==========================================================================
    op.create_table('machines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('machine_type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_machines_name'),
        sqlite_autoincrement=True
    )
    op.create_table('trolleys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_block_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['current_block_id'], ['blocks.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number', name='uq_trolleys_number'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 3. PRODUCTION JOBS
    # ==========================================================================
    op.create_table('production_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('block_id', sa.Integer(), nullable=False),
        sa.Column('stage', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('measurements', sa.JSON(), nullable=True),
        sa.Column('machine_id', sa.Integer(), nullable=True),
        sa.Column('trolley_id', sa.Integer(), nullable=True),
        sa.Column('stoppage_reason', sa.String(length=32), nullable=False, server_default='none'),
        sa.Column('stoppage_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stoppage_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('maintenance_notes', sa.Text(), nullable=True),
        sa.Column('operator_notes', sa.Text(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['block_id'], ['blocks.id'], ),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.ForeignKeyConstraint(['trolley_id'], ['trolleys.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('production_jobs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_production_jobs_block_id'), ['block_id'], unique=False)
        batch_op.create_index('ix_production_jobs_block_stage', ['block_id', 'stage'], unique=False)
        batch_op.create_index('ix_production_jobs_stage_status', ['stage', 'status'], unique=False)
        batch_op.create_index(
            'uq_production_jobs_open_block_stage',
            ['block_id', 'stage'],
            unique=True,
            sqlite_where=sa.text(OPEN_JOB_PREDICATE),
            postgresql_where=sa.text(OPEN_JOB_PREDICATE),
        )

    # ==========================================================================
    # 4. STANDS
    # ==========================================================================
    op.create_table('stands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False, server_default='200'),
        sa.Column('last_stocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('row_number', 'position', name='uq_stands_row_position'),
        sa.CheckConstraint('max_capacity > 0', name='ck_stands_capacity_positive'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 5. FINISHED GOODS AND SHIPMENTS
    # ==========================================================================
    op.create_table('finished_goods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stand_id', sa.Integer(), nullable=False),
        sa.Column('block_id', sa.Integer(), nullable=False),
        sa.Column('quality', sa.String(length=64), nullable=False),
        sa.Column('slab_count', sa.Integer(), nullable=False),
        sa.Column('media', sa.JSON(), nullable=False),
        sa.Column('stock_added_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['stand_id'], ['stands.id'], ),
        sa.ForeignKeyConstraint(['block_id'], ['blocks.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('slab_count >= 0', name='ck_finished_goods_slab_count_nonneg'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('finished_goods', schema=None) as batch_op:
        batch_op.create_index('ix_finished_goods_stand', ['stand_id'], unique=False)
        batch_op.create_index('ix_finished_goods_block', ['block_id'], unique=False)

    op.create_table('shipments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('finished_good_id', sa.Integer(), nullable=False),
        sa.Column('slabs_shipped', sa.Integer(), nullable=False),
        sa.Column('shipping_company', sa.String(length=128), nullable=False),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['finished_good_id'], ['finished_goods.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('slabs_shipped > 0', name='ck_shipments_slabs_positive'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shipments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shipments_finished_good_id'), ['finished_good_id'], unique=False)
        batch_op.create_index('ix_shipments_shipped_at', ['shipped_at'], unique=False)


def downgrade():
    with op.batch_alter_table('shipments', schema=None) as batch_op:
        batch_op.drop_index('ix_shipments_shipped_at')
        batch_op.drop_index(batch_op.f('ix_shipments_finished_good_id'))
    op.drop_table('shipments')

    with op.batch_alter_table('finished_goods', schema=None) as batch_op:
        batch_op.drop_index('ix_finished_goods_block')
        batch_op.drop_index('ix_finished_goods_stand')
    op.drop_table('finished_goods')

    op.drop_table('stands')

    with op.batch_alter_table('production_jobs', schema=None) as batch_op:
        batch_op.drop_index('uq_production_jobs_open_block_stage')
        batch_op.drop_index('ix_production_jobs_stage_status')
        batch_op.drop_index('ix_production_jobs_block_stage')
        batch_op.drop_index(batch_op.f('ix_production_jobs_block_id'))
    op.drop_table('production_jobs')

    op.drop_table('trolleys')
    op.drop_table('machines')

    with op.batch_alter_table('blocks', schema=None) as batch_op:
        batch_op.drop_index('ix_blocks_status')
    op.drop_table('blocks')
