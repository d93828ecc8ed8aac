"""
Pytest fixtures for slabworks tests.

Provides an in-memory database, a test client, and seeded blocks,
equipment and stands.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from slabworks import create_app
from slabworks.config import TestConfig
from slabworks.extensions import db
from slabworks.models import Block, Machine, Trolley
from slabworks.services import inventory_service

# Fixed shop-floor clock for operator-entered times
SHIFT_START = datetime(2024, 3, 4, 8, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


def make_block(block_number="B-100", length="126", height="78", color="Black Galaxy", **extra) -> Block:
    block = Block(
        block_number=block_number,
        block_type="granite",
        length=Decimal(length),
        width=Decimal("60"),
        height=Decimal(height),
        block_weight=Decimal("18.5"),
        color=color,
        **extra,
    )
    db.session.add(block)
    db.session.commit()
    return block


@pytest.fixture(scope='function')
def block(db_session):
    """126in x 78in block; 10 slabs cover 600 sq ft."""
    return make_block()


@pytest.fixture(scope='function')
def machines(db_session):
    created = {
        "cutting": Machine(name="Cutter-01", machine_type="cutting"),
        "grinding": Machine(name="Grinder-01", machine_type="grinding"),
        "polishing": Machine(name="Polisher-01", machine_type="polishing"),
    }
    db_session.add_all(created.values())
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def trolley(db_session):
    trolley = Trolley(number="T-01")
    db_session.add(trolley)
    db_session.commit()
    return trolley


@pytest.fixture(scope='function')
def stands(db_session):
    """Two rows of three stands, capacity 200 each."""
    inventory_service.provision_stands(rows=2, positions=3, capacity=200)
    return inventory_service.list_stands()


@pytest.fixture
def at():
    """Shift-relative timestamps: at(90) is 90 minutes into the shift."""
    def _at(minutes: int) -> datetime:
        return SHIFT_START + timedelta(minutes=minutes)
    return _at
