import pytest

from slabworks.exceptions import (
    CapacityExceededError,
    EligibilityError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from slabworks.extensions import db
from slabworks.models import FinishedGood, Stand
from slabworks.services import inventory_service as inv
from slabworks.services import production_service as ps

from .conftest import make_block


def first_stand():
    return Stand.query.order_by(Stand.row_number, Stand.position).first()


def test_provision_is_idempotent(db_session):
    assert inv.provision_stands(rows=2, positions=3, capacity=200) == 6
    assert inv.provision_stands(rows=2, positions=4, capacity=200) == 2
    assert Stand.query.count() == 8
    assert [o.stand.label for o in inv.list_stands()][:2] == ["R1-P01", "R1-P02"]


def test_add_stock_defaults_quality_to_block_colour(block, stands):
    stand = first_stand()
    item = inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=12, media=["a.jpg"])
    assert item.quality == "Black Galaxy"
    assert item.media == ["a.jpg"]

    occupancy = inv.get_stand_occupancy(stand.id)
    assert occupancy.current_slabs == 12
    assert occupancy.available == 188
    assert occupancy.coverage == 0.06
    assert occupancy.band == "nominal"


def test_scenario_b_capacity_rejected(block, stands):
    stand = first_stand()
    inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=195)

    with pytest.raises(CapacityExceededError) as exc:
        inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=6)
    assert exc.value.current == 195
    assert exc.value.requested == 6
    assert exc.value.capacity == 200

    db.session.expire_all()
    assert inv.stand_current_slabs(stand.id) == 195
    assert FinishedGood.query.filter_by(stand_id=stand.id).count() == 1


def test_capacity_is_inclusive(block, stands):
    stand = first_stand()
    inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=195)
    inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=5)
    assert inv.get_stand_occupancy(stand.id).band == "critical"


def test_capacity_is_per_stand(block, stands):
    a, b = [o.stand for o in inv.list_stands()[:2]]
    inv.add_stock(stand_id=a.id, block_id=block.id, slab_count=200)
    inv.add_stock(stand_id=b.id, block_id=block.id, slab_count=150)
    assert inv.stand_current_slabs(b.id) == 150


def test_add_stock_validation(block, stands):
    stand = first_stand()
    with pytest.raises(ValidationError):
        inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=0)
    with pytest.raises(ValidationError):
        inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=3, media="a.jpg")
    with pytest.raises(NotFoundError):
        inv.add_stock(stand_id=9999, block_id=block.id, slab_count=3)
    with pytest.raises(NotFoundError):
        inv.add_stock(stand_id=stand.id, block_id=9999, slab_count=3)


def test_finished_block_requirement(app, block, stands):
    stand = first_stand()
    app.config["STOCK_REQUIRES_FINISHED_BLOCK"] = True
    try:
        with pytest.raises(EligibilityError):
            inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=3)

        ps.skip_stage(block_id=block.id, stage="cutting", comment="bought cut")
        ps.skip_stage(block_id=block.id, stage="grinding", comment="n/a")
        ps.skip_stage(block_id=block.id, stage="chemical_conversion", comment="n/a")
        ps.skip_stage(block_id=block.id, stage="epoxy", comment="n/a")
        ps.skip_stage(block_id=block.id, stage="polishing", comment="supplied polished")

        item = inv.add_stock(stand_id=stand.id, block_id=block.id, slab_count=3)
        assert item.slab_count == 3
    finally:
        app.config["STOCK_REQUIRES_FINISHED_BLOCK"] = False


def test_scenario_c_ship_until_insufficient(block, stands):
    item = inv.add_stock(stand_id=first_stand().id, block_id=block.id, slab_count=8)

    shipment = inv.ship_goods(finished_good_id=item.id, slabs_shipped=5, shipping_company="Blue Freight")
    assert shipment.finished_good.slab_count == 3

    with pytest.raises(InsufficientStockError) as exc:
        inv.ship_goods(finished_good_id=item.id, slabs_shipped=5, shipping_company="Blue Freight")
    assert exc.value.available == 3
    assert exc.value.requested == 5

    db.session.expire_all()
    assert inv.get_finished_good(item.id).slab_count == 3
    assert len(inv.list_shipments(finished_good_id=item.id)) == 1


def test_shipping_to_zero_keeps_row(block, stands):
    item = inv.add_stock(stand_id=first_stand().id, block_id=block.id, slab_count=4)
    inv.ship_goods(finished_good_id=item.id, slabs_shipped=4, shipping_company="Blue Freight")

    assert inv.get_finished_good(item.id).slab_count == 0
    assert inv.list_finished_goods_by_stand(item.stand_id) == []
    assert [i.id for i in inv.list_finished_goods_by_stand(item.stand_id, include_empty=True)] == [item.id]


def test_ship_requires_company(block, stands):
    item = inv.add_stock(stand_id=first_stand().id, block_id=block.id, slab_count=4)
    with pytest.raises(ValidationError):
        inv.ship_goods(finished_good_id=item.id, slabs_shipped=1, shipping_company=" ")


def test_edit_shipment_recredits_previous_amount(block, stands):
    item = inv.add_stock(stand_id=first_stand().id, block_id=block.id, slab_count=10)
    shipment = inv.ship_goods(finished_good_id=item.id, slabs_shipped=6, shipping_company="Blue Freight")

    # 4 on hand + 6 already shipped
    inv.edit_shipment(shipment.id, slabs_shipped=10)
    assert inv.get_finished_good(item.id).slab_count == 0

    with pytest.raises(InsufficientStockError) as exc:
        inv.edit_shipment(shipment.id, slabs_shipped=11)
    assert exc.value.available == 10

    edited = inv.edit_shipment(shipment.id, slabs_shipped=2, shipping_company="Red Haulage")
    assert edited.slabs_shipped == 2
    assert edited.shipping_company == "Red Haulage"
    assert inv.get_finished_good(item.id).slab_count == 8


def test_media_attach_and_urls(block, stands):
    item = inv.add_stock(stand_id=first_stand().id, block_id=block.id, slab_count=2, media=["front.jpg"])
    item = inv.attach_media(item.id, ["walk.MP4", "front.jpg", "data:image/png;base64,AAAA"])
    assert item.media == ["front.jpg", "walk.MP4", "data:image/png;base64,AAAA"]

    assert inv.media_urls(item.media) == [
        "/api/finished-goods/media/images/front.jpg",
        "/api/finished-goods/media/videos/walk.MP4",
        "data:image/png;base64,AAAA",
    ]

    with pytest.raises(ValidationError):
        inv.attach_media(item.id, [])


def test_stand_summary(db_session, stands):
    big = make_block("B-1", length="126", height="78", color="Black Galaxy")
    small = make_block("B-2", length="100", height="81", color="Tan Brown")
    a, b = [o.stand for o in inv.list_stands()[:2]]

    inv.add_stock(stand_id=a.id, block_id=big.id, slab_count=10)
    inv.add_stock(stand_id=b.id, block_id=small.id, slab_count=3, quality="Premium")
    emptied = inv.add_stock(stand_id=b.id, block_id=big.id, slab_count=2)
    inv.ship_goods(finished_good_id=emptied.id, slabs_shipped=2, shipping_company="Blue Freight")

    summary = inv.get_stand_summary()
    assert summary["total_stands"] == 6
    assert summary["total_capacity"] == 1200
    assert summary["used_capacity"] == 13
    assert summary["occupied_stands"] == 2
    # 600.00 + 145.31
    assert summary["total_area"] == 745.31
    assert [(d["block_number"], d["quality"], d["count"]) for d in summary["quality_distribution"]] == [
        ("B-1", "Black Galaxy", 10),
        ("B-2", "Premium", 3),
    ]


def test_summary_with_no_stands(db_session):
    summary = inv.get_stand_summary()
    assert summary["total_capacity"] == 0
    assert summary["coverage"] == 0.0
    assert summary["quality_distribution"] == []
