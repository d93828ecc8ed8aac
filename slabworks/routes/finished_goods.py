# Overview: Flask API routes for stand inventory and shipments; parses input and returns JSON responses.

# slabworks/routes/finished_goods.py
"""
Finished goods routes.

Every stock movement answers with the aggregate it changed (stand occupancy
or remaining slab count) so clients never need a second read.
"""
from flask import Blueprint, current_app, jsonify, request

from ..exceptions import SlabworksError
from ..services import inventory_service
from . import error_response, json_body, optional_int, require_int

finished_goods_bp = Blueprint("finished_goods", __name__, url_prefix="/api/finished-goods")


def _finished_good_dict(item) -> dict:
    data = item.to_dict()
    data["block_number"] = item.block.block_number if item.block else None
    data["stand_label"] = item.stand.label if item.stand else None
    return data


def _shipment_dict(shipment) -> dict:
    data = shipment.to_dict()
    item = shipment.finished_good
    data["remaining"] = item.slab_count
    data["block_number"] = item.block.block_number if item.block else None
    return data


@finished_goods_bp.get("/stands")
def list_stands():
    return jsonify([o.to_dict() for o in inventory_service.list_stands()])


@finished_goods_bp.get("/stands/<int:stand_id>")
def get_stand(stand_id: int):
    try:
        occupancy = inventory_service.get_stand_occupancy(stand_id)
        items = inventory_service.list_finished_goods_by_stand(stand_id)
    except SlabworksError as e:
        return error_response(e)
    data = occupancy.to_dict()
    data["finished_goods"] = [_finished_good_dict(i) for i in items]
    return jsonify(data)


@finished_goods_bp.get("/by-stand/<int:stand_id>")
def by_stand(stand_id: int):
    """Query params: include_empty=1 to list rows already shipped out."""
    include_empty = request.args.get("include_empty", "").lower() in ("1", "true", "yes")
    try:
        items = inventory_service.list_finished_goods_by_stand(stand_id, include_empty=include_empty)
    except SlabworksError as e:
        return error_response(e)
    return jsonify([_finished_good_dict(i) for i in items])


@finished_goods_bp.post("/add")
def add_stock():
    """
    Request body:
    {
        "stand_id": int,
        "block_id": int,
        "slab_count": int,
        "quality": str (optional, defaults to the block colour),
        "media": [str] (optional),
        "stock_added_at": ISO-8601 (optional)
    }

    Returns:
        201: {"finished_good": {...}, "stand": {...occupancy...}}
        409: capacity exceeded (details carry current/requested/capacity)
    """
    try:
        data = json_body()
        item = inventory_service.add_stock(
            stand_id=require_int(data, "stand_id"),
            block_id=require_int(data, "block_id"),
            slab_count=require_int(data, "slab_count"),
            quality=data.get("quality"),
            media=data.get("media"),
            stock_added_at=data.get("stock_added_at"),
        )
        occupancy = inventory_service.get_stand_occupancy(item.stand_id)
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Failed to add stock"}), 500

    return jsonify({"finished_good": _finished_good_dict(item), "stand": occupancy.to_dict()}), 201


@finished_goods_bp.get("/<int:finished_good_id>/media")
def get_media(finished_good_id: int):
    try:
        item = inventory_service.get_finished_good(finished_good_id)
    except SlabworksError as e:
        return error_response(e)
    return jsonify({"media": inventory_service.media_urls(item.media)})


@finished_goods_bp.post("/<int:finished_good_id>/media")
def attach_media(finished_good_id: int):
    try:
        data = json_body()
        item = inventory_service.attach_media(finished_good_id, data.get("media"))
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to attach media to finished good %s", finished_good_id)
        return jsonify({"error": "Failed to attach media"}), 500
    return jsonify({"finished_good": _finished_good_dict(item), "media": inventory_service.media_urls(item.media)})


@finished_goods_bp.get("/shipments")
def list_shipments():
    shipments = inventory_service.list_shipments(
        finished_good_id=request.args.get("finished_good_id", type=int),
    )
    return jsonify([_shipment_dict(s) for s in shipments])


@finished_goods_bp.post("/shipments")
def ship_goods():
    """
    Request body:
    {
        "finished_good_id": int,
        "slabs_shipped": int,
        "shipping_company": str,
        "shipped_at": ISO-8601 (optional)
    }
    """
    try:
        data = json_body()
        shipment = inventory_service.ship_goods(
            finished_good_id=require_int(data, "finished_good_id"),
            slabs_shipped=require_int(data, "slabs_shipped"),
            shipping_company=data.get("shipping_company"),
            shipped_at=data.get("shipped_at"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to ship goods")
        return jsonify({"error": "Failed to ship goods"}), 500
    return jsonify(_shipment_dict(shipment)), 201


@finished_goods_bp.get("/shipments/<int:shipment_id>")
def get_shipment(shipment_id: int):
    try:
        shipment = inventory_service.get_shipment(shipment_id)
    except SlabworksError as e:
        return error_response(e)
    return jsonify(_shipment_dict(shipment))


@finished_goods_bp.put("/shipments/<int:shipment_id>")
def edit_shipment(shipment_id: int):
    try:
        data = json_body()
        shipment = inventory_service.edit_shipment(
            shipment_id,
            slabs_shipped=optional_int(data, "slabs_shipped"),
            shipping_company=data.get("shipping_company"),
            shipped_at=data.get("shipped_at"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update shipment %s", shipment_id)
        return jsonify({"error": "Failed to update shipment"}), 500
    return jsonify(_shipment_dict(shipment))


@finished_goods_bp.get("/summary")
def summary():
    return jsonify(inventory_service.get_stand_summary())
