# Overview: Flask API routes for the block registry; parses input and returns JSON responses.

# slabworks/routes/blocks.py
"""
Block registry routes.

Geometry and identity are write-once; PATCH accepts status and comments only.
"""
from flask import Blueprint, current_app, jsonify, request

from ..exceptions import SlabworksError
from ..models import Block
from ..services import block_service
from ..validation import ModelValidationPolicy, enforce_rules_block, validate_payload
from . import error_response, json_body

BLOCK_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "block_number",
        "block_type",
        "marka",
        "mine_name",
        "vehicle_number",
        "length",
        "width",
        "height",
        "density",
        "net_weight",
        "block_weight",
        "color",
        "photo_front",
        "photo_back",
        "comments",
        "date_received",
    },
    required_on_create={
        "block_number",
        "block_type",
        "length",
        "width",
        "height",
        "block_weight",
        "color",
    },
)

BLOCK_PATCH_POLICY = ModelValidationPolicy(writable_fields={"status", "comments"})

blocks_bp = Blueprint("blocks", __name__, url_prefix="/api/blocks")


@blocks_bp.get("")
def list_blocks():
    """
    Query params:
    - status: in_stock | processing | completed (optional)
    - search: substring of block number or colour (optional)
    """
    try:
        blocks = block_service.list_blocks(
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
    except SlabworksError as e:
        return error_response(e)
    return jsonify([b.to_dict() for b in blocks])


@blocks_bp.post("")
def create_block():
    try:
        payload = json_body()
        patch = validate_payload(model=Block, payload=payload, policy=BLOCK_CREATE_POLICY, partial=False)
        enforce_rules_block(patch)
        block = block_service.register_block(**patch)
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register block")
        return jsonify({"error": "Failed to register block"}), 500

    return jsonify(block.to_dict()), 201


@blocks_bp.get("/<int:block_id>")
def get_block(block_id: int):
    try:
        block = block_service.get_block(block_id)
    except SlabworksError as e:
        return error_response(e)
    return jsonify(block.to_dict())


@blocks_bp.patch("/<int:block_id>")
def annotate_block(block_id: int):
    try:
        payload = json_body()
        patch = validate_payload(model=Block, payload=payload, policy=BLOCK_PATCH_POLICY, partial=True)
        enforce_rules_block(patch)
        block = block_service.annotate_block(
            block_id,
            status=patch.get("status"),
            comments=patch.get("comments"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update block %s", block_id)
        return jsonify({"error": "Failed to update block"}), 500

    return jsonify(block.to_dict())
