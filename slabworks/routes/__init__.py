# Overview: Shared helpers for the JSON route layer; request parsing and error rendering.

# slabworks/routes/__init__.py
from __future__ import annotations

from flask import jsonify, request

from ..exceptions import SlabworksError, ValidationError


def error_response(e: SlabworksError):
    return jsonify(e.to_dict()), e.status_code


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def require_int(payload: dict, key: str) -> int:
    if key not in payload or payload[key] is None:
        raise ValidationError(f"Missing required field: {key}", field=key)
    return optional_int(payload, key)


def optional_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", field=key)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer", field=key)
