# slabworks/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the stand grid has been
provisioned; a missing grid is degraded rather than unhealthy.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Block, Stand
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        block_count = db.session.query(Block).count()
        stand_count = db.session.query(Stand).count()
        elapsed_ms = (time.time() - start_time) * 1000

        status = "healthy" if stand_count > 0 else "degraded"
        result = {
            "status": status,
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "blocks": block_count,
                "stands": stand_count,
            },
        }
        if stand_count == 0:
            result["warning"] = "No stands provisioned; run `flask stands init`"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status
