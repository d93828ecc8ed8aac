# Overview: Flask API routes for the stage pipeline; parses input and returns JSON responses.

# slabworks/routes/production.py
"""
Stage pipeline routes.

Request bodies use snake_case keys. Stage measurements are posted as a
nested "measurements" object whose keys depend on the job's stage.
"""
from flask import Blueprint, current_app, jsonify, request

from ..exceptions import SlabworksError, ValidationError
from ..services import production_service, reporting_service
from . import error_response, json_body, optional_int, require_int

production_bp = Blueprint("production", __name__, url_prefix="/api/production")


def _job_response(job, status_code: int = 200):
    return jsonify(job.to_dict()), status_code


@production_bp.get("/jobs")
def list_jobs():
    """
    Query params:
    - stage, status, block_id (all optional)
    """
    try:
        jobs = production_service.list_jobs(
            stage=request.args.get("stage"),
            status=request.args.get("status"),
            block_id=request.args.get("block_id", type=int),
        )
    except SlabworksError as e:
        return error_response(e)
    return jsonify([j.to_dict() for j in jobs])


@production_bp.get("/jobs/<int:job_id>")
def get_job(job_id: int):
    try:
        job = production_service.get_job(job_id)
    except SlabworksError as e:
        return error_response(e)
    return _job_response(job)


@production_bp.get("/eligible/<stage>")
def eligible_blocks(stage: str):
    try:
        blocks = production_service.get_eligible_blocks(stage)
    except SlabworksError as e:
        return error_response(e)
    return jsonify([b.to_dict() for b in blocks])


@production_bp.get("/eligibility/<int:block_id>/<stage>")
def eligibility(block_id: int, stage: str):
    try:
        verdict = production_service.check_eligibility(block_id, stage)
    except SlabworksError as e:
        return error_response(e)
    return jsonify(verdict.to_dict())


@production_bp.post("/jobs")
def start_job():
    """
    Start a job immediately.

    Request body:
    {
        "block_id": int,
        "stage": str,
        "machine_id": int (cutting/grinding/polishing),
        "trolley_id": int (optional),
        "start_time": ISO-8601 (optional, defaults to now),
        "operator_notes": str (optional),
        "photos": [str] (optional)
    }

    Returns:
        201: Job started
        400: Invalid request
        404: Unknown block/machine/trolley
        409: Open job exists or previous stage not passed
    """
    try:
        data = json_body()
        job = production_service.start_job(
            block_id=require_int(data, "block_id"),
            stage=data.get("stage"),
            machine_id=optional_int(data, "machine_id"),
            trolley_id=optional_int(data, "trolley_id"),
            start_time=data.get("start_time"),
            operator_notes=data.get("operator_notes"),
            photos=data.get("photos"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start job")
        return jsonify({"error": "Failed to start job"}), 500
    return _job_response(job, 201)


@production_bp.post("/jobs/queue")
def queue_job():
    try:
        data = json_body()
        job = production_service.queue_job(
            block_id=require_int(data, "block_id"),
            stage=data.get("stage"),
            operator_notes=data.get("operator_notes"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to queue job")
        return jsonify({"error": "Failed to queue job"}), 500
    return _job_response(job, 201)


@production_bp.post("/jobs/<int:job_id>/begin")
def begin_job(job_id: int):
    try:
        data = json_body()
        job = production_service.begin_job(
            job_id,
            start_time=data.get("start_time"),
            machine_id=optional_int(data, "machine_id"),
            trolley_id=optional_int(data, "trolley_id"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to begin job %s", job_id)
        return jsonify({"error": "Failed to begin job"}), 500
    return _job_response(job)


@production_bp.post("/jobs/<int:job_id>/complete")
def complete_job(job_id: int):
    """
    Request body:
    {
        "end_time": ISO-8601,
        "measurements": {...stage specific...},
        "stoppage": {"reason": str, "start": ISO, "end": ISO, "maintenance_notes": str} (optional),
        "comments": str (optional),
        "operator_notes": str (optional)
    }
    """
    try:
        data = json_body()
        job = production_service.complete_job(
            job_id,
            end_time=data.get("end_time"),
            measurements=data.get("measurements"),
            stoppage=data.get("stoppage"),
            comments=data.get("comments"),
            operator_notes=data.get("operator_notes"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete job %s", job_id)
        return jsonify({"error": "Failed to complete job"}), 500
    return _job_response(job)


@production_bp.post("/jobs/<int:job_id>/skip")
def skip_job(job_id: int):
    try:
        data = json_body()
        job = production_service.skip_job(job_id, comment=data.get("comment"))
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to skip job %s", job_id)
        return jsonify({"error": "Failed to skip job"}), 500
    return _job_response(job)


@production_bp.post("/skip")
def skip_stage():
    """Queue and skip a stage for a block in one step."""
    try:
        data = json_body()
        job = production_service.skip_stage(
            block_id=require_int(data, "block_id"),
            stage=data.get("stage"),
            comment=data.get("comment"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to skip stage")
        return jsonify({"error": "Failed to skip stage"}), 500
    return _job_response(job, 201)


@production_bp.post("/jobs/<int:job_id>/pause")
def pause_job(job_id: int):
    try:
        data = json_body()
        job = production_service.pause_job(job_id, reason=data.get("reason"))
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pause job %s", job_id)
        return jsonify({"error": "Failed to pause job"}), 500
    return _job_response(job)


@production_bp.post("/jobs/<int:job_id>/resume")
def resume_job(job_id: int):
    try:
        job = production_service.resume_job(job_id)
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resume job %s", job_id)
        return jsonify({"error": "Failed to resume job"}), 500
    return _job_response(job)


@production_bp.post("/jobs/<int:job_id>/fail")
def fail_job(job_id: int):
    try:
        data = json_body()
        job = production_service.fail_job(
            job_id,
            reason=data.get("reason"),
            end_time=data.get("end_time"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark job %s failed", job_id)
        return jsonify({"error": "Failed to mark job failed"}), 500
    return _job_response(job)


@production_bp.post("/jobs/<int:job_id>/cancel")
def cancel_job(job_id: int):
    try:
        data = json_body()
        job = production_service.cancel_job(job_id, reason=data.get("reason"))
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel job %s", job_id)
        return jsonify({"error": "Failed to cancel job"}), 500
    return _job_response(job)


@production_bp.patch("/jobs/<int:job_id>")
def update_job_notes(job_id: int):
    """Notes, comments and photo references only."""
    try:
        data = json_body()
        unknown = sorted(set(data) - {"operator_notes", "comments", "photos"})
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}", fields=unknown)
        job = production_service.update_job_notes(
            job_id,
            operator_notes=data.get("operator_notes"),
            comments=data.get("comments"),
            photos=data.get("photos"),
        )
    except SlabworksError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update job %s", job_id)
        return jsonify({"error": "Failed to update job"}), 500
    return _job_response(job)


@production_bp.get("/analytics")
def analytics():
    return jsonify(reporting_service.production_analytics())


@production_bp.get("/stats")
def stats():
    return jsonify(reporting_service.production_stats())


equipment_bp = Blueprint("equipment", __name__, url_prefix="/api")


@equipment_bp.get("/machines")
def list_machines():
    """Query params: type (optional stage name)."""
    machines = production_service.list_machines(request.args.get("type"))
    return jsonify([m.to_dict() for m in machines])


@equipment_bp.get("/trolleys")
def list_trolleys():
    return jsonify([t.to_dict() for t in production_service.list_trolleys()])
