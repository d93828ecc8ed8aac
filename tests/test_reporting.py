from slabworks.services import production_service as ps
from slabworks.services import reporting_service

from .conftest import make_block


def test_analytics_per_stage(db_session, machines, at):
    first = make_block("B-1")
    second = make_block("B-2")

    for block, minutes in ((first, 30), (second, 61)):
        job = ps.start_job(block_id=block.id, stage="cutting", machine_id=machines["cutting"].id, start_time=at(0))
        ps.complete_job(job.id, end_time=at(minutes), measurements={"total_slabs": 10})
    ps.start_job(block_id=first.id, stage="grinding", machine_id=machines["grinding"].id, start_time=at(90))

    result = reporting_service.production_analytics()
    cutting, grinding = result["stages"][0], result["stages"][1]

    assert cutting["stage"] == "cutting"
    assert cutting["total_jobs"] == 2
    assert cutting["completed_jobs"] == 2
    assert cutting["completion_rate"] == 100.0
    # (30 + 61) / 2 = 45.5 rounds half up
    assert cutting["average_processing_minutes"] == 46
    assert cutting["total_slabs"] == 20

    assert grinding["in_progress_jobs"] == 1
    assert grinding["completion_rate"] == 0.0
    assert grinding["average_processing_minutes"] == 0

    summary = result["summary"]
    assert summary["total_active_jobs"] == 1
    assert summary["total_completed_jobs"] == 2
    assert summary["overall_completion_rate"] == 20.0
    assert summary["total_slabs"] == 20


def test_stats_counts(db_session, machines, at):
    block = make_block("B-1")
    make_block("B-2")
    ps.start_job(block_id=block.id, stage="cutting", machine_id=machines["cutting"].id, start_time=at(0))

    stats = reporting_service.production_stats()
    assert stats["raw_materials"] == 2
    assert stats["active_jobs"] == 1
    assert stats["jobs_by_stage"]["cutting"] == 1
    assert stats["jobs_by_stage"]["polishing"] == 0
