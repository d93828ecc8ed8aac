from slabworks.extensions import db
from slabworks.models import Stand


BLOCK_PAYLOAD = {
    "block_number": "B-900",
    "block_type": "granite",
    "length": 126,
    "width": 60,
    "height": 78,
    "block_weight": 18.5,
    "color": "Black Galaxy",
}


def create_block(client, **overrides):
    payload = dict(BLOCK_PAYLOAD, **overrides)
    return client.post("/api/blocks", json=payload)


def test_health_reports_missing_stands(client, db_session):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "degraded"


def test_health_ok_with_stands(client, stands):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json()["status"] == "healthy"


def test_block_create_and_conflict(client, db_session):
    res = create_block(client)
    assert res.status_code == 201
    body = res.get_json()
    assert body["block_number"] == "B-900"
    assert body["length"] == 126.0

    dup = create_block(client)
    assert dup.status_code == 409
    assert dup.get_json()["code"] == "CONFLICT"


def test_block_create_validation(client, db_session):
    res = client.post("/api/blocks", json={"block_number": "B-1"})
    assert res.status_code == 400
    assert "Missing required fields" in res.get_json()["error"]

    res = create_block(client, length=-5)
    assert res.status_code == 400

    res = create_block(client, owner="someone")
    assert res.status_code == 400


def test_block_patch_limited_to_annotations(client, block):
    res = client.patch(f"/api/blocks/{block.id}", json={"length": 140})
    assert res.status_code == 400

    res = client.patch(f"/api/blocks/{block.id}", json={"comments": "edge chipped"})
    assert res.status_code == 200
    assert res.get_json()["comments"] == "edge chipped"

    assert client.get("/api/blocks/4040").status_code == 404


def test_job_lifecycle_over_http(client, block, machines):
    res = client.get("/api/production/eligible/grinding")
    assert res.get_json() == []

    res = client.post(
        "/api/production/jobs",
        json={
            "block_id": block.id,
            "stage": "cutting",
            "machine_id": machines["cutting"].id,
            "start_time": "2024-03-04T08:00:00Z",
        },
    )
    assert res.status_code == 201
    job_id = res.get_json()["id"]

    res = client.post(
        "/api/production/jobs",
        json={"block_id": block.id, "stage": "cutting", "machine_id": machines["cutting"].id},
    )
    assert res.status_code == 409
    assert res.get_json()["code"] == "CONFLICT"

    res = client.post(f"/api/production/jobs/{job_id}/complete", json={"measurements": {"total_slabs": 10}})
    assert res.status_code == 400
    res = client.post(
        f"/api/production/jobs/{job_id}/complete",
        json={"end_time": "  ", "measurements": {"total_slabs": 10}},
    )
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_ERROR"
    res = client.post(f"/api/production/jobs/{job_id}/pause", json={"reason": 42})
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION_ERROR"
    open_job = client.get(f"/api/production/jobs/{job_id}").get_json()
    assert open_job["status"] == "in_progress"
    assert open_job["is_open"] is True

    res = client.post(
        f"/api/production/jobs/{job_id}/complete",
        json={"end_time": "2024-03-04T09:00:00Z", "measurements": {"total_slabs": 10}},
    )
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "completed"
    assert body["is_open"] is False
    assert body["measurements"]["total_area"] == 600.0
    assert body["end_time"] == "2024-03-04T09:00:00Z"

    res = client.get("/api/production/eligible/grinding")
    assert [b["id"] for b in res.get_json()] == [block.id]

    res = client.get(f"/api/production/eligibility/{block.id}/epoxy")
    assert res.get_json()["eligible"] is False


def test_stage_order_error_over_http(client, block, machines):
    res = client.post(
        "/api/production/jobs",
        json={"block_id": block.id, "stage": "grinding", "machine_id": machines["grinding"].id},
    )
    assert res.status_code == 409
    assert res.get_json()["code"] == "NOT_ELIGIBLE"


def test_skip_over_http(client, block):
    res = client.post("/api/production/skip", json={"block_id": block.id, "stage": "cutting"})
    assert res.status_code == 400

    res = client.post(
        "/api/production/skip",
        json={"block_id": block.id, "stage": "cutting", "comment": "bought pre-cut"},
    )
    assert res.status_code == 201
    assert res.get_json()["status"] == "skipped"


def test_patch_job_rejects_status_changes(client, block):
    job = client.post(
        "/api/production/skip",
        json={"block_id": block.id, "stage": "cutting", "comment": "bought pre-cut"},
    ).get_json()
    res = client.patch(f"/api/production/jobs/{job['id']}", json={"status": "completed"})
    assert res.status_code == 400


def test_stock_and_ship_over_http(client, block, stands):
    stand_id = stands[0].stand.id

    res = client.post(
        "/api/finished-goods/add",
        json={"stand_id": stand_id, "block_id": block.id, "slab_count": 195},
    )
    assert res.status_code == 201
    body = res.get_json()
    assert body["stand"]["current_slabs"] == 195
    assert body["stand"]["band"] == "critical"
    finished_good_id = body["finished_good"]["id"]

    res = client.post(
        "/api/finished-goods/add",
        json={"stand_id": stand_id, "block_id": block.id, "slab_count": 6},
    )
    assert res.status_code == 409
    err = res.get_json()
    assert err["code"] == "CAPACITY_EXCEEDED"
    assert err["details"]["current"] == 195
    assert err["details"]["requested"] == 6

    res = client.post(
        "/api/finished-goods/shipments",
        json={"finished_good_id": finished_good_id, "slabs_shipped": 190, "shipping_company": "Blue Freight"},
    )
    assert res.status_code == 201
    shipment = res.get_json()
    assert shipment["remaining"] == 5

    res = client.post(
        "/api/finished-goods/shipments",
        json={"finished_good_id": finished_good_id, "slabs_shipped": 6, "shipping_company": "Blue Freight"},
    )
    assert res.status_code == 409
    assert res.get_json()["details"]["available"] == 5

    res = client.put(f"/api/finished-goods/shipments/{shipment['id']}", json={"slabs_shipped": 195})
    assert res.status_code == 200
    assert res.get_json()["remaining"] == 0

    summary = client.get("/api/finished-goods/summary").get_json()
    assert summary["used_capacity"] == 0
    assert summary["occupied_stands"] == 0

    by_stand = client.get(f"/api/finished-goods/by-stand/{stand_id}?include_empty=1").get_json()
    assert [i["id"] for i in by_stand] == [finished_good_id]


def test_media_over_http(client, block, stands):
    stand_id = stands[0].stand.id
    item = client.post(
        "/api/finished-goods/add",
        json={"stand_id": stand_id, "block_id": block.id, "slab_count": 2, "media": ["face.jpg"]},
    ).get_json()["finished_good"]

    res = client.post(f"/api/finished-goods/{item['id']}/media", json={"media": ["tour.webm"]})
    assert res.status_code == 200

    res = client.get(f"/api/finished-goods/{item['id']}/media")
    assert res.get_json()["media"] == [
        "/api/finished-goods/media/images/face.jpg",
        "/api/finished-goods/media/videos/tour.webm",
    ]


def test_stand_listing(client, stands):
    res = client.get("/api/finished-goods/stands")
    rows = res.get_json()
    assert len(rows) == Stand.query.count() == 6
    assert rows[0]["label"] == "R1-P01"
    assert rows[0]["coverage"] == 0.0

    assert client.get("/api/finished-goods/stands/9999").status_code == 404


def test_equipment_and_dashboards(client, machines, trolley):
    machines_res = client.get("/api/machines?type=cutting").get_json()
    assert [m["name"] for m in machines_res] == ["Cutter-01"]
    assert client.get("/api/trolleys").get_json()[0]["number"] == "T-01"

    assert client.get("/api/production/analytics").status_code == 200
    stats = client.get("/api/production/stats").get_json()
    assert stats["active_jobs"] == 0


def test_cors_header_for_known_origin(client, db_session):
    res = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert res.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
    res = client.get("/api/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in res.headers
