import threading
from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from slabworks import create_app
from slabworks.config import TestConfig
from slabworks.exceptions import CapacityExceededError, InsufficientStockError, StorageError
from slabworks.extensions import db
from slabworks.models import FinishedGood, Shipment, Stand
from slabworks.services import inventory_service as inv
from slabworks.services.concurrency import run_with_retry

from .conftest import make_block

STOCKED_AT = datetime(2024, 3, 4, 7, 30)


def test_retries_stale_data_then_succeeds(app):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "ok"

    assert run_with_retry(_op, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_exhausted_retries_become_storage_error(app):
    def _op():
        raise OperationalError("UPDATE stands", {}, Exception("database is locked"))

    with pytest.raises(StorageError):
        run_with_retry(_op, attempts=2, backoff_base=0)


def test_business_errors_are_not_retried(app):
    calls = []

    def _op():
        calls.append(1)
        raise CapacityExceededError(stand_id=1, current=195, requested=6, capacity=200)

    with pytest.raises(CapacityExceededError):
        run_with_retry(_op, backoff_base=0)
    assert len(calls) == 1


def test_other_storage_failures_are_wrapped(app):
    def _op():
        raise SQLAlchemyError("boom")

    with pytest.raises(StorageError):
        run_with_retry(_op, backoff_base=0)


def test_stale_stand_write_is_replayed(stands):
    stand_id = stands[0].stand.id
    attempts = []

    def _op():
        stand = db.session.get(Stand, stand_id)
        assert stand.max_capacity == 200
        if not attempts:
            # another writer stocks the stand between our read and our write
            db.session.execute(
                text("UPDATE stands SET version_id = version_id + 1 WHERE id = :id"),
                {"id": stand_id},
            )
        attempts.append(stand.version_id)
        stand.last_stocked_at = datetime(2024, 3, 4, 9, 0)
        db.session.commit()
        return stand

    stand = run_with_retry(_op, backoff_base=0)
    assert len(attempts) == 2
    assert attempts[1] == attempts[0] + 1
    assert stand.last_stocked_at == datetime(2024, 3, 4, 9, 0)


def test_every_add_moves_the_stand_version(block, stands):
    stand_id = stands[0].stand.id
    versions = []
    for _ in range(2):
        inv.add_stock(stand_id=stand_id, block_id=block.id, slab_count=5, stock_added_at=STOCKED_AT)
        db.session.expire_all()
        versions.append(db.session.get(Stand, stand_id).version_id)

    assert versions[1] == versions[0] + 1


# ---------------------------------------------------------------------------
# two writers against a file database
# ---------------------------------------------------------------------------

@pytest.fixture
def file_app(tmp_path):
    db_path = tmp_path / "slabworks.db"

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{db_path}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _after_first_read(monkeypatch, name):
    """Hold each thread after its first read until both have read."""
    barrier = threading.Barrier(2)
    seen = threading.local()
    original = getattr(inv, name)

    def wrapper(*args, **kwargs):
        value = original(*args, **kwargs)
        if not getattr(seen, "done", False):
            seen.done = True
            barrier.wait(timeout=10)
        return value

    monkeypatch.setattr(inv, name, wrapper)


def _run_pair(app, target):
    results = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                target()
                outcome = "ok"
            except CapacityExceededError:
                outcome = "capacity"
            except InsufficientStockError:
                outcome = "insufficient"
            except Exception as exc:
                outcome = repr(exc)
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return sorted(results)


def test_concurrent_adds_respect_stand_capacity(file_app, monkeypatch):
    with file_app.app_context():
        block_id = make_block().id
        inv.provision_stands(rows=1, positions=1, capacity=200)
        stand_id = Stand.query.one().id
        inv.add_stock(stand_id=stand_id, block_id=block_id, slab_count=190, stock_added_at=STOCKED_AT)

    _after_first_read(monkeypatch, "stand_current_slabs")

    # same stamp as the stand already carries
    results = _run_pair(
        file_app,
        lambda: inv.add_stock(stand_id=stand_id, block_id=block_id, slab_count=6, stock_added_at=STOCKED_AT),
    )

    assert results == ["capacity", "ok"]
    with file_app.app_context():
        assert sum(fg.slab_count for fg in FinishedGood.query.filter_by(stand_id=stand_id)) == 196


def test_concurrent_shipments_never_oversell(file_app, monkeypatch):
    with file_app.app_context():
        block_id = make_block().id
        inv.provision_stands(rows=1, positions=1, capacity=200)
        stand_id = Stand.query.one().id
        item_id = inv.add_stock(stand_id=stand_id, block_id=block_id, slab_count=10).id

    _after_first_read(monkeypatch, "get_finished_good")

    results = _run_pair(
        file_app,
        lambda: inv.ship_goods(finished_good_id=item_id, slabs_shipped=6, shipping_company="Coastline Freight"),
    )

    assert results == ["insufficient", "ok"]
    with file_app.app_context():
        assert db.session.get(FinishedGood, item_id).slab_count == 4
        assert Shipment.query.count() == 1
