import threading

import pytest
from sqlalchemy.orm.exc import StaleDataError

from filtertrack import create_app
from filtertrack.extensions import db
from filtertrack.actors import ActorContext
from filtertrack.models import UnitRecord, STATE_DISPATCHED
from filtertrack.services import lifecycle_service
from filtertrack.services.concurrency import KeyedLockTable, LockTimeoutError, run_with_retry, unit_locks
from filtertrack.services.ledger_service import StoreUnavailableError
from filtertrack.services.lifecycle_service import (
    UnitBusyError,
    OUTCOME_ADVANCED,
    OUTCOME_CREATED,
    OUTCOME_NEEDS_DATA,
)

CODE = "OG971390|202630010002"


class TestKeyedLockTable:
    def test_slot_is_reclaimed_after_release(self):
        table = KeyedLockTable()
        with table.hold("A|1"):
            assert len(table) == 1
        assert len(table) == 0

    def test_different_keys_do_not_block(self):
        table = KeyedLockTable()
        with table.hold("A|1"):
            with table.hold("A|2", timeout=0.1):
                assert len(table) == 2
        assert len(table) == 0

    def test_same_key_times_out(self):
        table = KeyedLockTable()
        held = threading.Event()
        release = threading.Event()

        def _holder():
            with table.hold("A|1"):
                held.set()
                release.wait(5)

        t = threading.Thread(target=_holder)
        t.start()
        try:
            assert held.wait(5)
            with pytest.raises(LockTimeoutError):
                with table.hold("A|1", timeout=0.05):
                    pass
        finally:
            release.set()
            t.join(5)

        assert len(table) == 0


class TestRunWithRetry:
    def test_retries_stale_data(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("row changed underneath")
            return "ok"

        assert run_with_retry(_op, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        def _op():
            raise StaleDataError("always")

        with pytest.raises(StaleDataError):
            run_with_retry(_op, attempts=2, backoff_base=0)

    def test_other_errors_are_not_retried(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise ValueError("domain problem")

        with pytest.raises(ValueError):
            run_with_retry(_op, backoff_base=0)
        assert len(calls) == 1


class TestUnitLockTimeout:
    def test_busy_unit_surfaces_as_store_unavailable(self, app, db_session, mechanic, monkeypatch):
        monkeypatch.setitem(app.config, "UNIT_LOCK_TIMEOUT_SECONDS", 0.05)

        with unit_locks.hold(CODE):
            with pytest.raises(UnitBusyError) as exc_info:
                lifecycle_service.advance(CODE, mechanic)

        assert isinstance(exc_info.value, StoreUnavailableError)
        assert exc_info.value.stage == "unit_lock"
        assert db_session.query(UnitRecord).count() == 0


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so threads get real connections."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _scan_in_threads(app, scans):
    results, errors = [], []
    barrier = threading.Barrier(len(scans))

    def _worker(code, actor):
        with app.app_context():
            barrier.wait(5)
            try:
                results.append(lifecycle_service.advance(code, actor))
            except Exception as exc:  # surfaced via `errors`
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=_worker, args=scan) for scan in scans]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)
    return results, errors


class TestConcurrentScans:
    def test_same_unit_moves_one_step_at_a_time(self, file_app):
        mechanic = ActorContext.build("ana@plant.local", "mechanic")
        dispatcher = ActorContext.build("leo@plant.local", "dispatcher", "ACME")

        with file_app.app_context():
            lifecycle_service.advance(CODE, mechanic)
            db.session.remove()

        results, errors = _scan_in_threads(file_app, [(CODE, dispatcher), (CODE, dispatcher)])

        assert errors == []
        assert sorted(r.outcome for r in results) == [OUTCOME_ADVANCED, OUTCOME_NEEDS_DATA]

        with file_app.app_context():
            units = db.session.query(UnitRecord).all()
            assert len(units) == 1
            assert units[0].state == STATE_DISPATCHED

    def test_first_scans_of_the_same_code_create_one_record(self, file_app):
        mechanic = ActorContext.build("ana@plant.local", "mechanic", "ACME")
        dispatcher = ActorContext.build("leo@plant.local", "dispatcher", "ACME")

        results, errors = _scan_in_threads(file_app, [(CODE, mechanic), (CODE, dispatcher)])

        assert errors == []
        assert sorted(r.outcome for r in results) == [OUTCOME_ADVANCED, OUTCOME_CREATED]
        with file_app.app_context():
            assert db.session.query(UnitRecord).count() == 1

    def test_different_units_both_get_created(self, file_app):
        mechanic = ActorContext.build("ana@plant.local", "mechanic")

        results, errors = _scan_in_threads(file_app, [("REF|1", mechanic), ("REF|2", mechanic)])

        assert errors == []
        assert [r.outcome for r in results] == [OUTCOME_CREATED, OUTCOME_CREATED]
        assert sorted(r.record["id"] for r in results) == [1, 2]
