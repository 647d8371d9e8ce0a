import pytest

from filtertrack.actors import ActorContext
from filtertrack.models import STATE_STORED, STATE_DISPATCHED, STATE_INSTALLED, STATE_UNINSTALLED
from filtertrack.services import lifecycle_service, reporting_service
from filtertrack.services.reporting_service import ReportError


@pytest.fixture
def seeded(db_session, mechanic, dispatcher):
    """Three units: two dispatched to ACME by leo, one to BETA by sam."""
    beta_dispatcher = ActorContext.build("sam@plant.local", "dispatcher", "Beta")
    for code in ("REF|1", "REF|2", "REF|3"):
        lifecycle_service.advance(code, mechanic)
    lifecycle_service.advance("REF|1", dispatcher)
    lifecycle_service.advance("REF|2", dispatcher)
    lifecycle_service.advance("REF|3", beta_dispatcher)


class TestRecentRecords:
    def test_superadmin_sees_everything_newest_first(self, seeded, superadmin):
        items = reporting_service.list_recent_records(superadmin)
        assert [i["id"] for i in items] == [3, 2, 1]

    def test_limit(self, seeded, superadmin):
        items = reporting_service.list_recent_records(superadmin, limit=1)
        assert [i["id"] for i in items] == [3]

    def test_admin_sees_own_client_ledger(self, seeded, admin_acme):
        items = reporting_service.list_recent_records(admin_acme)
        assert [i["id"] for i in items] == [2, 1]
        assert all(i["ledger"] == "ACME" for i in items)

    def test_mechanic_sees_rows_they_touched(self, seeded, mechanic):
        items = reporting_service.list_recent_records(mechanic)
        assert len(items) == 3

    def test_dispatcher_sees_only_own_dispatches(self, seeded, dispatcher):
        items = reporting_service.list_recent_records(dispatcher)
        assert [i["id"] for i in items] == [2, 1]

    def test_explicit_client(self, seeded, superadmin):
        items = reporting_service.list_recent_records(superadmin, client="beta")
        assert [i["id"] for i in items] == [3]

    def test_personal_scope_needs_identity(self, seeded):
        anonymous = ActorContext(identity="", role="mechanic")
        with pytest.raises(ReportError):
            reporting_service.list_recent_records(anonymous)


class TestStats:
    def test_counts_by_state_and_today(self, seeded, superadmin):
        stats = reporting_service.compute_stats(superadmin)
        assert stats["total"] == 3
        assert stats["by_state"] == {
            STATE_STORED: 0,
            STATE_DISPATCHED: 3,
            STATE_INSTALLED: 0,
            STATE_UNINSTALLED: 0,
        }
        assert stats["today"] == 3

    def test_scoped_to_client(self, seeded, admin_acme):
        stats = reporting_service.compute_stats(admin_acme)
        assert stats["total"] == 2
        assert stats["by_state"][STATE_DISPATCHED] == 2

    def test_empty_ledger(self, db_session, superadmin):
        stats = reporting_service.compute_stats(superadmin)
        assert stats["total"] == 0
        assert stats["today"] == 0
