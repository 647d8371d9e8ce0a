import pytest

from filtertrack.models import Client, ClientLedgerEntry, UnitRecord
from filtertrack.services import client_service, ledger_service, lifecycle_service
from filtertrack.services.client_service import ClientHasRecordsError, ClientNotFoundError
from filtertrack.validation import ConflictError, ValidationError

CODE = "OG971390|202630010002"


class TestCreateClient:
    def test_create_and_list(self, db_session):
        client_service.create_client("  Acme  ")
        client_service.create_client("Beta")

        names = [c.name for c in client_service.list_clients()]
        assert names == ["Acme", "Beta"]
        assert client_service.get_client("ACME").name_key == "ACME"

    def test_duplicate_name_is_a_conflict(self, db_session):
        client_service.create_client("Acme")
        with pytest.raises(ConflictError):
            client_service.create_client("acme")
        assert db_session.query(Client).count() == 1

    def test_blank_name_is_rejected(self, db_session):
        with pytest.raises(ValidationError):
            client_service.create_client("   ")

    def test_ensure_client_is_idempotent(self, db_session):
        first, created = client_service.ensure_client("Acme")
        second, created_again = client_service.ensure_client("ACME")
        assert created is True
        assert created_again is False
        assert first.id == second.id


class TestDeleteClient:
    def test_delete_unused_client(self, db_session):
        client_service.create_client("Acme")
        client_service.delete_client("acme")
        assert client_service.get_client("Acme") is None

    def test_delete_blocked_by_records(self, db_session, mechanic, dispatcher):
        lifecycle_service.advance(CODE, mechanic)
        lifecycle_service.advance(CODE, dispatcher)

        with pytest.raises(ClientHasRecordsError) as exc_info:
            client_service.delete_client("ACME")
        assert exc_info.value.count == 1
        assert client_service.get_client("ACME") is not None

    def test_delete_missing_client(self, db_session):
        with pytest.raises(ClientNotFoundError):
            client_service.delete_client("Nobody")


class TestRenameClient:
    def test_rename_cascades_to_records_and_ledgers(self, db_session, mechanic, dispatcher):
        lifecycle_service.advance(CODE, mechanic)
        lifecycle_service.advance(CODE, dispatcher)

        client_service.rename_client("acme", "Acme Fleet")

        unit = db_session.query(UnitRecord).one()
        assert unit.client == "Acme Fleet"
        assert unit.client_key == "ACME FLEET"
        assert ledger_service.client_ledger("ACME") == []
        rows = ledger_service.client_ledger("Acme Fleet")
        assert len(rows) == 1
        assert rows[0].client == "Acme Fleet"
        assert db_session.query(ClientLedgerEntry).count() == 1

    def test_rename_onto_existing_name_conflicts(self, db_session):
        client_service.create_client("Acme")
        client_service.create_client("Beta")
        with pytest.raises(ConflictError):
            client_service.rename_client("Acme", "BETA")

    def test_rename_case_only(self, db_session):
        client_service.create_client("acme")
        client = client_service.rename_client("ACME", "Acme")
        assert client.name == "Acme"

    def test_rename_missing_client(self, db_session):
        with pytest.raises(ClientNotFoundError):
            client_service.rename_client("Nobody", "Somebody")


class TestScanningActorLedger:
    """A scanning actor's own client gets a ledger, so it gets a directory entry too."""

    @staticmethod
    def _install_as_outside_mechanic(mechanic, dispatcher):
        from filtertrack.actors import ActorContext
        outside = ActorContext.build("kim@fleet.local", "mechanic", "Fleet Co")
        lifecycle_service.advance(CODE, mechanic)
        lifecycle_service.advance(CODE, dispatcher)
        lifecycle_service.advance(CODE, outside, lifecycle_service.InstallData(
            plate="ABC123", odometer="15000", installer_name="Kim Lee",
        ))

    def test_actor_client_is_registered(self, db_session, mechanic, dispatcher):
        self._install_as_outside_mechanic(mechanic, dispatcher)

        assert sorted(c.name_key for c in client_service.list_clients()) == ["ACME", "FLEET CO"]
        assert len(ledger_service.client_ledger("Fleet Co")) == 1

    def test_rename_onto_actor_client_conflicts(self, db_session, mechanic, dispatcher):
        self._install_as_outside_mechanic(mechanic, dispatcher)

        with pytest.raises(ConflictError):
            client_service.rename_client("ACME", "Fleet Co")
        assert db_session.query(UnitRecord).one().client_key == "ACME"

    def test_rename_onto_unregistered_ledger_conflicts(self, db_session, mechanic, dispatcher):
        self._install_as_outside_mechanic(mechanic, dispatcher)
        # Ledger rows left behind without a directory entry
        db_session.delete(client_service.get_client("Fleet Co"))
        db_session.commit()

        with pytest.raises(ConflictError):
            client_service.rename_client("ACME", "fleet co")
        assert len(ledger_service.client_ledger("ACME")) == 1
        assert len(ledger_service.client_ledger("FLEET CO")) == 1

    def test_actor_client_can_be_deleted(self, db_session, mechanic, dispatcher):
        self._install_as_outside_mechanic(mechanic, dispatcher)

        client_service.delete_client("Fleet Co")

        assert client_service.get_client("Fleet Co") is None
        assert ledger_service.client_ledger("FLEET CO") == []
        assert len(ledger_service.client_ledger("ACME")) == 1
