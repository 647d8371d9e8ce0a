from __future__ import annotations

from flask import current_app

from ..actors import normalize_client
from ..extensions import db
from ..models import Client, ClientLedgerEntry, UnitRecord
from ..time_utils import ledger_today
from ..validation import ConflictError, ValidationError
from . import ledger_service
from .concurrency import run_with_retry
from .ledger_service import store_guard


class ClientNotFoundError(ValueError):
    """Raised when a client name is not in the directory."""


class ClientHasRecordsError(ConflictError):
    """Client deletion blocked while unit records still reference it."""

    def __init__(self, name: str, count: int):
        self.name = name
        self.count = count
        super().__init__(
            f"Client '{name}' still has {count} unit record(s); "
            "remove or reassign them before deleting the client"
        )


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Client name is required")
    return cleaned


def get_client(name: str | None) -> Client | None:
    key = normalize_client(name)
    if not key:
        return None
    return db.session.query(Client).filter_by(name_key=key).first()


def list_clients() -> list[Client]:
    with store_guard("list_clients"):
        return db.session.query(Client).order_by(Client.name.asc()).all()


def ensure_client(name: str) -> tuple[Client, bool]:
    """
    Create the client if absent. Returns (client, created).

    Flushes only; the caller's transaction decides when it lands. Safe to
    call repeatedly (idempotent).
    """
    cleaned = _clean_name(name)
    existing = get_client(cleaned)
    if existing:
        return existing, False

    client = Client(
        name=cleaned,
        name_key=normalize_client(cleaned),
        registered_on=ledger_today(current_app.config["LEDGER_TIMEZONE"]),
    )
    db.session.add(client)
    db.session.flush()
    return client, True


def create_client(name: str) -> Client:
    cleaned = _clean_name(name)

    def _op():
        if get_client(cleaned):
            raise ConflictError(f"Client '{cleaned}' already exists")
        client, _ = ensure_client(cleaned)
        db.session.commit()
        return client

    with store_guard("create_client", normalize_client(cleaned)):
        client = run_with_retry(_op)
    current_app.logger.info("Registered client %s", client.name)
    return client


def rename_client(current_name: str, new_name: str) -> Client:
    """
    Rename a client and carry the new name into every unit record and
    per-client ledger row that belongs to it.
    """
    current_key = normalize_client(_clean_name(current_name))
    cleaned_new = _clean_name(new_name)
    new_key = normalize_client(cleaned_new)

    def _op():
        client = get_client(current_key)
        if not client:
            raise ClientNotFoundError(f"Client '{current_name.strip()}' not found")

        if new_key != current_key and get_client(new_key):
            raise ConflictError(f"A client named '{cleaned_new}' already exists")

        if new_key != current_key and ledger_service.client_ledger(new_key):
            raise ConflictError(f"A ledger for '{cleaned_new}' already exists")

        client.name = cleaned_new
        client.name_key = new_key

        records = db.session.query(UnitRecord).filter_by(client_key=current_key).all()
        for record in records:
            record.client = cleaned_new
            record.client_key = new_key

        db.session.query(ClientLedgerEntry).filter_by(ledger_key=current_key).update(
            {ClientLedgerEntry.ledger_key: new_key}, synchronize_session="fetch"
        )
        db.session.flush()

        # Rows for these units in any ledger copy the renamed client fields too
        for record in records:
            for entry in record.client_entries:
                entry.refresh_from(record)

        db.session.commit()
        return client

    with store_guard("rename_client", current_key):
        client = run_with_retry(_op)
    current_app.logger.info("Renamed client %s -> %s", current_key, new_key)
    return client


def delete_client(name: str) -> None:
    key = normalize_client(_clean_name(name))

    def _op():
        client = get_client(key)
        if not client:
            raise ClientNotFoundError(f"Client '{name.strip()}' not found")

        count = ledger_service.count_for_client(key)
        if count:
            raise ClientHasRecordsError(client.name, count)

        db.session.query(ClientLedgerEntry).filter_by(ledger_key=key).delete(
            synchronize_session=False
        )
        db.session.delete(client)
        db.session.commit()

    with store_guard("delete_client", key):
        run_with_retry(_op)
    current_app.logger.info("Deleted client %s", key)
