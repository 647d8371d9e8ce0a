# Overview: Ledger store adapter; row-level access to the global and per-client ledgers.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..actors import normalize_client
from ..extensions import db
from ..models import ClientLedgerEntry, UnitRecord

"""
Ledger invariants (authoritative)

- unit_records is the source of truth; at most one row per (reference, serial).
- Rows are never deleted.
- client_ledger_entries rows are written only after the matching global
  write has committed, and always by copying the whole global row.
- Functions here flush but never commit; callers own the transaction.
"""


class StoreUnavailableError(Exception):
    """
    Backing store failed or timed out.

    Carries the stage ("lookup", "dispatch", "projection", ...) and the unit
    or client key involved so operators can tell what was being attempted.
    """

    def __init__(self, stage: str, key: str | None = None, cause: Exception | None = None):
        self.stage = stage
        self.key = key
        self.cause = cause
        where = f" [{key}]" if key else ""
        super().__init__(f"Ledger store unavailable during {stage}{where}: {cause or 'timeout'}")


@contextmanager
def store_guard(stage: str, key: str | None = None):
    """Translate driver/ORM failures into StoreUnavailableError, after rollback."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailableError(stage, key, exc) from exc


# ---------------------------------------------------------------------------
# Global ledger
# ---------------------------------------------------------------------------

def find_by_key(reference: str, serial: str) -> UnitRecord | None:
    return (
        db.session.query(UnitRecord)
        .filter_by(reference=reference, serial=serial)
        .first()
    )


def append_row(fields: dict) -> UnitRecord:
    record = UnitRecord(**fields)
    db.session.add(record)
    db.session.flush()  # assigns record.id without committing
    return record


def update_row(record: UnitRecord, fields: dict) -> UnitRecord:
    for key, value in fields.items():
        setattr(record, key, value)
    db.session.flush()
    return record


def scan_all(*, client: str | None = None) -> list[UnitRecord]:
    """Every global row in insertion order, optionally limited to one client."""
    q = db.session.query(UnitRecord)
    if client:
        q = q.filter(UnitRecord.client_key == normalize_client(client))
    return q.order_by(UnitRecord.id.asc()).all()


def count_for_client(client: str) -> int:
    return (
        db.session.query(func.count(UnitRecord.id))
        .filter(UnitRecord.client_key == normalize_client(client))
        .scalar()
    ) or 0


# ---------------------------------------------------------------------------
# Per-client ledgers
# ---------------------------------------------------------------------------

def client_ledger(client: str) -> list[ClientLedgerEntry]:
    return (
        db.session.query(ClientLedgerEntry)
        .filter(ClientLedgerEntry.ledger_key == normalize_client(client))
        .order_by(ClientLedgerEntry.entry_no.asc())
        .all()
    )


def find_client_entry(ledger_key: str, unit_id: int) -> ClientLedgerEntry | None:
    return (
        db.session.query(ClientLedgerEntry)
        .filter_by(ledger_key=ledger_key, unit_id=unit_id)
        .first()
    )


def next_entry_no(ledger_key: str) -> int:
    current = (
        db.session.query(func.max(ClientLedgerEntry.entry_no))
        .filter(ClientLedgerEntry.ledger_key == ledger_key)
        .scalar()
    )
    return (current or 0) + 1


def sync_client_entry(record: UnitRecord, client: str, *, only_if_missing: bool = False) -> ClientLedgerEntry | None:
    """
    Create or refresh `record`'s row in `client`'s ledger.

    only_if_missing=True leaves an existing row untouched (repair mode) and
    returns None for it.

    Safe to call repeatedly (idempotent).
    """
    ledger_key = normalize_client(client)
    if not ledger_key:
        return None

    entry = find_client_entry(ledger_key, record.id)
    if entry is not None and only_if_missing:
        return None

    if entry is None:
        entry = ClientLedgerEntry(
            ledger_key=ledger_key,
            entry_no=next_entry_no(ledger_key),
            unit_id=record.id,
        )
        db.session.add(entry)

    entry.refresh_from(record)
    db.session.flush()
    return entry
