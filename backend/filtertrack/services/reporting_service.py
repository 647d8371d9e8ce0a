# Overview: Read paths over the ledgers: most recent records and per-state counts.

from __future__ import annotations

from flask import current_app

from ..actors import ActorContext
from ..models import STATE_ORDER
from ..time_utils import ledger_today
from . import ledger_service
from .ledger_service import store_guard


class ReportError(Exception):
    """Raised when a report cannot be scoped."""
    pass


def _scoped_rows(actor: ActorContext, client: str | None) -> list:
    """
    Rows visible for this request, oldest first.

    - explicit client      -> that client's per-client ledger
    - superadmin           -> whole global ledger
    - admin                -> their client's ledger (global ledger if they have none)
    - mechanic/dispatcher  -> global rows where they appear as one of the actors
    """
    client = (client or "").strip()
    with store_guard("report", client or actor.identity):
        if client:
            return ledger_service.client_ledger(client)

        if actor.is_superadmin:
            return ledger_service.scan_all()

        if actor.is_admin:
            if actor.client_key:
                return ledger_service.client_ledger(actor.client_key)
            return ledger_service.scan_all()

        if not actor.identity:
            raise ReportError("Actor identity is required for a personal scope")
        return [r for r in ledger_service.scan_all() if r.involves_actor(actor.identity)]


def list_recent_records(actor: ActorContext, *, client: str | None = None, limit: int | None = None) -> list[dict]:
    """Most recent `limit` records in scope, newest first."""
    if limit is None:
        limit = current_app.config["RECENT_RECORDS_DEFAULT_LIMIT"]
    limit = max(1, min(limit, current_app.config["RECENT_RECORDS_MAX_LIMIT"]))

    rows = _scoped_rows(actor, client)
    return [row.to_dict() for row in reversed(rows[-limit:])]


def compute_stats(actor: ActorContext, *, client: str | None = None) -> dict:
    """
    Per-state counts for the scope plus `today`: rows with any stage stamped
    on today's ledger date.
    """
    rows = _scoped_rows(actor, client)
    today = ledger_today(current_app.config["LEDGER_TIMEZONE"])

    by_state = {state: 0 for state in STATE_ORDER}
    today_count = 0
    for row in rows:
        if row.state in by_state:
            by_state[row.state] += 1
        if row.has_date(today):
            today_count += 1

    return {
        "total": len(rows),
        "by_state": by_state,
        "today": today_count,
    }
