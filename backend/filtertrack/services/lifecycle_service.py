# Overview: Service-layer operations for the unit lifecycle; decides and applies scan transitions.

"""
Filter Unit Lifecycle Service

================================================================================
PURPOSE: Move a scanned unit one step along STORED -> DISPATCHED -> INSTALLED
         -> UNINSTALLED and keep the per-client ledgers in step
================================================================================

STATE MACHINE:
    (not found) -> STORED -> DISPATCHED -> INSTALLED -> UNINSTALLED

    STORED:      first scan at the plant; no client yet
    DISPATCHED:  sent to a client; client is fixed from here on
    INSTALLED:   mounted on a vehicle; needs plate, odometer, installer
    UNINSTALLED: removed; needs odometer. Terminal.

RULES:
1. The recorded state decides the next step, never the wall clock.
2. Stages cannot be skipped and state never moves backwards.
3. A stage that needs data and did not get it changes nothing (NEEDS_DATA).
4. At most one transition per unit is in flight at a time.
5. The global row commits first; per-client ledger rows are refreshed after.
   A failed refresh is reported (mirror_sync_failed) but does not undo the
   transition.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..actors import ActorContext, normalize_client
from ..extensions import db
from ..models import (
    UnitRecord,
    STATE_STORED,
    STATE_DISPATCHED,
    STATE_INSTALLED,
    STATE_UNINSTALLED,
    VALID_STATES,
    next_state,
)
from ..time_utils import ledger_stamp
from ..validation import is_valid_installer_name, is_valid_odometer
from . import client_service, ledger_service
from .code_parser import ParsedCode, parse_code
from .concurrency import RETRYABLE_ERRORS, LockTimeoutError, run_with_retry, unit_locks
from .ledger_service import StoreUnavailableError, store_guard


OUTCOME_CREATED = "CREATED"
OUTCOME_ADVANCED = "ADVANCED"
OUTCOME_NEEDS_DATA = "NEEDS_DATA"
OUTCOME_ALREADY_COMPLETED = "ALREADY_COMPLETED"

NEEDS_INSTALL_DATA = "INSTALL_DATA"
NEEDS_UNINSTALL_DATA = "UNINSTALL_DATA"

WARNING_CLIENT_REQUIRED = "CLIENT_REQUIRED"
WARNING_MIRROR_SYNC_FAILED = "MIRROR_SYNC_FAILED"

# Creation races surface as unique-constraint violations; re-reading resolves them
TRANSITION_RETRY_ERRORS = RETRYABLE_ERRORS + (IntegrityError,)

MESSAGES = {
    (OUTCOME_CREATED, STATE_STORED): "Unit registered as STORED",
    (OUTCOME_ADVANCED, STATE_DISPATCHED): "Unit marked as DISPATCHED",
    (OUTCOME_ADVANCED, STATE_INSTALLED): "Unit marked as INSTALLED",
    (OUTCOME_ADVANCED, STATE_UNINSTALLED): "Unit marked as UNINSTALLED",
    (OUTCOME_NEEDS_DATA, STATE_DISPATCHED): "Installation data required",
    (OUTCOME_NEEDS_DATA, STATE_INSTALLED): "Uninstallation data required",
    (OUTCOME_ALREADY_COMPLETED, STATE_UNINSTALLED): "Unit already completed its lifecycle (UNINSTALLED)",
}


class LifecycleError(ValueError):
    """
    Raised when a scan cannot be applied.

    This is a domain error, not a technical error: the caller has to change
    something before retrying.
    """
    pass


class MissingClientError(LifecycleError):
    """Dispatch attempted without a client."""

    def __init__(self, key: str, warnings: list[str] | None = None):
        self.key = key
        self.warnings = list(warnings or [])
        super().__init__("A client must be selected to dispatch this unit")


class UnknownStateError(LifecycleError):
    """Stored state is not one of the lifecycle states (hand-edited row)."""

    def __init__(self, key: str, state: str):
        self.key = key
        self.state = state
        super().__init__(f"Unit {key} has unknown state '{state}'; fix the ledger row before scanning")


class UnitBusyError(StoreUnavailableError):
    """Another scan of the same unit held its lock past the timeout."""

    def __init__(self, key: str, cause: Exception | None = None):
        super().__init__("unit_lock", key, cause)


@dataclass(frozen=True)
class InstallData:
    plate: str = ""
    odometer: str = ""
    installer_name: str = ""

    def missing_fields(self) -> list[str]:
        missing = []
        if not (self.plate or "").strip():
            missing.append("plate")
        if not is_valid_odometer(self.odometer):
            missing.append("odometer")
        if not is_valid_installer_name(self.installer_name):
            missing.append("installer_name")
        return missing


@dataclass(frozen=True)
class UninstallData:
    odometer: str = ""

    def missing_fields(self) -> list[str]:
        return [] if is_valid_odometer(self.odometer) else ["odometer"]


TransitionPayload = Optional[Union[InstallData, UninstallData]]

INSTALL_FIELDS = ["plate", "odometer", "installer_name"]
UNINSTALL_FIELDS = ["odometer"]


@dataclass
class AdvanceResult:
    outcome: str
    state: str
    record: dict
    needs: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    mirror_sync_failed: bool = False

    @property
    def message(self) -> str:
        return MESSAGES.get((self.outcome, self.state), self.outcome)

    def to_dict(self) -> dict:
        return {
            "action": self.outcome,
            "state": self.state,
            "message": self.message,
            "record": self.record,
            "needs": self.needs,
            "missing_fields": self.missing_fields,
            "warnings": self.warnings,
            "mirror_sync_failed": self.mirror_sync_failed,
        }


@dataclass
class _Step:
    """What _apply_transition decided, handed to the post-commit mirror pass."""
    record: UnitRecord
    outcome: str
    snapshot: dict
    needs: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    mirror_clients: list[str] = field(default_factory=list)
    repair_only: bool = False


def advance(code: str, actor: ActorContext, payload: TransitionPayload = None) -> AdvanceResult:
    """
    Apply one scan of `code` by `actor`.

    Args:
        code: raw scanned text, REFERENCE|SERIAL
        actor: trusted identity/role/client of whoever scanned
        payload: InstallData / UninstallData when the current stage needs it

    Returns:
        AdvanceResult (CREATED, ADVANCED, NEEDS_DATA or ALREADY_COMPLETED)

    Raises:
        InvalidCodeFormat: code is malformed (ledger not touched)
        MissingClientError: dispatch without a client (nothing written)
        StoreUnavailableError: ledger failed or timed out (nothing written)
    """
    parsed = parse_code(code)
    timeout = current_app.config["UNIT_LOCK_TIMEOUT_SECONDS"]

    try:
        with unit_locks.hold(parsed.key, timeout=timeout):
            return _advance_locked(parsed, actor, payload)
    except LockTimeoutError as exc:
        current_app.logger.warning("Scan of %s timed out waiting for an in-flight scan", parsed.key)
        raise UnitBusyError(parsed.key, exc) from exc


def _advance_locked(parsed: ParsedCode, actor: ActorContext, payload: TransitionPayload) -> AdvanceResult:
    try:
        with store_guard("transition", parsed.key):
            step = run_with_retry(
                lambda: _apply_transition(parsed, actor, payload),
                retry_on=TRANSITION_RETRY_ERRORS,
            )
    except StoreUnavailableError:
        current_app.logger.error("Ledger unavailable while scanning %s", parsed.key, exc_info=True)
        raise

    mirror_ok = _sync_mirrors(step.record, step.mirror_clients, only_if_missing=step.repair_only)

    result = AdvanceResult(
        outcome=step.outcome,
        state=step.snapshot["state"],
        record=step.snapshot,
        needs=step.needs,
        missing_fields=step.missing_fields,
        mirror_sync_failed=not mirror_ok,
    )
    if not mirror_ok:
        result.warnings.append(WARNING_MIRROR_SYNC_FAILED)

    if step.outcome == OUTCOME_NEEDS_DATA:
        current_app.logger.info(
            "Scan of %s by %s needs %s (missing: %s)",
            parsed.key, actor.identity, step.needs, ", ".join(step.missing_fields),
        )
    else:
        current_app.logger.info(
            "Scan of %s by %s: %s -> %s", parsed.key, actor.identity, step.outcome, result.state
        )
    return result


def _apply_transition(parsed: ParsedCode, actor: ActorContext, payload: TransitionPayload) -> _Step:
    """
    Read the unit and apply the single legal next step.

    Runs inside run_with_retry: everything is re-read on each attempt, and
    the global write is committed here so that nothing is partially visible.
    """
    record = ledger_service.find_by_key(parsed.reference, parsed.serial)

    if record is None:
        return _create_stored(parsed, actor)

    if record.state not in VALID_STATES:
        raise UnknownStateError(parsed.key, record.state)

    target = next_state(record.state)

    if target == STATE_DISPATCHED:
        return _dispatch(record, parsed, actor)

    if target == STATE_INSTALLED:
        return _install(record, actor, payload)

    if target == STATE_UNINSTALLED:
        return _uninstall(record, actor, payload)

    # No successor: terminal. Only make sure the read paths can see it.
    return _Step(
        record=record,
        snapshot=record.to_dict(),
        outcome=OUTCOME_ALREADY_COMPLETED,
        mirror_clients=_mirror_targets(record, actor),
        repair_only=True,
    )


def _create_stored(parsed: ParsedCode, actor: ActorContext) -> _Step:
    stamp_date, stamp_time = _stamp()
    record = ledger_service.append_row({
        "reference": parsed.reference,
        "serial": parsed.serial,
        "state": STATE_STORED,
        "actor_plant": actor.identity,
        "date_stored": stamp_date,
        "time_stored": stamp_time,
    })
    snapshot = record.to_dict()
    db.session.commit()
    # No client yet, so no per-client ledger to write
    return _Step(record=record, snapshot=snapshot, outcome=OUTCOME_CREATED)


def _dispatch(record: UnitRecord, parsed: ParsedCode, actor: ActorContext) -> _Step:
    client = actor.client_hint.strip()
    if not client:
        warnings = [WARNING_CLIENT_REQUIRED] if actor.is_dispatcher else []
        raise MissingClientError(parsed.key, warnings)

    stamp_date, stamp_time = _stamp()
    ledger_service.update_row(record, {
        "state": STATE_DISPATCHED,
        "client": client,
        "client_key": normalize_client(client),
        "actor_dispatch": actor.identity,
        "date_dispatched": stamp_date,
        "time_dispatched": stamp_time,
    })
    client_service.ensure_client(client)
    snapshot = record.to_dict()
    targets = _mirror_targets(record, actor)
    db.session.commit()

    return _Step(
        record=record,
        snapshot=snapshot,
        outcome=OUTCOME_ADVANCED,
        mirror_clients=targets,
    )


def _install(record: UnitRecord, actor: ActorContext, payload: TransitionPayload) -> _Step:
    if not isinstance(payload, InstallData) or payload.missing_fields():
        missing = payload.missing_fields() if isinstance(payload, InstallData) else list(INSTALL_FIELDS)
        return _Step(
            record=record,
            snapshot=record.to_dict(),
            outcome=OUTCOME_NEEDS_DATA,
            needs=NEEDS_INSTALL_DATA,
            missing_fields=missing,
        )

    stamp_date, stamp_time = _stamp()
    ledger_service.update_row(record, {
        "state": STATE_INSTALLED,
        "actor_install": actor.identity,
        "plate": payload.plate.strip(),
        "odometer_install": str(payload.odometer).strip(),
        "installer_name": payload.installer_name.strip(),
        "date_installed": stamp_date,
        "time_installed": stamp_time,
    })
    snapshot = record.to_dict()
    targets = _mirror_targets(record, actor)
    db.session.commit()

    return _Step(
        record=record,
        snapshot=snapshot,
        outcome=OUTCOME_ADVANCED,
        mirror_clients=targets,
    )


def _uninstall(record: UnitRecord, actor: ActorContext, payload: TransitionPayload) -> _Step:
    if not isinstance(payload, UninstallData) or payload.missing_fields():
        return _Step(
            record=record,
            snapshot=record.to_dict(),
            outcome=OUTCOME_NEEDS_DATA,
            needs=NEEDS_UNINSTALL_DATA,
            missing_fields=list(UNINSTALL_FIELDS),
        )

    stamp_date, stamp_time = _stamp()
    ledger_service.update_row(record, {
        "state": STATE_UNINSTALLED,
        "actor_uninstall": actor.identity,
        "odometer_uninstall": str(payload.odometer).strip(),
        "date_uninstalled": stamp_date,
        "time_uninstalled": stamp_time,
    })
    snapshot = record.to_dict()
    targets = _mirror_targets(record, actor)
    db.session.commit()

    return _Step(
        record=record,
        snapshot=snapshot,
        outcome=OUTCOME_ADVANCED,
        mirror_clients=targets,
    )


def _stamp() -> tuple[str, str]:
    return ledger_stamp(current_app.config["LEDGER_TIMEZONE"])


def _mirror_targets(record: UnitRecord, actor: ActorContext) -> list[str]:
    """
    Per-client ledgers that must hold this unit: the unit's own client and,
    when it differs, the client of whoever is scanning.
    """
    targets: list[str] = []
    seen: set[str] = set()
    for client in (record.client, actor.client_hint):
        key = normalize_client(client)
        if key and key not in seen:
            seen.add(key)
            targets.append(client.strip())
    return targets


def _sync_mirrors(record: UnitRecord, clients: list[str], *, only_if_missing: bool = False) -> bool:
    """Refresh per-client rows after the global commit. False if any write failed."""
    if not clients:
        return True

    def _op():
        for client in clients:
            # Every ledger has a directory entry, including the scanning actor's client
            client_service.ensure_client(client)
            ledger_service.sync_client_entry(record, client, only_if_missing=only_if_missing)
        db.session.commit()

    try:
        run_with_retry(_op, retry_on=TRANSITION_RETRY_ERRORS)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Client ledger sync failed for %s (ledgers: %s); global ledger is authoritative",
            record.unit_key, ", ".join(clients), exc_info=True,
        )
        return False
    return True


def payload_from_dict(data: dict | None) -> TransitionPayload:
    """
    Build the stage payload from a request body.

    {"install": {...}} -> InstallData, {"uninstall": {...}} -> UninstallData,
    neither -> None.
    """
    data = data or {}
    install = data.get("install")
    if isinstance(install, dict):
        return InstallData(
            plate=_text(install.get("plate")),
            odometer=_text(install.get("odometer")),
            installer_name=_text(install.get("installer_name")),
        )
    uninstall = data.get("uninstall")
    if isinstance(uninstall, dict):
        return UninstallData(odometer=_text(uninstall.get("odometer")))
    return None


def _text(value) -> str:
    # 0 is a legitimate odometer reading, so only None counts as absent
    return "" if value is None else str(value)
