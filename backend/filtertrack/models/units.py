from __future__ import annotations

from ..extensions import db

"""
Unit ledger tables.

unit_records is the global ledger and the single source of truth: one row per
physical (reference, serial) pair.

client_ledger_entries is the per-client ledger: a materialized view of
unit_records keyed by (ledger_key, unit_id). Rows are only ever refreshed
wholesale from the global row, after the global write has committed.
"""

STATE_STORED = "STORED"
STATE_DISPATCHED = "DISPATCHED"
STATE_INSTALLED = "INSTALLED"
STATE_UNINSTALLED = "UNINSTALLED"

# Strict total order; index in this tuple is the state's rank
STATE_ORDER = (STATE_STORED, STATE_DISPATCHED, STATE_INSTALLED, STATE_UNINSTALLED)
VALID_STATES = set(STATE_ORDER)


def next_state(state: str) -> str | None:
    """The only state a unit may move to from `state` (None once terminal)."""
    idx = STATE_ORDER.index(state)
    if idx + 1 >= len(STATE_ORDER):
        return None
    return STATE_ORDER[idx + 1]


# Every field the per-client ledger copies from the global row
MIRRORED_FIELDS = (
    "reference",
    "serial",
    "state",
    "client",
    "client_key",
    "actor_plant",
    "actor_dispatch",
    "actor_install",
    "actor_uninstall",
    "plate",
    "installer_name",
    "odometer_install",
    "odometer_uninstall",
    "date_stored",
    "time_stored",
    "date_dispatched",
    "time_dispatched",
    "date_installed",
    "time_installed",
    "date_uninstalled",
    "time_uninstalled",
)

ACTOR_FIELDS = ("actor_plant", "actor_dispatch", "actor_install", "actor_uninstall")
DATE_FIELDS = ("date_stored", "date_dispatched", "date_installed", "date_uninstalled")


class UnitFieldsMixin:
    reference = db.Column(db.String(64), nullable=False)
    serial = db.Column(db.String(64), nullable=False)

    state = db.Column(db.String(16), nullable=False, default=STATE_STORED, index=True)

    # Display name as entered at dispatch; client_key is what every match uses
    client = db.Column(db.String(120), nullable=False, default="")
    client_key = db.Column(db.String(120), nullable=False, default="", index=True)

    actor_plant = db.Column(db.String(255), nullable=False, default="")
    actor_dispatch = db.Column(db.String(255), nullable=False, default="")
    actor_install = db.Column(db.String(255), nullable=False, default="")
    actor_uninstall = db.Column(db.String(255), nullable=False, default="")

    plate = db.Column(db.String(32), nullable=False, default="")
    installer_name = db.Column(db.String(255), nullable=False, default="")
    odometer_install = db.Column(db.String(32), nullable=False, default="")
    odometer_uninstall = db.Column(db.String(32), nullable=False, default="")

    # Ledger text format: DD/MM/YYYY and HH:MM:SS
    date_stored = db.Column(db.String(10), nullable=False, default="")
    time_stored = db.Column(db.String(8), nullable=False, default="")
    date_dispatched = db.Column(db.String(10), nullable=False, default="")
    time_dispatched = db.Column(db.String(8), nullable=False, default="")
    date_installed = db.Column(db.String(10), nullable=False, default="")
    time_installed = db.Column(db.String(8), nullable=False, default="")
    date_uninstalled = db.Column(db.String(10), nullable=False, default="")
    time_uninstalled = db.Column(db.String(8), nullable=False, default="")

    @property
    def unit_key(self) -> str:
        return f"{self.reference}|{self.serial}"

    def involves_actor(self, identity: str) -> bool:
        wanted = (identity or "").strip().lower()
        if not wanted:
            return False
        return any((getattr(self, f) or "").strip().lower() == wanted for f in ACTOR_FIELDS)

    def has_date(self, ledger_date: str) -> bool:
        return any(getattr(self, f) == ledger_date for f in DATE_FIELDS)

    def _fields_dict(self) -> dict:
        return {f: getattr(self, f) for f in MIRRORED_FIELDS}


class UnitRecord(UnitFieldsMixin, db.Model):
    """
    One physical filter unit, identified by (reference, serial).

    The id is assigned on first scan and never changes. State only moves
    forward along STATE_ORDER.
    """
    __tablename__ = "unit_records"
    __table_args__ = (
        db.UniqueConstraint("reference", "serial", name="uq_unit_records_reference_serial"),
        db.Index("ix_unit_records_client_state", "client_key", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<UnitRecord id={self.id} key={self.unit_key!r} state={self.state}>"

    def to_dict(self) -> dict:
        data = {"id": self.id}
        data.update(self._fields_dict())
        return data


class ClientLedgerEntry(UnitFieldsMixin, db.Model):
    """Per-client copy of a UnitRecord (see module docstring)."""
    __tablename__ = "client_ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("ledger_key", "unit_id", name="uq_client_ledger_ledger_unit"),
        db.UniqueConstraint("ledger_key", "entry_no", name="uq_client_ledger_ledger_entry_no"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Which client's ledger this row belongs to (may differ from the unit's own client)
    ledger_key = db.Column(db.String(120), nullable=False, index=True)

    # Sequential within one client's ledger
    entry_no = db.Column(db.Integer, nullable=False)

    unit_id = db.Column(db.Integer, db.ForeignKey("unit_records.id"), nullable=False, index=True)

    synced_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    unit = db.relationship("UnitRecord", backref=db.backref("client_entries", lazy=True))

    def __repr__(self) -> str:
        return f"<ClientLedgerEntry ledger={self.ledger_key!r} no={self.entry_no} unit_id={self.unit_id}>"

    def refresh_from(self, record: UnitRecord) -> None:
        for f in MIRRORED_FIELDS:
            setattr(self, f, getattr(record, f))

    def to_dict(self) -> dict:
        data = {"id": self.unit_id, "entry_no": self.entry_no, "ledger": self.ledger_key}
        data.update(self._fields_dict())
        return data
