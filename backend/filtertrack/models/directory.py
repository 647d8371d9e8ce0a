from __future__ import annotations

from ..extensions import db


class Client(db.Model):
    """
    Client directory entry.

    name keeps the spelling it was registered with; name_key (trimmed,
    upper-cased) is unique and is what records and ledgers match on.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("name_key", name="uq_clients_name_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    name_key = db.Column(db.String(120), nullable=False)

    # Ledger date text (DD/MM/YYYY), same format as the unit stage dates
    registered_on = db.Column(db.String(10), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "registered_on": self.registered_on,
        }
