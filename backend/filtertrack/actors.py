# Overview: Explicit actor context passed into every core call (no ambient "current user").

from __future__ import annotations

from dataclasses import dataclass

ROLE_MECHANIC = "mechanic"
ROLE_DISPATCHER = "dispatcher"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"

VALID_ROLES = {ROLE_MECHANIC, ROLE_DISPATCHER, ROLE_ADMIN, ROLE_SUPERADMIN}

# User types as stored by the credential directory upstream
ROLE_ALIASES = {
    "mecanico": ROLE_MECHANIC,
    "mecánico": ROLE_MECHANIC,
    "user": ROLE_MECHANIC,
    "despacho": ROLE_DISPATCHER,
    "dispatch": ROLE_DISPATCHER,
    "administrador": ROLE_ADMIN,
    "super": ROLE_SUPERADMIN,
}


class UnknownRoleError(ValueError):
    """Raised when an actor role is not one of VALID_ROLES (or an alias)."""


def normalize_identity(identity: str | None) -> str:
    return (identity or "").strip().lower()


def normalize_client(client: str | None) -> str:
    """Match key for client names: trimmed, upper-cased."""
    return (client or "").strip().upper()


def normalize_role(role: str | None) -> str:
    value = (role or "").strip().lower()
    value = ROLE_ALIASES.get(value, value)
    if value not in VALID_ROLES:
        raise UnknownRoleError(
            f"Invalid role '{role}'. Must be one of: {', '.join(sorted(VALID_ROLES))}"
        )
    return value


@dataclass(frozen=True)
class ActorContext:
    """
    Who is scanning, already authenticated by the caller.

    client_hint is the client the actor works for (or, for dispatchers, the
    client picked for this dispatch). It may be empty.
    """
    identity: str
    role: str
    client_hint: str = ""

    @classmethod
    def build(cls, identity: str | None, role: str | None, client_hint: str | None = None) -> "ActorContext":
        return cls(
            identity=normalize_identity(identity),
            role=normalize_role(role),
            client_hint=(client_hint or "").strip(),
        )

    @property
    def client_key(self) -> str:
        return normalize_client(self.client_hint)

    @property
    def is_dispatcher(self) -> bool:
        return self.role == ROLE_DISPATCHER

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SUPERADMIN)
