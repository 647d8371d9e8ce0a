from .units import (
    UnitRecord,
    ClientLedgerEntry,
    STATE_STORED,
    STATE_DISPATCHED,
    STATE_INSTALLED,
    STATE_UNINSTALLED,
    STATE_ORDER,
    VALID_STATES,
    next_state,
)
from .directory import Client

__all__ = [
    'UnitRecord', 'ClientLedgerEntry', 'Client',
    'STATE_STORED', 'STATE_DISPATCHED', 'STATE_INSTALLED', 'STATE_UNINSTALLED',
    'STATE_ORDER', 'VALID_STATES', 'next_state',
]
