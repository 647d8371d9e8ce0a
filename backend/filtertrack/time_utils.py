from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

LEDGER_DATE_FORMAT = "%d/%m/%Y"
LEDGER_TIME_FORMAT = "%H:%M:%S"


def ledger_now(tz_name: str = "UTC") -> datetime:
    """Server-side 'now' in the ledger's configured zone (aware)."""
    return datetime.now(ZoneInfo(tz_name))


def ledger_stamp(tz_name: str = "UTC") -> tuple[str, str]:
    """
    Date/time pair written into a stage slot.

    Both halves come from the same clock reading so a stage never gets a
    date from one second and a time from the next.
    """
    now = ledger_now(tz_name)
    return format_ledger_date(now.date()), now.strftime(LEDGER_TIME_FORMAT)


def ledger_today(tz_name: str = "UTC") -> str:
    return format_ledger_date(ledger_now(tz_name).date())


def format_ledger_date(value: Optional[date]) -> str:
    if value is None:
        return ""
    return value.strftime(LEDGER_DATE_FORMAT)


def parse_ledger_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a ledger date string (DD/MM/YYYY).

    - None / "" -> None
    - single-digit day or month ("1/1/2024") is accepted
    - anything else raises ValueError
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    # Time suffixes from hand-edited rows ("31/03/2024 10:00") are ignored
    s = s.split(" ", 1)[0]
    return datetime.strptime(s, LEDGER_DATE_FORMAT).date()
