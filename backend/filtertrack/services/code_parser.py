# Overview: Turns raw scanned QR text into a (reference, serial) pair.

from __future__ import annotations

from dataclasses import dataclass

from ..validation import ValidationError

CODE_SEPARATOR = "|"

# Longest prefix of a rejected code echoed back in the error message
MAX_ECHO_LENGTH = 50


class InvalidCodeFormat(ValidationError):
    """Scanned text is not REFERENCE|SERIAL."""

    def __init__(self, raw: str | None):
        self.raw = raw
        shown = (raw or "")[:MAX_ECHO_LENGTH]
        if raw and len(raw) > MAX_ECHO_LENGTH:
            shown += "..."
        super().__init__(f'Invalid code format. Expected REFERENCE|SERIAL, received: "{shown}"')


@dataclass(frozen=True)
class ParsedCode:
    reference: str
    serial: str

    @property
    def key(self) -> str:
        return f"{self.reference}{CODE_SEPARATOR}{self.serial}"


def parse_code(raw: str | None) -> ParsedCode:
    """
    Parse a scanned code such as "OG971390|202630010002".

    Exactly one separator, both halves non-blank after trimming. Pure: never
    touches the ledger.
    """
    if not isinstance(raw, str):
        raise InvalidCodeFormat(None if raw is None else str(raw))

    parts = raw.strip().split(CODE_SEPARATOR)
    if len(parts) != 2:
        raise InvalidCodeFormat(raw)

    reference, serial = parts[0].strip(), parts[1].strip()
    if not reference or not serial:
        raise InvalidCodeFormat(raw)

    return ParsedCode(reference=reference, serial=serial)
