import pytest

from filtertrack.services.code_parser import InvalidCodeFormat, parse_code
from filtertrack.validation import ValidationError


class TestParseCode:
    def test_splits_reference_and_serial(self):
        parsed = parse_code("OG971390|202630010002")
        assert parsed.reference == "OG971390"
        assert parsed.serial == "202630010002"
        assert parsed.key == "OG971390|202630010002"

    def test_trims_whitespace_around_parts(self):
        parsed = parse_code("  OG971390 | 202630010002 \n")
        assert parsed.reference == "OG971390"
        assert parsed.serial == "202630010002"

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "OG971390",
        "OG971390|",
        "|202630010002",
        " | ",
        "A|B|C",
        "hello world",
    ])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidCodeFormat):
            parse_code(raw)

    @pytest.mark.parametrize("raw", [None, 12345, {"code": "A|B"}])
    def test_rejects_non_text(self, raw):
        with pytest.raises(InvalidCodeFormat):
            parse_code(raw)

    def test_error_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            parse_code("nope")

    def test_error_echoes_at_most_fifty_characters(self):
        raw = "X" * 80
        with pytest.raises(InvalidCodeFormat) as exc_info:
            parse_code(raw)
        message = str(exc_info.value)
        assert "X" * 50 in message
        assert "X" * 51 not in message
        assert "REFERENCE|SERIAL" in message
