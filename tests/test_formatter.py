"""
Tests for argument formatting.
"""

from unittest.mock import Mock

from sqlspy.formatter import CallDescription, Formatted, format_value


class TestFormatValue:
    """Test the canonical text form of call values."""

    def test_none_is_null(self):
        """None should be rendered as the literal null."""
        assert format_value(None) == "null"

    def test_string_is_double_quoted(self):
        """Plain strings should be wrapped in double quotes."""
        assert format_value("SELECT 1") == '"SELECT 1"'

    def test_embedded_quote_escaped(self):
        """Double quotes inside strings should be escaped."""
        assert format_value('a"b') == r'"a\"b"'

    def test_apostrophe_and_backslash_escaped(self):
        """Apostrophes and backslashes should be escaped."""
        assert format_value("it's C:\\tmp") == r'"it\'s C:\\tmp"'

    def test_control_characters_use_short_escapes(self):
        """Newline, carriage return, tab and backspace have short escapes."""
        assert format_value("a\nb\rc\td\be") == r'"a\nb\rc\td\be"'

    def test_other_control_character_is_decimal(self):
        """Code point 11 should be written as decimal 0011, not hex 000B."""
        assert format_value(chr(11)) == r'"\u0011"'
        assert format_value(chr(11)) != r'"\u000B"'

    def test_delete_character_escaped(self):
        """DEL is outside printable ASCII."""
        assert format_value(chr(127)) == r'"\u0127"'

    def test_non_ascii_is_decimal(self):
        """Non-ASCII characters should be escaped with their decimal code."""
        assert format_value("café") == r'"caf\u0233"'
        assert format_value("€") == r'"\u8364"'

    def test_wide_code_is_not_truncated(self):
        """Codes above 9999 keep all their digits."""
        assert format_value("中") == r'"\u20013"'

    def test_astral_character_written_as_utf16_units(self):
        """Characters outside the BMP are written as two escaped surrogates."""
        assert format_value("😀") == r'"\u55357\u56832"'

    def test_printable_ascii_passes_through(self):
        """Every printable ASCII character other than quotes and backslash is verbatim."""
        printable = "".join(chr(c) for c in range(0x20, 0x7F) if chr(c) not in "\"'\\")
        assert format_value(printable) == f'"{printable}"'

    def test_other_values_use_str(self):
        """Non-string values should use their default text form."""
        assert format_value(42) == "42"
        assert format_value(1.5) == "1.5"
        assert format_value(True) == "True"
        assert format_value((1, "a")) == "(1, 'a')"

    def test_empty_string(self):
        """Empty strings are still quoted."""
        assert format_value("") == '""'


class TestCallDescription:
    """Test lazily rendered call descriptions."""

    def test_positional_arguments(self):
        """Arguments should be formatted in order and comma-separated."""
        description = CallDescription("execute", ("SELECT ?", (1,)))

        assert str(description) == 'execute("SELECT ?", (1,))'

    def test_null_argument(self):
        """None arguments should appear as null."""
        assert str(CallDescription("setoutputsize", (10, None))) == "setoutputsize(10, null)"

    def test_no_arguments(self):
        """A call without arguments renders empty parentheses."""
        assert str(CallDescription("close")) == "close()"

    def test_keyword_arguments_follow_positional(self):
        """Keyword arguments should be rendered as key=value after positional ones."""
        description = CallDescription("fetchmany", (), {"size": 2})

        assert str(description) == "fetchmany(size=2)"

    def test_formatting_is_deferred_and_cached(self):
        """Nothing is formatted until rendering, and rendering happens once."""
        formatter = Mock(side_effect=format_value)
        description = CallDescription("execute", ("SELECT 1",), formatter=formatter)

        formatter.assert_not_called()

        assert str(description) == 'execute("SELECT 1")'
        assert str(description) == 'execute("SELECT 1")'
        assert formatter.call_count == 1


class TestFormatted:
    """Test the lazy single-value holder."""

    def test_renders_with_formatter(self):
        """Formatted should apply the formatter when converted to text."""
        assert str(Formatted("x")) == '"x"'
        assert str(Formatted(None)) == "null"
