"""
Argument formatting for call records.

Values passed to and returned from traced calls are rendered into a single
canonical text form so that log lines stay on one line and can be compared
across runs.

Escape format
-------------
Strings are double-quoted. Quotes, apostrophes and backslashes are escaped,
the usual control characters get their short escapes, printable ASCII passes
through, and everything else becomes ``\\u`` followed by the UTF-16 code unit
written in *decimal*, zero-padded to four digits. ``chr(11)`` is therefore
rendered as ``\\u0011``, not ``\\u000B``. Existing log consumers depend on
this, so it is kept as is.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

_SHORT_ESCAPES = {
    '"': '\\"',
    "'": "\\'",
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
}


def _utf16_units(code_point: int) -> tuple[int, ...]:
    if code_point <= 0xFFFF:
        return (code_point,)
    offset = code_point - 0x10000
    return (0xD800 + (offset >> 10), 0xDC00 + (offset & 0x3FF))


def format_text(text: str) -> str:
    """Quote and escape a string."""
    parts = ['"']
    for ch in text:
        escaped = _SHORT_ESCAPES.get(ch)
        if escaped is not None:
            parts.append(escaped)
        elif " " <= ch <= "~":
            parts.append(ch)
        else:
            for unit in _utf16_units(ord(ch)):
                parts.append(f"\\u{unit:04d}")
    parts.append('"')
    return "".join(parts)


def format_value(value: Any) -> str:
    """
    Convert a call argument or result into its loggable text form.

    Args:
        value: Any value seen by a traced call

    Returns:
        ``null`` for None, an escaped quoted string for str, ``str(value)`` otherwise
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        return format_text(value)
    return str(value)


class Formatted:
    """Defers formatting of a single value until the log record is rendered."""

    __slots__ = ("value", "formatter")

    def __init__(self, value: Any, formatter: Callable[[Any], str] = format_value):
        self.value = value
        self.formatter = formatter

    def __str__(self) -> str:
        return self.formatter(self.value)


class CallDescription:
    """
    Lazily rendered ``name(arg1, arg2, key=value)`` text of one call.

    Rendering happens at most once, and only when a handler actually
    formats the record.
    """

    __slots__ = ("name", "args", "kwargs", "formatter", "_text")

    def __init__(
        self,
        name: str,
        args: Sequence[Any] = (),
        kwargs: Mapping[str, Any] | None = None,
        formatter: Callable[[Any], str] = format_value,
    ):
        self.name = name
        self.args = args
        self.kwargs = kwargs or {}
        self.formatter = formatter
        self._text: str | None = None

    def __str__(self) -> str:
        if self._text is None:
            rendered = [self.formatter(arg) for arg in self.args]
            rendered.extend(f"{key}={self.formatter(val)}" for key, val in self.kwargs.items())
            self._text = f"{self.name}({', '.join(rendered)})"
        return self._text

    def __repr__(self) -> str:
        return f"CallDescription({self})"
