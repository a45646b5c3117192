"""
Thread-scoped logging context.

This module stores per-thread tag values (which decorator is logging, how
long the last call took) in thread-local storage so that log handlers can
render them next to the message without the message text carrying them.

Traced calls write their tags immediately before emitting a record and
never rely on the values surviving across calls.
"""

from __future__ import annotations

import logging
import threading

_tls = threading.local()


def _tags() -> dict[str, str]:
    if not hasattr(_tls, "tags"):
        _tls.tags = {}
    return _tls.tags


def put_tag(key: str, value: str) -> None:
    """Set a context tag for the current thread."""
    _tags()[key] = value


def get_tag(key: str, default: str | None = None) -> str | None:
    """Return a context tag of the current thread."""
    return getattr(_tls, "tags", {}).get(key, default)


def get_tags() -> dict[str, str]:
    """Return a copy of all context tags of the current thread."""
    return dict(getattr(_tls, "tags", {}))


def clear_tags() -> None:
    """Drop all context tags of the current thread."""
    if hasattr(_tls, "tags"):
        delattr(_tls, "tags")


class LogContextFilter(logging.Filter):
    """
    Copies context tags onto each record as attributes.

    Keys without a value get ``default`` so format strings such as
    ``%(spy_id)s`` never fail.
    """

    def __init__(self, *keys: str, default: str = ""):
        super().__init__()
        self.keys = keys
        self.default = default

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.keys:
            if not hasattr(record, key):
                setattr(record, key, get_tag(key, self.default))
        return True
