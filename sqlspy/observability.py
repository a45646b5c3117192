"""
Logging setup and call records.

Every traced call produces exactly one ``CallRecord``. The record is handed
to ``log_call`` straight away and never stored.

Record shape
------------
``configure_logging`` installs a handler that renders::

    <timestamp> <level> [<object-tag>] [<duration-tag>] <method>(<args>)[: <result>]

The two tags are not part of the message. They are read from the
thread-scoped logging context (see ``sqlspy.utils.log_context``) by a filter
attached to the handler.
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, TextIO

from sqlspy.config import settings
from sqlspy.formatter import CallDescription, Formatted
from sqlspy.utils.log_context import LogContextFilter

logger = logging.getLogger("sqlspy.trace")


@dataclass(frozen=True)
class CallRecord:
    """Outcome of a single traced call."""

    method: str
    description: CallDescription
    elapsed_ms: float
    result: Any = None
    error: BaseException | None = None
    has_result: bool = True


def log_call(call_logger: logging.Logger, level: int, record: CallRecord) -> None:
    """Emit the log line for a call record."""
    if record.error is not None:
        call_logger.log(level, "%s", record.description, exc_info=record.error)
    elif record.has_result:
        call_logger.log(
            level, "%s: %s", record.description, Formatted(record.result, record.description.formatter)
        )
    else:
        call_logger.log(level, "%s", record.description)


def tag_format(object_tag_key: str | None, duration_tag_key: str | None) -> str:
    """Build the record format string for the configured tag keys."""
    parts = ["%(asctime)s %(levelname)-5s"]
    if object_tag_key:
        parts.append(f"[%({object_tag_key})-30s]")
    if duration_tag_key:
        parts.append(f"[%({duration_tag_key})5s]")
    parts.append("%(message)s")
    return " ".join(parts)


class CallLogHandler(logging.StreamHandler):
    """Console handler installed by ``configure_logging``."""


def configure_logging(
    level: str | int | None = None,
    stream: TextIO | None = None,
    object_tag_key: str | None = settings.object_tag_key or None,
    duration_tag_key: str | None = settings.duration_tag_key or None,
) -> logging.Handler:
    """
    Attach a console handler rendering call records to the ``sqlspy`` logger.

    Pass the same tag keys the ``ProxyGenerator`` writes, or their brackets
    render empty.

    Args:
        level: Threshold of the ``sqlspy`` logger; defaults to ``settings.log_level``
        stream: Output stream, stdout by default
        object_tag_key: Context key of the decorator identity; None drops the field
        duration_tag_key: Context key of the call duration; None drops the field

    Returns:
        The installed handler
    """
    spy_logger = logging.getLogger("sqlspy")
    spy_logger.setLevel(level if level is not None else settings.log_level.upper())

    # Remove handlers installed by a previous call
    for handler in spy_logger.handlers[:]:
        if isinstance(handler, CallLogHandler):
            spy_logger.removeHandler(handler)

    keys = [key for key in (object_tag_key, duration_tag_key) if key]
    handler = CallLogHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=tag_format(object_tag_key, duration_tag_key)))
    handler.addFilter(LogContextFilter(*keys))
    spy_logger.addHandler(handler)
    return handler


@contextmanager
def trace_span(name: str, **metadata):
    """Log how long the enclosed block took, as ``[TRACE] <name> duration_ms=...``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        meta = " ".join(f"{k}={v}" for k, v in metadata.items())
        logger.info("[TRACE] %s duration_ms=%.2f %s", name, duration_ms, meta)
