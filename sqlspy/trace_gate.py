"""
Hot-reloadable SQL trap.

The trap decides whether a traced call should additionally log a stack
trace. It is driven by a small ``key=value`` file in the working directory:

    matchText=SELECT\\s+.*\\s+FROM\\s+tblSomething

would dump a stack for every statement selecting from ``tblSomething``
(where that table is the first one after ``FROM``). The file is polled
lazily, at most once per reload interval, so the pattern can be changed,
or the file deleted to turn the trap off, while the process is running.

Reload outcomes
---------------
- file or key missing: trap disabled
- value unchanged: nothing to do
- value changed and valid: new pattern in force
- value changed and invalid: warning, previous pattern kept
- file unreadable or not UTF-8: warning, state unchanged
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from dotenv import dotenv_values

from sqlspy.config import settings

logger = logging.getLogger(__name__)

MATCH_TEXT_KEY = "matchText"


@dataclass(frozen=True)
class TraceConfig:
    """Compiled trap pattern, its source text, and when it was last reloaded."""

    pattern: re.Pattern[str] | None = None
    match_text: str | None = None
    loaded_at: float | None = None


class TraceGate:
    """
    Time-throttled regex matcher controlling stack trace capture.

    Readers take a snapshot of the immutable ``TraceConfig``; reloads build a
    new one under ``_lock`` and swap it in with a single assignment, so a
    reader never sees a pattern that disagrees with its text.
    """

    def __init__(
        self,
        config_path: str | Path = "sqlspy-config.properties",
        reload_interval_ms: int = 30000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the gate.

        Args:
            config_path: Location of the ``matchText`` file, relative to the working directory
            reload_interval_ms: Minimum time between two reads of the file
            clock: Monotonic time source in seconds
        """
        self.config_path = Path(config_path)
        self.reload_interval = reload_interval_ms / 1000
        self.clock = clock
        self._lock = threading.Lock()
        self._config = TraceConfig()

    @property
    def config(self) -> TraceConfig:
        """Current trap state."""
        return self._config

    def matches(self, text: str) -> bool:
        """
        Return True if ``text`` should trigger a stack trace.

        The whole of ``text`` must match the configured pattern.
        """
        if self._is_stale(self._config):
            self._reload()
        pattern = self._config.pattern
        if pattern is None:
            return False
        return pattern.fullmatch(text) is not None

    def _is_stale(self, config: TraceConfig) -> bool:
        if config.loaded_at is None:
            return True
        return self.clock() - config.loaded_at >= self.reload_interval

    def _reload(self) -> None:
        with self._lock:
            current = self._config
            # Another thread may have reloaded while we waited
            if not self._is_stale(current):
                return

            pattern, match_text = current.pattern, current.match_text
            try:
                new_text = self._read_match_text()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"SQL matching unchanged, cannot read '{self.config_path}': {e}")
            else:
                if new_text is None:
                    if pattern is not None:
                        logger.debug("Disabling SQL matching")
                    pattern, match_text = None, None
                elif new_text != match_text:
                    try:
                        pattern = re.compile(new_text)
                        match_text = new_text
                        logger.debug(f"Enabling SQL matching on '{new_text}'")
                    except re.error as e:
                        logger.warning(f"SQL matching pattern '{new_text}' ignored: {e}")

            self._config = TraceConfig(pattern=pattern, match_text=match_text, loaded_at=self.clock())

    def _read_match_text(self) -> str | None:
        """Read ``matchText`` from the config file; None if the file or key is missing."""
        logger.debug(f"Reloading config from '{self.config_path.resolve()}'")
        if not self.config_path.exists():
            return None
        with self.config_path.open(encoding="utf-8") as stream:
            values = dotenv_values(stream=stream, interpolate=False)
        return values.get(MATCH_TEXT_KEY)

    def reset(self) -> None:
        """Forget the loaded pattern so the next ``matches`` call rereads the file."""
        with self._lock:
            self._config = TraceConfig()


# Global trace gate instance
trace_gate = TraceGate(
    config_path=settings.trap_config_path,
    reload_interval_ms=settings.trap_reload_interval_ms,
)
