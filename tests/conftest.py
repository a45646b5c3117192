"""
Pytest configuration and fixtures.
Shared test utilities for gates, generators and log capture.
"""

import logging

import pytest

from sqlspy.trace_gate import TraceGate
from sqlspy.utils.log_context import clear_tags

CONFIG_NAME = "sqlspy-config.properties"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_log_context():
    """Start and finish every test with an empty logging context."""
    clear_tags()
    yield
    clear_tags()


@pytest.fixture
def clock():
    """Return a fake clock for the trace gate."""
    return FakeClock()


@pytest.fixture
def config_path(tmp_path):
    """Return the trap config location inside a temporary directory."""
    return tmp_path / CONFIG_NAME


@pytest.fixture
def write_config(config_path):
    """Return a function writing the trap config file."""

    def write(text: str):
        config_path.write_text(text, encoding="utf-8")
        return config_path

    return write


@pytest.fixture
def gate(config_path, clock):
    """Trace gate reading a temporary config file."""
    return TraceGate(config_path=config_path, reload_interval_ms=30000, clock=clock)


@pytest.fixture
def spy_logs(caplog):
    """Capture DEBUG records of the sqlspy loggers."""
    caplog.set_level(logging.DEBUG, logger="sqlspy")
    return caplog


def messages(caplog, logger_prefix: str = "sqlspy.generator") -> list[str]:
    """Return rendered messages of records from loggers under ``logger_prefix``."""
    return [r.getMessage() for r in caplog.records if r.name.startswith(logger_prefix)]
