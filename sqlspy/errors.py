"""
Exceptions raised by sqlspy itself.

Errors raised by a wrapped resource are never translated; they reach the
caller unchanged. Only failures of the tracing layer use these types.
"""


class SpyError(Exception):
    """Base class for tracing-layer failures."""


class GenerationError(SpyError):
    """Raised when a decorator cannot be generated for an interface."""

    def __init__(self, interface: type, message: str):
        self.interface = interface
        super().__init__(f"Cannot generate decorator for '{interface.__qualname__}': {message}")


class SpyConnectionError(SpyError):
    """Raised when a connection URL cannot be routed or its connection cannot be wrapped."""
