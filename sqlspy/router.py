"""
Connection routing for traced DB-API connections.

Place ``sqlspy:`` after the ``dbapi:`` scheme of a connection URL and the
connection comes back wrapped in a tracing decorator:

    ================================  =========================================
    Connection URL                    Traced connection URL
    ================================  =========================================
    ``dbapi:sqlite3:app.db``          ``dbapi:sqlspy:sqlite3:app.db``
    ``dbapi:sqlite3:app.db``          ``dbapi:sqlspy#sqlite3:sqlite3:app.db``
    ``weird:jdbc-bridge:TEST``        ``dbapi:sqlspy#weird_driver:-:weird:jdbc-bridge:TEST``
    ================================  =========================================

The ``#<module>`` form imports the named module before delegating, so a
provider that registers itself on import, or a plain DB-API module, is
available without further setup. A ``-:`` in front of the remainder passes
it on literally instead of prefixing it with ``dbapi:``.

Providers are probed in registration order. A provider that does not
recognize a URL returns None from ``connect`` so the next one is tried.
"""

from __future__ import annotations

import importlib
import logging
import threading
from types import ModuleType
from typing import Any, Protocol

from sqlspy.errors import SpyConnectionError
from sqlspy.generator import ProxyGenerator, SpyProxy
from sqlspy.interfaces import Connection
from sqlspy.observability import trace_span

logger = logging.getLogger(__name__)

SCHEME = "dbapi:"
PASS_THROUGH_PREFIX = "dbapi:sqlspy:"
EXPLICIT_PREFIX = "dbapi:sqlspy#"
LITERAL_SENTINEL = "-:"


class Provider(Protocol):
    """Anything able to open connections for some URLs."""

    def accepts(self, url: str) -> bool: ...

    def connect(self, url: str, **options: Any) -> Any | None: ...


class ModuleProvider:
    """
    Opens ``dbapi:<module>:<dsn>`` URLs through a DB-API module.

    ``dbapi:sqlite3::memory:`` calls ``sqlite3.connect(":memory:")``; an
    empty DSN calls ``connect(**options)`` only.
    """

    def __init__(self, module: ModuleType | str):
        self.module = importlib.import_module(module) if isinstance(module, str) else module
        self.prefix = f"{SCHEME}{self.module.__name__}:"

    def accepts(self, url: str) -> bool:
        return url.startswith(self.prefix)

    def connect(self, url: str, **options: Any) -> Any | None:
        if not self.accepts(url):
            return None
        dsn = url[len(self.prefix) :]
        if dsn:
            return self.module.connect(dsn, **options)
        return self.module.connect(**options)

    def __repr__(self) -> str:
        return f"ModuleProvider({self.module.__name__})"


def is_dbapi_module(module: ModuleType) -> bool:
    """True if ``module`` looks like a PEP 249 module."""
    return callable(getattr(module, "connect", None)) and hasattr(module, "apilevel")


class ProviderRegistry:
    """Ordered set of providers consulted by ``connect``."""

    def __init__(self):
        self._lock = threading.Lock()
        self._providers: list[Provider] = []

    def register(self, provider: Provider) -> None:
        with self._lock:
            if provider not in self._providers:
                self._providers.append(provider)
                logger.debug(f"Registered provider {provider!r}")

    def deregister(self, provider: Provider) -> None:
        with self._lock:
            if provider in self._providers:
                self._providers.remove(provider)

    def providers(self) -> list[Provider]:
        with self._lock:
            return list(self._providers)

    def provider_for(self, url: str) -> Provider | None:
        """Return the first provider accepting ``url``."""
        for provider in self.providers():
            if provider.accepts(url):
                return provider
        return None

    def ensure_module(self, module: ModuleType) -> None:
        """Register a ``ModuleProvider`` for a DB-API module nobody handles yet."""
        if not is_dbapi_module(module):
            return
        if self.provider_for(f"{SCHEME}{module.__name__}:") is None:
            self.register(ModuleProvider(module))

    def connect(self, url: str, **options: Any) -> Any:
        """
        Open a connection with the first provider that recognizes ``url``.

        Raises:
            SpyConnectionError: If no provider recognizes the URL
        """
        for provider in self.providers():
            if not provider.accepts(url):
                continue
            connection = provider.connect(url, **options)
            if connection is not None:
                return connection
        raise SpyConnectionError(f"No suitable provider for '{url}'")


class SpyProvider:
    """
    Provider wrapping connections of other providers in tracing decorators.

    Only URLs starting with ``dbapi:sqlspy:`` or ``dbapi:sqlspy#`` are handled;
    for any other URL ``connect`` returns None.
    """

    def __init__(self, registry: ProviderRegistry, generator: ProxyGenerator | None = None):
        """
        Initialize the provider.

        Args:
            registry: Registry used to open the real connection
            generator: Decorator generator; a default DB-API one if None
        """
        self.registry = registry
        self.generator = generator or ProxyGenerator()

    def accepts(self, url: str) -> bool:
        return url.startswith(PASS_THROUGH_PREFIX) or url.startswith(EXPLICIT_PREFIX)

    def resolve(self, url: str) -> str | None:
        """
        Return the URL of the real connection, or None if ``url`` is not ours.

        Raises:
            SpyConnectionError: If the URL is malformed or its provider module cannot be imported
        """
        if url.startswith(PASS_THROUGH_PREFIX):
            remainder = url[len(PASS_THROUGH_PREFIX) :]
        elif url.startswith(EXPLICIT_PREFIX):
            remainder = url[len(EXPLICIT_PREFIX) :]
            module_name, sep, remainder = remainder.partition(":")
            if not sep or not module_name:
                raise SpyConnectionError(f"Invalid sqlspy syntax for url '{url}'")
            self._initialise(module_name)
        else:
            return None

        if remainder.startswith(LITERAL_SENTINEL):
            return remainder[len(LITERAL_SENTINEL) :]
        return SCHEME + remainder

    def _initialise(self, module_name: str) -> None:
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise SpyConnectionError(f"Could not initialise '{module_name}' provider") from e
        self.registry.ensure_module(module)

    def connect(self, url: str, **options: Any) -> SpyProxy | None:
        """
        Open the real connection and wrap it.

        Errors raised by the real provider propagate unchanged.

        Raises:
            SpyConnectionError: If routing or wrapping fails
        """
        logger.debug(f"SpyProvider.connect('{url}', {options})")
        wrapped_url = self.resolve(url)
        if wrapped_url is None:
            return None

        with trace_span("connect", url=wrapped_url):
            connection = self.registry.connect(wrapped_url, **options)

        try:
            decorator = self.generator.decorator_for(Connection)
            return decorator(connection)
        except Exception as e:
            raise SpyConnectionError(f"Could not wrap connection for '{wrapped_url}'") from e


# Global provider registry, with the spy provider registered on import
registry = ProviderRegistry()
spy_provider = SpyProvider(registry)
registry.register(spy_provider)


def connect(url: str, **options: Any) -> Any:
    """
    Open a connection through the global registry.

    Usage:
        conn = connect("dbapi:sqlspy#sqlite3:sqlite3::memory:")
    """
    return registry.connect(url, **options)
