"""
DB-API 2.0 (PEP 249) interface definitions.

These classes are never instantiated. They only describe, through their
annotated members, what a traced connection and cursor look like. The
generator produces one decorator per class; any member returning one of
these classes is re-wrapped on the way out.

Optional PEP 249 members (``callproc``, ``nextset``, ``lastrowid`` and the
iteration protocol) are declared too; calling one the driver lacks raises
the driver's own ``AttributeError``, which is logged and re-raised like any
other call error.

Only members declared here are traced. Driver shortcuts outside PEP 249,
such as sqlite3's ``Connection.execute``, are forwarded untouched: they are
not logged, the SQL trap does not see their statements, and the cursor they
return is not wrapped. Use ``conn.cursor().execute(...)`` for traced
statements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import Any

Parameters = Sequence[Any] | Mapping[str, Any]


class Closeable(ABC):
    """Anything holding driver resources."""

    @abstractmethod
    def close(self) -> None: ...


class Cursor(Closeable):
    """PEP 249 cursor."""

    @property
    @abstractmethod
    def description(self) -> Sequence[tuple[Any, ...]] | None: ...

    @property
    @abstractmethod
    def rowcount(self) -> int: ...

    @property
    @abstractmethod
    def lastrowid(self) -> Any: ...

    @property
    @abstractmethod
    def arraysize(self) -> int: ...

    @arraysize.setter
    @abstractmethod
    def arraysize(self, value: int) -> None: ...

    @abstractmethod
    def callproc(self, procname: str, parameters: Sequence[Any] = ()) -> Any: ...

    @abstractmethod
    def execute(self, operation: str, parameters: Parameters = ()) -> Any: ...

    @abstractmethod
    def executemany(self, operation: str, seq_of_parameters: Sequence[Parameters]) -> Any: ...

    @abstractmethod
    def fetchone(self) -> Sequence[Any] | None: ...

    @abstractmethod
    def fetchmany(self, size: int = 1) -> list[Sequence[Any]]: ...

    @abstractmethod
    def fetchall(self) -> list[Sequence[Any]]: ...

    @abstractmethod
    def nextset(self) -> bool | None: ...

    @abstractmethod
    def setinputsizes(self, sizes: Sequence[Any]) -> None: ...

    @abstractmethod
    def setoutputsize(self, size: int, column: int | None = None) -> None: ...

    @abstractmethod
    def __iter__(self) -> Any: ...

    @abstractmethod
    def __next__(self) -> Sequence[Any]: ...


class Connection(Closeable):
    """PEP 249 connection, including the context manager protocol."""

    @abstractmethod
    def commit(self) -> None: ...

    @abstractmethod
    def rollback(self) -> None: ...

    @abstractmethod
    def cursor(self) -> Cursor: ...

    @abstractmethod
    def __enter__(self) -> Connection: ...

    @abstractmethod
    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool | None: ...


# Interfaces traced by default, top-level first
DBAPI_INTERFACES: tuple[type, ...] = (Connection, Cursor)
