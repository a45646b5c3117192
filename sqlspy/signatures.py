"""
Signature model of traced interfaces.

An interface is any class whose annotated methods and properties describe
the surface of a resource (see ``sqlspy.interfaces``). ``InterfaceModel``
flattens the class and its bases into one ordered list of
``MethodSignature`` entries. A name declared on a subclass shadows every
inherited declaration of the same name, the same way attribute lookup
works on the class itself.
"""

from __future__ import annotations

import abc
import inspect
import logging
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlspy.errors import GenerationError

logger = logging.getLogger(__name__)

# Bases contributing no traced members
_ROOT_CLASSES = (object, abc.ABC, typing.Protocol, typing.Generic)

# Members a decorator must own itself
_RESERVED_NAMES = frozenset(
    {
        "__init__",
        "__new__",
        "__init_subclass__",
        "__class_getitem__",
        "__subclasshook__",
        "__getattr__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
        "__repr__",
        "__str__",
        "__del__",
        "__annotate__",
    }
)


class SignatureKind(Enum):
    """How a member is invoked on the wrapped instance."""

    METHOD = "method"  # wrapped.name(*args, **kwargs)
    GETTER = "getter"  # wrapped.name
    SETTER = "setter"  # wrapped.name = value


def raises(*exceptions: type[BaseException]) -> Callable:
    """
    Declare the exceptions an interface method may raise.

    Usage:
        @raises(sqlite3.OperationalError)
        def execute(self, operation: str) -> Any: ...
    """

    def decorator(func):
        func.__spy_raises__ = exceptions
        return func

    return decorator


@dataclass(frozen=True)
class MethodSignature:
    """One traced member of an interface."""

    name: str
    parameters: tuple[Any, ...] = ()
    parameter_names: tuple[str, ...] = ()
    returns: Any = None
    raises: tuple[type[BaseException], ...] = ()
    kind: SignatureKind = SignatureKind.METHOD
    function: Callable | None = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> tuple[str, tuple[Any, ...]]:
        return self.name, self.parameters

    @property
    def returns_value(self) -> bool:
        return self.returns is not None and self.returns is not type(None)

    @property
    def first_parameter_is_text(self) -> bool:
        """True if the first parameter is declared as ``str`` or ``Optional[str]``."""
        if not self.parameters:
            return False
        first = self.parameters[0]
        if first is str:
            return True
        return str in _union_members(first) and all(
            member in (str, type(None)) for member in _union_members(first)
        )

    def return_candidates(self) -> tuple[type, ...]:
        """Classes named by the return annotation, ``Optional[X]`` resolved to ``X``."""
        members = _union_members(self.returns) or (self.returns,)
        return tuple(m for m in members if isinstance(m, type) and m is not type(None))


def _union_members(hint: Any) -> tuple[Any, ...]:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        return typing.get_args(hint)
    return ()


def _resolve_hints(interface: type, func: Callable) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except Exception as e:
        raise GenerationError(
            interface, f"cannot resolve annotations of '{func.__qualname__}': {e}"
        ) from e


def describe_function(
    interface: type, name: str, func: Callable, kind: SignatureKind = SignatureKind.METHOD
) -> MethodSignature:
    """Build the signature of one function declared on ``interface``."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError) as e:
        raise GenerationError(interface, f"cannot inspect '{name}': {e}") from e

    hints = _resolve_hints(interface, func)
    # Drop 'self'
    params = [
        p
        for p in list(sig.parameters.values())[1:]
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    returns = hints.get("return", Any)
    if kind is SignatureKind.SETTER:
        returns = None
    return MethodSignature(
        name=name,
        parameters=tuple(hints.get(p.name, Any) for p in params),
        parameter_names=tuple(p.name for p in params),
        returns=None if returns is type(None) else returns,
        raises=getattr(func, "__spy_raises__", ()),
        kind=kind,
        function=func,
    )


def _declared_members(interface: type, klass: type) -> list[MethodSignature]:
    signatures = []
    for name, value in vars(klass).items():
        if name in _RESERVED_NAMES:
            continue
        if name.startswith("_") and not (name.startswith("__") and name.endswith("__")):
            continue
        if inspect.isfunction(value):
            signatures.append(describe_function(interface, name, value))
        elif isinstance(value, property):
            if value.fget is not None:
                signatures.append(describe_function(interface, name, value.fget, SignatureKind.GETTER))
            if value.fset is not None:
                signatures.append(describe_function(interface, name, value.fset, SignatureKind.SETTER))
    return signatures


@dataclass(frozen=True)
class InterfaceModel:
    """Flattened member set of one interface class."""

    interface: type
    signatures: tuple[MethodSignature, ...]
    parents: tuple[InterfaceModel, ...] = ()

    @property
    def name(self) -> str:
        return self.interface.__name__

    def signature(self, name: str, kind: SignatureKind = SignatureKind.METHOD) -> MethodSignature:
        """Return the signature of member ``name``."""
        for sig in self.signatures:
            if sig.name == name and sig.kind is kind:
                return sig
        raise KeyError(name)

    def names(self) -> list[str]:
        """Member names in declaration order, most-derived class first."""
        seen: dict[str, None] = {}
        for sig in self.signatures:
            seen.setdefault(sig.name)
        return list(seen)

    @classmethod
    def from_class(cls, interface: type) -> InterfaceModel:
        """
        Introspect ``interface`` and all its bases.

        Raises:
            GenerationError: If a member cannot be introspected
        """
        if not isinstance(interface, type):
            raise GenerationError(type(interface), f"{interface!r} is not a class")

        parents = tuple(
            cls.from_class(base) for base in interface.__bases__ if base not in _ROOT_CLASSES
        )

        signatures: list[MethodSignature] = []
        shadowed: set[str] = set()
        keys: set[tuple[str, tuple[Any, ...]]] = set()
        for klass in interface.__mro__:
            if klass in _ROOT_CLASSES:
                continue
            declared = _declared_members(interface, klass)
            for sig in declared:
                if sig.name in shadowed or sig.key in keys:
                    continue
                keys.add(sig.key)
                signatures.append(sig)
            shadowed.update(sig.name for sig in declared)

        logger.debug(f"Introspected {interface.__qualname__}: {len(signatures)} members")
        return cls(interface=interface, signatures=tuple(signatures), parents=parents)
