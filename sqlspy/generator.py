"""
Decorator generation.

``ProxyGenerator`` turns each interface class into a concrete decorator
class. The decorator implements every member of the flattened interface
by forwarding to the wrapped instance, and wraps each forwarded call in
the same steps:

1. describe the call (``execute("SELECT 1")``), formatted lazily
2. if the first argument is declared ``str`` and matches the SQL trap,
   log a stack trace
3. invoke the wrapped member with exactly the arguments received
4. re-wrap results whose declared type is another traced interface
5. put the object and duration tags into the logging context
6. log ``description: result`` (or ``description`` plus the exception,
   which is then re-raised untouched)

Decorators are built once per interface from a table of forwarding
closures, not written out by hand, so adding a member to an interface
only means declaring it there.

Example:
    generator = ProxyGenerator()
    report = generator.generate_all()
    conn = report.decorators[Connection](sqlite3.connect(":memory:"))
"""

from __future__ import annotations

import functools
import logging
import threading
import time
import types
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, field_validator

from sqlspy.config import settings
from sqlspy.errors import GenerationError
from sqlspy.formatter import CallDescription, format_value
from sqlspy.interfaces import DBAPI_INTERFACES
from sqlspy.observability import CallRecord, log_call
from sqlspy.signatures import InterfaceModel, MethodSignature, SignatureKind
from sqlspy.trace_gate import TraceGate, trace_gate
from sqlspy.utils.log_context import put_tag

logger = logging.getLogger(__name__)


class DecoratorDefinition(BaseModel):
    """Configuration of one generated decorator."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source: Any
    name: str
    formatter: Callable[[Any], str] = format_value
    object_tag_key: str | None = None
    duration_tag_key: str | None = None
    enable_trap: bool = False
    gate: TraceGate | None = None
    level: int = logging.DEBUG

    @field_validator("source")
    @classmethod
    def check_source(cls, value: Any) -> InterfaceModel:
        if not isinstance(value, InterfaceModel):
            raise ValueError(f"source must be an InterfaceModel, got {type(value).__name__}")
        return value

    @field_validator("level", mode="before")
    @classmethod
    def parse_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            level = logging.getLevelName(value.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level: {value}")
            return level
        return value

    @property
    def interface(self) -> type:
        return self.source.interface


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _invoke(wrapped: Any, signature: MethodSignature, args: tuple, kwargs: dict) -> Any:
    if signature.kind is SignatureKind.GETTER:
        return getattr(wrapped, signature.name)
    if signature.kind is SignatureKind.SETTER:
        setattr(wrapped, signature.name, *args)
        return None
    return getattr(wrapped, signature.name)(*args, **kwargs)


class SpyProxy:
    """
    Base class of every generated decorator.

    Holds the wrapped instance and the per-call instrumentation. Members of
    the traced interface are added by ``ProxyGenerator``; attributes outside
    the interface (driver extensions such as ``row_factory``) are forwarded
    to the wrapped instance without logging.
    """

    _spy_definition: ClassVar[DecoratorDefinition]
    _spy_logger: ClassVar[logging.Logger]
    _spy_decorators: ClassVar[Mapping[type, type[SpyProxy]]]

    def __init__(self, wrapped: Any):
        object.__setattr__(self, "_spy_wrapped", wrapped)
        definition = self._spy_definition
        self._spy_put_object_tag()
        if definition.duration_tag_key:
            put_tag(definition.duration_tag_key, "0")
        self._spy_logger.log(definition.level, "new %s()", definition.interface.__name__)

    def __repr__(self) -> str:
        return f"{type(self).__name__}@{id(self):x}"

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_spy_"):
            raise AttributeError(name)
        return getattr(self._spy_wrapped, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_spy_") or hasattr(type(self), name):
            object.__setattr__(self, name, value)
        else:
            setattr(self._spy_wrapped, name, value)

    def _spy_put_object_tag(self) -> None:
        key = self._spy_definition.object_tag_key
        if key:
            put_tag(key, repr(self))

    def _spy_put_tags(self, elapsed_ms: float) -> None:
        key = self._spy_definition.duration_tag_key
        if key:
            put_tag(key, str(int(elapsed_ms)))
        self._spy_put_object_tag()

    def _spy_trap(
        self, signature: MethodSignature, description: CallDescription, args: tuple, kwargs: dict
    ) -> None:
        if args:
            first = args[0]
        elif signature.parameter_names and signature.parameter_names[0] in kwargs:
            first = kwargs[signature.parameter_names[0]]
        else:
            return
        definition = self._spy_definition
        gate = definition.gate or trace_gate
        if isinstance(first, str) and gate.matches(first):
            self._spy_logger.log(
                definition.level, "SQL trap triggered: %s", description, stack_info=True
            )

    def _spy_rewrap(self, signature: MethodSignature, result: Any) -> Any:
        if result is None or isinstance(result, SpyProxy):
            return result
        if result is self._spy_wrapped:
            return self
        for candidate in signature.return_candidates():
            decorator = self._spy_decorators.get(candidate)
            if decorator is not None:
                return decorator(result)
        return result

    def _spy_call(self, signature: MethodSignature, args: tuple, kwargs: dict) -> Any:
        definition = self._spy_definition
        description = CallDescription(signature.name, args, kwargs, definition.formatter)
        if definition.enable_trap and signature.first_parameter_is_text:
            self._spy_trap(signature, description, args, kwargs)

        start = time.perf_counter()
        try:
            result = _invoke(self._spy_wrapped, signature, args, kwargs)
        except Exception as e:
            elapsed_ms = _elapsed_ms(start)
            self._spy_put_tags(elapsed_ms)
            log_call(
                self._spy_logger,
                definition.level,
                CallRecord(signature.name, description, elapsed_ms, error=e),
            )
            raise

        elapsed_ms = _elapsed_ms(start)
        result = self._spy_rewrap(signature, result)
        self._spy_put_tags(elapsed_ms)
        log_call(
            self._spy_logger,
            definition.level,
            CallRecord(
                signature.name,
                description,
                elapsed_ms,
                result=result,
                has_result=signature.returns_value,
            ),
        )
        return result


def create(decorator: type[SpyProxy], factory: Callable[..., Any], *args, **kwargs) -> SpyProxy:
    """
    Construct a wrapped instance under tracing and return its first decorator.

    The factory call is logged as ``create(<args>): <decorator>``; if it
    raises, the exception is logged and re-raised unchanged.
    """
    definition = decorator._spy_definition
    description = CallDescription("create", args, kwargs, definition.formatter)
    start = time.perf_counter()
    try:
        instance = factory(*args, **kwargs)
    except Exception as e:
        elapsed_ms = _elapsed_ms(start)
        if definition.duration_tag_key:
            put_tag(definition.duration_tag_key, str(int(elapsed_ms)))
        log_call(
            decorator._spy_logger,
            definition.level,
            CallRecord("create", description, elapsed_ms, error=e),
        )
        raise

    elapsed_ms = _elapsed_ms(start)
    proxy = decorator(instance)
    proxy._spy_put_tags(elapsed_ms)
    log_call(
        decorator._spy_logger,
        definition.level,
        CallRecord("create", description, elapsed_ms, result=proxy),
    )
    return proxy


def _method_member(signature: MethodSignature, class_name: str) -> Callable:
    def member(self, *args, **kwargs):
        return self._spy_call(signature, args, kwargs)

    if signature.function is not None:
        functools.update_wrapper(member, signature.function, updated=())
    member.__name__ = signature.name
    member.__qualname__ = f"{class_name}.{signature.name}"
    return member


def _property_member(getter: MethodSignature | None, setter: MethodSignature | None) -> property:
    fget = fset = None
    if getter is not None:

        def fget(self):
            return self._spy_call(getter, (), {})

    if setter is not None:

        def fset(self, value):
            self._spy_call(setter, (value,), {})

    doc = getter.function.__doc__ if getter is not None and getter.function is not None else None
    return property(fget, fset, doc=doc)


@dataclass
class GenerationReport:
    """Outcome of generating decorators for a set of interfaces."""

    decorators: dict[type, type[SpyProxy]] = field(default_factory=dict)
    failures: dict[type, GenerationError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class ProxyGenerator:
    """
    Builds one decorator class per target interface.

    All decorators of one generator share a single ``interface → decorator``
    table, so a member declared to return another target interface returns
    that interface's decorator.
    """

    def __init__(
        self,
        interfaces: Iterable[type] = DBAPI_INTERFACES,
        formatter: Callable[[Any], str] = format_value,
        gate: TraceGate | None = None,
        object_tag_key: str | None = settings.object_tag_key or None,
        duration_tag_key: str | None = settings.duration_tag_key or None,
        enable_trap: bool = settings.trap_enabled,
        level: int | str = settings.call_log_level,
        name_suffix: str = "Spy",
    ):
        """
        Initialize the generator.

        Args:
            interfaces: Interface classes to trace
            formatter: Converts arguments and results to log text
            gate: SQL trap; the process-wide ``trace_gate`` if None
            object_tag_key: Logging-context key for the decorator identity
            duration_tag_key: Logging-context key for the call duration in msec
            enable_trap: Whether string-first calls consult the SQL trap
            level: Level of call records
            name_suffix: Appended to the interface name to name its decorator
        """
        self.interfaces = tuple(interfaces)
        self.formatter = formatter
        self.gate = gate or trace_gate
        self.object_tag_key = object_tag_key
        self.duration_tag_key = duration_tag_key
        self.enable_trap = enable_trap
        self.level = level
        self.name_suffix = name_suffix
        self.decorators: dict[type, type[SpyProxy]] = {}
        self._lock = threading.RLock()

    def definition_for(self, model: InterfaceModel) -> DecoratorDefinition:
        """Build the decorator configuration for one interface."""
        return DecoratorDefinition(
            source=model,
            name=f"{model.name}{self.name_suffix}",
            formatter=self.formatter,
            object_tag_key=self.object_tag_key,
            duration_tag_key=self.duration_tag_key,
            enable_trap=self.enable_trap,
            gate=self.gate,
            level=self.level,
        )

    def generate(self, model: InterfaceModel, definition: DecoratorDefinition) -> type[SpyProxy]:
        """
        Generate the decorator class for ``model``.

        Raises:
            GenerationError: If the decorator cannot be built
        """
        if definition.interface is not model.interface:
            raise GenerationError(
                model.interface,
                f"definition '{definition.name}' targets {definition.interface.__qualname__}",
            )

        namespace: dict[str, Any] = {}
        getters: dict[str, MethodSignature] = {}
        setters: dict[str, MethodSignature] = {}
        for signature in model.signatures:
            if signature.kind is SignatureKind.GETTER:
                getters[signature.name] = signature
            elif signature.kind is SignatureKind.SETTER:
                setters[signature.name] = signature
            else:
                namespace[signature.name] = _method_member(signature, definition.name)
        for name in {**getters, **setters}:
            namespace[name] = _property_member(getters.get(name), setters.get(name))

        namespace.update(
            __module__=__name__,
            __doc__=f"Tracing decorator for {model.interface.__qualname__}.",
            _spy_definition=definition,
            _spy_logger=logging.getLogger(f"{__name__}.{definition.name}"),
            _spy_decorators=self.decorators,
        )

        try:
            decorator = types.new_class(
                definition.name, (SpyProxy, model.interface), exec_body=lambda ns: ns.update(namespace)
            )
        except TypeError as e:
            raise GenerationError(model.interface, str(e)) from e

        abstract = getattr(decorator, "__abstractmethods__", frozenset())
        if abstract:
            raise GenerationError(
                model.interface, f"members not traceable: {', '.join(sorted(abstract))}"
            )

        self.decorators[model.interface] = decorator
        logger.debug(f"Generated {definition.name} with {len(model.signatures)} members")
        return decorator

    def generate_interface(self, interface: type) -> type[SpyProxy]:
        """Introspect and generate a single interface."""
        model = InterfaceModel.from_class(interface)
        return self.generate(model, self.definition_for(model))

    def generate_all(self) -> GenerationReport:
        """
        Generate decorators for every configured interface not generated yet.

        A failing interface is recorded in the report and does not stop the
        others from being generated.
        """
        report = GenerationReport()
        for interface in self.interfaces:
            if interface in self.decorators:
                continue
            try:
                self.generate_interface(interface)
            except GenerationError as e:
                logger.error(f"Decorator generation failed: {e}")
                report.failures[interface] = e
        report.decorators = dict(self.decorators)
        return report

    def decorator_for(self, interface: type) -> type[SpyProxy]:
        """
        Return the decorator for ``interface``, generating it on first use.

        The other configured interfaces are generated at the same time, so
        results of the returned decorator come back wrapped as well.

        Raises:
            GenerationError: If the decorator for ``interface`` cannot be built
        """
        with self._lock:
            decorator = self.decorators.get(interface)
            if decorator is not None:
                return decorator
            if interface not in self.interfaces:
                return self.generate_interface(interface)
            report = self.generate_all()
            if interface in report.failures:
                raise report.failures[interface]
            return report.decorators[interface]
