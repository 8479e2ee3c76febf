"""
Handler registry, resolution and execution.

Handlers register themselves under a "<namespace>.<entry_point>" identifier:

    from services.runtime.handler import ok, error, register

    @register("greeter.hello")
    def hello(payload):
        return ok({"message": f"Hello, {payload['name']}!"})

The _HANDLER setting then names the identifier to run. Resolution is a plain
mapping lookup; modules listed in HANDLER_MODULES are imported at startup so
their registrations run.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .errors import InitError, ResolutionError, format_error
from .models import Failure, Outcome, Success

logger = logging.getLogger("runtime.handler")

HandlerFunc = Callable[[Any], Any]

OK_TAG = "ok"
ERROR_TAG = "error"

DEFAULT_NAMESPACE = "mayfly"
DEFAULT_ENTRY_POINT = "default_handler"
DEFAULT_HANDLER_MESSAGE = (
    "Please provide a _HANDLER environment variable containing the function you would "
    "like to call, in the form <namespace>.<entry_point>."
)


def ok(value: Any) -> Tuple[str, Any]:
    """Explicit success return for handlers."""
    return (OK_TAG, value)


def error(reason: Any) -> Tuple[str, Any]:
    """Explicit failure return for handlers."""
    return (ERROR_TAG, reason)


@dataclass(frozen=True)
class HandlerRef:
    """A resolved handler. Identity is the (namespace, entry_point) pair."""

    namespace: str
    entry_point: str
    func: HandlerFunc = field(compare=False, repr=False)

    @property
    def identifier(self) -> str:
        return f"{self.namespace}.{self.entry_point}"


def default_handler(payload: Any) -> Tuple[str, Any]:
    """Used when no handler is configured or the configured one cannot be resolved."""
    return ok({"message": DEFAULT_HANDLER_MESSAGE})


DEFAULT_HANDLER_REF = HandlerRef(DEFAULT_NAMESPACE, DEFAULT_ENTRY_POINT, default_handler)


def split_identifier(identifier: str) -> Optional[Tuple[str, str]]:
    """
    Split "<namespace>.<entry_point>" at the last dot.
    Returns None when either side is missing.
    """
    namespace, sep, entry_point = identifier.strip().rpartition(".")
    if not sep or not namespace or not entry_point:
        return None
    return namespace, entry_point


class HandlerRegistry:
    """
    Explicit identifier -> callable table.
    """

    def __init__(self):
        self._handlers: Dict[Tuple[str, str], HandlerFunc] = {}

    def add(self, identifier: str, func: HandlerFunc) -> HandlerRef:
        parts = split_identifier(identifier)
        if parts is None:
            raise ValueError(
                f"Invalid handler identifier (expected <namespace>.<entry_point>): {identifier!r}"
            )
        if not callable(func):
            raise TypeError(f"Handler {identifier} is not callable: {func!r}")

        existing = self._handlers.get(parts)
        if existing is not None and existing is not func:
            logger.warning(f"Handler {identifier} re-registered; replacing previous entry")

        self._handlers[parts] = func
        return HandlerRef(parts[0], parts[1], func)

    def register(self, identifier: str) -> Callable[[HandlerFunc], HandlerFunc]:
        """Decorator form of add()."""

        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.add(identifier, func)
            return func

        return decorator

    def lookup(self, namespace: str, entry_point: str) -> HandlerRef:
        """
        Raises:
            ResolutionError: nothing registered under namespace.entry_point
        """
        func = self._handlers.get((namespace, entry_point))
        if func is None:
            raise ResolutionError(f"{namespace}.{entry_point}")
        return HandlerRef(namespace, entry_point, func)

    def identifiers(self) -> Iterable[str]:
        return sorted(f"{ns}.{ep}" for ns, ep in self._handlers)

    def __contains__(self, identifier: str) -> bool:
        parts = split_identifier(identifier)
        return parts is not None and parts in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


# Process-wide registry used by the @register decorator.
registry = HandlerRegistry()
register = registry.register


def load_handler_modules(modules: Iterable[str]) -> None:
    """
    Import modules so their @register calls run.

    Raises:
        InitError: a module could not be imported
    """
    for module_name in modules:
        try:
            importlib.import_module(module_name)
        except Exception as e:
            raise InitError(f"Failed to import handler module {module_name}", e) from e
        logger.info(f"Loaded handler module {module_name}")


class HandlerResolver:
    def __init__(self, handler_registry: Optional[HandlerRegistry] = None):
        self.registry = handler_registry if handler_registry is not None else registry

    def resolve(self, raw_identifier: Optional[str]) -> HandlerRef:
        """
        Map a configured identifier to a HandlerRef.

        Never raises: an unset, malformed or unknown identifier yields the
        default handler, with the reason logged.
        """
        if raw_identifier is None or not raw_identifier.strip():
            logger.warning("No handler configured; using default handler")
            return DEFAULT_HANDLER_REF

        parts = split_identifier(raw_identifier)
        if parts is None:
            logger.error(
                f"Invalid handler format (expected <namespace>.<entry_point>): {raw_identifier}"
            )
            return DEFAULT_HANDLER_REF

        try:
            return self.registry.lookup(*parts)
        except ResolutionError as e:
            logger.error(
                str(e),
                extra={"handler": raw_identifier, "registered": list(self.registry.identifiers())},
            )
            return DEFAULT_HANDLER_REF


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unprintable {type(value).__name__} object>"


class HandlerExecutor:
    def execute(self, payload: Any, handler: HandlerRef) -> Outcome:
        """
        Run handler.func(payload) and classify the result.

        ("ok", value)     -> Success(value)
        ("error", reason) -> Failure, no stack trace
        anything else     -> Success(raw value), with a warning
        raised Exception  -> Failure, with the traceback (SystemExit included)
        """
        try:
            result = handler.func(payload)
        except (Exception, SystemExit) as e:
            # KeyboardInterrupt is an external signal and is left to propagate.
            logger.error(
                f"Handler {handler.identifier} raised {type(e).__name__}",
                exc_info=True,
                extra={"handler": handler.identifier},
            )
            return Failure(format_error(e, e.__traceback__))

        if isinstance(result, tuple) and len(result) == 2:
            tag, value = result
            if tag == OK_TAG:
                return Success(value)
            if tag == ERROR_TAG:
                return Failure(format_error(value))

        logger.warning(
            f"Handler {handler.identifier} returned non-standard response "
            f"(expected ok(result) or error(reason)): {_safe_repr(result)}"
        )
        return Success(result)
