from __future__ import annotations

import inspect
import logging
import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, get_args, get_origin, get_type_hints

from ._resolver import MISSING, Resolver


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable


class Inject:
    """Marks a class attribute for field injection.

    class Client:
        logger: Annotated[Logger, Inject()]
        cache: Annotated[Cache, Inject(False)]  # explicitly not injected

    The bare class works too: `Annotated[Logger, Inject]`. Attributes annotated
    exactly as `Resolver` are always injected and need no marker.
    """

    __slots__ = ("enabled",)

    def __init__(self, enabled: bool = True) -> None:  # noqa: FBT001, FBT002
        self.enabled = enabled

    def __repr__(self) -> str:
        return f"Inject({self.enabled!r})"


@dataclass(frozen=True)
class InjectableField:
    name: str
    field_type: Any


_fields_cache: dict[type, tuple[InjectableField, ...]] = {}
_fields_cache_lock = threading.Lock()


def injectable_fields(cls: type) -> tuple[InjectableField, ...]:
    """Return the injectable fields of `cls`, scanning its annotations once per class."""
    fields = _fields_cache.get(cls)
    if fields is not None:
        return fields

    fields = tuple(_scan_fields(cls))
    with _fields_cache_lock:
        return _fields_cache.setdefault(cls, fields)


def _scan_fields(cls: type) -> list[InjectableField]:
    fields = []
    for name, hint in _class_type_hints(cls).items():
        if name.startswith("_"):
            continue

        # resolver fields are eligible whatever their marker says
        if _strip_annotated(hint) is Resolver:
            fields.append(InjectableField(name, Resolver))
            continue

        if get_origin(hint) is Annotated:
            field_type, *metadata = get_args(hint)
            if any(_is_enabled_marker(m) for m in metadata):
                fields.append(InjectableField(name, field_type))

    logger.debug("%s has %d injectable field(s)", cls.__qualname__, len(fields))
    return fields


def _is_enabled_marker(meta: object) -> bool:
    if meta is Inject:
        return True
    return isinstance(meta, Inject) and meta.enabled is True


def parameter_types(func: Callable[..., object]) -> list[Any]:
    """Annotated types of the parameters `func` would be injected with.

    When the hints cannot be evaluated, annotations are returned as written,
    so forward references come back as strings.
    """
    hints = _get_type_hints(func)
    types = []
    for p in _injectable_parameters(func):
        if p.name in hints:
            types.append(_strip_annotated(hints[p.name]))
        elif p.annotation is not inspect.Parameter.empty:
            types.append(_strip_annotated(p.annotation))
    return types


class Injector:
    """Fills function parameters or object fields from a resolver."""

    def __init__(self, resolver: Resolver) -> None:
        self._resolver = resolver

    def inject(self, target: object) -> None:
        if target is None:
            return

        if inspect.isfunction(target) or inspect.ismethod(target):
            self.call(target)
            return

        if inspect.isclass(target) or type(target).__module__ == "builtins":
            logger.debug("Nothing to inject into %r", target)
            return

        self.inject_fields(target)

    def call(self, func: Callable[..., object]) -> object:
        """Invoke `func` with every parameter resolved.

        Unresolved parameters get their default, or None when they have none.
        """
        hints = _get_type_hints(func)
        sig = inspect.signature(func)
        bound = sig.bind_partial()

        for p in _injectable_parameters(func, sig):
            value = MISSING
            if p.name in hints:
                value = self._resolver.resolve(_strip_annotated(hints[p.name]), MISSING)
            if value is MISSING or value is None:
                value = None if p.default is inspect.Parameter.empty else p.default
            bound.arguments[p.name] = value

        return func(*bound.args, **bound.kwargs)

    def inject_fields(self, target: object) -> None:
        # Never inject into a resolver itself
        if isinstance(target, Resolver):
            return

        for f in injectable_fields(type(target)):
            value = self._resolver.resolve(f.field_type, MISSING)
            if value is not MISSING and value is not None:
                setattr(target, f.name, value)


def _injectable_parameters(
    func: Callable[..., object], sig: inspect.Signature | None = None
) -> list[inspect.Parameter]:
    if sig is None:
        sig = inspect.signature(func)
    # var-positional/var-keyword are never injected
    return [
        p
        for p in sig.parameters.values()
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


def _strip_annotated(hint: Any) -> Any:
    if get_origin(hint) is Annotated:
        return get_args(hint)[0]
    return hint


def _get_type_hints(obj: Any) -> dict[str, Any]:
    target = getattr(obj, "__func__", obj)
    try:
        hints = get_type_hints(target, include_extras=True)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning(
            "'%s' name error retrieving %s type hints",
            exc.name,
            getattr(target, "__qualname__", repr(target)),
        )
        hints = {}

    hints.pop("return", None)
    return hints


def _class_type_hints(cls: type) -> dict[str, Any]:
    try:
        return get_type_hints(cls, include_extras=True)
    except TypeError:
        return {}
    except NameError as exc:
        logger.warning(
            "'%s' name error retrieving %s type hints, evaluating annotations one by one",
            exc.name,
            cls.__qualname__,
        )

    hints: dict[str, Any] = {}
    for base in reversed(cls.__mro__):
        try:
            annotations = inspect.get_annotations(base)
        except NameError:
            continue

        module = sys.modules.get(base.__module__)
        globalns = getattr(module, "__dict__", {})
        localns = dict(vars(base))
        for name, hint in annotations.items():
            if not isinstance(hint, str):
                hints[name] = hint
                continue
            try:
                hints[name] = eval(hint, globalns, localns)  # noqa: S307
            except NameError:
                logger.warning("Skipping %s.%s: cannot evaluate annotation %r", cls.__qualname__, name, hint)
    return hints
