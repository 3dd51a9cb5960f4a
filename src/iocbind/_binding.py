from __future__ import annotations

import functools
import inspect
import logging
import threading
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, cast, get_type_hints

from ._errors import InstanceTypeError, RegistrationError, ServiceTypeError


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable


class Lifetime(Enum):
    SINGLETON = "singleton"
    TRANSIENT = "transient"


@dataclass(eq=False)
class Binding:
    """How one service type is satisfied.

    Singletons carry the registered `instance` (never replaced) and an optional
    bound `initializer` that runs once, under `lock`, on first resolution.
    Transients carry a zero-argument `factory` called on every resolution.
    """

    service_type: type
    lifetime: Lifetime
    instance: object | None = None
    initializer: Callable[..., object] | None = None
    factory: Callable[[], object] | None = None
    initialized: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class Registry:
    """Service type -> Binding map.

    Lookups are plain dict reads; inserts are serialized and never overwrite.
    """

    def __init__(self) -> None:
        self._bindings: dict[Any, Binding] = {}
        self._lock = threading.Lock()

    def register(self, binding: Binding) -> Binding:
        """Validate and store `binding` unless its service type is already bound.

        Returns the binding that ends up stored, which is the earlier one on a
        duplicate registration.
        """
        validate_service_type(binding.service_type)
        if binding.instance is not None:
            validate_instance(binding.service_type, binding.instance)

        with self._lock:
            stored = self._bindings.setdefault(binding.service_type, binding)

        if stored is not binding:
            logger.debug("%s already registered, keeping the first binding", _name(binding.service_type))
        return stored

    def lookup(self, service_type: Any) -> Binding | None:
        return self._bindings.get(service_type)

    def __contains__(self, service_type: object) -> bool:
        try:
            return service_type in self._bindings
        except TypeError:
            # unhashable, cannot be a registered service type
            return False

    def __len__(self) -> int:
        return len(self._bindings)


def validate_service_type(service_type: object) -> None:
    """Accept Protocols, ABCs and user classes; reject everything else."""
    if service_type is None:
        msg = "param 'service_type' is null"
        raise RegistrationError(msg)

    if not inspect.isclass(service_type):
        msg = f"type of service {service_type!r} should be a protocol, an abstract class or a class"
        raise ServiceTypeError(msg)

    if getattr(service_type, "__module__", "") == "builtins":
        msg = f"type of service '{service_type.__name__}' is a builtin value type, not a protocol or a class"
        raise ServiceTypeError(msg)


def validate_instance(service_type: type, instance: object) -> None:
    """Raise `InstanceTypeError` unless `instance` satisfies `service_type`.

    - For normal classes/ABCs: require isinstance(instance, service_type).
    - For Protocols: check nominal conformance via the MRO, otherwise structural
      conformance (runtime-checkable protocols also get an isinstance check).
    """
    if not is_protocol(service_type):
        if not isinstance(instance, service_type):
            msg = f"instance {type(instance).__name__} should implement the service '{service_type.__name__}'"
            raise InstanceTypeError(msg)
        return

    mismatch = _protocol_mismatch(service_type, type(instance))
    if mismatch is not None:
        msg = f"instance {type(instance).__name__} should implement the service '{service_type.__name__}': {mismatch}"
        raise InstanceTypeError(msg)

    if _is_runtime_checkable_protocol(service_type) and not isinstance(instance, service_type):
        msg = f"instance {type(instance).__name__} does not implement runtime protocol {service_type.__name__}"
        raise InstanceTypeError(msg)


def _is_runtime_checkable_protocol(tp: type) -> bool:
    return bool(getattr(tp, "_is_runtime_protocol", False))


@functools.cache
def _protocol_mismatch(proto_cls: type, impl: type) -> str | None:
    """Conformance of `impl` to `proto_cls`, computed once per pair: None or the reason it fails."""
    try:
        _validate_protocol_impl(proto_cls, impl)
    except TypeError as e:
        return str(e)
    return None


def _validate_protocol_impl(proto_cls: type, impl: type) -> None:
    # Try nominal conformance without issubclass
    if proto_cls in getattr(impl, "__mro__", ()):
        return

    _validate_protocol_structural_conformance(proto_cls, impl)


def _validate_protocol_structural_conformance(proto_cls: type, impl: type) -> None:  # noqa: C901
    """Best-effort structural conformance: presence + basic callable arity + return type checks."""
    missing: list[str] = []
    signature_mismatches: list[str] = []

    try:
        proto_hints = get_type_hints(proto_cls, include_extras=True)
    except (TypeError, NameError):
        proto_hints = {}

    for name in proto_hints:
        if name.startswith("_"):
            continue
        if not hasattr(impl, name):
            missing.append(name)

    for name, proto_attr in proto_cls.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        if not hasattr(impl, name):
            missing.append(name)
            continue

        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            signature_mismatches.append(f"{name}: not Callable on {impl.__name__}")
            continue

        try:
            proto_sig = inspect.signature(proto_attr)
            impl_sig = inspect.signature(impl_attr)
        except (TypeError, ValueError) as e:
            signature_mismatches.append(f"{name}: unable to compare signatures ({e})")
            continue

        proto_arity = _positional_arity(proto_sig)
        impl_arity = _positional_arity(impl_sig)
        if impl_arity < proto_arity:
            signature_mismatches.append(
                f"{name}: impl has fewer required positional params ({impl_arity}) than protocol ({proto_arity})"
            )

        proto_ret = proto_sig.return_annotation
        impl_ret = impl_sig.return_annotation
        if (
            proto_ret is not inspect.Signature.empty
            and impl_ret is not inspect.Signature.empty
            and proto_ret is not Any
            and impl_ret is not Any
            and not isinstance(proto_ret, str)
            and not isinstance(impl_ret, str)
            and not _is_return_type_compatible(impl_ret, proto_ret)
        ):
            signature_mismatches.append(
                f"{name}: return type {impl_ret!r} is not compatible with protocol return type {proto_ret!r}"
            )

    if missing or signature_mismatches:
        msgs = []
        if missing:
            msgs.append(f"missing members: {', '.join(missing)}")
        if signature_mismatches:
            msgs.append(f"signature mismatches: {', '.join(signature_mismatches)}")

        msg = f"{impl.__name__} does not structurally conform to protocol {proto_cls.__name__}: {'; '.join(msgs)}"
        raise TypeError(msg)


def _positional_arity(sig: inspect.Signature) -> int:
    return sum(
        1
        for p in sig.parameters.values()
        if p.name != "self"
        and p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _is_return_type_compatible(impl_ret: object, proto_ret: object) -> bool:
    if impl_ret == proto_ret:
        return True

    # Handle class-based covariance
    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # Everything else (Union, Protocol, TypeVar, etc.) is a conservative failure
    return False


def _name(service_type: object) -> str:
    return getattr(service_type, "__qualname__", None) or repr(service_type)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: object) -> bool:
        """Detect whether 'tp' is a typing.Protocol subclass (safe)."""
        return (
            inspect.isclass(tp)
            and issubclass(tp, cast("type", Protocol))
            and bool(getattr(tp, "_is_protocol", False))
        )
