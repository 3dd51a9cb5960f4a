from __future__ import annotations

import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._binding import Binding, Lifetime, Registry, is_protocol, validate_instance
from ._errors import InitializerCycleError, RegistrationError, ResolutionCycleError
from ._injection import Injector, injectable_fields, parameter_types
from ._resolver import DEFAULT_INITIALIZER_NAME, MISSING, CustomInitializer, Resolver


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

    T = TypeVar("T")
    D = TypeVar("D")

    InitializerErrorHandler = Callable[[type, Exception], object]


_local = threading.local()


def _initializing() -> set[Binding]:
    """Singleton bindings whose initialization is running on the current thread."""
    pending = getattr(_local, "pending", None)
    if pending is None:
        pending = _local.pending = set()
    return pending


class Container(Resolver):
    """Service container.

    - register singleton instances or transient factories
    - resolve them, falling back to a parent resolver
    - field/parameter injection
    - binds itself as `Resolver`.
    """

    def __init__(self, *, on_initializer_error: InitializerErrorHandler | None = None) -> None:
        self._registry = Registry()
        self._parent: Resolver | None = None
        self._lock = threading.Lock()
        self._injector = Injector(self)
        self._on_initializer_error = on_initializer_error
        self.add_singleton(Resolver, self)

    @property
    def parent(self) -> Resolver | None:
        return self._parent

    def __contains__(self, service_type: object) -> bool:
        """Whether `service_type` is bound in this container (parents not consulted)."""
        return service_type in self._registry

    def add_singleton(self, service_type: type[T], instance: T) -> None:
        """Register a pre-built instance shared by every resolution.

        On first resolution its injectable fields are filled, then its
        initializer method (`initialize`, or the name returned by
        `initializer_method_name()`) is called once with injected parameters.

        Example:
          container.add_singleton(Repository, SqlRepository(dsn))

        A second registration for the same service type is ignored.
        """
        if service_type is None:
            msg = "param 'service_type' is null"
            raise RegistrationError(msg)
        if instance is None:
            msg = "param 'instance' is null"
            raise RegistrationError(msg)
        if service_type in self._registry:
            logger.debug("%s already registered, ignoring singleton %s", _name(service_type), type(instance).__name__)
            return

        binding = Binding(service_type=service_type, lifetime=Lifetime.SINGLETON, instance=instance)
        if service_type is not Resolver:
            binding.initializer = self._find_initializer(service_type, instance)

        stored = self._registry.register(binding)
        if stored is binding:
            injectable_fields(type(instance))
            logger.debug("Registered singleton %s -> %s", _name(service_type), type(instance).__name__)

    def add_transient(self, service_type: type[T], factory: Callable[[], T]) -> None:
        """Register a zero-argument factory called on every resolution.

        Example:
          container.add_transient(Widget, lambda: Widget(color="red"))

        A second registration for the same service type is ignored.
        """
        if service_type is None:
            msg = "param 'service_type' is null"
            raise RegistrationError(msg)
        if factory is None:
            msg = "param 'factory' is null"
            raise RegistrationError(msg)
        if service_type in self._registry:
            logger.debug("%s already registered, ignoring transient factory", _name(service_type))
            return
        if not callable(factory):
            msg = f"param 'factory' should be callable, got {type(factory).__name__}"
            raise RegistrationError(msg)
        _validate_zero_argument(factory)

        binding = Binding(service_type=service_type, lifetime=Lifetime.TRANSIENT, factory=factory)
        if self._registry.register(binding) is binding:
            logger.debug("Registered transient %s", _name(service_type))

    @overload
    def resolve(self, service_type: type[T]) -> T | None: ...

    @overload
    def resolve(self, service_type: type[T], default: D) -> T | D: ...

    def resolve(self, service_type: Any, default: Any = None) -> Any:
        """Resolve `service_type`, or return `default` when nothing binds it.

        - local binding: singleton instance (initialized once) or fresh transient
        - no local binding: delegate to the parent resolver, if any.
        Pass `MISSING` as default to tell "not found" apart from a None value.
        """
        binding = self._registry.lookup(service_type)
        if binding is None:
            parent = self._parent
            if parent is None:
                return default
            return parent.resolve(service_type, default)

        if binding.lifetime is Lifetime.SINGLETON:
            if not binding.initialized:
                self._initialize(binding)
            return binding.instance

        return self._create(binding)

    def inject(self, target: object) -> None:
        """Inject into a function/method (call it with resolved parameters) or an object's fields.

        Function parameters that cannot be resolved get their default or None;
        fields that cannot be resolved are left untouched. Attributes
        annotated `Resolver` always receive this container.
        """
        self._injector.inject(target)

    def set_parent(self, parent: Resolver | None) -> None:
        """Set the resolver consulted when a service is not bound here.

        If a parent is already set, the new one is appended to the end of the
        chain instead of replacing it.
        """
        with self._lock:
            if parent is None or parent is self._parent:
                return

            if self._leads_back_to_self(parent):
                logger.warning("Ignoring parent %r: its chain already contains this container", parent)
                return

            if self._parent is None:
                self._parent = parent
            else:
                self._parent.set_parent(parent)

    def _leads_back_to_self(self, parent: Resolver) -> bool:
        node: Resolver | None = parent
        while node is not None:
            if node is self:
                return True
            node = getattr(node, "parent", None)
        return False

    def _initialize(self, binding: Binding) -> None:
        pending = _initializing()
        if binding in pending:
            msg = f"{_name(binding.service_type)} was requested again while it was being initialized"
            raise ResolutionCycleError(msg)

        with binding.lock:
            if binding.initialized:
                return

            pending.add(binding)
            try:
                self._injector.inject_fields(binding.instance)
                if binding.initializer is not None:
                    self._run_initializer(binding)
                binding.initialized = True
            finally:
                pending.discard(binding)

        logger.debug("Initialized singleton %s", _name(binding.service_type))

    def _run_initializer(self, binding: Binding) -> None:
        # Initializer failures never abort resolution; the binding still counts as initialized.
        try:
            self._injector.call(binding.initializer)
        except Exception as exc:
            logger.warning("Initializer of %s failed, ignoring", _name(binding.service_type), exc_info=True)
            if self._on_initializer_error is not None:
                self._report_initializer_error(binding, exc)

    def _report_initializer_error(self, binding: Binding, exc: Exception) -> None:
        try:
            self._on_initializer_error(binding.service_type, exc)
        except Exception:
            logger.exception("on_initializer_error handler failed for %s", _name(binding.service_type))

    def _create(self, binding: Binding) -> object:
        instance = binding.factory()
        if instance is None:
            return None

        service_type = binding.service_type

        if is_protocol(service_type):
            try:
                validate_instance(service_type, instance)
            except RegistrationError as e:
                msg = f"Resolved instance {type(instance).__name__} does not conform to protocol {service_type.__name__}"
                raise TypeError(msg) from e
        elif not isinstance(instance, service_type):
            msg = f"Resolved instance {type(instance).__name__} is not an instance of {service_type.__name__}"
            raise TypeError(msg)

        self._injector.inject_fields(instance)
        return instance

    def _find_initializer(self, service_type: type, instance: object) -> Callable[..., object] | None:
        method_name = DEFAULT_INITIALIZER_NAME
        if isinstance(instance, CustomInitializer):
            method_name = instance.initializer_method_name()

        initializer = getattr(instance, method_name, None)
        if not callable(initializer):
            return None

        for i, param_type in enumerate(parameter_types(initializer)):
            if _is_service_type(param_type, service_type):
                msg = (
                    f"cycle reference: param[{i}]'s type in method '{method_name}' "
                    f"equals to service '{_name(service_type)}'"
                )
                raise InitializerCycleError(msg)

        return initializer


def _validate_zero_argument(factory: Callable[..., object]) -> None:
    try:
        sig = inspect.signature(factory)
    except (TypeError, ValueError):
        # builtins without signature metadata; assume callable without arguments
        return

    required = [
        p.name
        for p in sig.parameters.values()
        if p.default is inspect.Parameter.empty
        and p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if required:
        msg = f"param 'factory' should take no arguments, requires: {', '.join(required)}"
        raise RegistrationError(msg)


def _name(service_type: object) -> str:
    return getattr(service_type, "__qualname__", None) or repr(service_type)


def _is_service_type(param_type: object, service_type: type) -> bool:
    if param_type is service_type:
        return True
    # annotation that could not be evaluated, compared as written
    if isinstance(param_type, str):
        written = param_type.strip("'\" ")
        return written in (getattr(service_type, "__name__", None), getattr(service_type, "__qualname__", None))
    return False
