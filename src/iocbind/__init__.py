"""Minimal inversion of control container.

This package binds service types (protocols, abstract classes or classes) to
singleton instances or transient factories and resolves them on demand,
injecting dependencies into object fields and function parameters.

Exports:
- `Container`: registry of bindings with lazy singleton initialization and an
  optional parent resolver chain.
- `Resolver`: protocol every container binds itself under; annotate a field or
  parameter with it to receive the enclosing container.
- `Inject`: `typing.Annotated` marker for injectable fields.
- `CustomInitializer`: protocol to rename the `initialize` hook.
- `MISSING`: sentinel for "not found" results.
- `default_container`, `initialize`, `shutdown` and the module-level shortcuts
  (`add_singleton`, `add_transient`, `get_service`, `inject`, `set_parent`)
  working on a process-wide default container.
"""

from ._binding import Lifetime
from ._container import Container
from ._default import (
    add_singleton,
    add_transient,
    default_container,
    get_service,
    initialize,
    inject,
    set_parent,
    shutdown,
)
from ._errors import (
    InitializerCycleError,
    InstanceTypeError,
    RegistrationError,
    ResolutionCycleError,
    ServiceTypeError,
)
from ._injection import Inject, InjectableField, injectable_fields
from ._resolver import DEFAULT_INITIALIZER_NAME, MISSING, CustomInitializer, Resolver


__all__ = [
    "DEFAULT_INITIALIZER_NAME",
    "MISSING",
    "Container",
    "CustomInitializer",
    "InitializerCycleError",
    "Inject",
    "InjectableField",
    "InstanceTypeError",
    "Lifetime",
    "RegistrationError",
    "ResolutionCycleError",
    "Resolver",
    "ServiceTypeError",
    "add_singleton",
    "add_transient",
    "default_container",
    "get_service",
    "initialize",
    "inject",
    "injectable_fields",
    "set_parent",
    "shutdown",
]
