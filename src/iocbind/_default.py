"""Process-wide default container and the shortcuts that target it.

The default container is created lazily on first use. `initialize()` installs a
fresh (or given) one and `shutdown()` drops it, so tests can run against an
isolated container without touching module state by hand. Every shortcut also
accepts `container=` to target an explicit container instead.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, TypeVar

from ._container import Container


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._resolver import Resolver

    T = TypeVar("T")


_default: Container | None = None
_default_lock = threading.Lock()


def default_container() -> Container:
    """Return the default container, creating it on first use."""
    global _default  # noqa: PLW0603
    container = _default
    if container is None:
        with _default_lock:
            if _default is None:
                _default = Container()
                logger.debug("Created default container")
            container = _default
    return container


def initialize(container: Container | None = None) -> Container:
    """Install `container` (or a new one) as the default container and return it."""
    global _default  # noqa: PLW0603
    with _default_lock:
        _default = container if container is not None else Container()
        return _default


def shutdown() -> None:
    """Drop the default container; the next shortcut call creates a new one."""
    global _default  # noqa: PLW0603
    with _default_lock:
        _default = None


def add_singleton(service_type: type[T], instance: T, *, container: Container | None = None) -> None:
    (container or default_container()).add_singleton(service_type, instance)


def add_transient(service_type: type[T], factory: Callable[[], T], *, container: Container | None = None) -> None:
    (container or default_container()).add_transient(service_type, factory)


def get_service(service_type: type[T], *, container: Container | None = None) -> T | None:
    """Resolve `service_type`; None when it is not bound anywhere in the chain."""
    return (container or default_container()).resolve(service_type)


def inject(target: object, *, container: Container | None = None) -> None:
    (container or default_container()).inject(target)


def set_parent(parent: Resolver | None, *, container: Container | None = None) -> None:
    (container or default_container()).set_parent(parent)
