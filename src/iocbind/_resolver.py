from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


DEFAULT_INITIALIZER_NAME = "initialize"


class _Missing:
    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@runtime_checkable
class Resolver(Protocol):
    """Anything that can resolve services.

    A container always binds itself under this type, so a field annotated with
    `Resolver` (or an initializer parameter of that type) receives the
    enclosing container and can resolve further services later on.
    """

    def resolve(self, service_type: Any, default: Any = None) -> Any: ...

    def set_parent(self, parent: Resolver | None) -> None: ...


@runtime_checkable
class CustomInitializer(Protocol):
    """Implement to use another initializer method name than `initialize`.

    The hook is simply not invoked if the named method does not exist.
    """

    def initializer_method_name(self) -> str: ...
