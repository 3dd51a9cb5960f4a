from __future__ import annotations


class RegistrationError(ValueError):
    """A binding could not be registered."""


class ServiceTypeError(RegistrationError):
    """The service type is neither a capability set (Protocol/ABC) nor a class."""


class InstanceTypeError(RegistrationError):
    """The supplied instance does not satisfy the service type."""


class InitializerCycleError(RegistrationError):
    """The initializer hook asks for the service it initializes."""


class ResolutionCycleError(RuntimeError):
    """A singleton was requested again while it was still initializing on this thread."""
