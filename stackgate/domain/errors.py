"""Project-native typed exceptions for orchestration failures."""

from __future__ import annotations


class StackgateError(Exception):
    """Base exception for orchestration failures."""


class ConfigurationError(StackgateError, ValueError):
    """Manifest or settings content is invalid; no service may start."""


class CycleError(ConfigurationError):
    """Dependency graph contains a cycle.

    Attributes:
        path: Service names along the cycle, first name repeated at the end.
    """

    def __init__(self, path: list[str]):
        self.path = tuple(path)
        super().__init__(f"dependency cycle detected: {' -> '.join(self.path)}")


class BootstrapFailure(StackgateError, RuntimeError):
    """First-run initialization failed; fatal for the service."""

    def __init__(self, service_name: str, reason: str):
        super().__init__(f"bootstrap failed for service={service_name}: {reason}")
        self.service_name = service_name
        self.reason = reason


class HealthCheckFailure(StackgateError):
    """Transient health probe failure."""


class ProbeTimeoutError(HealthCheckFailure, TimeoutError):
    """Health probe did not complete within its timeout."""


class LifecycleTransitionError(StackgateError, ValueError):
    """Requested lifecycle transition is not allowed from the current state."""


class ShutdownInterrupted(StackgateError):
    """One or more drivers did not stop within the shutdown grace period.

    Attributes:
        service_names: Services that had to be force-terminated.
    """

    def __init__(self, service_names: list[str]):
        self.service_names = tuple(service_names)
        super().__init__(f"forced termination after grace timeout: {', '.join(self.service_names)}")


class VolumeDestroyRefused(StackgateError):
    """Volume destruction was requested without explicit confirmation or while running."""
