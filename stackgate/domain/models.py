"""Typed domain models shared across runtime layers.

This module provides the lifecycle vocabulary and immutable result contracts
exchanged between probes, the bootstrap guard, lifecycle drivers, and the
status surfaces.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LifecycleState(str, Enum):
    """Per-service lifecycle states driven by dependency readiness and probes."""

    PENDING = "pending"
    WAITING_ON_DEPENDENCIES = "waiting_on_dependencies"
    STARTING = "starting"
    BOOTSTRAPPING = "bootstrapping"
    HEALTH_CHECKING = "health_checking"
    READY = "ready"
    UNHEALTHY = "unhealthy"
    FAILED = "failed"
    STOPPED = "stopped"


class ProbeStatus(str, Enum):
    """Classification of one health probe execution."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    TIMEOUT = "timeout"


class BootstrapStatus(str, Enum):
    """Outcome classification of one bootstrap guard invocation."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ProbeOutcome:
    """Result contract for one health probe execution.

    Attributes:
        status: Probe classification.
        reason: Failure reason for unhealthy or timed out probes.
        duration_seconds: Wall time spent waiting for the probe.
    """

    status: ProbeStatus
    reason: str | None = None
    duration_seconds: float = 0.0

    def probe_is_healthy(self) -> bool:
        """Return whether the probe classified the service as healthy.

        Returns:
            bool: True only for healthy outcomes.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return self.status is ProbeStatus.HEALTHY


@dataclass(frozen=True)
class BootstrapOutcome:
    """Result contract for one bootstrap guard invocation.

    Attributes:
        status: Completed, skipped, or failed.
        reason: Failure reason when status is failed.
        executed_steps: Names of bootstrap steps that ran to success.
    """

    status: BootstrapStatus
    reason: str | None = None
    executed_steps: tuple[str, ...] = ()


@dataclass(frozen=True)
class ServiceStatusSnapshot:
    """Read-only view of one service runtime state.

    Attributes:
        service_name: Service identifier.
        state: Current lifecycle state.
        consecutive_failures: Counted consecutive probe failures.
        bootstrap_completed: Whether the bootstrap marker is known to be present.
        started_at_utc: ISO timestamp of entering `starting`, if reached.
        last_transition_at_utc: ISO timestamp of the most recent transition.
        failure_reason: Most recent failure reason, if any.
        alerting: Whether consecutive failures crossed the alerting threshold.
        has_been_ready: Whether the service reached `ready` at least once.
    """

    service_name: str
    state: LifecycleState
    consecutive_failures: int
    bootstrap_completed: bool
    started_at_utc: str | None
    last_transition_at_utc: str
    failure_reason: str | None = None
    alerting: bool = False
    has_been_ready: bool = False

    def snapshot_to_payload(self) -> dict[str, object]:
        """Render the snapshot as a JSON-compatible payload.

        Returns:
            dict[str, object]: Serializable status payload.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return {
            "service": self.service_name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "bootstrap_completed": self.bootstrap_completed,
            "started_at_utc": self.started_at_utc,
            "last_transition_at_utc": self.last_transition_at_utc,
            "failure_reason": self.failure_reason,
            "alerting": self.alerting,
            "has_been_ready": self.has_been_ready,
        }


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str
