"""Typed interfaces for the orchestrator control loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from stackgate.domain import ShutdownInterrupted


@dataclass(frozen=True)
class OrchestratorConfig:
    """Configuration values for one orchestrator run.

    Attributes:
        shutdown_grace_seconds: Upper bound for the whole cooperative shutdown.
        status_reemit_seconds: Interval for re-emitting blocked-dependency status.
    """

    shutdown_grace_seconds: float = 30.0
    status_reemit_seconds: float = 15.0


@dataclass(frozen=True)
class OrchestratorRunResult:
    """Result contract for one orchestrator run.

    Attributes:
        exit_code: Process exit code; 0 when nothing failed and shutdown was clean.
        settled_states: State of each service when the run stopped supervising.
        failed_services: Services that ended in `failed`.
        blocked_services: Services that never started because a dependency failed.
        forced_services: Services force-terminated after the shutdown grace elapsed.
        shutdown_error: Shutdown report when at least one service was forced.
    """

    exit_code: int
    settled_states: dict[str, str] = field(default_factory=dict)
    failed_services: tuple[str, ...] = ()
    blocked_services: tuple[str, ...] = ()
    forced_services: tuple[str, ...] = ()
    shutdown_error: ShutdownInterrupted | None = None


class OrchestratorPort(Protocol):
    """Port definition for the control surface exposed to API and CLI layers."""

    def orchestrator_request_shutdown(self) -> None:
        """Ask a running orchestrator to begin shutdown.

        Raises:
            RuntimeError: Raised when shutdown cannot be requested.
        """

    def orchestrator_is_settled(self) -> bool:
        """Return whether every service reached a settled state.

        Returns:
            bool: True when no service can make further startup progress.

        Raises:
            RuntimeError: Raised when status is unavailable.
        """
