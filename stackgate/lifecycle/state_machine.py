"""Per-service lifecycle state machine with probe accounting.

The machine is pure bookkeeping: it validates transitions, applies the
start-period grace rule and failure threshold to probe outcomes, and renders
read-only snapshots. Scheduling, waiting and side effects live in the driver.
"""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Callable

from stackgate.domain import (
    LifecycleState,
    LifecycleTransitionError,
    ProbeOutcome,
    ServiceStatusSnapshot,
    domain_utc_now_iso,
)
from stackgate.manifest import HealthProbeSpec

_ALLOWED_TRANSITIONS: dict[LifecycleState, frozenset[LifecycleState]] = {
    LifecycleState.PENDING: frozenset({LifecycleState.WAITING_ON_DEPENDENCIES}),
    LifecycleState.WAITING_ON_DEPENDENCIES: frozenset({LifecycleState.STARTING}),
    LifecycleState.STARTING: frozenset(
        {LifecycleState.BOOTSTRAPPING, LifecycleState.HEALTH_CHECKING, LifecycleState.FAILED}
    ),
    LifecycleState.BOOTSTRAPPING: frozenset({LifecycleState.HEALTH_CHECKING, LifecycleState.FAILED}),
    LifecycleState.HEALTH_CHECKING: frozenset({LifecycleState.READY, LifecycleState.UNHEALTHY}),
    LifecycleState.READY: frozenset({LifecycleState.UNHEALTHY}),
    LifecycleState.UNHEALTHY: frozenset({LifecycleState.READY}),
    LifecycleState.FAILED: frozenset(),
    LifecycleState.STOPPED: frozenset(),
}
_PROBED_STATES = frozenset({LifecycleState.HEALTH_CHECKING, LifecycleState.READY, LifecycleState.UNHEALTHY})


@dataclass(frozen=True)
class ProbeAccounting:
    """Effect of recording one probe outcome.

    Attributes:
        counted: Whether a failure was counted toward the threshold.
        new_state: State entered because of this outcome, if any.
        alert_raised: Whether this outcome crossed the alerting threshold.
    """

    counted: bool
    new_state: LifecycleState | None = None
    alert_raised: bool = False


class LifecycleStateMachine:
    """Runtime state of one service, owned exclusively by its driver."""

    def __init__(
        self,
        service_name: str,
        probe_spec: HealthProbeSpec | None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize machine in `pending`.

        Args:
            service_name: Service identifier.
            probe_spec: Health probe configuration, or None when the service has no probe.
            clock: Monotonic clock used for the start-period grace rule.

        Raises:
            ValueError: Raised when service_name is blank.
        """

        if not service_name.strip():
            raise ValueError("service_name must not be blank")
        self.service_name = service_name
        self._probe_spec = probe_spec
        self._clock = clock
        self._state = LifecycleState.PENDING
        self._consecutive_failures = 0
        self._bootstrap_completed = False
        self._started_at_utc: str | None = None
        self._last_transition_at_utc = domain_utc_now_iso()
        self._health_checking_since: float | None = None
        self._failure_reason: str | None = None
        self._alerting = False
        self._has_been_ready = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def alerting(self) -> bool:
        return self._alerting

    def lifecycle_can_transition(self, target_state: LifecycleState) -> bool:
        """Return whether `target_state` is reachable from the current state.

        Args:
            target_state: Requested state.

        Returns:
            bool: True when the transition is allowed.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if target_state is LifecycleState.STOPPED:
            return self._state is not LifecycleState.STOPPED
        return target_state in _ALLOWED_TRANSITIONS[self._state]

    def lifecycle_transition(self, target_state: LifecycleState, reason: str | None = None) -> LifecycleState:
        """Move to `target_state` and update transition bookkeeping.

        Args:
            target_state: Requested state.
            reason: Optional failure or stop reason recorded on the snapshot.

        Returns:
            LifecycleState: The state that was left.

        Raises:
            LifecycleTransitionError: Raised when the transition is not allowed.
        """

        if not self.lifecycle_can_transition(target_state):
            raise LifecycleTransitionError(
                f"service={self.service_name} cannot move from {self._state.value} to {target_state.value}"
            )

        previous_state = self._state
        self._state = target_state
        self._last_transition_at_utc = domain_utc_now_iso()
        if target_state is LifecycleState.STARTING:
            self._started_at_utc = self._last_transition_at_utc
        elif target_state is LifecycleState.HEALTH_CHECKING:
            self._health_checking_since = self._clock()
            self._consecutive_failures = 0
        elif target_state is LifecycleState.READY:
            self._has_been_ready = True
        if reason is not None:
            self._failure_reason = reason
        return previous_state

    def lifecycle_mark_bootstrap_completed(self) -> None:
        """Record that the bootstrap marker is present for this service."""

        self._bootstrap_completed = True

    def lifecycle_note_reason(self, reason: str | None) -> None:
        """Attach a diagnostic reason without changing state, e.g. a blocked dependency."""

        self._failure_reason = reason

    def lifecycle_in_start_period(self, now: float | None = None) -> bool:
        """Return whether probe failures are currently inside the grace period.

        Grace applies only before the first successful probe, measured from
        entering `health_checking`.

        Args:
            now: Optional monotonic time; defaults to the machine clock.

        Returns:
            bool: True while failures must not be counted.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if self._state is not LifecycleState.HEALTH_CHECKING or self._health_checking_since is None:
            return False
        grace_seconds = self._probe_spec.start_period_seconds if self._probe_spec is not None else 0.0
        current_time = self._clock() if now is None else now
        return (current_time - self._health_checking_since) <= grace_seconds

    def lifecycle_record_probe(self, outcome: ProbeOutcome, now: float | None = None) -> ProbeAccounting:
        """Apply one probe outcome to counters and state.

        Args:
            outcome: Probe result.
            now: Optional monotonic time of the probe; defaults to the machine clock.

        Returns:
            ProbeAccounting: Counting, transition and alerting effect.

        Raises:
            LifecycleTransitionError: Raised when probes are recorded outside probed states.
        """

        if self._state not in _PROBED_STATES:
            raise LifecycleTransitionError(
                f"service={self.service_name} does not accept probe results in state {self._state.value}"
            )

        if outcome.probe_is_healthy():
            self._consecutive_failures = 0
            self._alerting = False
            self._failure_reason = None
            if self._state in (LifecycleState.HEALTH_CHECKING, LifecycleState.UNHEALTHY):
                self.lifecycle_transition(LifecycleState.READY)
                return ProbeAccounting(counted=False, new_state=LifecycleState.READY)
            return ProbeAccounting(counted=False)

        if self.lifecycle_in_start_period(now=now):
            return ProbeAccounting(counted=False)

        self._consecutive_failures += 1
        self._failure_reason = outcome.reason or outcome.status.value
        failure_threshold = self._probe_spec.failure_threshold if self._probe_spec is not None else 1

        alert_raised = False
        alert_threshold = self._probe_spec.alert_after_failures if self._probe_spec is not None else None
        if alert_threshold is not None and not self._alerting and self._consecutive_failures >= alert_threshold:
            self._alerting = True
            alert_raised = True

        new_state: LifecycleState | None = None
        if self._consecutive_failures >= failure_threshold and self._state in (
            LifecycleState.HEALTH_CHECKING,
            LifecycleState.READY,
        ):
            self.lifecycle_transition(LifecycleState.UNHEALTHY)
            new_state = LifecycleState.UNHEALTHY
        return ProbeAccounting(counted=True, new_state=new_state, alert_raised=alert_raised)

    def lifecycle_snapshot(self) -> ServiceStatusSnapshot:
        """Return an immutable snapshot of the current runtime state.

        Returns:
            ServiceStatusSnapshot: Read-only state copy.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return ServiceStatusSnapshot(
            service_name=self.service_name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            bootstrap_completed=self._bootstrap_completed,
            started_at_utc=self._started_at_utc,
            last_transition_at_utc=self._last_transition_at_utc,
            failure_reason=self._failure_reason,
            alerting=self._alerting,
            has_been_ready=self._has_been_ready,
        )
