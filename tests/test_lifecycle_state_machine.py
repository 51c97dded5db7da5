"""Tests for lifecycle transitions and probe accounting.

These tests drive the state machine with explicit probe timestamps so that
grace-period and threshold behavior is deterministic.
"""

import pytest

from stackgate.domain import LifecycleState, LifecycleTransitionError, ProbeOutcome, ProbeStatus
from stackgate.lifecycle import LifecycleStateMachine
from stackgate.manifest import HealthProbeSpec

_FAILED_PROBE = ProbeOutcome(status=ProbeStatus.UNHEALTHY, reason="connection refused")
_TIMED_OUT_PROBE = ProbeOutcome(status=ProbeStatus.TIMEOUT, reason="probe exceeded timeout of 1s")
_HEALTHY_PROBE = ProbeOutcome(status=ProbeStatus.HEALTHY)


class _ManualClock:
    """Test double for a monotonic clock advanced by the test."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _machine_in_health_checking(
    clock: _ManualClock,
    start_period_seconds: float = 15.0,
    failure_threshold: int = 3,
    alert_after_failures: int | None = None,
) -> LifecycleStateMachine:
    """Create a machine that has entered `health_checking` at clock time zero.

    Args:
        clock: Manual clock shared with the test.
        start_period_seconds: Grace period.
        failure_threshold: Counted failures before `unhealthy`.
        alert_after_failures: Optional alerting threshold.

    Returns:
        LifecycleStateMachine: Machine in `health_checking`.

    Raises:
        LifecycleTransitionError: Raised if the setup transitions are invalid.
    """

    probe_spec = HealthProbeSpec(
        kind="http",
        url="http://127.0.0.1:8080/",
        interval_seconds=1,
        timeout_seconds=1,
        failure_threshold=failure_threshold,
        start_period_seconds=start_period_seconds,
        alert_after_failures=alert_after_failures,
    )
    machine = LifecycleStateMachine("web", probe_spec, clock=clock)
    machine.lifecycle_transition(LifecycleState.WAITING_ON_DEPENDENCIES)
    machine.lifecycle_transition(LifecycleState.STARTING)
    machine.lifecycle_transition(LifecycleState.HEALTH_CHECKING)
    return machine


def test_lifecycle_grace_period_then_threshold_marks_unhealthy_at_eighteen_seconds() -> None:
    """Ignore failures inside the grace period and go unhealthy on the third counted one.

    Probes fail every second from t=1 to t=20 with a 15 s grace period and a
    threshold of 3: failures at t=16, 17, 18 are counted, so the service turns
    unhealthy at t=18. One success afterwards makes it ready.

    Returns:
        None: Assertions validate grace and threshold behavior.

    Raises:
        AssertionError: Raised when the transition time differs.
    """

    clock = _ManualClock()
    machine = _machine_in_health_checking(clock)
    unhealthy_at: float | None = None

    for probe_time in range(1, 21):
        clock.now = float(probe_time)
        accounting = machine.lifecycle_record_probe(_FAILED_PROBE, now=clock.now)
        assert accounting.counted is (probe_time > 15)
        if accounting.new_state is LifecycleState.UNHEALTHY:
            unhealthy_at = clock.now

    assert unhealthy_at == 18.0
    assert machine.state is LifecycleState.UNHEALTHY
    assert machine.consecutive_failures == 5

    clock.now = 21.0
    accounting = machine.lifecycle_record_probe(_HEALTHY_PROBE, now=clock.now)

    assert accounting.new_state is LifecycleState.READY
    assert machine.state is LifecycleState.READY
    assert machine.consecutive_failures == 0
    assert machine.lifecycle_snapshot().has_been_ready is True


def test_lifecycle_first_success_inside_grace_marks_ready() -> None:
    """Move to ready on the first success, even inside the grace period.

    Returns:
        None: Assertions validate readiness.

    Raises:
        AssertionError: Raised when the service does not become ready.
    """

    clock = _ManualClock()
    machine = _machine_in_health_checking(clock)
    machine.lifecycle_record_probe(_TIMED_OUT_PROBE, now=1.0)

    accounting = machine.lifecycle_record_probe(_HEALTHY_PROBE, now=2.0)

    assert accounting.new_state is LifecycleState.READY
    assert machine.consecutive_failures == 0


def test_lifecycle_ready_service_needs_threshold_failures_to_become_unhealthy() -> None:
    """Keep a ready service ready until failures reach the threshold, without grace.

    Returns:
        None: Assertions validate ready-to-unhealthy accounting.

    Raises:
        AssertionError: Raised when the service degrades too early.
    """

    clock = _ManualClock()
    machine = _machine_in_health_checking(clock, start_period_seconds=100.0)
    machine.lifecycle_record_probe(_HEALTHY_PROBE, now=1.0)

    first = machine.lifecycle_record_probe(_FAILED_PROBE, now=2.0)
    second = machine.lifecycle_record_probe(_TIMED_OUT_PROBE, now=3.0)
    third = machine.lifecycle_record_probe(_FAILED_PROBE, now=4.0)

    assert first.counted and first.new_state is None
    assert second.counted and second.new_state is None
    assert third.new_state is LifecycleState.UNHEALTHY
    assert machine.lifecycle_snapshot().failure_reason == "connection refused"


def test_lifecycle_success_resets_failure_counter() -> None:
    """Reset the consecutive failure counter on any success.

    Returns:
        None: Assertions validate counter reset.

    Raises:
        AssertionError: Raised when failures are not reset.
    """

    clock = _ManualClock()
    machine = _machine_in_health_checking(clock, start_period_seconds=0.0)
    machine.lifecycle_record_probe(_HEALTHY_PROBE, now=1.0)
    machine.lifecycle_record_probe(_FAILED_PROBE, now=2.0)
    machine.lifecycle_record_probe(_FAILED_PROBE, now=3.0)
    machine.lifecycle_record_probe(_HEALTHY_PROBE, now=4.0)
    machine.lifecycle_record_probe(_FAILED_PROBE, now=5.0)

    assert machine.state is LifecycleState.READY
    assert machine.consecutive_failures == 1


def test_lifecycle_alert_is_raised_once_per_failure_episode() -> None:
    """Raise the alerting flag once when failures cross the alert threshold.

    Returns:
        None: Assertions validate alert behavior.

    Raises:
        AssertionError: Raised when alerts repeat or never fire.
    """

    clock = _ManualClock()
    machine = _machine_in_health_checking(
        clock,
        start_period_seconds=0.0,
        failure_threshold=2,
        alert_after_failures=4,
    )
    machine.lifecycle_record_probe(_HEALTHY_PROBE, now=1.0)

    alerts = [machine.lifecycle_record_probe(_FAILED_PROBE, now=float(t)).alert_raised for t in range(2, 8)]

    assert alerts == [False, False, False, True, False, False]
    assert machine.alerting is True
    assert machine.state is LifecycleState.UNHEALTHY

    machine.lifecycle_record_probe(_HEALTHY_PROBE, now=9.0)

    assert machine.alerting is False
    assert machine.state is LifecycleState.READY


def test_lifecycle_rejects_invalid_transitions() -> None:
    """Raise LifecycleTransitionError for transitions outside the table.

    Returns:
        None: Assertions validate transition rules.

    Raises:
        AssertionError: Raised when an invalid transition is accepted.
    """

    machine = LifecycleStateMachine("db", None)

    with pytest.raises(LifecycleTransitionError):
        machine.lifecycle_transition(LifecycleState.READY)
    with pytest.raises(LifecycleTransitionError):
        machine.lifecycle_record_probe(_HEALTHY_PROBE)

    machine.lifecycle_transition(LifecycleState.WAITING_ON_DEPENDENCIES)
    machine.lifecycle_transition(LifecycleState.STARTING)
    machine.lifecycle_transition(LifecycleState.BOOTSTRAPPING)
    machine.lifecycle_transition(LifecycleState.FAILED, reason="bootstrap failed")

    assert machine.lifecycle_can_transition(LifecycleState.HEALTH_CHECKING) is False
    with pytest.raises(LifecycleTransitionError):
        machine.lifecycle_transition(LifecycleState.HEALTH_CHECKING)

    previous_state = machine.lifecycle_transition(LifecycleState.STOPPED)

    assert previous_state is LifecycleState.FAILED
    assert machine.lifecycle_can_transition(LifecycleState.STOPPED) is False


def test_lifecycle_snapshot_reflects_bookkeeping() -> None:
    """Render snapshot fields from machine bookkeeping.

    Returns:
        None: Assertions validate snapshot values.

    Raises:
        AssertionError: Raised when snapshot values are stale.
    """

    machine = LifecycleStateMachine("drupal", None)
    assert machine.lifecycle_snapshot().started_at_utc is None

    machine.lifecycle_transition(LifecycleState.WAITING_ON_DEPENDENCIES)
    machine.lifecycle_transition(LifecycleState.STARTING)
    machine.lifecycle_mark_bootstrap_completed()
    snapshot = machine.lifecycle_snapshot()

    assert snapshot.state is LifecycleState.STARTING
    assert snapshot.started_at_utc is not None
    assert snapshot.bootstrap_completed is True
    assert snapshot.snapshot_to_payload()["state"] == "starting"
