"""Per-service lifecycle driver running as one asyncio task."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from stackgate.adapters.interfaces import ServiceRuntimePort
from stackgate.adapters.runtime_errors import RuntimeAdapterError
from stackgate.domain import BootstrapFailure, BootstrapStatus, LifecycleState
from stackgate.graph import DependencyGraph
from stackgate.logging_config import logging_get_logger
from stackgate.manifest import ServiceDescriptor
from stackgate.probes import HealthProbeRunner
from stackgate.volumes import BootstrapGuard

from .state_machine import LifecycleStateMachine
from .status_view import ServiceStatusView

logger = logging_get_logger(__name__)


class ServiceLifecycleDriver:
    """Drives one service from `pending` to `ready` and keeps probing it.

    The driver owns its state machine exclusively. Other drivers observe it only
    through snapshots published to the shared status view.
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        graph: DependencyGraph,
        status_view: ServiceStatusView,
        runtime: ServiceRuntimePort,
        probe_runner: HealthProbeRunner,
        bootstrap_guard: BootstrapGuard,
        status_reemit_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize driver dependencies.

        Args:
            descriptor: Service to drive.
            graph: Validated dependency graph.
            status_view: Shared status view for publishing and observing readiness.
            runtime: Execution substrate.
            probe_runner: Health probe runner.
            bootstrap_guard: Guard for one-time initialization.
            status_reemit_seconds: Interval for re-emitting blocked-dependency status.
            clock: Monotonic clock.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if descriptor is None:
            raise ValueError("descriptor must not be None")
        if graph is None:
            raise ValueError("graph must not be None")
        if status_view is None:
            raise ValueError("status_view must not be None")
        if runtime is None:
            raise ValueError("runtime must not be None")
        if probe_runner is None:
            raise ValueError("probe_runner must not be None")
        if bootstrap_guard is None:
            raise ValueError("bootstrap_guard must not be None")
        if status_reemit_seconds <= 0:
            raise ValueError("status_reemit_seconds must be > 0")

        self._descriptor = descriptor
        self._graph = graph
        self._status_view = status_view
        self._runtime = runtime
        self._probe_runner = probe_runner
        self._bootstrap_guard = bootstrap_guard
        self._status_reemit_seconds = status_reemit_seconds
        self._clock = clock
        self._machine = LifecycleStateMachine(descriptor.name, descriptor.healthcheck, clock=clock)
        self._service_started = False
        self._task: asyncio.Task[LifecycleState] | None = None

    @property
    def service_name(self) -> str:
        return self._descriptor.name

    @property
    def state(self) -> LifecycleState:
        return self._machine.state

    @property
    def task(self) -> asyncio.Task[LifecycleState] | None:
        return self._task

    def driver_start(self) -> asyncio.Task[LifecycleState]:
        """Spawn the driver task on the running event loop.

        Returns:
            asyncio.Task[LifecycleState]: Task running `driver_run`.

        Raises:
            RuntimeError: Raised when the driver was already started.
        """

        if self._task is not None:
            raise RuntimeError(f"driver for service={self.service_name} already started")
        self._status_view.status_publish(self._machine.lifecycle_snapshot())
        self._task = asyncio.create_task(self.driver_run(), name=f"stackgate-driver-{self.service_name}")
        return self._task

    async def driver_run(self) -> LifecycleState:
        """Run the lifecycle until failure or cancellation.

        Returns:
            LifecycleState: `failed` when the service cannot proceed; otherwise the
            coroutine only ends through cancellation.

        Raises:
            asyncio.CancelledError: Raised on cooperative shutdown.
        """

        try:
            self._driver_transition(LifecycleState.WAITING_ON_DEPENDENCIES)
            await self._driver_wait_for_dependencies()

            self._driver_transition(LifecycleState.STARTING)
            try:
                await self._runtime.runtime_start_service(self._descriptor)
            except RuntimeAdapterError as error:
                self._driver_transition(LifecycleState.FAILED, reason=f"start failed: {error}")
                return self._machine.state
            self._service_started = True

            if self._descriptor.bootstrap is not None:
                await self._driver_run_bootstrap()

            self._driver_transition(LifecycleState.HEALTH_CHECKING)
            if self._descriptor.healthcheck is None:
                self._driver_transition(LifecycleState.READY, details={"probe": "none"})
                await asyncio.Event().wait()
            await self._driver_probe_loop()
        except BootstrapFailure as error:
            self._driver_transition(LifecycleState.FAILED, reason=str(error))
        except (OSError, ValueError, RuntimeError) as error:
            if not self._machine.lifecycle_can_transition(LifecycleState.FAILED):
                raise
            logger.exception("driver_unexpected_error", service=self.service_name)
            self._driver_transition(LifecycleState.FAILED, reason=f"{type(error).__name__}: {error}")
        return self._machine.state

    async def _driver_run_bootstrap(self) -> None:
        """Enter `bootstrapping` and run the guard when the marker is absent.

        Raises:
            BootstrapFailure: Raised when the guard reports a failed bootstrap.
        """

        if self._bootstrap_guard.bootstrap_is_required(self._descriptor):
            self._driver_transition(LifecycleState.BOOTSTRAPPING)
            outcome = await self._bootstrap_guard.bootstrap_ensure(
                self._descriptor,
                self._graph.graph_dependencies_of(self.service_name),
            )
            if outcome.status is BootstrapStatus.FAILED:
                raise BootstrapFailure(self.service_name, outcome.reason or "unknown reason")
        self._machine.lifecycle_mark_bootstrap_completed()

    async def _driver_wait_for_dependencies(self) -> None:
        """Suspend until every dependency has been observed `ready` at least once.

        Waiting is re-evaluated on every status publish. While blocked, the
        condition is re-emitted every `status_reemit_seconds`.

        Raises:
            asyncio.CancelledError: Raised on cooperative shutdown.
        """

        dependency_names = self._graph.graph_dependencies_of(self.service_name)
        next_emit_at = self._clock() + self._status_reemit_seconds
        while True:
            change_event = self._status_view.status_change_event()
            pending = [name for name in dependency_names if not self._status_view.status_has_been_ready(name)]
            if not pending:
                self._machine.lifecycle_note_reason(None)
                return

            remaining_seconds = next_emit_at - self._clock()
            if remaining_seconds <= 0:
                self._driver_emit_blocked_status(pending)
                next_emit_at = self._clock() + self._status_reemit_seconds
                continue
            await self._status_view.status_wait_for_change(
                timeout_seconds=remaining_seconds,
                change_event=change_event,
            )

    def _driver_emit_blocked_status(self, pending: list[str]) -> None:
        """Log and publish why this service is still waiting.

        Args:
            pending: Direct dependencies not yet observed ready.
        """

        failed_dependencies = [
            name
            for name in self._graph.graph_transitive_dependencies_of(self.service_name)
            if self._status_view.status_state_of(name) is LifecycleState.FAILED
        ]
        pending_states = {
            name: (state.value if (state := self._status_view.status_state_of(name)) is not None else "unknown")
            for name in pending
        }
        if failed_dependencies:
            reason = f"blocked by failed dependency: {', '.join(failed_dependencies)}"
            logger.error(
                "service_blocked",
                service=self.service_name,
                failed_dependencies=failed_dependencies,
                pending=pending_states,
            )
        else:
            reason = f"waiting on: {', '.join(pending)}"
            logger.warning("service_waiting", service=self.service_name, pending=pending_states)
        self._machine.lifecycle_note_reason(reason)
        self._status_view.status_publish(self._machine.lifecycle_snapshot())

    async def _driver_probe_loop(self) -> None:
        """Probe on the service's own interval for the whole service lifetime.

        Probes are scheduled from each probe's start, so a slow probe shortens
        the following sleep instead of stretching the period.

        Raises:
            asyncio.CancelledError: Raised on cooperative shutdown.
        """

        probe_spec = self._descriptor.healthcheck
        if probe_spec is None:
            return

        while True:
            probe_started_at = self._clock()
            outcome = await self._probe_runner.probe_run(probe_spec, self._descriptor)
            previous_state = self._machine.state
            previous_failures = self._machine.consecutive_failures
            accounting = self._machine.lifecycle_record_probe(outcome, now=self._clock())

            if not outcome.probe_is_healthy():
                logger.warning(
                    "probe_failed",
                    service=self.service_name,
                    probe_status=outcome.status.value,
                    reason=outcome.reason,
                    counted=accounting.counted,
                    consecutive_failures=self._machine.consecutive_failures,
                )
            if accounting.alert_raised:
                logger.error(
                    "service_health_alert",
                    service=self.service_name,
                    consecutive_failures=self._machine.consecutive_failures,
                    threshold=probe_spec.alert_after_failures,
                    reason=outcome.reason,
                )

            if accounting.new_state is not None:
                self._driver_publish_transition(
                    previous_state,
                    reason=outcome.reason,
                    details={"probe_status": outcome.status.value, "reason": outcome.reason},
                )
            elif self._machine.consecutive_failures != previous_failures:
                self._status_view.status_publish(self._machine.lifecycle_snapshot())

            elapsed_seconds = self._clock() - probe_started_at
            await asyncio.sleep(max(0.0, probe_spec.interval_seconds - elapsed_seconds))

    def _driver_transition(
        self,
        target_state: LifecycleState,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        previous_state = self._machine.lifecycle_transition(target_state, reason=reason)
        self._driver_publish_transition(previous_state, reason=reason, details=details)

    def _driver_publish_transition(
        self,
        previous_state: LifecycleState,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        snapshot = self._machine.lifecycle_snapshot()
        self._status_view.status_publish(snapshot, from_state=previous_state, details=details)

        log_method = logger.info
        if snapshot.state is LifecycleState.FAILED:
            log_method = logger.error
        elif snapshot.state is LifecycleState.UNHEALTHY:
            log_method = logger.warning
        log_method(
            "service_transition",
            service=self.service_name,
            from_state=previous_state.value,
            to_state=snapshot.state.value,
            reason=reason,
        )

    async def driver_stop(self) -> None:
        """Cancel the driver task, stop the service, and enter `stopped`.

        Returns:
            None: Service is stopped as side effect.

        Raises:
            asyncio.CancelledError: Raised when the stop itself is cancelled.
        """

        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait({self._task})

        stop_reason = None
        if self._service_started:
            try:
                await self._runtime.runtime_stop_service(self._descriptor)
            except RuntimeAdapterError as error:
                stop_reason = f"stop reported an error: {error}"
                logger.error("service_stop_failed", service=self.service_name, reason=str(error))
            self._service_started = False

        if self._machine.lifecycle_can_transition(LifecycleState.STOPPED):
            self._driver_transition(LifecycleState.STOPPED, reason=stop_reason)

    async def driver_kill(self) -> None:
        """Force-terminate the service after the shutdown grace period elapsed.

        Returns:
            None: Service is terminated as side effect.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        if self._task is not None and not self._task.done():
            self._task.cancel()
        try:
            await self._runtime.runtime_kill_service(self._descriptor)
        except RuntimeAdapterError as error:
            logger.error("service_kill_failed", service=self.service_name, reason=str(error))
        self._service_started = False
        if self._machine.lifecycle_can_transition(LifecycleState.STOPPED):
            self._driver_transition(LifecycleState.STOPPED, reason="forced")
