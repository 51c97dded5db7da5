"""Orchestrator control loop: spawn drivers, supervise, and shut down in order."""

from __future__ import annotations

import asyncio
from typing import Callable

from stackgate.adapters import ServiceRuntimePort
from stackgate.domain import LifecycleState, ShutdownInterrupted
from stackgate.graph import DependencyGraph
from stackgate.lifecycle import ServiceLifecycleDriver, ServiceStatusView
from stackgate.logging_config import logging_get_logger
from stackgate.manifest import Manifest
from stackgate.probes import HealthProbeRunner
from stackgate.volumes import BootstrapGuard

from .interfaces import OrchestratorConfig, OrchestratorPort, OrchestratorRunResult

logger = logging_get_logger(__name__)


class StackOrchestrator(OrchestratorPort):
    """Concrete control loop for one manifest.

    Every service gets its own driver task. Startup order emerges from drivers
    waiting on the status view; no global sequencing is applied. Shutdown walks
    the graph in reverse so that a service stops only after its dependents.
    """

    def __init__(
        self,
        manifest: Manifest,
        graph: DependencyGraph,
        runtime: ServiceRuntimePort,
        probe_runner: HealthProbeRunner,
        bootstrap_guard: BootstrapGuard,
        status_view: ServiceStatusView,
        config: OrchestratorConfig | None = None,
    ):
        """Initialize orchestrator dependencies.

        Args:
            manifest: Validated manifest.
            graph: Dependency graph built from the manifest.
            runtime: Execution substrate shared by all drivers.
            probe_runner: Health probe runner shared by all drivers.
            bootstrap_guard: Bootstrap guard shared by all drivers.
            status_view: Status view covering every manifest service.
            config: Shutdown and status re-emission timing.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if manifest is None:
            raise ValueError("manifest must not be None")
        if graph is None:
            raise ValueError("graph must not be None")
        if runtime is None:
            raise ValueError("runtime must not be None")
        if probe_runner is None:
            raise ValueError("probe_runner must not be None")
        if bootstrap_guard is None:
            raise ValueError("bootstrap_guard must not be None")
        if status_view is None:
            raise ValueError("status_view must not be None")
        resolved_config = config or OrchestratorConfig()
        if resolved_config.shutdown_grace_seconds <= 0:
            raise ValueError("config.shutdown_grace_seconds must be > 0")
        if set(status_view.status_service_names()) != set(graph.graph_service_ids()):
            raise ValueError("status_view must cover exactly the graph services")

        self._manifest = manifest
        self._graph = graph
        self._runtime = runtime
        self._probe_runner = probe_runner
        self._bootstrap_guard = bootstrap_guard
        self._status_view = status_view
        self._config = resolved_config
        self._drivers: dict[str, ServiceLifecycleDriver] = {}
        self._shutdown_event = asyncio.Event()

    @property
    def status_view(self) -> ServiceStatusView:
        return self._status_view

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def orchestrator_request_shutdown(self) -> None:
        """Ask the running control loop to begin shutdown.

        Must be called from the event loop thread; other threads should use
        `loop.call_soon_threadsafe`.
        """

        if not self._shutdown_event.is_set():
            logger.info("orchestrator_shutdown_requested", project=self._manifest.project)
        self._shutdown_event.set()

    def orchestrator_is_settled(self) -> bool:
        """Return whether no service can make further startup progress.

        A service is settled once it has been ready at least once, has failed,
        or waits on a dependency chain that contains a failed service.

        Returns:
            bool: True when every service is settled.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return all(self._orchestrator_service_settled(name) for name in self._graph.graph_service_ids())

    def _orchestrator_service_settled(self, service_name: str) -> bool:
        if self._status_view.status_has_been_ready(service_name):
            return True
        if self._status_view.status_state_of(service_name) is LifecycleState.FAILED:
            return True
        return self._orchestrator_blocked_by_failure(service_name)

    def _orchestrator_blocked_by_failure(self, service_name: str) -> bool:
        return any(
            self._status_view.status_state_of(name) is LifecycleState.FAILED
            for name in self._graph.graph_transitive_dependencies_of(service_name)
        )

    async def orchestrator_run(
        self,
        shutdown_event: asyncio.Event | None = None,
        wait_until_settled: bool = False,
        on_settled: Callable[[dict[str, str]], None] | None = None,
    ) -> OrchestratorRunResult:
        """Start every service and supervise until shutdown.

        Args:
            shutdown_event: Optional external event that requests shutdown when set.
            wait_until_settled: Shut down as soon as the stack is settled.
            on_settled: Callback invoked once with service states when the stack settles.

        Returns:
            OrchestratorRunResult: Final run report including exit code.

        Raises:
            RuntimeError: Raised when the orchestrator was already run.
        """

        if self._drivers:
            raise RuntimeError("orchestrator_run may only be called once per orchestrator")
        if shutdown_event is not None:
            self._shutdown_event = shutdown_event

        logger.info(
            "orchestrator_starting",
            project=self._manifest.project,
            services=len(self._graph.graph_service_ids()),
            ready_order=list(self._graph.graph_ready_order()),
        )
        for service_name in self._graph.graph_service_ids():
            self._drivers[service_name] = ServiceLifecycleDriver(
                descriptor=self._manifest.manifest_get_service(service_name),
                graph=self._graph,
                status_view=self._status_view,
                runtime=self._runtime,
                probe_runner=self._probe_runner,
                bootstrap_guard=self._bootstrap_guard,
                status_reemit_seconds=self._config.status_reemit_seconds,
            )
        for driver in self._drivers.values():
            driver.driver_start().add_done_callback(self._orchestrator_on_driver_done)

        settled_states: dict[str, str] = {}
        try:
            while not self._shutdown_event.is_set():
                change_event = self._status_view.status_change_event()
                if not settled_states and self.orchestrator_is_settled():
                    settled_states = self._orchestrator_capture_states()
                    logger.info("stack_settled", project=self._manifest.project, states=settled_states)
                    if on_settled is not None:
                        on_settled(settled_states)
                    if wait_until_settled:
                        break
                await self._orchestrator_wait_for_activity(change_event)
        finally:
            if not settled_states:
                settled_states = self._orchestrator_capture_states()
            failed_services = tuple(
                name for name, state in settled_states.items() if state == LifecycleState.FAILED.value
            )
            blocked_services = tuple(
                name
                for name in self._graph.graph_service_ids()
                if name not in failed_services
                and not self._status_view.status_has_been_ready(name)
                and self._orchestrator_blocked_by_failure(name)
            )
            forced_services = await self.orchestrator_shutdown()

        shutdown_error = ShutdownInterrupted(list(forced_services)) if forced_services else None
        exit_code = 1 if failed_services or forced_services else 0
        logger.info(
            "orchestrator_finished",
            project=self._manifest.project,
            exit_code=exit_code,
            failed=list(failed_services),
            blocked=list(blocked_services),
            forced=list(forced_services),
        )
        return OrchestratorRunResult(
            exit_code=exit_code,
            settled_states=settled_states,
            failed_services=failed_services,
            blocked_services=blocked_services,
            forced_services=forced_services,
            shutdown_error=shutdown_error,
        )

    async def orchestrator_shutdown(self) -> tuple[str, ...]:
        """Stop every service, dependents before their dependencies.

        Each service's stop waits for the stops of all its dependents. The whole
        shutdown is bounded by `shutdown_grace_seconds`; services still running
        afterwards are force-killed and marked `stopped` with reason `forced`.

        Returns:
            tuple[str, ...]: Services that had to be force-terminated.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        if not self._drivers:
            return ()

        logger.info(
            "orchestrator_shutdown_started",
            project=self._manifest.project,
            shutdown_order=list(self._graph.graph_shutdown_order()),
            grace_seconds=self._config.shutdown_grace_seconds,
        )
        stop_tasks: dict[str, asyncio.Task[None]] = {}

        async def stop_after_dependents(service_name: str) -> None:
            dependent_tasks = [stop_tasks[name] for name in self._graph.graph_dependents_of(service_name)]
            if dependent_tasks:
                await asyncio.gather(*dependent_tasks, return_exceptions=True)
            await self._drivers[service_name].driver_stop()

        for service_name in self._graph.graph_shutdown_order():
            stop_tasks[service_name] = asyncio.create_task(
                stop_after_dependents(service_name),
                name=f"stackgate-stop-{service_name}",
            )

        _, pending = await asyncio.wait(stop_tasks.values(), timeout=self._config.shutdown_grace_seconds)
        forced_services = tuple(name for name, task in stop_tasks.items() if task in pending)
        for task in pending:
            task.cancel()
        await asyncio.gather(*stop_tasks.values(), return_exceptions=True)

        for service_name in forced_services:
            await self._drivers[service_name].driver_kill()
        if forced_services:
            logger.error(
                "orchestrator_shutdown_forced",
                project=self._manifest.project,
                error=str(ShutdownInterrupted(list(forced_services))),
            )
        else:
            logger.info("orchestrator_shutdown_completed", project=self._manifest.project)
        return forced_services

    async def _orchestrator_wait_for_activity(self, change_event: asyncio.Event) -> None:
        shutdown_waiter = asyncio.create_task(self._shutdown_event.wait())
        change_waiter = asyncio.create_task(change_event.wait())
        try:
            await asyncio.wait({shutdown_waiter, change_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (shutdown_waiter, change_waiter):
                waiter.cancel()
            await asyncio.gather(shutdown_waiter, change_waiter, return_exceptions=True)

    def _orchestrator_capture_states(self) -> dict[str, str]:
        return {
            name: (state.value if (state := self._status_view.status_state_of(name)) is not None else "unknown")
            for name in self._graph.graph_service_ids()
        }

    @staticmethod
    def _orchestrator_on_driver_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "driver_crashed",
                task=task.get_name(),
                error=f"{type(error).__name__}: {error}",
            )
