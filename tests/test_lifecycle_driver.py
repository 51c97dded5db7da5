"""Tests for the per-service lifecycle driver."""

import asyncio
from pathlib import Path
import time

from stackgate.adapters import CommandResult, RuntimeAdapterError
from stackgate.domain import LifecycleState
from stackgate.graph import DependencyGraph
from stackgate.lifecycle import ServiceLifecycleDriver, ServiceStatusView
from stackgate.manifest import ServiceDescriptor
from stackgate.probes import HealthProbeRunner
from stackgate.volumes import BootstrapGuard, FilesystemVolumeStore


class _RecordingRuntime:
    """Runtime double recording calls, optionally refusing every start."""

    def __init__(self, start_error: Exception | None = None):
        self._start_error = start_error
        self.calls: list[tuple[str, str]] = []

    def runtime_name(self) -> str:
        return "memory"

    async def runtime_start_service(self, descriptor: ServiceDescriptor) -> None:
        self.calls.append(("start", descriptor.name))
        if self._start_error is not None:
            raise self._start_error

    async def runtime_exec(self, descriptor: ServiceDescriptor, command) -> CommandResult:
        _ = command
        self.calls.append(("exec", descriptor.name))
        return CommandResult(exit_code=0, output="")

    async def runtime_stop_service(self, descriptor: ServiceDescriptor) -> None:
        self.calls.append(("stop", descriptor.name))

    async def runtime_kill_service(self, descriptor: ServiceDescriptor) -> None:
        self.calls.append(("kill", descriptor.name))


class _TimedCheck:
    """Command-kind health check that records start times and takes a fixed duration."""

    def __init__(self, duration_seconds: float = 0.0):
        self._duration_seconds = duration_seconds
        self.started_at: list[float] = []

    def probe_kind(self) -> str:
        return "command"

    async def probe_check(self, spec, descriptor: ServiceDescriptor) -> None:
        _ = spec, descriptor
        self.started_at.append(time.monotonic())
        await asyncio.sleep(self._duration_seconds)


def _driver(
    tmp_path: Path,
    descriptor: ServiceDescriptor,
    runtime: _RecordingRuntime,
    check: _TimedCheck,
) -> tuple[ServiceLifecycleDriver, ServiceStatusView]:
    """Wire a driver for a single service without dependencies.

    Args:
        tmp_path: Volume root.
        descriptor: Service to drive.
        runtime: Runtime double.
        check: Health check double.

    Returns:
        tuple[ServiceLifecycleDriver, ServiceStatusView]: Driver and the view it publishes to.

    Raises:
        ValueError: Raised when driver dependencies are invalid.
    """

    status_view = ServiceStatusView([descriptor.name])
    driver = ServiceLifecycleDriver(
        descriptor=descriptor,
        graph=DependencyGraph.graph_build([descriptor]),
        status_view=status_view,
        runtime=runtime,
        probe_runner=HealthProbeRunner([check]),
        bootstrap_guard=BootstrapGuard(
            volume_store=FilesystemVolumeStore(root=tmp_path),
            runtime=runtime,
            dependency_ready=status_view.status_has_been_ready,
        ),
        status_reemit_seconds=0.05,
    )
    return driver, status_view


async def _wait_until(condition, status_view: ServiceStatusView) -> None:
    while not condition():
        await status_view.status_wait_for_change(timeout_seconds=0.05)


def test_driver_skips_bootstrapping_when_marker_is_present(tmp_path: Path) -> None:
    """Go from starting straight to health checking when the volume is already initialized.

    Returns:
        None: Assertions validate the initialized-volume path.

    Raises:
        AssertionError: Raised when bootstrap steps run again.
    """

    FilesystemVolumeStore(root=tmp_path).volume_write_marker(
        "drupal-sites",
        ".stackgate/bootstrap-complete",
        {"service": "drupal"},
    )
    descriptor = ServiceDescriptor.model_validate(
        {
            "name": "drupal",
            "command": "php-fpm",
            "volumes": ["drupal-sites:/sites"],
            "bootstrap": {"volume": "drupal-sites", "steps": ["drush site:install -y"]},
            "healthcheck": {"kind": "command", "command": ["check"], "interval_seconds": 0.01},
        }
    )
    runtime = _RecordingRuntime()

    async def scenario():
        driver, status_view = _driver(tmp_path, descriptor, runtime, _TimedCheck())
        driver.driver_start()
        await asyncio.wait_for(
            _wait_until(lambda: status_view.status_state_of("drupal") is LifecycleState.READY, status_view),
            timeout=10,
        )
        ready_snapshot = status_view.status_get("drupal")
        await asyncio.wait_for(driver.driver_stop(), timeout=10)
        return ready_snapshot, status_view.status_transitions("drupal")

    ready_snapshot, events = asyncio.run(scenario())

    assert [event["to_state"] for event in events] == [
        "waiting_on_dependencies",
        "starting",
        "health_checking",
        "ready",
        "stopped",
    ]
    assert ready_snapshot.bootstrap_completed is True
    assert [action for action, _ in runtime.calls] == ["start", "stop"]


def test_driver_fails_service_when_runtime_refuses_start(tmp_path: Path) -> None:
    """Fail with the substrate error for any runtime adapter error raised on start.

    Returns:
        None: Assertions validate start failure handling.

    Raises:
        AssertionError: Raised when the error escapes the driver.
    """

    descriptor = ServiceDescriptor(name="redis", command=("redis-server",))
    runtime = _RecordingRuntime(start_error=RuntimeAdapterError("substrate unavailable"))

    async def scenario():
        driver, status_view = _driver(tmp_path, descriptor, runtime, _TimedCheck())
        final_state = await asyncio.wait_for(driver.driver_start(), timeout=10)
        await asyncio.wait_for(driver.driver_stop(), timeout=10)
        return final_state, status_view.status_transitions("redis")

    final_state, events = asyncio.run(scenario())

    assert final_state is LifecycleState.FAILED
    assert events[-2]["to_state"] == "failed"
    assert runtime.calls == [("start", "redis")]


def test_driver_schedules_health_checks_from_their_start(tmp_path: Path) -> None:
    """Keep the check period at the interval even when each check takes time.

    Returns:
        None: Assertions validate check scheduling.

    Raises:
        AssertionError: Raised when check duration stretches the period.
    """

    descriptor = ServiceDescriptor.model_validate(
        {
            "name": "solr",
            "command": "solr",
            "healthcheck": {"kind": "command", "command": ["check"], "interval_seconds": 0.1},
        }
    )
    check = _TimedCheck(duration_seconds=0.06)

    async def scenario() -> None:
        driver, status_view = _driver(tmp_path, descriptor, _RecordingRuntime(), check)
        driver.driver_start()
        await asyncio.wait_for(_wait_until(lambda: len(check.started_at) >= 6, status_view), timeout=10)
        await asyncio.wait_for(driver.driver_stop(), timeout=10)

    asyncio.run(scenario())
    gaps = [later - earlier for earlier, later in zip(check.started_at, check.started_at[1:])]

    assert sum(gaps) / len(gaps) < 0.14
