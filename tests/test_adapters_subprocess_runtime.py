"""Tests for the local child-process substrate using the current interpreter."""

import asyncio
import os
from pathlib import Path
import sys

import pytest

from stackgate.adapters import RuntimeCommandError, SubprocessServiceRuntime, adapter_volume_environment_key
from stackgate.manifest import ServiceDescriptor
from stackgate.volumes import FilesystemVolumeStore


def _sleeper_descriptor() -> ServiceDescriptor:
    return ServiceDescriptor.model_validate(
        {
            "name": "sleeper",
            "command": [sys.executable, "-c", "import time; time.sleep(60)"],
            "volumes": ["sleeper-data:/data"],
            "environment": {"GREETING": "hello"},
        }
    )


def test_subprocess_runtime_exports_service_environment(tmp_path: Path) -> None:
    """Expose service environment, service name, and volume paths to commands.

    Returns:
        None: Assertions validate child environment.

    Raises:
        AssertionError: Raised when the environment is incomplete.
    """

    process_runtime = SubprocessServiceRuntime(FilesystemVolumeStore(root=tmp_path), base_environ={"PATH": "/usr/bin"})
    descriptor = _sleeper_descriptor()
    volume_key = adapter_volume_environment_key("sleeper-data")
    script = f"import os; print(os.environ['GREETING'], os.environ['STACKGATE_SERVICE'], os.environ['{volume_key}'])"

    result = asyncio.run(process_runtime.runtime_exec(descriptor, [sys.executable, "-c", script]))

    assert volume_key == "STACKGATE_VOLUME_SLEEPER_DATA"
    assert result.command_succeeded()
    assert result.output.split() == ["hello", "sleeper", str(tmp_path / "sleeper-data")]


def test_subprocess_runtime_starts_and_stops_processes(tmp_path: Path) -> None:
    """Start a long-running child, then terminate it within the stop timeout.

    Returns:
        None: Assertions validate process lifecycle.

    Raises:
        AssertionError: Raised when the child outlives stop.
    """

    process_runtime = SubprocessServiceRuntime(FilesystemVolumeStore(root=tmp_path), stop_timeout_seconds=5)
    descriptor = _sleeper_descriptor()

    async def scenario() -> tuple[bool, bool]:
        await process_runtime.runtime_start_service(descriptor)
        running_after_start = process_runtime.runtime_is_running("sleeper")
        await process_runtime.runtime_stop_service(descriptor)
        await process_runtime.runtime_stop_service(descriptor)
        return running_after_start, process_runtime.runtime_is_running("sleeper")

    running_after_start, running_after_stop = asyncio.run(scenario())

    assert running_after_start is True
    assert running_after_stop is False
    assert (tmp_path / "sleeper-data").is_dir()


def test_subprocess_runtime_reports_unlaunchable_commands(tmp_path: Path) -> None:
    """Raise RuntimeCommandError for missing executables and image-only services.

    Returns:
        None: Assertions validate launch failures.

    Raises:
        AssertionError: Raised when launch failures pass silently.
    """

    process_runtime = SubprocessServiceRuntime(FilesystemVolumeStore(root=tmp_path))
    image_only = ServiceDescriptor(name="mysql", image="mysql:8.0")
    missing_binary = ServiceDescriptor(name="ghost", command=(str(tmp_path / "no-such-binary"),))

    with pytest.raises(RuntimeCommandError):
        asyncio.run(process_runtime.runtime_start_service(image_only))
    with pytest.raises(RuntimeCommandError):
        asyncio.run(process_runtime.runtime_start_service(missing_binary))
    with pytest.raises(RuntimeCommandError):
        asyncio.run(process_runtime.runtime_exec(image_only, [str(tmp_path / "no-such-binary")]))


def test_subprocess_runtime_kills_child_after_cancelled_stop(tmp_path: Path) -> None:
    """Kill a TERM-ignoring child when its graceful stop is cancelled midway.

    Returns:
        None: Assertions validate forced termination.

    Raises:
        AssertionError: Raised when the child survives the kill.
    """

    ready_file = tmp_path / "stubborn.pid"
    script = (
        "import os, signal, sys, time; "
        "signal.signal(signal.SIGTERM, signal.SIG_IGN); "
        "open(sys.argv[1], 'w').write(str(os.getpid())); "
        "time.sleep(60)"
    )
    descriptor = ServiceDescriptor(name="stubborn", command=(sys.executable, "-c", script, str(ready_file)))
    process_runtime = SubprocessServiceRuntime(FilesystemVolumeStore(root=tmp_path), stop_timeout_seconds=30)

    async def scenario() -> tuple[bool, bool]:
        await process_runtime.runtime_start_service(descriptor)
        for _ in range(200):
            if ready_file.exists() and ready_file.read_text(encoding="utf-8"):
                break
            await asyncio.sleep(0.05)
        stop_task = asyncio.create_task(process_runtime.runtime_stop_service(descriptor))
        await asyncio.sleep(0.3)
        stop_task.cancel()
        await asyncio.gather(stop_task, return_exceptions=True)
        tracked_after_cancel = process_runtime.runtime_is_running("stubborn")
        await asyncio.wait_for(process_runtime.runtime_kill_service(descriptor), timeout=10)
        return tracked_after_cancel, process_runtime.runtime_is_running("stubborn")

    tracked_after_cancel, running_after_kill = asyncio.run(scenario())
    child_pid = int(ready_file.read_text(encoding="utf-8"))

    assert tracked_after_cancel is True
    assert running_after_kill is False
    with pytest.raises(ProcessLookupError):
        os.kill(child_pid, 0)
