"""Local child-process execution substrate."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
import contextlib
import os
import re

from stackgate.manifest import ServiceDescriptor
from stackgate.volumes.store import FilesystemVolumeStore

from .interfaces import CommandResult, ServiceRuntimePort
from .process import adapter_run_command
from .runtime_errors import RuntimeCommandError


def adapter_volume_environment_key(volume_name: str) -> str:
    """Return the environment key exporting a volume path to local processes.

    Args:
        volume_name: Volume name.

    Returns:
        str: Key such as `STACKGATE_VOLUME_DRUPAL_SITES`.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return "STACKGATE_VOLUME_" + re.sub(r"[^A-Za-z0-9]", "_", volume_name).upper()


class SubprocessServiceRuntime(ServiceRuntimePort):
    """Runs each service `command` as a local child process.

    Resource limits are not enforced by this substrate; they are validated at
    load time and applied only by container substrates.
    """

    def __init__(
        self,
        volume_store: FilesystemVolumeStore,
        stop_timeout_seconds: float = 10.0,
        base_environ: Mapping[str, str] | None = None,
    ):
        """Initialize local process substrate.

        Args:
            volume_store: Store that provides volume directories.
            stop_timeout_seconds: Wait after SIGTERM before SIGKILL.
            base_environ: Environment inherited by every service; defaults to the process environment.

        Raises:
            ValueError: Raised when dependencies or timeouts are invalid.
        """

        if volume_store is None:
            raise ValueError("volume_store must not be None")
        if stop_timeout_seconds < 0:
            raise ValueError("stop_timeout_seconds must be >= 0")
        self._volume_store = volume_store
        self._stop_timeout_seconds = stop_timeout_seconds
        self._base_environ = dict(os.environ if base_environ is None else base_environ)
        self._processes: dict[str, asyncio.subprocess.Process] = {}

    def runtime_name(self) -> str:
        return "subprocess"

    def runtime_service_environment(self, descriptor: ServiceDescriptor) -> dict[str, str]:
        """Build the child environment for one service.

        Args:
            descriptor: Target service.

        Returns:
            dict[str, str]: Base environment, service environment, volume paths and service name.

        Raises:
            ValueError: Raised when a volume name is invalid.
        """

        service_environ = {**self._base_environ, **descriptor.environment, "STACKGATE_SERVICE": descriptor.name}
        for volume in descriptor.volumes:
            service_environ[adapter_volume_environment_key(volume.name)] = str(
                self._volume_store.volume_path(volume.name)
            )
        return service_environ

    def runtime_is_running(self, service_name: str) -> bool:
        process = self._processes.get(service_name)
        return process is not None and process.returncode is None

    async def runtime_start_service(self, descriptor: ServiceDescriptor) -> None:
        """Spawn the service command as a child process.

        Args:
            descriptor: Service to start.

        Returns:
            None: Process is spawned as side effect.

        Raises:
            RuntimeCommandError: Raised when no command is declared or spawning fails.
        """

        if not descriptor.command:
            raise RuntimeCommandError(f"service {descriptor.name} declares no command for the subprocess runtime")
        if self.runtime_is_running(descriptor.name):
            await self.runtime_stop_service(descriptor)

        for volume in descriptor.volumes:
            self._volume_store.volume_ensure(volume.name)

        try:
            process = await asyncio.create_subprocess_exec(
                *descriptor.command,
                env=self.runtime_service_environment(descriptor),
            )
        except OSError as error:
            raise RuntimeCommandError(f"cannot start service {descriptor.name}: {error}") from error
        self._processes[descriptor.name] = process

    async def runtime_exec(self, descriptor: ServiceDescriptor, command: Sequence[str]) -> CommandResult:
        """Run a command with the service environment.

        Args:
            descriptor: Target service.
            command: Argv to execute.

        Returns:
            CommandResult: Exit status and output.

        Raises:
            RuntimeCommandError: Raised when the command cannot be launched.
        """

        return await adapter_run_command(command, env=self.runtime_service_environment(descriptor))

    async def runtime_stop_service(self, descriptor: ServiceDescriptor) -> None:
        """Send SIGTERM, then SIGKILL after the stop timeout.

        The process stays tracked until it has exited, so a cancelled stop can
        still be followed by `runtime_kill_service`.

        Args:
            descriptor: Service to stop.

        Returns:
            None: Process is stopped as side effect.

        Raises:
            RuntimeCommandError: This implementation does not raise command errors.
        """

        process = self._processes.get(descriptor.name)
        if process is None or process.returncode is not None:
            self._processes.pop(descriptor.name, None)
            return
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._stop_timeout_seconds)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        if self._processes.get(descriptor.name) is process:
            del self._processes[descriptor.name]

    async def runtime_kill_service(self, descriptor: ServiceDescriptor) -> None:
        """Send SIGKILL without a grace period.

        Args:
            descriptor: Service to terminate.

        Returns:
            None: Process is terminated as side effect.

        Raises:
            RuntimeCommandError: This implementation does not raise command errors.
        """

        process = self._processes.pop(descriptor.name, None)
        if process is None or process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
