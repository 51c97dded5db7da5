"""Docker CLI execution substrate."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
import math

from stackgate.manifest import ServiceDescriptor
from stackgate.volumes.store import FilesystemVolumeStore

from .interfaces import CommandResult, ServiceRuntimePort
from .process import adapter_run_command
from .runtime_errors import RuntimeCommandError

CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


class DockerCliServiceRuntime(ServiceRuntimePort):
    """Runs each service as a detached container through the docker CLI.

    Memory and CPU ceilings, published ports, volume binds and environment are
    translated to `docker run` flags; enforcement is left to the container engine.
    """

    _PROJECT_LABEL = "io.stackgate.project"
    _SERVICE_LABEL = "io.stackgate.service"

    def __init__(
        self,
        project_name: str,
        volume_store: FilesystemVolumeStore,
        docker_binary: str = "docker",
        stop_timeout_seconds: float = 10.0,
        command_runner: CommandRunner | None = None,
    ):
        """Initialize docker CLI substrate.

        Args:
            project_name: Prefix for container names and label value.
            volume_store: Store that provides host directories for volume binds.
            docker_binary: Docker CLI executable.
            stop_timeout_seconds: Seconds passed to `docker stop --time`.
            command_runner: Coroutine used to execute CLI commands; injectable for tests.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if not project_name.strip():
            raise ValueError("project_name must not be blank")
        if volume_store is None:
            raise ValueError("volume_store must not be None")
        if not docker_binary.strip():
            raise ValueError("docker_binary must not be blank")
        if stop_timeout_seconds < 0:
            raise ValueError("stop_timeout_seconds must be >= 0")
        self._project_name = project_name.strip()
        self._volume_store = volume_store
        self._docker_binary = docker_binary.strip()
        self._stop_timeout_seconds = stop_timeout_seconds
        self._command_runner: CommandRunner = command_runner or adapter_run_command

    def runtime_name(self) -> str:
        return "docker"

    def runtime_container_name(self, descriptor: ServiceDescriptor) -> str:
        return f"{self._project_name}-{descriptor.name}"

    def runtime_build_run_arguments(self, descriptor: ServiceDescriptor) -> list[str]:
        """Translate a descriptor into `docker run` argv.

        Args:
            descriptor: Service to start.

        Returns:
            list[str]: Complete argv including the docker binary.

        Raises:
            RuntimeCommandError: Raised when the descriptor declares no image.
        """

        if not descriptor.image:
            raise RuntimeCommandError(f"service {descriptor.name} declares no image for the docker runtime")

        arguments = [
            self._docker_binary,
            "run",
            "--detach",
            "--name",
            self.runtime_container_name(descriptor),
            "--label",
            f"{self._PROJECT_LABEL}={self._project_name}",
            "--label",
            f"{self._SERVICE_LABEL}={descriptor.name}",
        ]
        if descriptor.resources.memory is not None:
            arguments.extend(["--memory", str(descriptor.resources.memory)])
        if descriptor.resources.cpus is not None:
            arguments.extend(["--cpus", f"{descriptor.resources.cpus:g}"])
        for port in descriptor.ports:
            arguments.extend(["--publish", f"{port.host}:{port.container}"])
        for volume in descriptor.volumes:
            arguments.extend(["--volume", f"{self._volume_store.volume_path(volume.name)}:{volume.target}"])
        for key, value in descriptor.environment.items():
            arguments.extend(["--env", f"{key}={value}"])
        arguments.append(descriptor.image)
        if descriptor.command:
            arguments.extend(descriptor.command)
        return arguments

    async def runtime_start_service(self, descriptor: ServiceDescriptor) -> None:
        """Replace any stale container and start a fresh one.

        Args:
            descriptor: Service to start.

        Returns:
            None: Container is started as side effect.

        Raises:
            RuntimeCommandError: Raised when `docker run` fails.
        """

        run_arguments = self.runtime_build_run_arguments(descriptor)
        await self._command_runner(
            [self._docker_binary, "rm", "--force", self.runtime_container_name(descriptor)]
        )
        for volume in descriptor.volumes:
            self._volume_store.volume_ensure(volume.name)

        result = await self._command_runner(run_arguments)
        if not result.command_succeeded():
            raise RuntimeCommandError(
                f"docker run failed for service {descriptor.name} with exit code {result.exit_code}",
                exit_code=result.exit_code,
                output=result.output,
            )

    async def runtime_exec(self, descriptor: ServiceDescriptor, command: Sequence[str]) -> CommandResult:
        """Run a command inside the service container.

        Args:
            descriptor: Target service.
            command: Argv to execute in the container.

        Returns:
            CommandResult: Exit status and output of `docker exec`.

        Raises:
            RuntimeCommandError: Raised when the docker CLI cannot be launched.
        """

        return await self._command_runner(
            [self._docker_binary, "exec", self.runtime_container_name(descriptor), *command]
        )

    async def runtime_stop_service(self, descriptor: ServiceDescriptor) -> None:
        """Stop and remove the service container.

        Args:
            descriptor: Service to stop.

        Returns:
            None: Container is stopped as side effect.

        Raises:
            RuntimeCommandError: Raised when `docker stop` fails.
        """

        container_name = self.runtime_container_name(descriptor)
        stop_seconds = str(math.ceil(self._stop_timeout_seconds))
        result = await self._command_runner([self._docker_binary, "stop", "--time", stop_seconds, container_name])
        if not result.command_succeeded() and "No such container" not in result.output:
            raise RuntimeCommandError(
                f"docker stop failed for service {descriptor.name} with exit code {result.exit_code}",
                exit_code=result.exit_code,
                output=result.output,
            )
        await self._command_runner([self._docker_binary, "rm", "--force", container_name])

    async def runtime_kill_service(self, descriptor: ServiceDescriptor) -> None:
        """Remove the service container without a graceful stop.

        Args:
            descriptor: Service to terminate.

        Returns:
            None: Container is removed as side effect.

        Raises:
            RuntimeCommandError: Raised when the docker CLI cannot be launched.
        """

        await self._command_runner([self._docker_binary, "rm", "--force", self.runtime_container_name(descriptor)])
