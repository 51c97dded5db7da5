"""Typed interfaces for execution-substrate adapter responsibilities."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from stackgate.manifest import ServiceDescriptor


@dataclass(frozen=True)
class CommandResult:
    """Result contract for one executed command.

    Attributes:
        exit_code: Process exit status.
        output: Combined stdout/stderr tail, decoded as UTF-8.
    """

    exit_code: int
    output: str

    def command_succeeded(self) -> bool:
        return self.exit_code == 0


class ServiceRuntimePort(Protocol):
    """Port definition for starting, stopping and executing inside services."""

    def runtime_name(self) -> str:
        """Return substrate identifier for diagnostics.

        Returns:
            str: Human-readable substrate name.

        Raises:
            RuntimeError: Raised when substrate metadata is unavailable.
        """

    async def runtime_start_service(self, descriptor: ServiceDescriptor) -> None:
        """Start one service with its resources, ports, volumes and environment.

        Args:
            descriptor: Service to start.

        Returns:
            None: Service is started as side effect.

        Raises:
            RuntimeAdapterError: Raised when the substrate refuses to start the service.
        """

    async def runtime_exec(self, descriptor: ServiceDescriptor, command: Sequence[str]) -> CommandResult:
        """Execute one command in the service context.

        Args:
            descriptor: Target service.
            command: Argv to execute.

        Returns:
            CommandResult: Exit status and output.

        Raises:
            RuntimeAdapterError: Raised when the command cannot be launched.
        """

    async def runtime_stop_service(self, descriptor: ServiceDescriptor) -> None:
        """Stop one service gracefully.

        Args:
            descriptor: Service to stop.

        Returns:
            None: Service is stopped as side effect.

        Raises:
            RuntimeAdapterError: Raised when the substrate fails to stop the service.
        """

    async def runtime_kill_service(self, descriptor: ServiceDescriptor) -> None:
        """Force-terminate one service without waiting for a graceful stop.

        Args:
            descriptor: Service to terminate.

        Returns:
            None: Service is terminated as side effect.

        Raises:
            RuntimeAdapterError: Raised when the substrate fails to terminate the service.
        """
