"""Command probe expecting exit status zero."""

from __future__ import annotations

from stackgate.adapters.interfaces import ServiceRuntimePort
from stackgate.adapters.runtime_errors import RuntimeAdapterError
from stackgate.domain import HealthCheckFailure
from stackgate.manifest import HealthProbeSpec, ServiceDescriptor

from .interfaces import ProbePort


class CommandProbe(ProbePort):
    """Probe that executes a command in the service context through the substrate."""

    def __init__(self, runtime: ServiceRuntimePort):
        """Initialize command probe.

        Args:
            runtime: Substrate used to execute the probe command.

        Raises:
            ValueError: Raised when runtime is None.
        """

        if runtime is None:
            raise ValueError("runtime must not be None")
        self._runtime = runtime

    def probe_kind(self) -> str:
        return "command"

    async def probe_check(self, spec: HealthProbeSpec, descriptor: ServiceDescriptor) -> None:
        """Run the probe command once.

        Args:
            spec: Probe configuration with `command`.
            descriptor: Service being probed.

        Returns:
            None: Returning normally means the command exited with status 0.

        Raises:
            HealthCheckFailure: Raised when the command cannot run or exits non-zero.
        """

        try:
            result = await self._runtime.runtime_exec(descriptor, spec.command or ())
        except RuntimeAdapterError as error:
            raise HealthCheckFailure(f"service={descriptor.name} probe command could not run: {error}") from error

        if not result.command_succeeded():
            output_tail = result.output.strip().splitlines()[-1:] if result.output.strip() else []
            detail = f": {output_tail[0]}" if output_tail else ""
            raise HealthCheckFailure(
                f"service={descriptor.name} probe command exited with status {result.exit_code}{detail}"
            )
