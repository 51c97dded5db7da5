"""Typed interfaces for pluggable health probe kinds."""

from typing import Protocol

from stackgate.manifest import HealthProbeSpec, ServiceDescriptor


class ProbePort(Protocol):
    """Port definition for one probe protocol."""

    def probe_kind(self) -> str:
        """Return the manifest `kind` handled by this probe.

        Returns:
            str: Probe kind identifier.

        Raises:
            RuntimeError: Raised when probe metadata is unavailable.
        """

    async def probe_check(self, spec: HealthProbeSpec, descriptor: ServiceDescriptor) -> None:
        """Execute one check against the service.

        Args:
            spec: Probe configuration.
            descriptor: Service being probed.

        Returns:
            None: Returning normally means healthy.

        Raises:
            HealthCheckFailure: Raised when the service is unhealthy.
            ProbeTimeoutError: Raised when the probe transport timed out.
        """
