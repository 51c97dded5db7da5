"""Bootstrap guard: run one-time service initialization exactly once per volume.

The completion marker inside the service's persistent volume is the single
source of truth. It is written atomically as the last action of a successful
bootstrap, so an interrupted or failed bootstrap leaves no marker and the next
start re-runs the full sequence. Steps must therefore be safely re-runnable.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Callable

from stackgate.adapters.interfaces import ServiceRuntimePort
from stackgate.adapters.runtime_errors import RuntimeAdapterError
from stackgate.domain import BootstrapOutcome, BootstrapStatus
from stackgate.logging_config import logging_get_logger
from stackgate.manifest import ServiceDescriptor

from .store import FilesystemVolumeStore

logger = logging_get_logger(__name__)


class BootstrapGuard:
    """Decides whether bootstrap must run and executes it under a per-volume lock."""

    def __init__(
        self,
        volume_store: FilesystemVolumeStore,
        runtime: ServiceRuntimePort,
        dependency_ready: Callable[[str], bool],
    ):
        """Initialize bootstrap guard.

        Args:
            volume_store: Store holding volumes and markers.
            runtime: Substrate used to execute bootstrap steps in the service context.
            dependency_ready: Returns whether a service has been observed ready at least once.

        Raises:
            ValueError: Raised when dependencies are None.
        """

        if volume_store is None:
            raise ValueError("volume_store must not be None")
        if runtime is None:
            raise ValueError("runtime must not be None")
        if dependency_ready is None:
            raise ValueError("dependency_ready must not be None")
        self._volume_store = volume_store
        self._runtime = runtime
        self._dependency_ready = dependency_ready
        self._volume_locks: dict[str, asyncio.Lock] = {}

    def bootstrap_is_required(self, descriptor: ServiceDescriptor) -> bool:
        """Return whether the service declares bootstrap and its marker is absent.

        Args:
            descriptor: Service descriptor.

        Returns:
            bool: True when bootstrap must run before health checking.

        Raises:
            ValueError: Raised when the marker path escapes its volume.
        """

        if descriptor.bootstrap is None:
            return False
        return not self._volume_store.volume_marker_exists(descriptor.bootstrap.volume, descriptor.bootstrap.marker)

    async def bootstrap_ensure(
        self,
        descriptor: ServiceDescriptor,
        dependency_names: Sequence[str],
    ) -> BootstrapOutcome:
        """Run the bootstrap sequence unless its marker is already present.

        Args:
            descriptor: Service whose bootstrap should be ensured.
            dependency_names: Services that must already have been ready.

        Returns:
            BootstrapOutcome: `skipped` when the marker exists, `completed` after a
            full successful run, `failed` with a reason otherwise.

        Raises:
            asyncio.CancelledError: Raised on cooperative shutdown; the marker stays unwritten.
        """

        bootstrap_spec = descriptor.bootstrap
        if bootstrap_spec is None:
            return BootstrapOutcome(status=BootstrapStatus.SKIPPED)

        volume_lock = self._volume_locks.setdefault(bootstrap_spec.volume, asyncio.Lock())
        async with volume_lock:
            if self._volume_store.volume_marker_exists(bootstrap_spec.volume, bootstrap_spec.marker):
                logger.info("bootstrap_skipped", service=descriptor.name, volume=bootstrap_spec.volume)
                return BootstrapOutcome(status=BootstrapStatus.SKIPPED)

            not_ready = [name for name in dependency_names if not self._dependency_ready(name)]
            if not_ready:
                reason = f"dependencies not ready: {', '.join(not_ready)}"
                logger.error("bootstrap_out_of_order", service=descriptor.name, reason=reason)
                return BootstrapOutcome(status=BootstrapStatus.FAILED, reason=reason)

            self._volume_store.volume_ensure(bootstrap_spec.volume)
            executed_steps: list[str] = []
            for step in bootstrap_spec.steps:
                logger.info("bootstrap_step_started", service=descriptor.name, step=step.name)
                try:
                    result = await self._runtime.runtime_exec(descriptor, step.command)
                except RuntimeAdapterError as error:
                    reason = f"step {step.name} could not run: {error}"
                    logger.error("bootstrap_step_failed", service=descriptor.name, step=step.name, reason=reason)
                    return BootstrapOutcome(
                        status=BootstrapStatus.FAILED,
                        reason=reason,
                        executed_steps=tuple(executed_steps),
                    )
                if not result.command_succeeded():
                    reason = f"step {step.name} exited with status {result.exit_code}"
                    logger.error(
                        "bootstrap_step_failed",
                        service=descriptor.name,
                        step=step.name,
                        reason=reason,
                        output=result.output,
                    )
                    return BootstrapOutcome(
                        status=BootstrapStatus.FAILED,
                        reason=reason,
                        executed_steps=tuple(executed_steps),
                    )
                executed_steps.append(step.name)

            self._volume_store.volume_write_marker(
                bootstrap_spec.volume,
                bootstrap_spec.marker,
                payload={"service": descriptor.name, "steps": executed_steps},
            )
            logger.info("bootstrap_completed", service=descriptor.name, steps=executed_steps)
            return BootstrapOutcome(status=BootstrapStatus.COMPLETED, executed_steps=tuple(executed_steps))
