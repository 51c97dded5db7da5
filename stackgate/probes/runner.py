"""Health probe runner with caller-enforced timeouts."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import time
from typing import Callable

from stackgate.domain import HealthCheckFailure, ProbeOutcome, ProbeStatus, ProbeTimeoutError
from stackgate.manifest import HealthProbeSpec, ServiceDescriptor

from .interfaces import ProbePort


class HealthProbeRunner:
    """Dispatches probes by kind and classifies their result.

    The timeout is enforced here with `asyncio.wait_for`, never trusted to the
    probe implementation. Any exception maps to `unhealthy`.
    """

    def __init__(self, probes: Iterable[ProbePort], clock: Callable[[], float] = time.monotonic):
        """Initialize runner.

        Args:
            probes: Probe implementations; each registers under its `probe_kind()`.
            clock: Monotonic clock used to measure probe duration.

        Raises:
            ValueError: Raised when two probes register the same kind.
        """

        self._probes: dict[str, ProbePort] = {}
        for probe in probes:
            kind = probe.probe_kind()
            if kind in self._probes:
                raise ValueError(f"duplicate probe kind {kind}")
            self._probes[kind] = probe
        self._clock = clock

    def probe_supported_kinds(self) -> tuple[str, ...]:
        return tuple(self._probes)

    async def probe_run(self, spec: HealthProbeSpec, descriptor: ServiceDescriptor) -> ProbeOutcome:
        """Execute one probe with a bounded timeout.

        Args:
            spec: Probe configuration.
            descriptor: Service being probed.

        Returns:
            ProbeOutcome: `healthy`, `unhealthy` with reason, or `timeout`.

        Raises:
            asyncio.CancelledError: Raised when the calling driver is cancelled.
        """

        probe = self._probes.get(spec.kind)
        if probe is None:
            return ProbeOutcome(status=ProbeStatus.UNHEALTHY, reason=f"no probe registered for kind {spec.kind}")

        started_at = self._clock()
        try:
            await asyncio.wait_for(probe.probe_check(spec, descriptor), timeout=spec.timeout_seconds)
        except ProbeTimeoutError as error:
            return ProbeOutcome(
                status=ProbeStatus.TIMEOUT,
                reason=str(error),
                duration_seconds=self._clock() - started_at,
            )
        except asyncio.TimeoutError:
            return ProbeOutcome(
                status=ProbeStatus.TIMEOUT,
                reason=f"probe exceeded timeout of {spec.timeout_seconds:g}s",
                duration_seconds=self._clock() - started_at,
            )
        except HealthCheckFailure as error:
            return ProbeOutcome(
                status=ProbeStatus.UNHEALTHY,
                reason=str(error),
                duration_seconds=self._clock() - started_at,
            )
        except Exception as error:  # pylint: disable=broad-exception-caught
            return ProbeOutcome(
                status=ProbeStatus.UNHEALTHY,
                reason=f"{type(error).__name__}: {error}",
                duration_seconds=self._clock() - started_at,
            )
        return ProbeOutcome(status=ProbeStatus.HEALTHY, duration_seconds=self._clock() - started_at)
