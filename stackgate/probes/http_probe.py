"""HTTP GET probe expecting a 2xx response."""

from __future__ import annotations

import httpx

from stackgate.domain import HealthCheckFailure, ProbeTimeoutError
from stackgate.manifest import HealthProbeSpec, ServiceDescriptor

from .interfaces import ProbePort


class HttpProbe(ProbePort):
    """Probe that issues `GET <url>` and accepts any 2xx status."""

    _USER_AGENT = "stackgate-probe/1.0"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize HTTP probe.

        Args:
            transport: Optional httpx transport, used by tests to stub responses.
        """

        self._transport = transport

    def probe_kind(self) -> str:
        return "http"

    async def probe_check(self, spec: HealthProbeSpec, descriptor: ServiceDescriptor) -> None:
        """Request the probe URL once.

        Args:
            spec: Probe configuration with `url` and `timeout_seconds`.
            descriptor: Service being probed.

        Returns:
            None: Returning normally means a 2xx response was received.

        Raises:
            ProbeTimeoutError: Raised when the request timed out.
            HealthCheckFailure: Raised on transport errors or non-2xx status.
        """

        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=spec.timeout_seconds,
                headers={"User-Agent": self._USER_AGENT},
                follow_redirects=False,
            ) as client:
                response = await client.get(str(spec.url))
        except httpx.TimeoutException as error:
            raise ProbeTimeoutError(f"service={descriptor.name} http probe timed out: {error}") from error
        except httpx.HTTPError as error:
            raise HealthCheckFailure(f"service={descriptor.name} http probe request failed: {error}") from error

        if not 200 <= response.status_code < 300:
            raise HealthCheckFailure(
                f"service={descriptor.name} http probe returned status {response.status_code}"
            )
