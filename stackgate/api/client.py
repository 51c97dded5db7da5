"""HTTP client for talking to a running orchestrator's status API."""

from __future__ import annotations

from typing import Any, Final

import httpx


class StackgateApiUnavailableError(ConnectionError):
    """Raised when no orchestrator answers at the configured address."""


class StackgateApiClient:
    """Thin synchronous client used by the `status` and `stop` commands."""

    _USER_AGENT: Final[str] = "stackgate-cli/1.0 (Python/httpx)"

    def __init__(
        self,
        base_url: str,
        request_timeout_seconds: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Orchestrator API base URL, e.g. `http://127.0.0.1:8765`.
            request_timeout_seconds: Per-request timeout.
            transport: Optional transport override used by tests.

        Raises:
            ValueError: Raised when base_url is blank or timeout is invalid.
        """

        if not base_url.strip():
            raise ValueError("base_url must not be blank")
        if request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")
        self._base_url = base_url.rstrip("/")
        self._request_timeout_seconds = request_timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def client_is_running(self) -> bool:
        """Return whether an orchestrator answers on `/health`.

        Returns:
            bool: True when any HTTP response is received.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        try:
            self._client_request("GET", "/health")
        except StackgateApiUnavailableError:
            return False
        return True

    def client_list_services(self) -> dict[str, Any]:
        """Return the `/services` payload of the running orchestrator.

        Returns:
            dict[str, Any]: Project name and per-service status payloads.

        Raises:
            StackgateApiUnavailableError: Raised when the orchestrator is unreachable.
            ConnectionError: Raised on unexpected HTTP status.
        """

        response = self._client_request("GET", "/services")
        if response.status_code != 200:
            raise ConnectionError(f"stackgate API returned HTTP {response.status_code}")
        return response.json()

    def client_request_shutdown(self) -> dict[str, Any]:
        """Ask the running orchestrator to shut the stack down.

        Returns:
            dict[str, Any]: Acceptance payload.

        Raises:
            StackgateApiUnavailableError: Raised when the orchestrator is unreachable.
            ConnectionError: Raised on unexpected HTTP status.
        """

        response = self._client_request("POST", "/shutdown")
        if response.status_code != 202:
            raise ConnectionError(f"stackgate API returned HTTP {response.status_code}")
        return response.json()

    def _client_request(self, method: str, path: str) -> httpx.Response:
        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=self._request_timeout_seconds,
                headers={"User-Agent": self._USER_AGENT},
                transport=self._transport,
            ) as client:
                return client.request(method, path)
        except httpx.TimeoutException as error:
            raise StackgateApiUnavailableError(f"stackgate API at {self._base_url} timed out") from error
        except httpx.TransportError as error:
            raise StackgateApiUnavailableError(f"stackgate API at {self._base_url} is not reachable") from error
