"""Tests for the status API client used by the `status` and `stop` commands."""

import httpx
import pytest

from stackgate.api import StackgateApiClient, StackgateApiUnavailableError


def _client(handler) -> StackgateApiClient:
    return StackgateApiClient("http://127.0.0.1:8765/", transport=httpx.MockTransport(handler))


def test_api_client_reads_services_and_requests_shutdown() -> None:
    """Return decoded payloads for successful requests.

    Returns:
        None: Assertions validate client requests.

    Raises:
        AssertionError: Raised when requests or payloads differ.
    """

    seen_requests: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_requests.append((request.method, request.url.path))
        if request.url.path == "/shutdown":
            return httpx.Response(202, json={"status": "accepted", "message": "shutdown requested"})
        if request.url.path == "/services":
            return httpx.Response(200, json={"project": "demo", "services": []})
        return httpx.Response(200, json={"status": "ok"})

    api_client = _client(handler)

    assert api_client.base_url == "http://127.0.0.1:8765"
    assert api_client.client_is_running() is True
    assert api_client.client_list_services() == {"project": "demo", "services": []}
    assert api_client.client_request_shutdown()["status"] == "accepted"
    assert seen_requests == [("GET", "/health"), ("GET", "/services"), ("POST", "/shutdown")]


def test_api_client_treats_degraded_health_as_running() -> None:
    """Report a running orchestrator even when its stack is degraded.

    Returns:
        None: Assertions validate liveness detection.

    Raises:
        AssertionError: Raised when a 503 is treated as unavailable.
    """

    api_client = _client(lambda request: httpx.Response(503, json={"status": "degraded"}))

    assert api_client.client_is_running() is True
    with pytest.raises(ConnectionError, match="HTTP 503"):
        api_client.client_list_services()


def test_api_client_reports_unreachable_orchestrator() -> None:
    """Raise StackgateApiUnavailableError when nothing answers.

    Returns:
        None: Assertions validate transport error mapping.

    Raises:
        AssertionError: Raised when transport errors leak.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    api_client = _client(handler)

    assert api_client.client_is_running() is False
    with pytest.raises(StackgateApiUnavailableError):
        api_client.client_request_shutdown()
    with pytest.raises(ValueError):
        StackgateApiClient("  ")
