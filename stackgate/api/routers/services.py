"""Service status API router composition for status, order and shutdown endpoints."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from stackgate.graph import DependencyGraph
from stackgate.lifecycle import ServiceStatusView
from stackgate.manifest import Manifest

DEPENDENCY_GATING = "first_ready"


def api_create_services_router(
    manifest: Manifest,
    graph: DependencyGraph,
    status_view: ServiceStatusView,
    shutdown_requester: Callable[[], None],
) -> APIRouter:
    """Create services router with status list/detail and control endpoints.

    Args:
        manifest: Validated manifest used for static service metadata.
        graph: Dependency graph used for order and dependency payloads.
        status_view: Shared status view.
        shutdown_requester: Thread-safe callable that asks the orchestrator to stop.

    Returns:
        APIRouter: Router exposing service status and control APIs.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if manifest is None:
        raise ValueError("manifest must not be None")
    if graph is None:
        raise ValueError("graph must not be None")
    if status_view is None:
        raise ValueError("status_view must not be None")
    if shutdown_requester is None:
        raise ValueError("shutdown_requester must not be None")

    router = APIRouter(tags=["services"])

    def api_service_payload(service_name: str) -> dict[str, object]:
        descriptor = manifest.manifest_get_service(service_name)
        snapshot = status_view.status_get(service_name)
        payload: dict[str, object] = {"service": service_name, "state": "unknown"}
        if snapshot is not None:
            payload.update(snapshot.snapshot_to_payload())
        payload["depends_on"] = list(graph.graph_dependencies_of(service_name))
        payload["gating"] = DEPENDENCY_GATING
        payload["probe"] = (
            {"kind": descriptor.healthcheck.kind, "target": descriptor.healthcheck.probe_target_label()}
            if descriptor.healthcheck is not None
            else None
        )
        return payload

    @router.get("/services")
    def api_service_list() -> JSONResponse:
        """Return status of every service in declaration order.

        Returns:
            JSONResponse: Project name and service payloads.

        Raises:
            RuntimeError: Raised if the status view cannot be read.
        """

        payload = {
            "project": manifest.project,
            "services": [api_service_payload(name) for name in graph.graph_service_ids()],
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/services/{service_name}")
    def api_service_detail(service_name: str) -> JSONResponse:
        """Return status of one service.

        Args:
            service_name: Service identifier.

        Returns:
            JSONResponse: Service payload or 404 when unknown.

        Raises:
            RuntimeError: Raised if the status view cannot be read.
        """

        if service_name not in graph.graph_service_ids():
            payload = {"status": "error", "message": f"unknown service {service_name}"}
            return JSONResponse(content=payload, status_code=status.HTTP_404_NOT_FOUND)
        return JSONResponse(content=api_service_payload(service_name), status_code=status.HTTP_200_OK)

    @router.get("/services/{service_name}/transitions")
    def api_service_transitions(
        service_name: str,
        limit: int = Query(default=100, ge=1, le=2000),
    ) -> JSONResponse:
        """Return the most recent lifecycle transitions for one service.

        Args:
            service_name: Service identifier.
            limit: Max events to return, newest last.

        Returns:
            JSONResponse: Transition events or 404 when unknown.

        Raises:
            RuntimeError: Raised if the status view cannot be read.
        """

        if service_name not in graph.graph_service_ids():
            payload = {"status": "error", "message": f"unknown service {service_name}"}
            return JSONResponse(content=payload, status_code=status.HTTP_404_NOT_FOUND)
        events = status_view.status_transitions(service_name)[-limit:]
        payload = {"service": service_name, "transitions": events}
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/order")
    def api_service_order() -> JSONResponse:
        """Return the diagnostic ready and shutdown orders.

        Returns:
            JSONResponse: Ready order (dependencies first) and its reverse.

        Raises:
            RuntimeError: This handler does not raise runtime errors.
        """

        payload = {
            "ready_order": list(graph.graph_ready_order()),
            "shutdown_order": list(graph.graph_shutdown_order()),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.post("/shutdown")
    def api_shutdown_request() -> JSONResponse:
        """Ask the orchestrator to shut the stack down.

        Returns:
            JSONResponse: 202 once the request was handed to the orchestrator.

        Raises:
            RuntimeError: Raised when the orchestrator loop is no longer running.
        """

        shutdown_requester()
        payload = {"status": "accepted", "message": "shutdown requested"}
        return JSONResponse(content=payload, status_code=status.HTTP_202_ACCEPTED)

    return router
