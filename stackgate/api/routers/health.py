"""Health endpoint router composition for orchestrator and stack checks."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from stackgate.domain import HealthStatus, LifecycleState
from stackgate.lifecycle import ServiceStatusView

_DEGRADED_STATES = frozenset({LifecycleState.FAILED, LifecycleState.UNHEALTHY})


def api_evaluate_stack_health(status_view: ServiceStatusView) -> HealthStatus:
    """Summarize the stack into one health status.

    Args:
        status_view: Shared status view.

    Returns:
        HealthStatus: `ok` when every service is ready, `degraded` when any service
        failed or is unhealthy, otherwise `starting`.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    snapshots = status_view.status_list()
    degraded = [snapshot.service_name for snapshot in snapshots if snapshot.state in _DEGRADED_STATES]
    if degraded:
        return HealthStatus(status="degraded", detail=f"not healthy: {', '.join(degraded)}")

    not_ready = [
        name
        for name in status_view.status_service_names()
        if status_view.status_state_of(name) is not LifecycleState.READY
    ]
    if not_ready:
        return HealthStatus(status="starting", detail=f"not ready yet: {', '.join(not_ready)}")
    return HealthStatus(status="ok", detail="all services ready")


def api_create_health_router(status_view: ServiceStatusView) -> APIRouter:
    """Create health-check router with orchestrator and stack status.

    Args:
        status_view: Shared status view.

    Returns:
        APIRouter: Router exposing `/health` endpoint.

    Raises:
        ValueError: Raised when status_view is invalid.
    """

    if status_view is None:
        raise ValueError("status_view must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return orchestrator and stack health state.

        Returns:
            JSONResponse: 200 while healthy or starting, 503 when degraded.

        Raises:
            RuntimeError: Raised if the status view cannot be read.
        """

        stack_health = api_evaluate_stack_health(status_view)
        payload = {
            "status": stack_health.status,
            "orchestrator": "up",
            "detail": stack_health.detail,
            "states": status_view.status_counts_by_state(),
        }
        status_code = status.HTTP_200_OK
        if stack_health.status == "degraded":
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(content=payload, status_code=status_code)

    return router
