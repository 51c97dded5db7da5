"""FastAPI application factory for the orchestrator status surface.

The application is read-only over the shared status view, except for
`POST /shutdown` which hands a request to the running control loop.
"""

from typing import Callable

from fastapi import FastAPI

from stackgate.config import AppSettings
from stackgate.graph import DependencyGraph
from stackgate.lifecycle import ServiceStatusView
from stackgate.manifest import Manifest

from .routers import api_create_health_router, api_create_services_router


def create_api_application(
    settings: AppSettings,
    manifest: Manifest,
    graph: DependencyGraph,
    status_view: ServiceStatusView,
    shutdown_requester: Callable[[], None],
) -> FastAPI:
    """Create the FastAPI application instance for one orchestrated stack.

    Args:
        settings: Validated application settings used for runtime metadata.
        manifest: Validated manifest.
        graph: Dependency graph built from the manifest.
        status_view: Shared status view published by lifecycle drivers.
        shutdown_requester: Thread-safe callable that asks the orchestrator to stop.

    Returns:
        FastAPI: Framework application instance.

    Raises:
        RuntimeError: Raised if application initialization fails.
    """
    application = FastAPI(title="Stackgate")

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return a minimal identification response.

        Returns:
            dict[str, str]: Service, project and environment names.

        Raises:
            RuntimeError: Raised if route handler cannot produce a response.
        """

        return {
            "service": "stackgate",
            "project": manifest.project,
            "environment": settings.environment_name,
        }

    application.include_router(api_create_health_router(status_view=status_view))
    application.include_router(
        api_create_services_router(
            manifest=manifest,
            graph=graph,
            status_view=status_view,
            shutdown_requester=shutdown_requester,
        )
    )

    return application
