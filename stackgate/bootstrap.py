"""Application bootstrap wiring for manifest validation and dependency assembly."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import FastAPI

from stackgate.adapters import DockerCliServiceRuntime, ServiceRuntimePort, SubprocessServiceRuntime
from stackgate.api import StackgateApiClient, create_api_application
from stackgate.config import AppSettings
from stackgate.graph import DependencyGraph
from stackgate.lifecycle import ServiceStatusView
from stackgate.manifest import Manifest, manifest_load_file
from stackgate.orchestrator import OrchestratorConfig, StackOrchestrator
from stackgate.probes import CommandProbe, HealthProbeRunner, HttpProbe, SqlProbe
from stackgate.volumes import BootstrapGuard, FilesystemVolumeStore


@dataclass(frozen=True)
class StackComponents:
    """Fully wired runtime components for one manifest.

    Attributes:
        manifest: Validated manifest.
        graph: Dependency graph built from the manifest.
        volume_store: Named volume store.
        runtime: Execution substrate.
        sql_probe: SQL probe whose engines are disposed after the run.
        status_view: Shared status view.
        orchestrator: Control loop ready to run.
    """

    manifest: Manifest
    graph: DependencyGraph
    volume_store: FilesystemVolumeStore
    runtime: ServiceRuntimePort
    sql_probe: SqlProbe
    status_view: ServiceStatusView
    orchestrator: StackOrchestrator


def bootstrap_load_manifest_and_graph(settings: AppSettings) -> tuple[Manifest, DependencyGraph]:
    """Load the manifest and validate its dependency graph.

    Args:
        settings: Validated application settings.

    Returns:
        tuple[Manifest, DependencyGraph]: Manifest and acyclic graph.

    Raises:
        ConfigurationError: Raised when the manifest is invalid or cyclic.
    """

    manifest = manifest_load_file(settings.manifest_path)
    if settings.project_name is not None:
        manifest = manifest.model_copy(update={"project": settings.project_name})
    graph = DependencyGraph.graph_build(manifest.services)
    return manifest, graph


def bootstrap_create_volume_store(settings: AppSettings) -> FilesystemVolumeStore:
    return FilesystemVolumeStore(root=settings.volume_root)


def bootstrap_create_runtime(
    settings: AppSettings,
    project_name: str,
    volume_store: FilesystemVolumeStore,
) -> ServiceRuntimePort:
    """Build the configured execution substrate.

    Args:
        settings: Validated application settings.
        project_name: Manifest project name used for container naming.
        volume_store: Named volume store.

    Returns:
        ServiceRuntimePort: Docker or subprocess runtime.

    Raises:
        ValueError: Raised when runtime configuration is invalid.
    """

    if settings.runtime_kind == "subprocess":
        return SubprocessServiceRuntime(
            volume_store=volume_store,
            stop_timeout_seconds=settings.runtime_stop_timeout_seconds,
        )
    return DockerCliServiceRuntime(
        project_name=project_name,
        volume_store=volume_store,
        docker_binary=settings.docker_binary,
        stop_timeout_seconds=settings.runtime_stop_timeout_seconds,
    )


def bootstrap_create_components(settings: AppSettings) -> StackComponents:
    """Assemble orchestrator components after validating the manifest.

    Args:
        settings: Validated application settings.

    Returns:
        StackComponents: Fully wired components; nothing is started yet.

    Raises:
        ConfigurationError: Raised when the manifest is invalid or cyclic.
    """

    manifest, graph = bootstrap_load_manifest_and_graph(settings)
    volume_store = bootstrap_create_volume_store(settings)
    runtime = bootstrap_create_runtime(settings, project_name=manifest.project, volume_store=volume_store)
    sql_probe = SqlProbe()
    probe_runner = HealthProbeRunner(probes=(HttpProbe(), CommandProbe(runtime=runtime), sql_probe))
    status_view = ServiceStatusView(service_names=graph.graph_service_ids())
    bootstrap_guard = BootstrapGuard(
        volume_store=volume_store,
        runtime=runtime,
        dependency_ready=status_view.status_has_been_ready,
    )
    orchestrator = StackOrchestrator(
        manifest=manifest,
        graph=graph,
        runtime=runtime,
        probe_runner=probe_runner,
        bootstrap_guard=bootstrap_guard,
        status_view=status_view,
        config=OrchestratorConfig(
            shutdown_grace_seconds=settings.shutdown_grace_seconds,
            status_reemit_seconds=settings.status_reemit_seconds,
        ),
    )
    return StackComponents(
        manifest=manifest,
        graph=graph,
        volume_store=volume_store,
        runtime=runtime,
        sql_probe=sql_probe,
        status_view=status_view,
        orchestrator=orchestrator,
    )


def bootstrap_create_application(
    settings: AppSettings,
    components: StackComponents,
    shutdown_requester: Callable[[], None],
) -> FastAPI:
    """Build the status API over already-wired components.

    Args:
        settings: Validated application settings.
        components: Wired stack components.
        shutdown_requester: Thread-safe callable that asks the orchestrator to stop.

    Returns:
        FastAPI: Status API application.

    Raises:
        RuntimeError: Raised if application initialization fails.
    """

    return create_api_application(
        settings=settings,
        manifest=components.manifest,
        graph=components.graph,
        status_view=components.status_view,
        shutdown_requester=shutdown_requester,
    )


def bootstrap_create_api_client(settings: AppSettings) -> StackgateApiClient:
    return StackgateApiClient(base_url=settings.settings_api_base_url())
