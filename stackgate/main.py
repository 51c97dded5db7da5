"""Main module entrypoint for the `stackgate` command.

This module validates configuration and the manifest, then either runs the
orchestrator with its status API or talks to an already running one.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
from pathlib import Path
import signal
import sys
import threading

import uvicorn

from stackgate.api import StackgateApiUnavailableError
from stackgate.bootstrap import (
    StackComponents,
    bootstrap_create_api_client,
    bootstrap_create_application,
    bootstrap_create_components,
    bootstrap_create_volume_store,
    bootstrap_load_manifest_and_graph,
)
from stackgate.config import AppSettings, SettingsLoadError, config_load_settings
from stackgate.domain import ConfigurationError, VolumeDestroyRefused
from stackgate.logging_config import logging_configure

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION_ERROR = 2


def main(argv: list[str] | None = None) -> None:
    """Run selected command with validated configuration.

    Args:
        argv: Optional argument list; defaults to `sys.argv[1:]`.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SystemExit: Raised with the command exit code.
    """

    argument_parser = argparse.ArgumentParser(description="Stackgate dependency-aware service orchestrator")
    argument_parser.add_argument(
        "command",
        choices=("up", "stop", "status", "destroy-volumes", "validate", "order"),
        help="`up` starts the stack and its status API, `stop` asks a running stack to shut down, "
        "`status` prints service states, `destroy-volumes` deletes named volumes, "
        "`validate` checks the manifest, `order` prints the diagnostic ready order",
        type=str,
    )
    argument_parser.add_argument(
        "--manifest",
        dest="manifest_path",
        type=Path,
        help="Manifest path; overrides MANIFEST_PATH",
    )
    argument_parser.add_argument(
        "--wait",
        action="store_true",
        help="For `up`: print service states once the stack has settled",
    )
    argument_parser.add_argument(
        "--exit-after-wait",
        dest="exit_after_wait",
        action="store_true",
        help="For `up`: shut the stack down once it has settled and exit with its result",
    )
    argument_parser.add_argument("--json", dest="json_output", action="store_true", help="For `status`: print JSON")
    argument_parser.add_argument(
        "--yes",
        action="store_true",
        help="For `destroy-volumes`: confirm irreversible deletion",
    )
    argument_parser.add_argument(
        "--service",
        dest="services",
        action="append",
        default=[],
        help="For `destroy-volumes`: limit deletion to volumes of this service (repeatable)",
    )
    parsed_arguments = argument_parser.parse_args(argv)
    raise SystemExit(main_dispatch(parsed_arguments))


def main_dispatch(parsed_arguments: argparse.Namespace) -> int:
    """Execute one parsed command and return its exit code.

    Args:
        parsed_arguments: Parsed CLI arguments.

    Returns:
        int: 0 on success, 1 on runtime failure, 2 on configuration error.

    Raises:
        RuntimeError: Raised when an unexpected runtime failure escapes a command.
    """

    try:
        settings = config_load_settings()
        if parsed_arguments.manifest_path is not None:
            settings = settings.model_copy(update={"manifest_path": parsed_arguments.manifest_path})
        logging_configure(level=settings.log_level, json_output=settings.log_json)

        if parsed_arguments.command == "up":
            return main_run_up(
                settings,
                wait=parsed_arguments.wait or parsed_arguments.exit_after_wait,
                exit_after_wait=parsed_arguments.exit_after_wait,
            )
        if parsed_arguments.command == "stop":
            return main_run_stop(settings)
        if parsed_arguments.command == "status":
            return main_run_status(settings, json_output=parsed_arguments.json_output)
        if parsed_arguments.command == "destroy-volumes":
            return main_run_destroy_volumes(settings, confirm=parsed_arguments.yes, services=parsed_arguments.services)
        if parsed_arguments.command == "order":
            _, graph = bootstrap_load_manifest_and_graph(settings)
            for position, service_name in enumerate(graph.graph_ready_order(), start=1):
                print(f"{position}. {service_name}")
            return EXIT_OK

        manifest, graph = bootstrap_load_manifest_and_graph(settings)
        print(
            f"manifest {settings.manifest_path} is valid: "
            f"project={manifest.project}, services={len(manifest.services)}"
        )
        print("ready order:", " -> ".join(graph.graph_ready_order()))
        return EXIT_OK
    except (SettingsLoadError, ConfigurationError) as error:
        print(f"configuration error: {error}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR


def main_run_up(settings: AppSettings, wait: bool = False, exit_after_wait: bool = False) -> int:
    """Validate, start the stack, and serve the status API until shutdown.

    Args:
        settings: Validated application settings.
        wait: Print service states once the stack settles.
        exit_after_wait: Shut down once the stack settles.

    Returns:
        int: Orchestrator exit code.

    Raises:
        ConfigurationError: Raised before anything starts when the manifest is invalid.
    """

    components = bootstrap_create_components(settings)
    return asyncio.run(main_serve_stack(settings, components, wait=wait, exit_after_wait=exit_after_wait))


async def main_serve_stack(
    settings: AppSettings,
    components: StackComponents,
    wait: bool = False,
    exit_after_wait: bool = False,
) -> int:
    """Run orchestrator and status API side by side.

    The API runs in a worker thread with its own event loop; shutdown requests
    it receives are marshalled back with `call_soon_threadsafe`.

    Args:
        settings: Validated application settings.
        components: Wired stack components.
        wait: Print service states once the stack settles.
        exit_after_wait: Shut down once the stack settles.

    Returns:
        int: Orchestrator exit code.

    Raises:
        RuntimeError: Raised when the orchestrator loop fails unexpectedly.
    """

    event_loop = asyncio.get_running_loop()
    orchestrator = components.orchestrator

    def request_shutdown_threadsafe() -> None:
        event_loop.call_soon_threadsafe(orchestrator.orchestrator_request_shutdown)

    application = bootstrap_create_application(settings, components, shutdown_requester=request_shutdown_threadsafe)
    server = uvicorn.Server(
        uvicorn.Config(
            application,
            host=settings.application_host,
            port=settings.application_port,
            log_config=None,
            access_log=False,
        )
    )
    server_thread = threading.Thread(target=server.run, name="stackgate-api", daemon=True)
    server_thread.start()

    for signal_number in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            event_loop.add_signal_handler(signal_number, orchestrator.orchestrator_request_shutdown)

    try:
        run_result = await orchestrator.orchestrator_run(
            wait_until_settled=exit_after_wait,
            on_settled=main_print_settled_states if wait else None,
        )
    finally:
        server.should_exit = True
        await asyncio.to_thread(server_thread.join, 5.0)
        components.sql_probe.probe_dispose()

    if run_result.failed_services:
        print("failed services:", ", ".join(run_result.failed_services), file=sys.stderr)
    if run_result.blocked_services:
        print("blocked by failed dependencies:", ", ".join(run_result.blocked_services), file=sys.stderr)
    if run_result.shutdown_error is not None:
        print(f"shutdown interrupted: {run_result.shutdown_error}", file=sys.stderr)
    return run_result.exit_code


def main_print_settled_states(settled_states: dict[str, str]) -> None:
    """Print one line per service once the stack has settled.

    Args:
        settled_states: Service name to lifecycle state value.

    Returns:
        None: Prints to stdout as side effect.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    width = max((len(name) for name in settled_states), default=0)
    for service_name, state in settled_states.items():
        print(f"{service_name.ljust(width)}  {state}")
    sys.stdout.flush()


def main_run_stop(settings: AppSettings) -> int:
    api_client = bootstrap_create_api_client(settings)
    try:
        api_client.client_request_shutdown()
    except StackgateApiUnavailableError as error:
        print(f"no running stack: {error}", file=sys.stderr)
        return EXIT_FAILURE
    except ConnectionError as error:
        print(f"shutdown request failed: {error}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"shutdown requested at {api_client.base_url}")
    return EXIT_OK


def main_run_status(settings: AppSettings, json_output: bool = False) -> int:
    """Print service states reported by a running orchestrator.

    Args:
        settings: Validated application settings.
        json_output: Print the raw API payload as JSON.

    Returns:
        int: 0 when the API answered, 1 otherwise.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    api_client = bootstrap_create_api_client(settings)
    try:
        payload = api_client.client_list_services()
    except ConnectionError as error:
        print(f"cannot read status: {error}", file=sys.stderr)
        return EXIT_FAILURE

    if json_output:
        print(json.dumps(payload, indent=2, sort_keys=True))
        return EXIT_OK

    services = payload.get("services", [])
    width = max((len(service["service"]) for service in services), default=0)
    print(f"project: {payload.get('project')}")
    for service in services:
        failures = service.get("consecutive_failures", 0)
        line = f"{service['service'].ljust(width)}  {service['state']:<24} failures={failures}"
        if service.get("failure_reason"):
            line += f"  reason={service['failure_reason']}"
        print(line)
    return EXIT_OK


def main_run_destroy_volumes(settings: AppSettings, confirm: bool, services: list[str] | None = None) -> int:
    """Delete named volumes, only with confirmation and only while stopped.

    Args:
        settings: Validated application settings.
        confirm: Explicit confirmation flag.
        services: Optional services whose volumes are deleted; defaults to all.

    Returns:
        int: 0 when volumes were deleted, 1 when refused.

    Raises:
        ConfigurationError: Raised when the manifest is invalid or names an unknown service.
    """

    manifest, _ = bootstrap_load_manifest_and_graph(settings)
    if services:
        volume_names: list[str] = []
        for service_name in services:
            try:
                descriptor = manifest.manifest_get_service(service_name)
            except KeyError as error:
                raise ConfigurationError(f"unknown service {service_name}") from error
            volume_names.extend(volume.name for volume in descriptor.volumes)
    else:
        volume_names = list(manifest.manifest_volume_names())

    api_client = bootstrap_create_api_client(settings)
    if api_client.client_is_running():
        print(f"refusing to destroy volumes while a stack answers at {api_client.base_url}", file=sys.stderr)
        return EXIT_FAILURE

    volume_store = bootstrap_create_volume_store(settings)
    try:
        destroyed = volume_store.volume_destroy(volume_names, confirm=confirm)
    except VolumeDestroyRefused as error:
        print(f"{error}; pass --yes to confirm", file=sys.stderr)
        return EXIT_FAILURE
    print("destroyed volumes:", ", ".join(destroyed) if destroyed else "none")
    return EXIT_OK


if __name__ == "__main__":
    main()
