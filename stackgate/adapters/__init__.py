"""Adapter layer package for execution-substrate boundaries."""

from .docker_runtime import DockerCliServiceRuntime
from .interfaces import CommandResult, ServiceRuntimePort
from .process import adapter_run_command
from .runtime_errors import RuntimeAdapterError, RuntimeCommandError
from .subprocess_runtime import SubprocessServiceRuntime, adapter_volume_environment_key

__all__ = [
	"CommandResult",
	"DockerCliServiceRuntime",
	"RuntimeAdapterError",
	"RuntimeCommandError",
	"ServiceRuntimePort",
	"SubprocessServiceRuntime",
	"adapter_run_command",
	"adapter_volume_environment_key",
]
