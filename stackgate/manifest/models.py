"""Immutable service descriptor models validated at manifest load time."""

from __future__ import annotations

from pathlib import PurePosixPath
import re
import shlex
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_NAME_PATTERN = r"^[a-z0-9][a-z0-9_.-]*$"
_MEMORY_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([bkmg]?)b?$", re.IGNORECASE)
_MEMORY_UNITS = {"": 1, "b": 1, "k": 1024, "m": 1024**2, "g": 1024**3}


def _manifest_split_command(value: Any) -> Any:
    """Normalize a shell-style string or sequence into a command tuple.

    Args:
        value: Raw command value from the manifest.

    Returns:
        Any: Tuple of argv items, or the original value for pydantic to reject.

    Raises:
        ValueError: Raised when the command is empty.
    """

    if value is None:
        return None
    if isinstance(value, str):
        value = shlex.split(value)
    if isinstance(value, (list, tuple)):
        argv = tuple(str(item) for item in value)
        if not argv or not argv[0].strip():
            raise ValueError("command must not be empty")
        return argv
    return value


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PortMapping(_FrozenModel):
    """Published port mapping.

    Attributes:
        host: Host port.
        container: Service port.
    """

    host: int = Field(ge=1, le=65535)
    container: int = Field(ge=1, le=65535)

    @model_validator(mode="before")
    @classmethod
    def _parse_short_syntax(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return {"host": value, "container": value}
        if isinstance(value, str):
            host_part, _, container_part = value.strip().partition(":")
            container_part = container_part or host_part
            if not host_part.isdigit() or not container_part.isdigit():
                raise ValueError(f"invalid port mapping {value!r}, expected 'host:container'")
            return {"host": int(host_part), "container": int(container_part)}
        return value


class VolumeMount(_FrozenModel):
    """Named persistent volume bound into a service.

    Attributes:
        name: Volume name, unique across the manifest.
        target: Mount target inside the service.
    """

    name: str = Field(pattern=_NAME_PATTERN)
    target: str = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _parse_short_syntax(cls, value: Any) -> Any:
        if isinstance(value, str):
            name, separator, target = value.partition(":")
            if not separator:
                raise ValueError(f"invalid volume {value!r}, expected 'name:/target'")
            return {"name": name.strip(), "target": target.strip()}
        return value


class ResourceLimits(_FrozenModel):
    """Declarative resource ceilings enforced by the execution substrate.

    Attributes:
        memory: Memory ceiling in bytes; accepts `512m` style strings.
        cpus: CPU share as a fraction of cores.
    """

    memory: int | None = Field(default=None, gt=0)
    cpus: float | None = Field(default=None, gt=0)

    @field_validator("memory", mode="before")
    @classmethod
    def _parse_memory(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        match = _MEMORY_PATTERN.match(value.strip())
        if match is None:
            raise ValueError(f"invalid memory limit {value!r}")
        return int(float(match.group(1)) * _MEMORY_UNITS[match.group(2).lower()])


class HealthProbeSpec(_FrozenModel):
    """Health probe configuration for one service.

    Attributes:
        kind: Probe protocol (`http`, `command`, `sql`).
        url: Target URL for `http` probes; any 2xx response is healthy.
        command: Argv for `command` probes; exit status 0 is healthy.
        database_url: SQLAlchemy URL for `sql` probes.
        interval_seconds: Period between probe starts; a probe slower than
            the interval is followed immediately by the next one.
        timeout_seconds: Per-probe timeout enforced by the runner.
        failure_threshold: Consecutive counted failures before `unhealthy`.
        start_period_seconds: Grace period during which failures are not counted.
        alert_after_failures: Optional threshold for operator alerting.
    """

    kind: Literal["http", "command", "sql"]
    url: str | None = None
    command: tuple[str, ...] | None = None
    database_url: str | None = None
    interval_seconds: float = Field(default=5.0, gt=0)
    timeout_seconds: float = Field(default=3.0, gt=0)
    failure_threshold: int = Field(default=3, ge=1)
    start_period_seconds: float = Field(default=0.0, ge=0)
    alert_after_failures: int | None = Field(default=None, ge=1)

    @field_validator("command", mode="before")
    @classmethod
    def _normalize_command(cls, value: Any) -> Any:
        return _manifest_split_command(value)

    @model_validator(mode="after")
    def _validate_kind_target(self) -> HealthProbeSpec:
        if self.kind == "http":
            if not self.url or not self.url.startswith(("http://", "https://")):
                raise ValueError("http probes require an http(s) url")
        elif self.kind == "command":
            if not self.command:
                raise ValueError("command probes require a command")
        elif not self.database_url or not self.database_url.strip():
            raise ValueError("sql probes require a database_url")
        return self

    def probe_target_label(self) -> str:
        """Return a diagnostic label for the probe target.

        Returns:
            str: URL, command line, or database URL without credentials.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if self.kind == "http":
            return str(self.url)
        if self.kind == "command":
            return shlex.join(self.command or ())
        return re.sub(r"//[^@/]*@", "//***@", str(self.database_url))


class BootstrapStep(_FrozenModel):
    """One ordered bootstrap action.

    Attributes:
        name: Step label used in logs and failure reasons.
        command: Argv executed inside the service context.
    """

    name: str = Field(min_length=1)
    command: tuple[str, ...]

    @model_validator(mode="before")
    @classmethod
    def _parse_short_syntax(cls, value: Any) -> Any:
        if isinstance(value, (str, list, tuple)):
            argv = _manifest_split_command(value)
            return {"name": argv[0], "command": argv}
        return value

    @field_validator("command", mode="before")
    @classmethod
    def _normalize_command(cls, value: Any) -> Any:
        return _manifest_split_command(value)


class BootstrapSpec(_FrozenModel):
    """One-time initialization guarded by a marker inside a persistent volume.

    Attributes:
        volume: Name of the service volume holding the marker.
        marker: Relative marker path within the volume.
        steps: Ordered bootstrap steps (install, configuration import, content import).
    """

    volume: str = Field(pattern=_NAME_PATTERN)
    marker: str = Field(default=".stackgate/bootstrap-complete", min_length=1)
    steps: tuple[BootstrapStep, ...] = Field(min_length=1)

    @field_validator("marker")
    @classmethod
    def _validate_marker(cls, value: str) -> str:
        marker_path = PurePosixPath(value.strip())
        if marker_path.is_absolute() or ".." in marker_path.parts or not marker_path.parts:
            raise ValueError("marker must be a relative path inside the volume")
        return str(marker_path)


class ServiceDescriptor(_FrozenModel):
    """Immutable description of one orchestrated service.

    Attributes:
        name: Unique service identifier.
        image: Container image reference for the docker substrate.
        command: Argv override, or the process to run for the subprocess substrate.
        depends_on: Services that must reach `ready` before this one starts.
        healthcheck: Optional health probe; without one the service is ready once started.
        bootstrap: Optional first-run initialization.
        resources: Memory and CPU ceilings.
        ports: Published ports.
        volumes: Named persistent volumes.
        environment: Opaque configuration values passed through to the service.
        required_environment: Keys that must be present and non-blank in `environment`.
    """

    name: str = Field(pattern=_NAME_PATTERN)
    image: str | None = None
    command: tuple[str, ...] | None = None
    depends_on: tuple[str, ...] = ()
    healthcheck: HealthProbeSpec | None = None
    bootstrap: BootstrapSpec | None = None
    resources: ResourceLimits = Field(default_factory=ResourceLimits)
    ports: tuple[PortMapping, ...] = ()
    volumes: tuple[VolumeMount, ...] = ()
    environment: dict[str, str] = Field(default_factory=dict)
    required_environment: tuple[str, ...] = ()

    @field_validator("command", mode="before")
    @classmethod
    def _normalize_command(cls, value: Any) -> Any:
        return _manifest_split_command(value)

    @field_validator("environment", mode="before")
    @classmethod
    def _stringify_environment(cls, value: Any) -> Any:
        if isinstance(value, list):
            pairs = [str(item).partition("=") for item in value]
            return {key: item_value for key, _, item_value in pairs}
        if isinstance(value, dict):
            return {
                str(key): "" if item is None else (str(item).lower() if isinstance(item, bool) else str(item))
                for key, item in value.items()
            }
        return value

    @model_validator(mode="after")
    def _validate_descriptor(self) -> ServiceDescriptor:
        if not self.image and not self.command:
            raise ValueError(f"service {self.name} requires an image or a command")
        if len(set(self.depends_on)) != len(self.depends_on):
            raise ValueError(f"service {self.name} lists a dependency more than once")
        if self.name in self.depends_on:
            raise ValueError(f"service {self.name} must not depend on itself")

        volume_names = [volume.name for volume in self.volumes]
        if len(set(volume_names)) != len(volume_names):
            raise ValueError(f"service {self.name} mounts a volume more than once")
        if self.bootstrap is not None and self.bootstrap.volume not in volume_names:
            raise ValueError(
                f"service {self.name} bootstrap volume {self.bootstrap.volume} is not one of its volumes"
            )

        missing_keys = [key for key in self.required_environment if not self.environment.get(key, "").strip()]
        if missing_keys:
            raise ValueError(f"service {self.name} is missing required environment keys: {', '.join(missing_keys)}")
        return self

    def descriptor_volume(self, volume_name: str) -> VolumeMount:
        """Return the mount declaration for one of this service's volumes.

        Args:
            volume_name: Volume name.

        Returns:
            VolumeMount: Matching volume declaration.

        Raises:
            KeyError: Raised when the service does not mount the volume.
        """

        for volume in self.volumes:
            if volume.name == volume_name:
                return volume
        raise KeyError(volume_name)


class Manifest(_FrozenModel):
    """Validated declarative manifest.

    Attributes:
        project: Project name used to namespace runtime resources.
        services: Service descriptors in declaration order.
    """

    project: str = Field(default="stackgate", pattern=_NAME_PATTERN)
    services: tuple[ServiceDescriptor, ...] = Field(min_length=1)

    @field_validator("services", mode="before")
    @classmethod
    def _services_from_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        services: list[Any] = []
        for service_name, body in value.items():
            if body is not None and not isinstance(body, dict):
                raise ValueError(f"service {service_name} must be a mapping")
            body = dict(body or {})
            declared_name = body.setdefault("name", service_name)
            if declared_name != service_name:
                raise ValueError(f"service key {service_name} does not match declared name {declared_name}")
            services.append(body)
        return services

    @model_validator(mode="after")
    def _validate_references(self) -> Manifest:
        service_names = [service.name for service in self.services]
        if len(set(service_names)) != len(service_names):
            raise ValueError("service names must be unique")

        known_names = set(service_names)
        for service in self.services:
            unknown = [dependency for dependency in service.depends_on if dependency not in known_names]
            if unknown:
                raise ValueError(f"service {service.name} depends on unknown services: {', '.join(unknown)}")

        volume_owners: dict[str, str] = {}
        for service in self.services:
            for volume in service.volumes:
                owner = volume_owners.setdefault(volume.name, service.name)
                if owner != service.name:
                    raise ValueError(f"volume {volume.name} is bound to both {owner} and {service.name}")
        return self

    def manifest_service_names(self) -> tuple[str, ...]:
        """Return service names in declaration order.

        Returns:
            tuple[str, ...]: Ordered service names.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return tuple(service.name for service in self.services)

    def manifest_get_service(self, service_name: str) -> ServiceDescriptor:
        """Return one service descriptor by name.

        Args:
            service_name: Service identifier.

        Returns:
            ServiceDescriptor: Matching descriptor.

        Raises:
            KeyError: Raised when the service is not declared.
        """

        for service in self.services:
            if service.name == service_name:
                return service
        raise KeyError(service_name)

    def manifest_volume_names(self) -> tuple[str, ...]:
        """Return every declared volume name in declaration order.

        Returns:
            tuple[str, ...]: Volume names.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return tuple(volume.name for service in self.services for volume in service.volumes)
