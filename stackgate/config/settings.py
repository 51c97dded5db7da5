"""Typed runtime settings with dotenv support and startup validation."""

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SettingsLoadError(RuntimeError):
    """Raised when runtime settings cannot be loaded or validated."""


class AppSettings(BaseSettings):
    """Application settings for orchestrator runtime and status API.

    Environment variable names map directly to field names in uppercase.
    Example: `manifest_path` reads from `MANIFEST_PATH`.

    Attributes:
        environment_name: Runtime environment label.
        manifest_path: Path of the YAML service manifest.
        project_name: Optional override for the manifest project name.
        volume_root: Directory holding named persistent volumes.
        runtime_kind: Execution substrate (`subprocess` or `docker`).
        docker_binary: Docker CLI executable used by the docker substrate.
        application_host: Host interface for the status API.
        application_port: Status API port.
        shutdown_grace_seconds: Bound on reverse-order shutdown before forced termination.
        status_reemit_seconds: Interval for re-emitting blocked dependency warnings.
        runtime_stop_timeout_seconds: Per-service graceful stop timeout passed to the substrate.
        log_level: Root log level.
        log_json: Whether logs are rendered as JSON lines.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment_name: str = Field(default="development")
    manifest_path: Path = Field(default=Path("stackgate.yaml"))
    project_name: str | None = Field(default=None)
    volume_root: Path = Field(default=Path(".stackgate/volumes"))
    runtime_kind: Literal["subprocess", "docker"] = Field(default="docker")
    docker_binary: str = Field(default="docker", min_length=1)
    application_host: str = Field(default="127.0.0.1")
    application_port: int = Field(default=8765, ge=1, le=65535)
    shutdown_grace_seconds: float = Field(default=30.0, gt=0)
    status_reemit_seconds: float = Field(default=15.0, gt=0)
    runtime_stop_timeout_seconds: float = Field(default=10.0, ge=0)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @field_validator("project_name")
    @classmethod
    def _validate_project_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized_value = value.strip().upper()
        if normalized_value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return normalized_value

    def settings_api_base_url(self) -> str:
        """Return the base URL where a running orchestrator serves its API.

        Returns:
            str: HTTP base URL built from host and port.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return f"http://{self.application_host}:{self.application_port}"


def config_load_settings() -> AppSettings:
    """Load and validate runtime settings from environment and dotenv.

    Returns:
        AppSettings: Validated runtime settings object.

    Raises:
        SettingsLoadError: Raised when required settings are missing or invalid.
    """

    try:
        return AppSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Startup configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error
