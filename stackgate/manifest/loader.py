"""Manifest loading with environment interpolation and fail-fast validation."""

from __future__ import annotations

from collections.abc import Mapping
import os
from pathlib import Path
import re
from typing import Any

from pydantic import ValidationError
import yaml

from stackgate.domain import ConfigurationError

from .models import Manifest

_INTERPOLATION_PATTERN = re.compile(
    r"\$\$|\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:(?P<operator>:-|:\?)(?P<argument>[^}]*))?\}"
)


def manifest_interpolate_value(value: Any, environ: Mapping[str, str]) -> Any:
    """Interpolate `${VAR}`, `${VAR:-default}` and `${VAR:?message}` in string leaves.

    Args:
        value: Parsed YAML value (mapping, list, or scalar).
        environ: Variables available for interpolation.

    Returns:
        Any: Value with every string leaf interpolated; `$$` renders as `$`.

    Raises:
        ConfigurationError: Raised when a `${VAR:?message}` variable is unset or blank.
    """

    if isinstance(value, dict):
        return {key: manifest_interpolate_value(item, environ) for key, item in value.items()}
    if isinstance(value, list):
        return [manifest_interpolate_value(item, environ) for item in value]
    if not isinstance(value, str):
        return value

    def _replace(match: re.Match[str]) -> str:
        if match.group(0) == "$$":
            return "$"
        variable_name = match.group("name")
        variable_value = environ.get(variable_name, "")
        operator = match.group("operator")
        if operator == ":-" and not variable_value:
            return match.group("argument")
        if operator == ":?" and not variable_value:
            message = match.group("argument") or "is required"
            raise ConfigurationError(f"environment variable {variable_name} {message}")
        return variable_value

    return _INTERPOLATION_PATTERN.sub(_replace, value)


def manifest_load_text(manifest_text: str, environ: Mapping[str, str] | None = None) -> Manifest:
    """Parse, interpolate and validate a YAML manifest document.

    Args:
        manifest_text: YAML manifest content.
        environ: Interpolation variables; defaults to the process environment.

    Returns:
        Manifest: Validated immutable manifest.

    Raises:
        ConfigurationError: Raised when YAML is malformed or validation fails.
    """

    try:
        raw_document = yaml.safe_load(manifest_text)
    except yaml.YAMLError as error:
        raise ConfigurationError(f"manifest is not valid YAML: {error}") from error

    if not isinstance(raw_document, dict):
        raise ConfigurationError("manifest must be a mapping with a `services` section")

    interpolated_document = manifest_interpolate_value(raw_document, os.environ if environ is None else environ)
    try:
        return Manifest.model_validate(interpolated_document)
    except ValidationError as error:
        raise ConfigurationError(f"manifest validation failed: {error}") from error


def manifest_load_file(manifest_path: Path, environ: Mapping[str, str] | None = None) -> Manifest:
    """Read and validate a manifest file.

    Args:
        manifest_path: Path to the YAML manifest.
        environ: Interpolation variables; defaults to the process environment.

    Returns:
        Manifest: Validated immutable manifest.

    Raises:
        ConfigurationError: Raised when the file is unreadable or invalid.
    """

    try:
        manifest_text = Path(manifest_path).read_text(encoding="utf-8")
    except OSError as error:
        raise ConfigurationError(f"cannot read manifest {manifest_path}: {error}") from error
    return manifest_load_text(manifest_text, environ=environ)
