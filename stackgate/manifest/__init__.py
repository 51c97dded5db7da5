"""Service descriptor store: manifest models and loading."""

from .loader import manifest_interpolate_value, manifest_load_file, manifest_load_text
from .models import (
	BootstrapSpec,
	BootstrapStep,
	HealthProbeSpec,
	Manifest,
	PortMapping,
	ResourceLimits,
	ServiceDescriptor,
	VolumeMount,
)

__all__ = [
	"BootstrapSpec",
	"BootstrapStep",
	"HealthProbeSpec",
	"Manifest",
	"PortMapping",
	"ResourceLimits",
	"ServiceDescriptor",
	"VolumeMount",
	"manifest_interpolate_value",
	"manifest_load_file",
	"manifest_load_text",
]
