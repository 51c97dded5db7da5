"""Domain models used across application layer boundaries."""

from .errors import (
	BootstrapFailure,
	ConfigurationError,
	CycleError,
	HealthCheckFailure,
	LifecycleTransitionError,
	ProbeTimeoutError,
	ShutdownInterrupted,
	StackgateError,
	VolumeDestroyRefused,
)
from .models import (
	BootstrapOutcome,
	BootstrapStatus,
	HealthStatus,
	LifecycleState,
	ProbeOutcome,
	ProbeStatus,
	ServiceStatusSnapshot,
)
from .timeline import domain_build_transition_event, domain_utc_now_iso

__all__ = [
	"BootstrapFailure",
	"BootstrapOutcome",
	"BootstrapStatus",
	"ConfigurationError",
	"CycleError",
	"HealthCheckFailure",
	"HealthStatus",
	"LifecycleState",
	"LifecycleTransitionError",
	"ProbeOutcome",
	"ProbeStatus",
	"ProbeTimeoutError",
	"ServiceStatusSnapshot",
	"ShutdownInterrupted",
	"StackgateError",
	"VolumeDestroyRefused",
	"domain_build_transition_event",
	"domain_utc_now_iso",
]
