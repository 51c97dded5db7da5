"""Lifecycle state machine, shared status view and per-service drivers."""

from .driver import ServiceLifecycleDriver
from .state_machine import LifecycleStateMachine, ProbeAccounting
from .status_view import ServiceStatusView

__all__ = [
	"LifecycleStateMachine",
	"ProbeAccounting",
	"ServiceLifecycleDriver",
	"ServiceStatusView",
]
