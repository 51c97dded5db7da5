"""Orchestrator package for the stack control loop."""

from .control_loop import StackOrchestrator
from .interfaces import OrchestratorConfig, OrchestratorPort, OrchestratorRunResult

__all__ = ["OrchestratorConfig", "OrchestratorPort", "OrchestratorRunResult", "StackOrchestrator"]
