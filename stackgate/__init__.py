"""Stackgate dependency-aware service orchestrator."""
