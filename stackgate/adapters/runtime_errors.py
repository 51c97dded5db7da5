"""Project-native typed exceptions for execution-substrate failures."""

from __future__ import annotations


class RuntimeAdapterError(Exception):
    """Base exception for substrate-level failures."""


class RuntimeCommandError(RuntimeAdapterError, RuntimeError):
    """A substrate command could not be launched or reported failure.

    Attributes:
        exit_code: Exit status when the command ran, otherwise None.
        output: Captured command output, if any.
    """

    def __init__(self, message: str, exit_code: int | None = None, output: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
