"""Asynchronous child process helpers shared by substrate adapters."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
import contextlib
from pathlib import Path

from .interfaces import CommandResult
from .runtime_errors import RuntimeCommandError

_OUTPUT_TAIL_CHARACTERS = 4000


async def adapter_run_command(
    command: Sequence[str],
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> CommandResult:
    """Run a command to completion and capture its combined output.

    A cancelled caller (for example a probe timeout) kills the child process
    before the cancellation propagates, so no orphan is left behind.

    Args:
        command: Argv to execute.
        env: Full child environment; None inherits the current one.
        cwd: Optional working directory.

    Returns:
        CommandResult: Exit status and output tail.

    Raises:
        RuntimeCommandError: Raised when the executable cannot be launched.
        asyncio.CancelledError: Raised after the child is killed on cancellation.
    """

    if not command:
        raise RuntimeCommandError("command must not be empty")

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=dict(env) if env is not None else None,
            cwd=str(cwd) if cwd is not None else None,
        )
    except OSError as error:
        raise RuntimeCommandError(f"cannot execute {command[0]}: {error}") from error

    try:
        raw_output, _ = await process.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        with contextlib.suppress(asyncio.CancelledError):
            await process.wait()
        raise

    output = raw_output.decode("utf-8", errors="replace") if raw_output else ""
    return CommandResult(exit_code=int(process.returncode or 0), output=output[-_OUTPUT_TAIL_CHARACTERS:])
