# src/core/process.py — v1
"""Async subprocess invocation for external tools (scanners, builders).

A command that outlives its timeout, or whose awaiting task is cancelled,
is terminated (SIGTERM, then SIGKILL after a grace period) before the
exception propagates, so no child process outlives its stage.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from shipyard.core.errors import StageTimeout, TransientInfraError

logger = logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT_S = 5.0


@dataclass
class CommandResult:
    """Completed external command."""

    argv: list[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def split_command(command: str | list[str]) -> list[str]:
    """Accept a shell-style string or an argv list."""
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


async def run_command(
    command: str | list[str],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout_s: float | None = None,
    kill_timeout_s: float = DEFAULT_KILL_TIMEOUT_S,
) -> CommandResult:
    """Run an external command and capture its output.

    Raises:
        TransientInfraError: If the command cannot be started.
        StageTimeout: If it does not finish within ``timeout_s``.
    """
    argv = split_command(command)
    if not argv:
        raise ValueError("Empty command")

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=env,
        )
    except FileNotFoundError as exc:
        raise TransientInfraError(f"Command not found: {argv[0]}") from exc
    except OSError as exc:
        raise TransientInfraError(f"Failed to start {argv[0]}: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError:
        await _terminate(process, kill_timeout_s)
        raise StageTimeout(f"{argv[0]} timed out after {timeout_s}s") from None
    except asyncio.CancelledError:
        await _terminate(process, kill_timeout_s)
        raise

    result = CommandResult(
        argv=argv,
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug("%s exited with %d", argv[0], result.exit_code)
    return result


async def _terminate(process: asyncio.subprocess.Process, kill_timeout_s: float) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=kill_timeout_s)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
    except ProcessLookupError:
        pass
