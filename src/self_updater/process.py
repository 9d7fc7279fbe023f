"""Async subprocess helpers.

All hook, install and restart commands go through :func:`run_command`, which
runs them through the shell, logs their output and raises the caller's error
type on a non-zero exit. :func:`run_exec` is the argv-based variant used for
git, returning the captured result without raising.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from self_updater.constants import MAX_OUTPUT_CHARS
from self_updater.errors import CommandError
from self_updater.logging import get_logger

_log = get_logger("self_updater.process")


@dataclass
class CommandResult:
    """Captured outcome of a finished command."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _communicate(
    proc: asyncio.subprocess.Process,
    timeout: float | None,
) -> tuple[bytes, bytes]:
    try:
        return await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        raise


async def run_exec(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a program without a shell and capture its output.

    *env* entries are added to the inherited environment.
    """
    command = " ".join(args)
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        env={**os.environ, **(env or {})},
    )
    stdout, stderr = await _communicate(proc, timeout)
    return CommandResult(
        command=command,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


async def run_command(
    command: str,
    *,
    cwd: str | Path,
    error_cls: type[CommandError] = CommandError,
    timeout: float | None = None,
    log: structlog.stdlib.BoundLogger | None = None,
) -> CommandResult:
    """Run a shell command in *cwd*, raising *error_cls* unless it exits 0."""
    log = log or _log
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=dict(os.environ),
        )
        stdout_raw, stderr_raw = await _communicate(proc, timeout)
    except TimeoutError as exc:
        log.error("command_timeout", command=command, timeout=timeout)
        raise error_cls(f"Command timed out after {timeout}s: {command}", command=command) from exc
    except OSError as exc:
        log.error("command_spawn_failed", command=command, error=str(exc))
        raise error_cls(f"Unable to run command: {command}: {exc}", command=command) from exc

    result = CommandResult(
        command=command,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout_raw.decode(errors="replace"),
        stderr=stderr_raw.decode(errors="replace"),
    )
    stdout = result.stdout.strip()
    stderr = result.stderr.strip()

    if result.ok:
        if stdout:
            log.info("command_output", command=command, stdout=stdout[-MAX_OUTPUT_CHARS:])
        if stderr:
            log.warning("command_stderr", command=command, stderr=stderr[-MAX_OUTPUT_CHARS:])
        return result

    log.error(
        "command_failed",
        command=command,
        returncode=result.returncode,
        stdout=stdout[-MAX_OUTPUT_CHARS:],
        stderr=stderr[-MAX_OUTPUT_CHARS:],
    )
    raise error_cls(
        f"Command failed (rc={result.returncode}): {command}",
        command=command,
        returncode=result.returncode,
        stdout=stdout[-MAX_OUTPUT_CHARS:],
        stderr=stderr[-MAX_OUTPUT_CHARS:],
    )
