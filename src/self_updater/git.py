"""Thin async wrapper around the ``git`` CLI for one workspace.

Every call shells out to ``git`` with an argv list (no shell) and raises
:class:`GitCommandError` when git exits non-zero or cannot be started.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import structlog

from self_updater.constants import MAX_OUTPUT_CHARS
from self_updater.errors import GitCommandError
from self_updater.logging import get_logger
from self_updater.process import CommandResult, run_exec

# Never block on an interactive credential prompt.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


async def _git(
    *args: str,
    cwd: str | Path | None,
    log: structlog.stdlib.BoundLogger,
) -> CommandResult:
    try:
        result = await run_exec("git", *args, cwd=cwd, env=_GIT_ENV)
    except OSError as exc:
        raise GitCommandError(f"Unable to run git: {exc}", command=f"git {' '.join(args)}") from exc

    if not result.ok:
        stderr = result.stderr.strip()[-MAX_OUTPUT_CHARS:]
        log.debug("git_failed", command=result.command, returncode=result.returncode, stderr=stderr)
        raise GitCommandError(
            f"git {args[0]} failed (rc={result.returncode}): {stderr}",
            command=result.command,
            returncode=result.returncode,
            stdout=result.stdout.strip()[-MAX_OUTPUT_CHARS:],
            stderr=stderr,
        )
    return result


def parse_ls_remote(output: str, branch: str) -> str | None:
    """Return the commit of ``refs/heads/<branch>`` from ``git ls-remote`` output."""
    wanted = f"refs/heads/{branch}"
    for line in output.splitlines():
        parts = line.strip().split()
        if len(parts) == 2 and parts[1] == wanted:
            return parts[0]
    return None


async def ls_remote_head(
    url: str,
    branch: str,
    *,
    log: structlog.stdlib.BoundLogger | None = None,
) -> str | None:
    """List the remote's heads restricted to *branch* and return its commit."""
    result = await _git(
        "ls-remote", "--heads", url, branch, cwd=None, log=log or get_logger("self_updater.git")
    )
    return parse_ls_remote(result.stdout, branch)


class GitRepository:
    """Git operations against the workspace at *path*."""

    def __init__(
        self,
        path: str | Path,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._path = Path(path)
        self._log = logger or get_logger("self_updater.git")

    @property
    def path(self) -> Path:
        return self._path

    def is_repository(self) -> bool:
        return (self._path / ".git").exists()

    async def _run(self, *args: str) -> str:
        result = await _git(*args, cwd=self._path, log=self._log)
        return result.stdout

    async def clone(self, url: str, branch: str, *, shallow: bool = False) -> None:
        """Clone *branch* of *url* into the (empty or missing) workspace path."""
        args = ["clone", "--branch", branch, "--single-branch"]
        if shallow:
            args += ["--depth", "1"]
        args += [url, str(self._path)]
        await _git(*args, cwd=self._path.parent, log=self._log)

    async def rev_parse(self, ref: str = "HEAD") -> str:
        return (await self._run("rev-parse", ref)).strip()

    async def fetch(self, remote: str, branch: str) -> None:
        await self._run("fetch", remote, branch)

    async def behind_count(self, ref: str) -> int:
        """Number of commits reachable from *ref* but not from HEAD."""
        output = await self._run("rev-list", "--count", f"HEAD..{ref}")
        try:
            return int(output.strip() or 0)
        except ValueError:
            return 0

    async def reset_hard(self, ref: str) -> None:
        await self._run("reset", "--hard", ref)

    async def changed_files(self, old: str, new: str, paths: Sequence[str]) -> list[str]:
        """Files among *paths* that differ between commits *old* and *new*."""
        output = await self._run("diff", "--name-only", f"{old}..{new}", "--", *paths)
        return [line.strip() for line in output.splitlines() if line.strip()]
