"""Update orchestrator.

Owns the workspace and its lock. One ``update_to_commit`` call walks:

1. Ensure the workspace is a clone of the tracked branch
2. Take the workspace lock (fail fast if held)
3. Fetch the branch and decide whether an update is needed
4. Pre-update hook → hard reset to the remote tip → conditional install
5. Restart the service → post-update hook
6. Release the lock on every exit path

Failures propagate to the caller. Nothing is rolled back: a workspace that was
reset stays at the new commit even if the restart fails.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from self_updater.config import UpdaterConfig
from self_updater.constants import LOCK_FILE_NAME
from self_updater.errors import (
    GitCommandError,
    HookError,
    InstallError,
    RestartError,
    WorkspaceConflictError,
)
from self_updater.git import GitRepository
from self_updater.lock import WorkspaceLock
from self_updater.logging import get_logger
from self_updater.models import UpdateResult, UpdateStage
from self_updater.process import run_command
from self_updater.services import resolve_restart_command


class UpdateManager:
    """Keeps one workspace in sync with its remote branch and restarts the service.

    Typical flow:
    1. ``ensure_repository()``: clone on first use
    2. ``update_to_commit(sha)``: fetch, reset, install, restart
    """

    def __init__(
        self,
        config: UpdaterConfig,
        *,
        git: GitRepository | None = None,
        lock: WorkspaceLock | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._log = logger or get_logger("self_updater.updater")
        self._path = config.workspace.path
        self._git = git or GitRepository(self._path, logger=self._log)
        self._lock = lock or WorkspaceLock(
            self._path / LOCK_FILE_NAME,
            stale_after_seconds=config.workspace.lock_stale_after_seconds,
            logger=self._log,
        )
        self._state = UpdateStage.IDLE
        # Set by a clone, cleared once that checkout has been deployed.
        self._initial_deploy = False

    @property
    def state(self) -> UpdateStage:
        return self._state

    @property
    def workspace(self) -> Path:
        return self._path

    @property
    def remote_ref(self) -> str:
        return f"{self._config.repo.remote}/{self._config.repo.branch}"

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    async def ensure_repository(self) -> None:
        """Make sure the workspace is a clone of the tracked branch.

        Creates and clones a missing (or empty) path. Refuses to touch a
        non-empty directory that is not a git repository. The first update
        after a clone is a first deployment: no previous commit is reported.
        """
        if self._git.is_repository():
            return

        if self._path.exists():
            if not self._path.is_dir() or any(self._path.iterdir()):
                raise WorkspaceConflictError(
                    f"Local path {self._path} exists but is not an empty git repository"
                )
        else:
            self._path.mkdir(parents=True, exist_ok=True)

        repo = self._config.repo
        self._log.info(
            "updater_cloning",
            url=repo.url,
            branch=repo.branch,
            shallow=self._config.workspace.shallow_clone,
        )
        await self._git.clone(repo.url, repo.branch, shallow=self._config.workspace.shallow_clone)
        self._initial_deploy = True

    async def get_current_commit(self) -> str | None:
        """Return the workspace HEAD, or None when it cannot be resolved."""
        try:
            return await self._git.rev_parse("HEAD")
        except GitCommandError as exc:
            self._log.debug("updater_head_unresolved", error=str(exc))
            return None

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_to_commit(self, remote_commit: str) -> UpdateResult:
        """Bring the workspace to the remote branch tip and restart the service."""
        self._state = UpdateStage.ENSURING
        try:
            await self.ensure_repository()

            self._state = UpdateStage.LOCKING
            self._lock.acquire()
            try:
                return await self._do_update(remote_commit)
            finally:
                self._lock.release()
        finally:
            self._state = UpdateStage.IDLE

    async def _do_update(self, remote_commit: str) -> UpdateResult:
        repo = self._config.repo
        previous_commit = None if self._initial_deploy else await self.get_current_commit()
        result = UpdateResult(
            updated=False,
            previous_commit=previous_commit,
            current_commit=previous_commit,
        )

        self._state = UpdateStage.FETCHING
        self._log.info("updater_fetching", remote=repo.remote, branch=repo.branch)
        await self._git.fetch(repo.remote, repo.branch)
        result.steps_completed.append("git_fetch")

        self._state = UpdateStage.DECIDING
        if not await self._requires_update(previous_commit, remote_commit):
            self._log.debug("updater_up_to_date", commit=previous_commit)
            return result

        self._state = UpdateStage.UPDATING
        if await self._run_hook("pre", self._config.hooks.pre_update):
            result.steps_completed.append("pre_update_hook")

        await self._git.reset_hard(self.remote_ref)
        result.steps_completed.append("git_reset")
        current_commit = await self.get_current_commit()
        result.current_commit = current_commit

        self._state = UpdateStage.INSTALLING
        if await self._install_dependencies(previous_commit, current_commit):
            result.steps_completed.append("install")

        self._state = UpdateStage.RESTARTING
        await self._restart_service()
        result.steps_completed.append("restart")

        self._state = UpdateStage.HOOKED
        if await self._run_hook("post", self._config.hooks.post_update):
            result.steps_completed.append("post_update_hook")

        result.updated = True
        self._initial_deploy = False
        self._log.info(
            "updater_update_complete",
            previous_commit=previous_commit,
            current_commit=current_commit,
        )
        return result

    async def _requires_update(self, previous_commit: str | None, remote_commit: str) -> bool:
        if previous_commit != remote_commit:
            return True
        behind = await self._git.behind_count(self.remote_ref)
        if behind > 0:
            self._log.info("updater_behind_remote", behind=behind)
        return behind > 0

    async def _run_hook(self, name: str, command: str | None) -> bool:
        if not command:
            return False
        self._log.info("updater_hook", hook=f"{name}-update", command=command)
        await run_command(command, cwd=self._path, error_cls=HookError, log=self._log)
        return True

    async def _install_dependencies(
        self, previous_commit: str | None, current_commit: str | None
    ) -> bool:
        workspace = self._config.workspace
        if not workspace.auto_install:
            return False

        command = workspace.install_command
        if not previous_commit or not current_commit:
            self._log.info("updater_install_initial", command=command)
            await run_command(command, cwd=self._path, error_cls=InstallError, log=self._log)
            return True

        changed = await self._git.changed_files(
            previous_commit, current_commit, workspace.dependency_files
        )
        if not changed:
            self._log.debug("updater_dependencies_unchanged")
            return False

        self._log.info("updater_install_dependencies_changed", command=command, files=changed)
        await run_command(command, cwd=self._path, error_cls=InstallError, log=self._log)
        return True

    async def _restart_service(self) -> None:
        command = resolve_restart_command(self._config.service)
        self._log.info("updater_restarting", service=self._config.service.type, command=command)
        await run_command(command, cwd=self._path, error_cls=RestartError, log=self._log)
