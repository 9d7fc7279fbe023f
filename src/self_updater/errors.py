"""Exception taxonomy for the self-updater.

Only :class:`ConfigurationError` and :class:`WorkspaceConflictError` are fatal
to the whole process; everything else fails a single cycle and is retried on
the next scheduled tick.
"""

from __future__ import annotations


class UpdaterError(Exception):
    """Base class for every error raised by the updater."""


class ConfigurationError(UpdaterError):
    """Raised when settings are missing or invalid."""


class WorkspaceConflictError(UpdaterError):
    """Raised when the workspace path is non-empty but not a git repository."""


class ConcurrentUpdateError(UpdaterError):
    """Raised when another update holds the workspace lock."""


class ResolutionError(UpdaterError):
    """Raised when no strategy could determine the remote commit."""


class CommandError(UpdaterError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class GitCommandError(CommandError):
    """Raised when a git invocation fails."""


class HookError(CommandError):
    """Raised when a pre- or post-update hook fails."""


class InstallError(CommandError):
    """Raised when the dependency install command fails."""


class RestartError(CommandError):
    """Raised when the service restart command fails."""


FATAL_ERRORS: tuple[type[UpdaterError], ...] = (ConfigurationError, WorkspaceConflictError)
