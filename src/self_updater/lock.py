"""Cross-process update lock scoped to a workspace.

The lock is a zero-byte marker file created with exclusive-create semantics;
its existence means an update is in progress. The holder also keeps an
advisory ``flock`` on the marker for as long as it holds the lock, so a
crashed holder is detectable: a marker older than ``stale_after_seconds``
whose ``flock`` can be taken is left over and gets reused with a warning.
A marker whose ``flock`` is still held is never overridden, however old.
"""

from __future__ import annotations

import fcntl
import os
import time
from pathlib import Path
from types import TracebackType

import structlog

from self_updater.constants import DEFAULT_LOCK_STALE_AFTER_SECONDS
from self_updater.errors import ConcurrentUpdateError
from self_updater.logging import get_logger


class WorkspaceLock:
    """Exclusive, non-blocking lock file. Never queues or waits."""

    def __init__(
        self,
        path: str | Path,
        *,
        stale_after_seconds: int = DEFAULT_LOCK_STALE_AFTER_SECONDS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._path = Path(path)
        self._stale_after = stale_after_seconds
        self._log = logger or get_logger("self_updater.lock")
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._fd is not None

    # ------------------------------------------------------------------
    # Marker helpers
    # ------------------------------------------------------------------

    def _open(self, *, create: bool) -> int | None:
        flags = os.O_RDWR | (os.O_CREAT | os.O_EXCL if create else 0)
        try:
            return os.open(self._path, flags, 0o644)
        except (FileExistsError, FileNotFoundError):
            return None

    def _is_marker(self, fd: int) -> bool:
        """True when *fd* still refers to the file at the lock path."""
        try:
            current = self._path.stat()
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (current.st_dev, current.st_ino) == (opened.st_dev, opened.st_ino)

    def _claim(self, fd: int) -> bool:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        # The marker may have been released and replaced while we waited to open it.
        if not self._is_marker(fd):
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)
            return False
        self._fd = fd
        return True

    def _age_seconds(self) -> float | None:
        try:
            return time.time() - self._path.stat().st_mtime
        except FileNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def acquire(self) -> None:
        """Create (or take over a stale) lock file, else raise :class:`ConcurrentUpdateError`."""
        fd = self._open(create=True)
        if fd is not None and self._claim(fd):
            return

        age = self._age_seconds()
        if self._stale_after > 0 and age is not None and age >= self._stale_after:
            fd = self._open(create=False)
            if fd is not None and self._claim(fd):
                os.utime(self._path)
                self._log.warning(
                    "stale_lock_overridden",
                    lock=str(self._path),
                    age_seconds=round(age),
                    stale_after_seconds=self._stale_after,
                )
                return

        raise ConcurrentUpdateError(f"Another update is already running (lock {self._path})")

    def release(self) -> None:
        """Remove the lock file if this instance holds it."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            if self._is_marker(fd):
                self._path.unlink(missing_ok=True)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def __enter__(self) -> WorkspaceLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
