"""Persisted updater state (``{"lastCommit": ..., "updatedAt": ...}``)."""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from self_updater.logging import get_logger
from self_updater.models import UpdaterState


class StateStore:
    """JSON state file, written atomically."""

    def __init__(
        self,
        path: str | Path,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._path = Path(path)
        self._log = logger or get_logger("self_updater.state")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> UpdaterState:
        """Read the state file; a missing or unreadable file yields empty state."""
        if not self._path.exists():
            return UpdaterState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._log.warning("state_load_failed", path=str(self._path), error=str(exc))
            return UpdaterState()
        if not isinstance(data, dict):
            self._log.warning("state_load_failed", path=str(self._path), error="not an object")
            return UpdaterState()
        return UpdaterState.from_dict(data)

    def save(self, state: UpdaterState) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
