"""Data models produced by an update cycle and persisted between runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class UpdateStage(StrEnum):
    """Stage of the orchestrator within one update attempt."""

    IDLE = "idle"
    ENSURING = "ensuring"
    LOCKING = "locking"
    FETCHING = "fetching"
    DECIDING = "deciding"
    UPDATING = "updating"
    INSTALLING = "installing"
    RESTARTING = "restarting"
    HOOKED = "hooked"


@dataclass
class UpdateResult:
    """Result of one ``update_to_commit`` call. Never persisted as-is."""

    updated: bool
    previous_commit: str | None = None
    current_commit: str | None = None
    steps_completed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "previous_commit": self.previous_commit,
            "current_commit": self.current_commit,
            "steps_completed": self.steps_completed,
        }


@dataclass
class UpdaterState:
    """Last-known commit persisted by the scheduler."""

    last_commit: str | None = None
    updated_at: str | None = None  # ISO-8601

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.last_commit:
            data["lastCommit"] = self.last_commit
        if self.updated_at:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UpdaterState:
        last_commit = data.get("lastCommit")
        updated_at = data.get("updatedAt")
        return cls(
            last_commit=str(last_commit) if last_commit else None,
            updated_at=str(updated_at) if updated_at else None,
        )


@dataclass
class StatusReport:
    """Local vs. remote synchronisation status."""

    local_commit: str | None
    remote_commit: str
    last_update: str | None = None

    @property
    def up_to_date(self) -> bool:
        return self.local_commit == self.remote_commit

    def to_dict(self) -> dict[str, Any]:
        return {
            "up_to_date": self.up_to_date,
            "local_commit": self.local_commit,
            "remote_commit": self.remote_commit,
            "last_update": self.last_update,
        }
