"""Configuration management for the self-updater.

Two layers:

- ``Settings``: process-level settings read from ``UPDATER_*`` environment
  variables and an optional ``.env`` file (where the config and state files
  live, the runtime environment, a fallback provider token).
- ``UpdaterConfig``: the versioned JSON configuration file describing the
  tracked repository, the workspace, the managed service, the schedule,
  hooks and logging.

Raw config records go through :func:`migrate_config` (a pure transformation
from any known version to the current one) and are then validated by pydantic.
"""

import json
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from self_updater.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DEPENDENCY_FILES,
    DEFAULT_INSTALL_COMMAND,
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_LOCK_STALE_AFTER_SECONDS,
    DEFAULT_STATE_PATH,
    MIN_INTERVAL_SECONDS,
)
from self_updater.errors import ConfigurationError

CONFIG_VERSION = 2

LogLevel = Literal["error", "warn", "info", "debug"]
ServiceType = Literal["pm2", "docker", "command"]

_LEVEL_ALIASES = {"warning": "warn", "critical": "error", "fatal": "error"}


class Settings(BaseSettings):
    """Process settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="UPDATER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config_path: str = Field(default=DEFAULT_CONFIG_PATH, description="Config file path")
    state_path: str = Field(default=DEFAULT_STATE_PATH, description="State file path")
    environment: str = Field(default="production", description="Environment name")
    log_level: str | None = Field(
        default=None, description="Overrides the config file's logging level"
    )
    git_token: SecretStr | None = Field(
        default=None, description="Provider API token used when the config has none"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ------------------------------------------------------------------
# Versioned configuration file
# ------------------------------------------------------------------


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class RepositoryConfig(_ConfigModel):
    """The tracked remote repository."""

    url: str
    branch: str = "main"
    remote: str = "origin"
    auth_token: SecretStr | None = None

    @field_validator("url", "branch", "remote")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_serializer("auth_token")
    def _dump_token(self, value: SecretStr | None) -> str | None:
        return value.get_secret_value() if value else None

    @property
    def token(self) -> str | None:
        return self.auth_token.get_secret_value() if self.auth_token else None


class WorkspaceConfig(_ConfigModel):
    """The local clone the updater owns."""

    local_path: str
    shallow_clone: bool = False
    auto_install: bool = False
    install_command: str = DEFAULT_INSTALL_COMMAND
    dependency_files: tuple[str, ...] = DEFAULT_DEPENDENCY_FILES
    lock_stale_after_seconds: int = Field(default=DEFAULT_LOCK_STALE_AFTER_SECONDS, ge=0)

    @field_validator("local_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return os.path.abspath(os.path.expanduser(value.strip()))

    @property
    def path(self) -> Path:
        return Path(self.local_path)


class ServiceConfig(_ConfigModel):
    """The managed service. Exactly one variant is active per config."""

    type: ServiceType
    name: str | None = None
    restart_command: str | None = None
    docker_compose: bool = False
    docker_compose_service: str | None = None
    docker_compose_file: str | None = None

    @model_validator(mode="after")
    def _check_variant(self) -> "ServiceConfig":
        if self.restart_command:
            return self
        if self.type == "command":
            raise ValueError("service type 'command' requires restartCommand")
        if self.type == "pm2" and not self.name:
            raise ValueError("service type 'pm2' requires a name")
        if self.type == "docker" and not self.docker_compose and not self.name:
            raise ValueError("service type 'docker' requires a container name")
        return self


class ScheduleConfig(_ConfigModel):
    interval_seconds: int = Field(default=DEFAULT_INTERVAL_SECONDS, ge=MIN_INTERVAL_SECONDS)
    jitter_seconds: int = Field(default=0, ge=0)


class HooksConfig(_ConfigModel):
    pre_update: str | None = None
    post_update: str | None = None


class LoggingConfig(_ConfigModel):
    level: LogLevel = "info"
    file: str | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _LEVEL_ALIASES.get(lowered, lowered)
        return value


class UpdaterConfig(_ConfigModel):
    """Canonical (current-version) updater configuration."""

    version: Literal[2] = CONFIG_VERSION
    repo: RepositoryConfig
    workspace: WorkspaceConfig
    service: ServiceConfig
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the on-disk camelCase shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ------------------------------------------------------------------
# Migration / validation
# ------------------------------------------------------------------


def _drop_none(record: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in record.items() if value is not None}


def _migrate_v1(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Legacy flat shape: repoUrl, branch, localPath, serviceType, serviceName, checkInterval."""
    return {
        "version": CONFIG_VERSION,
        "repo": _drop_none({"url": raw.get("repoUrl"), "branch": raw.get("branch")}),
        "workspace": _drop_none({"localPath": raw.get("localPath")}),
        "service": _drop_none({"type": raw.get("serviceType"), "name": raw.get("serviceName")}),
        "schedule": _drop_none({"intervalSeconds": raw.get("checkInterval")}),
    }


def migrate_config(raw: Any) -> dict[str, Any]:
    """Transform a raw config record of any known version to the current shape.

    A record without ``version`` is version 1. Pure: *raw* is never mutated.
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration must be a JSON object")

    version = raw.get("version", 1)
    if version == CONFIG_VERSION:
        return dict(raw)
    if version == 1:
        return _migrate_v1(raw)
    raise ConfigurationError(f"Unsupported configuration version: {version!r}")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "config"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def validate_config(raw: Any) -> UpdaterConfig:
    """Migrate and validate a raw config record."""
    if isinstance(raw, UpdaterConfig):
        return raw
    migrated = migrate_config(raw)
    try:
        return UpdaterConfig.model_validate(migrated)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {_format_validation_error(exc)}"
        ) from exc


def _config_path(path: str | Path | None) -> Path:
    return Path(path) if path is not None else Path(get_settings().config_path)


def load_config(path: str | Path | None = None) -> UpdaterConfig:
    """Load, migrate and validate the configuration file.

    When the file carries no provider token, ``UPDATER_GIT_TOKEN`` is used.
    """
    config_path = _config_path(path)
    if not config_path.exists():
        raise ConfigurationError(
            f"No configuration found at {config_path}. Run 'self-updater init' first."
        )
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unable to read configuration {config_path}: {exc}") from exc

    config = validate_config(raw)

    token = get_settings().git_token
    if config.repo.auth_token is None and token is not None:
        repo = config.repo.model_copy(update={"auth_token": token})
        config = config.model_copy(update={"repo": repo})
    return config


def save_config(config: UpdaterConfig, path: str | Path | None = None) -> Path:
    """Atomically write *config* in its camelCase on-disk shape."""
    config_path = _config_path(path)
    try:
        if config_path.parent != Path():
            config_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = config_path.with_suffix(config_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(config_path)
    except OSError as exc:
        raise ConfigurationError(f"Unable to write configuration {config_path}: {exc}") from exc
    return config_path
