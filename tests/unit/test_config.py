"""Unit tests for the configuration module."""

import json
from pathlib import Path

import pytest

from self_updater.config import (
    CONFIG_VERSION,
    Settings,
    UpdaterConfig,
    get_settings,
    load_config,
    migrate_config,
    save_config,
    validate_config,
)
from self_updater.errors import ConfigurationError


def _raw_config(tmp_path: Path, **overrides) -> dict:
    """Build a valid version-2 config record with per-section overrides."""
    raw = {
        "version": CONFIG_VERSION,
        "repo": {"url": "https://github.com/acme/api.git", "branch": "main"},
        "workspace": {"localPath": str(tmp_path / "workspace")},
        "service": {"type": "pm2", "name": "api"},
        "schedule": {"intervalSeconds": 60, "jitterSeconds": 5},
    }
    raw.update(overrides)
    return raw


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.config_path == "updater.config.json"
        assert settings.state_path == ".self-updater/state.json"
        assert settings.is_development is False
        assert settings.git_token is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("UPDATER_ENVIRONMENT", "development")
        monkeypatch.setenv("UPDATER_GIT_TOKEN", "secret")
        settings = Settings(_env_file=None)
        assert settings.is_development is True
        assert settings.git_token.get_secret_value() == "secret"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestValidateConfig:
    """Tests for validation of version-2 records."""

    def test_valid_config_applies_defaults(self, tmp_path):
        config = validate_config(_raw_config(tmp_path))

        assert config.repo.remote == "origin"
        assert config.repo.auth_token is None
        assert config.workspace.shallow_clone is False
        assert config.workspace.auto_install is False
        assert config.workspace.install_command == "npm install"
        assert "package.json" in config.workspace.dependency_files
        assert config.schedule.interval_seconds == 60
        assert config.schedule.jitter_seconds == 5
        assert config.hooks.pre_update is None
        assert config.logging.level == "info"

    def test_snake_case_keys_are_accepted(self, tmp_path):
        raw = _raw_config(tmp_path, workspace={"local_path": str(tmp_path / "ws")})
        config = validate_config(raw)
        assert config.workspace.local_path == str(tmp_path / "ws")

    def test_relative_local_path_is_made_absolute(self, tmp_path):
        config = validate_config(_raw_config(tmp_path, workspace={"localPath": "app"}))
        assert Path(config.workspace.local_path).is_absolute()

    def test_interval_below_minimum_rejected(self, tmp_path):
        raw = _raw_config(tmp_path, schedule={"intervalSeconds": 10})
        with pytest.raises(ConfigurationError, match="intervalSeconds|interval_seconds"):
            validate_config(raw)

    def test_negative_jitter_rejected(self, tmp_path):
        raw = _raw_config(tmp_path, schedule={"intervalSeconds": 30, "jitterSeconds": -1})
        with pytest.raises(ConfigurationError):
            validate_config(raw)

    def test_missing_repo_url_rejected(self, tmp_path):
        raw = _raw_config(tmp_path, repo={"branch": "main"})
        with pytest.raises(ConfigurationError, match="url"):
            validate_config(raw)

    def test_command_service_requires_restart_command(self, tmp_path):
        raw = _raw_config(tmp_path, service={"type": "command"})
        with pytest.raises(ConfigurationError, match="restartCommand"):
            validate_config(raw)

    def test_pm2_service_requires_name(self, tmp_path):
        raw = _raw_config(tmp_path, service={"type": "pm2"})
        with pytest.raises(ConfigurationError, match="pm2"):
            validate_config(raw)

    def test_docker_compose_without_name_is_valid(self, tmp_path):
        raw = _raw_config(tmp_path, service={"type": "docker", "dockerCompose": True})
        config = validate_config(raw)
        assert config.service.docker_compose is True

    def test_unknown_service_type_rejected(self, tmp_path):
        raw = _raw_config(tmp_path, service={"type": "systemd", "name": "api"})
        with pytest.raises(ConfigurationError):
            validate_config(raw)

    def test_warning_level_alias(self, tmp_path):
        config = validate_config(_raw_config(tmp_path, logging={"level": "WARNING"}))
        assert config.logging.level == "warn"

    def test_config_instance_passes_through(self, tmp_path):
        config = validate_config(_raw_config(tmp_path))
        assert validate_config(config) is config


class TestMigrateConfig:
    """Tests for the legacy → versioned migration."""

    def test_legacy_record_is_migrated(self, tmp_path):
        legacy = {
            "repoUrl": "https://gitlab.com/acme/api.git",
            "branch": "develop",
            "localPath": str(tmp_path / "ws"),
            "serviceType": "docker",
            "serviceName": "api",
            "checkInterval": 120,
        }

        migrated = migrate_config(legacy)

        assert migrated["version"] == CONFIG_VERSION
        assert migrated["repo"] == {"url": legacy["repoUrl"], "branch": "develop"}
        assert migrated["service"] == {"type": "docker", "name": "api"}
        assert migrated["schedule"] == {"intervalSeconds": 120}
        # Input is never mutated
        assert "version" not in legacy

        config = validate_config(legacy)
        assert config.service.name == "api"
        assert config.schedule.interval_seconds == 120

    def test_legacy_record_without_interval_gets_default(self, tmp_path):
        legacy = {
            "repoUrl": "https://github.com/acme/api",
            "localPath": str(tmp_path / "ws"),
            "serviceType": "pm2",
            "serviceName": "api",
        }
        config = validate_config(legacy)
        assert config.repo.branch == "main"
        assert config.schedule.interval_seconds == 60

    def test_current_version_passes_through(self, tmp_path):
        raw = _raw_config(tmp_path)
        assert migrate_config(raw) == raw

    def test_unknown_version_rejected(self):
        with pytest.raises(ConfigurationError, match="Unsupported configuration version"):
            migrate_config({"version": 99})

    def test_non_object_rejected(self):
        with pytest.raises(ConfigurationError):
            migrate_config(["not", "an", "object"])


class TestLoadSaveConfig:
    """Tests for reading and writing the config file."""

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError, match="No configuration found"):
            load_config(tmp_path / "missing.json")

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "updater.config.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Unable to read"):
            load_config(path)

    def test_undecodable_file_raises(self, tmp_path):
        path = tmp_path / "updater.config.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with pytest.raises(ConfigurationError, match="Unable to read"):
            load_config(path)

    def test_save_and_load_keeps_camel_case_and_token(self, tmp_path):
        raw = _raw_config(tmp_path, repo={"url": "https://github.com/acme/api", "authToken": "t0k"})
        config = validate_config(raw)
        path = save_config(config, tmp_path / "conf" / "updater.config.json")

        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk["repo"]["authToken"] == "t0k"
        assert on_disk["workspace"]["localPath"] == config.workspace.local_path
        assert "pre_update" not in json.dumps(on_disk)

        loaded = load_config(path)
        assert isinstance(loaded, UpdaterConfig)
        assert loaded == config

    def test_env_token_used_when_config_has_none(self, tmp_path, monkeypatch):
        path = save_config(validate_config(_raw_config(tmp_path)), tmp_path / "c.json")
        monkeypatch.setenv("UPDATER_GIT_TOKEN", "from-env")
        get_settings.cache_clear()

        config = load_config(path)

        assert config.repo.token == "from-env"

    def test_config_path_from_settings(self, tmp_path, monkeypatch):
        path = save_config(validate_config(_raw_config(tmp_path)), tmp_path / "env.json")
        monkeypatch.setenv("UPDATER_CONFIG_PATH", str(path))
        get_settings.cache_clear()

        assert load_config().service.name == "api"
