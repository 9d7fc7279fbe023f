"""Tests for service variants and restart-command derivation."""

import pytest

from self_updater.config import ServiceConfig
from self_updater.errors import ConfigurationError
from self_updater.services import (
    CommandService,
    ComposeService,
    ContainerService,
    ProcessManagerService,
    build_service,
    resolve_restart_command,
)


class TestBuildService:
    def test_pm2(self):
        service = build_service(ServiceConfig(type="pm2", name="api"))
        assert isinstance(service, ProcessManagerService)
        assert service.restart_command == "pm2 reload api"

    def test_docker_container(self):
        service = build_service(ServiceConfig(type="docker", name="api"))
        assert isinstance(service, ContainerService)
        assert service.restart_command == "docker restart api"

    def test_compose_with_file_and_service(self):
        service = build_service(
            ServiceConfig(
                type="docker",
                name="api",
                docker_compose=True,
                docker_compose_service="web",
                docker_compose_file="deploy/compose.yml",
            )
        )
        assert isinstance(service, ComposeService)
        assert service.restart_command == "docker compose -f deploy/compose.yml restart web"

    def test_compose_falls_back_to_name(self):
        service = build_service(ServiceConfig(type="docker", name="api", docker_compose=True))
        assert service.restart_command == "docker compose restart api"

    def test_compose_without_service_restarts_project(self):
        service = build_service(ServiceConfig(type="docker", docker_compose=True))
        assert service.restart_command == "docker compose restart"

    def test_command(self):
        service = build_service(ServiceConfig(type="command", restart_command="echo restarted"))
        assert isinstance(service, CommandService)
        assert service.restart_command == "echo restarted"

    def test_pm2_without_name_uses_explicit_command(self):
        service = build_service(ServiceConfig(type="pm2", restart_command="pm2 reload all"))
        assert service == CommandService(command="pm2 reload all")

    def test_names_are_shell_quoted(self):
        service = build_service(ServiceConfig(type="pm2", name="my app"))
        assert service.restart_command == "pm2 reload 'my app'"

    def test_missing_parameters_raise(self):
        config = ServiceConfig.model_construct(type="pm2", name=None, restart_command=None)
        with pytest.raises(ConfigurationError):
            build_service(config)


class TestResolveRestartCommand:
    def test_explicit_command_overrides_variant(self):
        config = ServiceConfig(type="pm2", name="api", restart_command="systemctl restart api")
        assert resolve_restart_command(config) == "systemctl restart api"

    def test_derived_command(self):
        assert resolve_restart_command(ServiceConfig(type="docker", name="db")) == (
            "docker restart db"
        )
