"""Managed service variants and their restart commands."""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass

from self_updater.config import ServiceConfig
from self_updater.errors import ConfigurationError


class ManagedService(ABC):
    """A service the updater knows how to restart."""

    @property
    @abstractmethod
    def restart_command(self) -> str:
        """Shell command that restarts the service."""


@dataclass(frozen=True)
class ProcessManagerService(ManagedService):
    """A pm2-managed process, reloaded by name."""

    name: str

    @property
    def restart_command(self) -> str:
        return f"pm2 reload {shlex.quote(self.name)}"


@dataclass(frozen=True)
class ContainerService(ManagedService):
    """A plain docker container, restarted by name."""

    name: str

    @property
    def restart_command(self) -> str:
        return f"docker restart {shlex.quote(self.name)}"


@dataclass(frozen=True)
class ComposeService(ManagedService):
    """A docker compose service; no service name restarts the whole project."""

    service: str | None = None
    compose_file: str | None = None

    @property
    def restart_command(self) -> str:
        segments = ["docker", "compose"]
        if self.compose_file:
            segments += ["-f", shlex.quote(self.compose_file)]
        segments.append("restart")
        if self.service:
            segments.append(shlex.quote(self.service))
        return " ".join(segments)


@dataclass(frozen=True)
class CommandService(ManagedService):
    """Any service restarted by an explicit command."""

    command: str

    @property
    def restart_command(self) -> str:
        return self.command


def build_service(config: ServiceConfig) -> ManagedService:
    """Materialise the configured service variant."""
    if config.type == "pm2" and config.name:
        return ProcessManagerService(name=config.name)
    if config.type == "docker":
        if config.docker_compose:
            return ComposeService(
                service=config.docker_compose_service or config.name,
                compose_file=config.docker_compose_file,
            )
        if config.name:
            return ContainerService(name=config.name)
    if config.restart_command:
        return CommandService(command=config.restart_command)
    raise ConfigurationError(f"Service of type {config.type!r} is missing its parameters")


def resolve_restart_command(config: ServiceConfig) -> str:
    """The explicit restart command if set, else the one derived from the variant."""
    if config.restart_command:
        return config.restart_command
    return build_service(config).restart_command
