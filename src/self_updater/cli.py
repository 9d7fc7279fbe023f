"""Command line interface.

Commands:
    init        write a configuration file from flags
    start       run the update loop (``--immediate`` checks right away)
    run-once    run a single update cycle and exit
    status      show local vs. remote commit and the last update time
    validate    validate the configuration file
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from self_updater import __version__
from self_updater.config import (
    CONFIG_VERSION,
    UpdaterConfig,
    get_settings,
    load_config,
    save_config,
    validate_config,
)
from self_updater.constants import (
    DEFAULT_INSTALL_COMMAND,
    DEFAULT_INTERVAL_SECONDS,
    LOCK_FILE_NAME,
)
from self_updater.errors import UpdaterError
from self_updater.git import GitRepository
from self_updater.lock import WorkspaceLock
from self_updater.logging import get_logger, setup_logging
from self_updater.resolver import CommitResolver
from self_updater.scheduler import UpdateScheduler
from self_updater.state import StateStore
from self_updater.updater import UpdateManager


def build_scheduler(config: UpdaterConfig, state_path: str | Path | None = None) -> UpdateScheduler:
    """Wire the resolver, orchestrator and state store for *config*."""
    workspace = config.workspace
    manager = UpdateManager(
        config,
        git=GitRepository(workspace.path, logger=get_logger("self_updater.git")),
        lock=WorkspaceLock(
            workspace.path / LOCK_FILE_NAME,
            stale_after_seconds=workspace.lock_stale_after_seconds,
            logger=get_logger("self_updater.lock"),
        ),
        logger=get_logger("self_updater.updater"),
    )
    resolver = CommitResolver(config.repo, logger=get_logger("self_updater.resolver"))
    store = StateStore(
        state_path or get_settings().state_path,
        logger=get_logger("self_updater.state"),
    )
    return UpdateScheduler(
        config,
        manager=manager,
        resolver=resolver,
        state_store=store,
        logger=get_logger("self_updater.scheduler"),
    )


def _config_from_args(args: argparse.Namespace) -> UpdaterConfig:
    raw: dict[str, Any] = {
        "version": CONFIG_VERSION,
        "repo": {
            "url": args.repo,
            "branch": args.branch,
            "remote": args.remote,
            "authToken": args.token,
        },
        "workspace": {
            "localPath": str(Path(args.path).expanduser().resolve()),
            "shallowClone": args.shallow_clone,
            "autoInstall": args.auto_install,
            "installCommand": args.install_command,
        },
        "service": {
            "type": args.type,
            "name": args.name,
            "restartCommand": args.restart_command,
            "dockerCompose": args.docker_compose,
            "dockerComposeService": args.compose_service,
            "dockerComposeFile": args.compose_file,
        },
        "schedule": {"intervalSeconds": args.interval, "jitterSeconds": args.jitter},
        "hooks": {"preUpdate": args.pre, "postUpdate": args.post},
        "logging": {"level": args.log_level, "file": args.log_file},
    }
    for section in raw.values():
        if isinstance(section, dict):
            for key in [k for k, v in section.items() if v is None]:
                del section[key]
    return validate_config(raw)


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    path = save_config(config, args.config)
    print(f"Configuration saved at {path}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    load_config(args.config)
    print("Configuration is valid")
    return 0


async def _start(config: UpdaterConfig, immediate: bool) -> None:
    scheduler = build_scheduler(config)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops.
            pass
    await scheduler.run_forever(immediate=immediate)


def cmd_start(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config.logging)
    asyncio.run(_start(config, args.immediate))
    return 0


def cmd_run_once(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config.logging)
    result = asyncio.run(build_scheduler(config).run_once())
    log = get_logger("self_updater.cli")
    log.info("run_once_finished", **result.to_dict())
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    setup_logging(config.logging)
    report = asyncio.run(build_scheduler(config).collect_status())
    print("Up to date" if report.up_to_date else "Update available")
    print(f"Local commit:  {report.local_commit or 'unknown'}")
    print(f"Remote commit: {report.remote_commit}")
    if report.last_update:
        print(f"Last update:   {report.last_update}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="self-updater",
        description="Self-updating service manager",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Configuration file (default: $UPDATER_CONFIG_PATH or updater.config.json)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Initialize configuration")
    init.add_argument("-r", "--repo", required=True, help="Git repository URL")
    init.add_argument("-b", "--branch", default="main", help="Branch (default: main)")
    init.add_argument("-p", "--path", required=True, help="Local path of the project")
    init.add_argument("--remote", default="origin", help="Git remote name (default: origin)")
    init.add_argument(
        "-t", "--type", required=True, choices=["pm2", "docker", "command"], help="Service type"
    )
    init.add_argument("-n", "--name", help="Service name")
    init.add_argument(
        "-i",
        "--interval",
        type=int,
        default=DEFAULT_INTERVAL_SECONDS,
        help="Check interval in seconds",
    )
    init.add_argument("-j", "--jitter", type=int, default=0, help="Random jitter in seconds")
    init.add_argument("--token", help="Authentication token for Git provider APIs")
    init.add_argument("--pre", help="Command executed before updating")
    init.add_argument("--post", help="Command executed after restarting")
    init.add_argument(
        "--auto-install",
        action="store_true",
        help="Run the install command when dependencies change",
    )
    init.add_argument(
        "--install-command",
        default=DEFAULT_INSTALL_COMMAND,
        help="Command used to install dependencies",
    )
    init.add_argument("--shallow-clone", action="store_true", help="Clone with depth=1")
    init.add_argument(
        "--docker-compose", action="store_true", help="Use docker compose instead of docker restart"
    )
    init.add_argument("--compose-service", help="Docker compose service name")
    init.add_argument("--compose-file", help="Docker compose file path")
    init.add_argument("--restart-command", help="Custom restart command")
    init.add_argument(
        "--log-level",
        default="info",
        choices=["error", "warn", "info", "debug"],
        help="Log level",
    )
    init.add_argument("--log-file", help="Optional log file path")
    init.set_defaults(func=cmd_init)

    start = sub.add_parser("start", help="Start the updater loop")
    start.add_argument(
        "--immediate", action="store_true", help="Run an update check immediately on startup"
    )
    start.set_defaults(func=cmd_start)

    run_once = sub.add_parser("run-once", help="Run a single update cycle and exit")
    run_once.set_defaults(func=cmd_run_once)

    status = sub.add_parser("status", help="Show repository synchronization status")
    status.set_defaults(func=cmd_status)

    validate = sub.add_parser("validate", help="Validate the current configuration")
    validate.set_defaults(func=cmd_validate)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging()
    log = get_logger("self_updater.cli")
    try:
        return int(args.func(args))
    except UpdaterError as exc:
        log.error(
            "command_failed",
            command=args.command,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return 1
    except KeyboardInterrupt:
        log.info("shutdown_requested")
        return 130
