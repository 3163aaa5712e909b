"""
Command-line interface for the switchboard.

This module provides the main CLI entry point with commands for:
- run: Keep the switch groups reconciled against the server
- status: Print each switch group's current state
- set: Toggle one switch group through the normal toggle flow
- config: Configuration management
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .adguard_client import AdGuardClient
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_CONFIG_PATH,
    LoggingConfig,
    SwitchGroupConfig,
    SystemConfig,
    apply_env_overrides,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from .enums import GroupState, LogLevel
from .exceptions import ConfigInvalid
from .models import FetchRequest
from .presentation import RecordingPresenter
from .reconciler import run_service
from .state_store import ClientConfigSlots, FileKeyValueStore, TimerSlots
from .switch_group import SwitchGroup, build_switch_groups


def create_logger(logging_config: LoggingConfig, verbose: bool = False) -> AuditLogger:
    """Create the logger described by the logging configuration."""
    try:
        level = LogLevel(logging_config.level.lower())
    except ValueError:
        level = LogLevel.INFO
    if verbose:
        level = LogLevel.DEBUG

    logger = AuditLogger(output_format=logging_config.output_format, min_level=level)
    if logging_config.audit_mode and logging_config.audit_signing_key:
        logger.enable_audit_mode(logging_config.audit_signing_key)
    return logger


def load_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Load the configuration named on the command line, falling back to defaults."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH
    config = load_config_from_file(config_path)
    if config is None:
        if args.config:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
        config = create_default_config()
    return apply_env_overrides(config)


async def _load_groups(
    client: AdGuardClient,
    config: SystemConfig,
    presenter: RecordingPresenter,
    logger: AuditLogger,
) -> list[SwitchGroup]:
    store = FileKeyValueStore(config.persistence.storage_dir, config.persistence.hmac_secret)
    snapshot = await client.fetch(FetchRequest.everything())
    if not snapshot.available and snapshot.error is not None:
        print(f"AdGuard Home is not reachable: {snapshot.error.message}", file=sys.stderr)
    return build_switch_groups(
        config.switches,
        client,
        TimerSlots(store),
        ClientConfigSlots(store),
        presenter,
        snapshot,
        logger=logger,
    )


async def show_status(config: SystemConfig, logger: AuditLogger) -> int:
    presenter = RecordingPresenter()
    async with AdGuardClient(config.server, logger=logger) as client:
        groups = await _load_groups(client, config, presenter, logger)

    if not groups:
        print("No switch groups configured.")
        return 1

    width = max(len(group.name) for group in groups)
    for group in groups:
        print(f"{group.name:<{width}}  {group.current_state.value}")
    return 0 if all(g.current_state is not GroupState.UNAVAILABLE for g in groups) else 1


async def set_group(
    config: SystemConfig,
    logger: AuditLogger,
    group_name: str,
    desired: bool,
    timeout_minutes: Optional[int] = None,
) -> int:
    presenter = RecordingPresenter()
    async with AdGuardClient(config.server, logger=logger) as client:
        groups = await _load_groups(client, config, presenter, logger)
        group = next((g for g in groups if g.name == group_name), None)
        if group is None:
            print(f"Error: No switch group named '{group_name}'", file=sys.stderr)
            return 1

        if timeout_minutes is None:
            timeout_minutes = group.config.timeouts[0]
        state = await group.on_user_toggle(timeout_minutes, desired)
        # The persisted deadline is picked up by the next 'run'.
        group.timer.cancel()

    print(f"{group.name}: {state.value}")
    return 0 if state is GroupState.from_bool(desired) else 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = load_config(args)
    if config is None:
        return 1
    logger = create_logger(config.logging, verbose=args.verbose)
    logger.info("CLI", f"Connecting to {config.server.base_url}")
    return asyncio.run(run_service(config, logger=logger))


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    config = load_config(args)
    if config is None:
        return 1
    logger = create_logger(config.logging, verbose=args.verbose)
    return asyncio.run(show_status(config, logger))


def cmd_set(args: argparse.Namespace) -> int:
    """Handle the 'set' command."""
    config = load_config(args)
    if config is None:
        return 1
    if args.timeout is not None and args.timeout < 0:
        print("Error: --timeout must not be negative", file=sys.stderr)
        return 1
    logger = create_logger(config.logging, verbose=args.verbose)
    return asyncio.run(set_group(
        config,
        logger,
        group_name=args.group,
        desired=(args.state == "on"),
        timeout_minutes=args.timeout,
    ))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Server: {config.server.base_url}")
        print(f"  Username: {config.server.username or '(none)'}")
        print(f"  Interval: {config.interval_ms}ms")
        print(f"  Request timeout: {config.server.timeout_ms}ms")
        print(f"  Storage: {config.persistence.storage_dir}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Switches: {len(config.switches)}")
        for raw in config.switches:
            name = raw.get("name", "?") if isinstance(raw, dict) else "?"
            print(f"    - {name}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        config = create_default_config()
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        errors = 0
        for raw in config.switches:
            try:
                SwitchGroupConfig.from_dict(raw)
            except ConfigInvalid as e:
                print(f"Invalid switch: {e.message}", file=sys.stderr)
                errors += 1
        if errors:
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="adguard-switchboard",
        description="Timed on/off switches for AdGuard Home blocking",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' command
    run_parser = subparsers.add_parser(
        "run",
        help="Keep switch groups reconciled with the server",
    )
    run_parser.set_defaults(func=cmd_run)

    # 'status' command
    status_parser = subparsers.add_parser(
        "status",
        help="Print each switch group's state",
    )
    status_parser.set_defaults(func=cmd_status)

    # 'set' command
    set_parser = subparsers.add_parser(
        "set",
        help="Switch a group on (blocking) or off",
    )
    set_parser.add_argument(
        "group",
        help="Name of the switch group",
    )
    set_parser.add_argument(
        "state",
        choices=["on", "off"],
        help="on = blocking, off = disabled",
    )
    set_parser.add_argument(
        "--timeout", "-t",
        type=int,
        default=None,
        help="Minutes until the group reverts to its default (default: first configured)",
    )
    set_parser.set_defaults(func=cmd_set)

    for sub in (run_parser, status_parser, set_parser):
        sub.add_argument(
            "--config", "-c",
            help="Path to configuration file",
        )
        sub.add_argument(
            "--verbose", "-v",
            action="store_true",
            help="Enable debug logging",
        )

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
