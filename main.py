#!/usr/bin/env python3
"""
main.py - Main entry point for the agent fleet.

This script provides CLI access to:
1. Run the Q-learning fleet (persistent identities, decision ticks)
2. Run the rotating fleet (timed sessions, fresh identities)
3. Write a default configuration file

Usage:
    python main.py run                          Start the learning fleet
    python main.py run --agents 5 --dry-run     Five agents in a simulated world
    python main.py rotate --host example.org    Rotating sessions only
    python main.py init-config config.yaml      Write default settings

SAFETY NOTE:
The fleet is intended to be used only where automation is explicitly
allowed by the server owner. Do not use this in violation of any
server's terms of service.
"""

import argparse
import asyncio
import logging
import sys

from fleet import FleetManager
from integration import ClientConfig, create_client
from utils import FleetConfig, MAX_AGENTS, load_fleet_config, save_config, set_seed, setup_logging

logger = logging.getLogger(__name__)


def build_config(args, mode: str) -> FleetConfig:
    """Load the config file and apply command line overrides."""
    config = load_fleet_config(args.config)
    config.mode = mode

    if args.agents is not None:
        config.agent_count = args.agents
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.dry_run:
        config.dry_run = True
    if args.seed is not None:
        config.seed = args.seed

    # re-run validation after overrides
    return FleetConfig(**vars(config))


def run_fleet(args, mode: str) -> int:
    """Run the fleet until interrupted."""
    try:
        config = build_config(args, mode)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if config.seed is not None:
        set_seed(config.seed)

    logger.info(f"Mode: {config.mode} | Agents: {config.agent_count} | "
                f"Server: {config.server.host}:{config.server.port} "
                f"(version {config.server.version}) | Dry run: {config.dry_run}")

    try:
        client = create_client(
            ClientConfig(
                host=config.server.host,
                port=config.server.port,
                version=config.server.version,
                dry_run=config.dry_run
            ),
            seed=config.seed
        )
    except RuntimeError as e:
        logger.error(str(e))
        return 1

    manager = FleetManager(config, client)
    asyncio.run(manager.run_forever())
    return 0


def init_config(args) -> int:
    """Write the default configuration to a file."""
    save_config(FleetConfig().to_dict(), args.path)
    logger.info(f"Default configuration written to {args.path}")
    return 0


def main(argv=None) -> int:
    """Main entry point with subcommand support."""
    parser = argparse.ArgumentParser(
        description="Minecraft agent fleet - staggered connections with per-agent Q-learning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py run                          Start the learning fleet
  python main.py run --dry-run --agents 3     Simulated world, three agents
  python main.py rotate                       Timed sessions without learning
  python main.py init-config config.yaml      Write default settings
        """
    )
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging verbosity')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', type=str, default='config.yaml',
                        help='Path to configuration file')
    common.add_argument('--agents', type=int, default=None,
                        help=f'Number of agents (1-{MAX_AGENTS})')
    common.add_argument('--host', type=str, default=None,
                        help='Server host')
    common.add_argument('--port', type=int, default=None,
                        help='Server port')
    common.add_argument('--dry-run', action='store_true',
                        help='Use the simulated offline client')
    common.add_argument('--seed', type=int, default=None,
                        help='Random seed')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    subparsers.add_parser('run', parents=[common], help='Run the Q-learning fleet')
    subparsers.add_parser('rotate', parents=[common], help='Run timed rotating sessions')
    init_parser = subparsers.add_parser('init-config', help='Write default configuration')
    init_parser.add_argument('path', nargs='?', default='config.yaml',
                             help='Output path (.yaml or .json)')

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == 'run':
        return run_fleet(args, 'rl')
    if args.command == 'rotate':
        return run_fleet(args, 'rotate')
    if args.command == 'init-config':
        return init_config(args)

    parser.print_help()
    print("\nQuick start:")
    print("  Learning fleet:  python main.py run --dry-run")
    return 0


if __name__ == "__main__":
    sys.exit(main())
