"""
Utilities module for the agent fleet.

This module provides common utilities:
- Logging setup and per-agent episode logs
- Configuration management
- Random seed management
"""

from .logger import (
    setup_logging,
    EpisodeLogger,
    EpisodeRecord,
)
from .config import (
    set_seed,
    load_config,
    save_config,
    load_fleet_config,
    FleetConfig,
    ServerConfig,
    SchedulerConfig,
    MAX_AGENTS,
)

__all__ = [
    'setup_logging',
    'EpisodeLogger',
    'EpisodeRecord',
    'set_seed',
    'load_config',
    'save_config',
    'load_fleet_config',
    'FleetConfig',
    'ServerConfig',
    'SchedulerConfig',
    'MAX_AGENTS',
]
