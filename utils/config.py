"""
config.py - Configuration management for the agent fleet.

This module provides utilities for:
- Loading configuration from YAML/JSON files
- Setting random seeds for reproducibility
- The FleetConfig dataclass tree (server, scheduler, agent hyperparameters)
"""

import json
import logging
import os
import random
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import torch
import yaml

from agent.q_agent import QAgentConfig

logger = logging.getLogger(__name__)

FLEET_MODES = ('rl', 'rotate')

# Hard upper bound on concurrently scheduled slots
MAX_AGENTS = 20


def set_seed(seed: int) -> None:
    """
    Set random seed for reproducibility.

    Sets seed for:
    - NumPy random
    - Python random
    - PyTorch

    Args:
        seed: Random seed value
    """
    np.random.seed(seed)
    random.seed(seed)
    torch.manual_seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


def load_config(path: str) -> Optional[Dict]:
    """
    Load configuration from a YAML or JSON file.

    Args:
        path: Path to configuration file

    Returns:
        Configuration dictionary, or None if the file is missing or unreadable
    """
    if not os.path.exists(path):
        logger.info(f"Config file not found: {path}, using defaults")
        return None

    try:
        with open(path, 'r') as f:
            if path.endswith('.yaml') or path.endswith('.yml'):
                return yaml.safe_load(f)
            return json.load(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        logger.error(f"Error loading config {path}: {e}")
        return None


def save_config(config: Dict, path: str) -> None:
    """
    Save configuration to a file (YAML or JSON by extension).

    Args:
        config: Configuration dictionary
        path: Path to save to
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        if path.endswith('.yaml') or path.endswith('.yml'):
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(config, f, indent=2)


@dataclass
class ServerConfig:
    """Game server connection settings."""
    host: str = "localhost"
    port: int = 25565
    version: str = "1.21.5"


@dataclass
class SchedulerConfig:
    """
    Slot scheduling settings.

    Attributes:
        base_interval_seconds: Lower bound of the staggered wake window
        max_interval_seconds: Upper bound of the staggered wake window
        failure_penalty_seconds: Delay added to every slot per connection failure
        failure_cooldown_seconds: Retry delay for the slot that failed
        lifetime_minutes: Session length in rotate mode
        tick_interval_seconds: Decision tick period in rl mode
    """
    base_interval_seconds: float = 300.0
    max_interval_seconds: float = 360.0
    failure_penalty_seconds: float = 60.0
    failure_cooldown_seconds: float = 60.0
    lifetime_minutes: float = 100.0
    tick_interval_seconds: float = 1.0


@dataclass
class FleetConfig:
    """
    Top-level fleet configuration.

    Attributes:
        mode: 'rl' (Q-learning decision loop) or 'rotate' (timed sessions)
        agent_count: Number of slots to run (at most MAX_AGENTS)
        name_prefix: Prefix for generated agent identities
        fleet_config_file: JSON file holding persisted identities
        models_dir: Directory for per-identity model weights
        episode_log_dir: Directory for per-identity episode logs
        dry_run: Use the simulated offline client
        seed: Optional random seed
    """
    mode: str = "rl"
    agent_count: int = 10
    name_prefix: str = "RL_Agent_"
    fleet_config_file: str = "bots_config.json"
    models_dir: str = "bot_models"
    episode_log_dir: str = "logs"
    dry_run: bool = False
    seed: Optional[int] = None
    server: ServerConfig = field(default_factory=ServerConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    agent: QAgentConfig = field(default_factory=QAgentConfig)

    def __post_init__(self):
        if self.mode not in FLEET_MODES:
            raise ValueError(f"Unknown fleet mode {self.mode!r}, expected one of {FLEET_MODES}")
        if not 1 <= self.agent_count <= MAX_AGENTS:
            raise ValueError(f"agent_count must be in [1, {MAX_AGENTS}], got {self.agent_count}")
        if self.scheduler.max_interval_seconds < self.scheduler.base_interval_seconds:
            raise ValueError("max_interval_seconds must not be below base_interval_seconds")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'FleetConfig':
        """
        Build a config from a parsed file.

        Expected sections: ``server``, ``fleet``, ``scheduler``, ``agent``.
        Unknown keys are ignored with a warning.
        """
        data = data or {}
        return cls(
            server=_section(ServerConfig, data.get('server')),
            scheduler=_section(SchedulerConfig, data.get('scheduler')),
            agent=_section(QAgentConfig, data.get('agent')),
            **_known_keys(cls, data.get('fleet'), exclude=('server', 'scheduler', 'agent'))
        )

    def to_dict(self) -> Dict[str, Any]:
        fleet = asdict(self)
        return {
            'server': fleet.pop('server'),
            'scheduler': fleet.pop('scheduler'),
            'agent': fleet.pop('agent'),
            'fleet': fleet,
        }


def _known_keys(cls, section: Optional[Dict], exclude=()) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)} - set(exclude)
    section = section or {}
    for key in section:
        if key not in names:
            logger.warning(f"Ignoring unknown config key {cls.__name__}.{key}")
    return {k: v for k, v in section.items() if k in names}


def _section(cls, section: Optional[Dict]):
    return cls(**_known_keys(cls, section))


def load_fleet_config(path: Optional[str]) -> FleetConfig:
    """Load a FleetConfig from ``path`` (defaults when missing)."""
    data = load_config(path) if path else None
    return FleetConfig.from_dict(data)
