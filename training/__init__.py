"""
Training module for the agent fleet.

This module provides the online learning components:
- RewardShaper: Reward signal construction from observation pairs
- OnlineTrainer: Per-agent decision-train-act loop
"""

from .reward import (
    RewardConfig,
    RewardShaper,
    REWARD_VALUES,
    RESOURCE_WEIGHTS,
)
from .online import (
    OnlineTrainer,
    DEATH_REWARD,
)

__all__ = [
    'RewardConfig',
    'RewardShaper',
    'REWARD_VALUES',
    'RESOURCE_WEIGHTS',
    'OnlineTrainer',
    'DEATH_REWARD',
]
