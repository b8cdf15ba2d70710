"""
Environment module for the agent fleet.

This module provides the agent's view of the game:
- build_observation: 25-feature normalized observation vector
- Action / ActionRegistry: discrete action set and handler table
- GameDataTable: shared block/item name tables
"""

from .game_data import (
    GameDataTable,
    GameDataHolder,
)
from .observation import (
    ObservationIndex,
    OBSERVATION_SIZE,
    build_observation,
    empty_observation,
)
from .actions import (
    Action,
    ActionContext,
    ActionOutcome,
    ActionRegistry,
    DEFAULT_REGISTRY,
    NUM_ACTIONS,
)

__all__ = [
    'GameDataTable',
    'GameDataHolder',
    'ObservationIndex',
    'OBSERVATION_SIZE',
    'build_observation',
    'empty_observation',
    'Action',
    'ActionContext',
    'ActionOutcome',
    'ActionRegistry',
    'DEFAULT_REGISTRY',
    'NUM_ACTIONS',
]
