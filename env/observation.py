"""
observation.py - Observation vector for the Q-learning agents.

Every decision tick the agent's situation is condensed into a fixed
25-component vector. All components lie in [0, 1]: flags are 0/1,
counts are divided by a known maximum and clipped.
"""

import logging
from enum import IntEnum
from typing import Optional

import numpy as np

from integration.mc_client import BlockQuery, EntityFilter, GameSession
from .game_data import GameDataTable

logger = logging.getLogger(__name__)


class ObservationIndex(IntEnum):
    """Position of each feature in the observation vector."""
    HEALTH = 0
    FOOD = 1
    IN_WATER = 2
    IS_DAY = 3
    ENEMY_NEARBY = 4
    ENEMY_DISTANCE = 5
    HAS_FOOD = 6
    WOOD = 7
    HAS_WOODEN_PICKAXE = 8
    STONE = 9
    HAS_STONE_PICKAXE = 10
    COAL = 11
    IRON_ORE = 12
    IRON_INGOT = 13
    HAS_IRON_PICKAXE = 14
    OBSIDIAN = 15
    HAS_DIAMOND_PICKAXE = 16
    ENDER_EYES = 17
    HAS_FLINT_AND_STEEL = 18
    NETHER_PORTAL_NEARBY = 19
    IN_NETHER = 20
    IN_END = 21
    RECENTLY_DIED = 22
    OTHER_PLAYER_NEARBY = 23
    OTHER_PLAYER_DISTANCE = 24


OBSERVATION_SIZE = len(ObservationIndex)

MAX_HEALTH = 20.0
MAX_FOOD = 20.0
STACK_SIZE = 64.0
ENDER_EYES_NEEDED = 12.0
ENEMY_RANGE = 30.0
PLAYER_RANGE = 60.0
PORTAL_SEARCH_RADIUS = 100.0
NIGHT_START_TICK = 13000


def empty_observation() -> np.ndarray:
    """Observation used while the session or game data is unavailable."""
    return np.zeros(OBSERVATION_SIZE, dtype=np.float32)


def build_observation(
    session: Optional[GameSession],
    game_data: Optional[GameDataTable],
    recently_died: bool = False
) -> np.ndarray:
    """
    Build the observation vector for one agent.

    Args:
        session: Connected game session
        game_data: Shared name tables
        recently_died: Whether the agent died within the last few seconds

    Returns:
        float32 array of shape (OBSERVATION_SIZE,) with values in [0, 1]
    """
    if game_data is None:
        logger.warning("Game data not initialized yet, returning empty observation")
        return empty_observation()
    if session is None or session.position is None:
        return empty_observation()

    origin = session.position
    obs = empty_observation()
    idx = ObservationIndex

    obs[idx.HEALTH] = session.health / MAX_HEALTH
    obs[idx.FOOD] = session.food / MAX_FOOD
    obs[idx.IN_WATER] = float(session.in_water)
    obs[idx.IS_DAY] = float(session.time_of_day < NIGHT_START_TICK)

    hostile = session.nearest_entity(EntityFilter(
        kind="mob", hostile_only=True, max_distance=ENEMY_RANGE
    ))
    if hostile is not None:
        obs[idx.ENEMY_NEARBY] = 1.0
        obs[idx.ENEMY_DISTANCE] = hostile.position.distance_to(origin) / ENEMY_RANGE

    items = session.inventory_items()
    obs[idx.HAS_FOOD] = float(any(item.name in game_data.food_items for item in items))

    def count(name: str, maximum: float = STACK_SIZE) -> float:
        return session.inventory_count(name) / maximum

    obs[idx.WOOD] = count(game_data.wood_item)
    obs[idx.HAS_WOODEN_PICKAXE] = float(session.has_item(game_data.wooden_pickaxe))
    obs[idx.STONE] = count(game_data.stone_item)
    obs[idx.HAS_STONE_PICKAXE] = float(session.has_item(game_data.stone_pickaxe))
    obs[idx.COAL] = count(game_data.coal_item)
    obs[idx.IRON_ORE] = count(game_data.iron_ore_item)
    obs[idx.IRON_INGOT] = count(game_data.iron_ingot_item)
    obs[idx.HAS_IRON_PICKAXE] = float(session.has_item(game_data.iron_pickaxe))
    obs[idx.OBSIDIAN] = count(game_data.obsidian_item)
    obs[idx.HAS_DIAMOND_PICKAXE] = float(session.has_item(game_data.diamond_pickaxe))
    obs[idx.ENDER_EYES] = count(game_data.ender_eye_item, ENDER_EYES_NEEDED)
    obs[idx.HAS_FLINT_AND_STEEL] = float(session.has_item(game_data.flint_and_steel_item))

    portal = session.find_block(BlockQuery(
        names=(game_data.nether_portal_block,), max_distance=PORTAL_SEARCH_RADIUS
    ))
    obs[idx.NETHER_PORTAL_NEARBY] = float(portal is not None)
    obs[idx.IN_NETHER] = float(session.dimension == game_data.nether_dimension)
    obs[idx.IN_END] = float(session.dimension == game_data.end_dimension)
    obs[idx.RECENTLY_DIED] = float(recently_died)

    player = session.nearest_entity(EntityFilter(
        kind="player", exclude_username=session.username
    ))
    if player is not None:
        obs[idx.OTHER_PLAYER_NEARBY] = 1.0
        obs[idx.OTHER_PLAYER_DISTANCE] = player.position.distance_to(origin) / PLAYER_RANGE

    return np.clip(obs, 0.0, 1.0)
