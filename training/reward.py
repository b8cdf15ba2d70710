"""
reward.py - Reward shaping for the fleet's Q-learning agents.

The shaped reward compares the observation before an action with the
observation after it:
- a small constant bonus for every tick survived
- scaled health/food deltas, with extra penalties when critically low
- a large penalty on the death edge
- enemy edges (escaping is good, being approached is bad)
- resource increases weighted by tier
- one-time bonuses on tool and progression milestone edges
- a small bonus when another agent comes close
- a penalty when the action itself failed

REWARD PHILOSOPHY:
- Rewards are summed and never clamped
- Rare milestones dominate idle survival on purpose, so that
  long-horizon progress gets credit
"""

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from env.observation import ObservationIndex


# Reward values for different events
REWARD_VALUES = {
    # Survival
    'survival_tick': 0.01,
    'health_delta_weight': 10.0,
    'food_delta_weight': 5.0,
    'critical_health': -15.0,
    'critical_food': -10.0,
    'death': -50.0,

    # Enemies
    'enemy_gone': 20.0,
    'enemy_closer': -3.0,
    'enemy_appeared': -7.0,

    # Tools
    'wooden_pickaxe': 10.0,
    'stone_pickaxe': 20.0,
    'iron_pickaxe': 40.0,
    'diamond_pickaxe': 80.0,

    # Progression milestones
    'nether_portal': 200.0,
    'enter_nether': 500.0,
    'enter_end': 1000.0,

    # Cooperation
    'player_nearby': 0.5,

    # Failed action
    'action_failed': -1.0,
}

# Per-unit weight of each resource increase, by tier
RESOURCE_WEIGHTS: Tuple[Tuple[ObservationIndex, float], ...] = (
    (ObservationIndex.WOOD, 5.0),
    (ObservationIndex.STONE, 7.0),
    (ObservationIndex.COAL, 8.0),
    (ObservationIndex.IRON_ORE, 15.0),
    (ObservationIndex.IRON_INGOT, 20.0),
    (ObservationIndex.OBSIDIAN, 30.0),
    (ObservationIndex.ENDER_EYES, 40.0),
)

MILESTONE_FLAGS: Tuple[Tuple[ObservationIndex, str], ...] = (
    (ObservationIndex.HAS_WOODEN_PICKAXE, 'wooden_pickaxe'),
    (ObservationIndex.HAS_STONE_PICKAXE, 'stone_pickaxe'),
    (ObservationIndex.HAS_IRON_PICKAXE, 'iron_pickaxe'),
    (ObservationIndex.HAS_DIAMOND_PICKAXE, 'diamond_pickaxe'),
    (ObservationIndex.NETHER_PORTAL_NEARBY, 'nether_portal'),
    (ObservationIndex.IN_NETHER, 'enter_nether'),
    (ObservationIndex.IN_END, 'enter_end'),
)


@dataclass
class RewardConfig:
    """
    Configuration for reward shaping.

    Attributes:
        critical_threshold: Normalized health/food level considered critical
        values: Reward table (defaults to REWARD_VALUES)
    """
    critical_threshold: float = 0.2
    values: Dict[str, float] = None

    def __post_init__(self):
        if self.values is None:
            self.values = dict(REWARD_VALUES)


def _rose(old: np.ndarray, new: np.ndarray, index: int) -> bool:
    """True on a 0 -> 1 edge of a flag."""
    return old[index] == 0 and new[index] == 1


class RewardShaper:
    """
    Stateless reward function over observation pairs.

    Usage:
        shaper = RewardShaper()
        reward = shaper.compute_reward(prev_obs, curr_obs, action_succeeded)
    """

    def __init__(self, config: RewardConfig = None):
        self.config = config if config is not None else RewardConfig()

    def compute_reward(
        self,
        old: np.ndarray,
        new: np.ndarray,
        action_succeeded: bool = True
    ) -> float:
        """
        Compute the shaped reward for a transition.

        Args:
            old: Observation before the action
            new: Observation after the action
            action_succeeded: Whether the action reported success

        Returns:
            Shaped reward value (unbounded)
        """
        values = self.config.values
        reward = values['survival_tick']
        reward += self._survival_reward(old, new)
        reward += self._enemy_reward(old, new)
        reward += self._resource_reward(old, new)

        for index, name in MILESTONE_FLAGS:
            if _rose(old, new, index):
                reward += values[name]

        if _rose(old, new, ObservationIndex.OTHER_PLAYER_NEARBY):
            reward += values['player_nearby']

        if not action_succeeded:
            reward += values['action_failed']

        return float(reward)

    def _survival_reward(self, old: np.ndarray, new: np.ndarray) -> float:
        values = self.config.values
        threshold = self.config.critical_threshold
        idx = ObservationIndex
        reward = 0.0

        reward += (new[idx.HEALTH] - old[idx.HEALTH]) * values['health_delta_weight']
        reward += (new[idx.FOOD] - old[idx.FOOD]) * values['food_delta_weight']

        if new[idx.HEALTH] < threshold and new[idx.HEALTH] < old[idx.HEALTH]:
            reward += values['critical_health']
        if new[idx.FOOD] < threshold and new[idx.FOOD] < old[idx.FOOD]:
            reward += values['critical_food']

        if _rose(old, new, idx.RECENTLY_DIED):
            reward += values['death']
        return reward

    def _enemy_reward(self, old: np.ndarray, new: np.ndarray) -> float:
        values = self.config.values
        idx = ObservationIndex
        was_near = old[idx.ENEMY_NEARBY] == 1
        is_near = new[idx.ENEMY_NEARBY] == 1

        if was_near and not is_near:
            return values['enemy_gone']
        if was_near and is_near and new[idx.ENEMY_DISTANCE] < old[idx.ENEMY_DISTANCE]:
            return values['enemy_closer']
        if is_near and not was_near:
            return values['enemy_appeared']
        return 0.0

    def _resource_reward(self, old: np.ndarray, new: np.ndarray) -> float:
        reward = 0.0
        for index, weight in RESOURCE_WEIGHTS:
            gained = new[index] - old[index]
            if gained > 0:
                reward += gained * weight
        return reward
