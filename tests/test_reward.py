"""Tests for reward shaping."""

import numpy as np
import pytest

from env.observation import OBSERVATION_SIZE, ObservationIndex as idx
from training.reward import REWARD_VALUES, RewardConfig, RewardShaper


def _obs(**features):
    obs = np.zeros(OBSERVATION_SIZE, dtype=np.float32)
    obs[idx.HEALTH] = 1.0
    obs[idx.FOOD] = 1.0
    for name, value in features.items():
        obs[idx[name]] = value
    return obs


@pytest.fixture
def shaper():
    return RewardShaper()


def test_unchanged_observation_earns_survival_bonus_only(shaper):
    obs = _obs()
    assert shaper.compute_reward(obs, obs.copy()) == pytest.approx(0.01)


def test_failed_action_is_penalized(shaper):
    obs = _obs()
    assert shaper.compute_reward(obs, obs.copy(), action_succeeded=False) == pytest.approx(0.01 - 1.0)


def test_health_and_food_deltas_are_weighted(shaper):
    old = _obs(HEALTH=1.0, FOOD=1.0)
    new = _obs(HEALTH=0.5, FOOD=0.75)

    expected = 0.01 + (-0.5 * 10.0) + (-0.25 * 5.0)
    assert shaper.compute_reward(old, new) == pytest.approx(expected)


def test_dropping_into_critical_health_adds_penalty(shaper):
    old = _obs(HEALTH=0.3)
    new = _obs(HEALTH=0.1)

    expected = 0.01 + (-0.2 * 10.0) - 15.0
    assert shaper.compute_reward(old, new) == pytest.approx(expected, abs=1e-5)


def test_staying_critical_without_further_loss_is_not_penalized(shaper):
    old = _obs(FOOD=0.1)
    assert shaper.compute_reward(old, old.copy()) == pytest.approx(0.01)


def test_death_edge_is_penalized_once(shaper):
    alive = _obs()
    dead = _obs(RECENTLY_DIED=1.0)

    assert shaper.compute_reward(alive, dead) == pytest.approx(0.01 - 50.0)
    assert shaper.compute_reward(dead, dead.copy()) == pytest.approx(0.01)


def test_enemy_edges(shaper):
    clear = _obs()
    far = _obs(ENEMY_NEARBY=1.0, ENEMY_DISTANCE=0.8)
    near = _obs(ENEMY_NEARBY=1.0, ENEMY_DISTANCE=0.2)

    assert shaper.compute_reward(clear, far) == pytest.approx(0.01 - 7.0)
    assert shaper.compute_reward(far, near) == pytest.approx(0.01 - 3.0)
    assert shaper.compute_reward(near, far) == pytest.approx(0.01)
    assert shaper.compute_reward(near, clear) == pytest.approx(0.01 + 20.0)


def test_resource_gains_are_weighted_by_tier_and_losses_ignored(shaper):
    old = _obs(WOOD=0.25, IRON_ORE=0.0)
    new = _obs(WOOD=0.125, IRON_ORE=2 / 64)

    expected = 0.01 + (2 / 64) * 15.0
    assert shaper.compute_reward(old, new) == pytest.approx(expected, abs=1e-5)


def test_tool_and_progression_milestones(shaper):
    old = _obs()
    new = _obs(HAS_WOODEN_PICKAXE=1.0, IN_NETHER=1.0)

    assert shaper.compute_reward(old, new) == pytest.approx(0.01 + 10.0 + 500.0)
    assert shaper.compute_reward(new, new.copy()) == pytest.approx(0.01)


def test_another_agent_coming_close_is_rewarded(shaper):
    old = _obs()
    new = _obs(OTHER_PLAYER_NEARBY=1.0, OTHER_PLAYER_DISTANCE=0.1)

    assert shaper.compute_reward(old, new) == pytest.approx(0.01 + 0.5)


def test_terms_are_summed_without_clamping(shaper):
    old = _obs()
    new = _obs(IN_END=1.0, HAS_DIAMOND_PICKAXE=1.0, ENEMY_NEARBY=1.0, ENEMY_DISTANCE=0.5)

    expected = 0.01 + 1000.0 + 80.0 - 7.0
    assert shaper.compute_reward(old, new) == pytest.approx(expected)


def test_custom_reward_table():
    values = dict(REWARD_VALUES, survival_tick=1.0)
    shaper = RewardShaper(RewardConfig(values=values))
    obs = _obs()

    assert shaper.compute_reward(obs, obs.copy()) == pytest.approx(1.0)
    assert REWARD_VALUES['survival_tick'] == 0.01
