"""Tests for the experience replay buffer."""

import numpy as np
import pytest

from agent.replay_buffer import ExperienceReplayBuffer, Transition


def _transition(i):
    state = np.full(4, i, dtype=np.float32)
    return Transition(state, i, float(i), state + 1, False)


def test_push_past_capacity_evicts_oldest_first():
    buffer = ExperienceReplayBuffer(capacity=5)
    for i in range(8):
        buffer.push(_transition(i))

    assert len(buffer) == 5
    assert [t.action for t in buffer] == [3, 4, 5, 6, 7]


def test_sample_with_insufficient_data_returns_none():
    buffer = ExperienceReplayBuffer(capacity=10)
    buffer.push(_transition(0))

    assert buffer.sample_batch(2) is None


def test_sample_is_distinct_within_a_batch():
    buffer = ExperienceReplayBuffer(capacity=10, rng=np.random.default_rng(0))
    for i in range(10):
        buffer.push(_transition(i))

    batch = buffer.sample_batch(10)
    assert sorted(t.action for t in batch) == list(range(10))


def test_push_stores_a_copy_of_the_state():
    buffer = ExperienceReplayBuffer(capacity=2)
    state = np.zeros(4, dtype=np.float32)
    buffer.push(Transition(state, 0, 0.0, state, True))
    state[0] = 1.0

    stored = next(iter(buffer))
    assert stored.state[0] == 0.0
    assert stored.terminal is True


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ExperienceReplayBuffer(capacity=0)
