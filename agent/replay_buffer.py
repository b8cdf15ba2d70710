"""
replay_buffer.py - Experience replay storage for off-policy Q-learning.

Transitions are kept in arrival order up to a fixed capacity; pushing
past capacity evicts the oldest transition first.
"""

from collections import deque
from typing import List, NamedTuple, Optional

import numpy as np


class Transition(NamedTuple):
    """One (state, action, reward, next_state, terminal) experience."""
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    terminal: bool


class ExperienceReplayBuffer:
    """
    Fixed-capacity FIFO replay memory.

    Usage:
        buffer = ExperienceReplayBuffer(capacity=200000)
        buffer.push(Transition(s, a, r, s2, done))
        batch = buffer.sample_batch(64)   # None until 64 transitions exist
    """

    def __init__(self, capacity: int, rng: Optional[np.random.Generator] = None):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._memory: deque = deque(maxlen=capacity)
        self._rng = rng if rng is not None else np.random.default_rng()

    def push(self, transition: Transition) -> None:
        """Store a transition, evicting the oldest one when full."""
        self._memory.append(Transition(
            np.array(transition.state, dtype=np.float32, copy=True),
            int(transition.action),
            float(transition.reward),
            np.array(transition.next_state, dtype=np.float32, copy=True),
            bool(transition.terminal),
        ))

    def sample_batch(self, batch_size: int) -> Optional[List[Transition]]:
        """
        Draw ``batch_size`` distinct transitions uniformly at random.

        Returns:
            The sampled transitions, or None when fewer than
            ``batch_size`` transitions are stored.
        """
        if len(self._memory) < batch_size:
            return None
        indices = self._rng.permutation(len(self._memory))[:batch_size]
        return [self._memory[i] for i in indices]

    def __iter__(self):
        return iter(self._memory)

    def __len__(self) -> int:
        return len(self._memory)
