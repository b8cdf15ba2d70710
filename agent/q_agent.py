"""
q_agent.py - Deep Q-learning estimator for a single fleet agent.

This module provides:
- QAgentConfig: RL hyperparameters (defaults match the live fleet)
- QValueEstimator: live/target approximators, epsilon-greedy action
  selection and Bellman-target training from an experience replay buffer

The estimator is the main interface between the per-agent online trainer
and the network.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .checkpoint import ModelStore
from .model import FunctionApproximator, ModelConfig, create_approximator
from .replay_buffer import ExperienceReplayBuffer, Transition

logger = logging.getLogger(__name__)


@dataclass
class QAgentConfig:
    """
    Configuration for the Q-learning agent.

    Attributes:
        state_size: Observation vector length
        action_size: Number of discrete actions
        hidden_dim: Width of the network's hidden layers
        learning_rate: Adam learning rate
        discount_factor: Bellman discount (gamma)
        epsilon: Initial exploration rate
        epsilon_decay: Multiplicative decay applied after each training call
        min_epsilon: Exploration floor
        replay_buffer_size: Replay memory capacity
        batch_size: Transitions sampled per training call
        target_update_freq: Training calls between target network syncs
    """
    state_size: int = 25
    action_size: int = 23
    hidden_dim: int = 256
    learning_rate: float = 0.001
    discount_factor: float = 0.99
    epsilon: float = 1.0
    epsilon_decay: float = 0.9995
    min_epsilon: float = 0.005
    replay_buffer_size: int = 200000
    batch_size: int = 64
    target_update_freq: int = 200

    def model_config(self) -> ModelConfig:
        return ModelConfig(
            input_dim=self.state_size,
            output_dim=self.action_size,
            hidden_dim=self.hidden_dim,
            learning_rate=self.learning_rate,
        )


class QValueEstimator:
    """
    DQN-style action-value estimator.

    Owns two approximators with identical architecture: ``live`` is
    fitted on every training call, ``target`` is a periodic snapshot of
    ``live`` used to compute stable Bellman targets.

    Usage:
        estimator = QValueEstimator(config, identity="RL_Agent_42", store=store)
        estimator.restore()
        action = estimator.select_action(state)
        estimator.train(buffer)
        estimator.persist()
    """

    def __init__(
        self,
        config: Optional[QAgentConfig] = None,
        identity: str = "agent",
        store: Optional[ModelStore] = None,
        live: Optional[FunctionApproximator] = None,
        target: Optional[FunctionApproximator] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.config = config if config is not None else QAgentConfig()
        self.identity = identity
        self.store = store
        self.rng = rng if rng is not None else np.random.default_rng()

        model_config = self.config.model_config()
        self.live = live if live is not None else create_approximator(model_config)
        self.target = target if target is not None else create_approximator(model_config)
        self.sync_target()

        self.epsilon = self.config.epsilon
        self.train_steps = 0
        self.last_loss: Optional[float] = None

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def select_action(self, state: np.ndarray) -> int:
        """Epsilon-greedy: random action with probability epsilon, else argmax."""
        if self.rng.random() < self.epsilon:
            return int(self.rng.integers(self.config.action_size))
        q_values = self.live.predict(np.asarray(state, dtype=np.float32))
        return int(np.argmax(q_values[0]))

    def boost_exploration(self, value: float) -> None:
        """Raise epsilon to ``value`` (anti-stall reset)."""
        logger.info(f"[{self.identity}] Exploration boosted: {self.epsilon:.4f} -> {value:.4f}")
        self.epsilon = value

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def compute_targets(self, batch: List[Transition]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build the fit inputs for a sampled batch.

        Each row of the returned targets is the live network's current
        prediction for that state with only the taken action's entry
        replaced by the Bellman backup.

        Returns:
            states: (batch, state_size)
            targets: (batch, action_size)
        """
        states = np.stack([t.state for t in batch]).astype(np.float32)
        next_states = np.stack([t.next_state for t in batch]).astype(np.float32)
        actions = np.array([t.action for t in batch], dtype=np.int64)
        rewards = np.array([t.reward for t in batch], dtype=np.float64)
        terminals = np.array([t.terminal for t in batch], dtype=bool)

        targets = np.array(self.live.predict(states), dtype=np.float64, copy=True)
        next_max = np.max(self.target.predict(next_states), axis=1)

        backups = np.where(
            terminals,
            rewards,
            rewards + self.config.discount_factor * next_max
        )
        targets[np.arange(len(batch)), actions] = backups
        return states, targets.astype(np.float32)

    def train(self, buffer: ExperienceReplayBuffer) -> bool:
        """
        One training call.

        Returns:
            True if an optimization step was performed, False when the
            buffer does not yet hold a full batch.
        """
        batch = buffer.sample_batch(self.config.batch_size)
        if batch is None:
            return False

        states, targets = self.compute_targets(batch)
        self.last_loss = self.live.fit(states, targets)
        self.train_steps += 1

        if self.train_steps % self.config.target_update_freq == 0:
            self.sync_target()
            logger.debug(f"[{self.identity}] Target network synced at step {self.train_steps}")

        self.decay_epsilon()
        return True

    def decay_epsilon(self) -> None:
        """Decay exploration rate."""
        self.epsilon = max(
            self.config.min_epsilon,
            self.epsilon * self.config.epsilon_decay
        )

    def sync_target(self) -> None:
        """Copy live weights into the target network."""
        self.target.set_weights(self.live.get_weights())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> bool:
        """Save live weights under this agent's identity (best effort)."""
        if self.store is None:
            return False
        return self.store.save_model_weights(
            self.identity, self.live.get_weights(), self.config.model_config()
        )

    def restore(self) -> bool:
        """
        Load saved weights for this identity.

        A restored agent is treated as already trained: the target is
        synced and epsilon drops to its floor.

        Returns:
            True if weights were restored, False for a fresh start.
        """
        if self.store is None:
            return False
        weights = self.store.load_model_weights(self.identity)
        if weights is None:
            return False
        try:
            self.live.set_weights(weights)
        except (RuntimeError, KeyError) as e:
            logger.error(f"[{self.identity}] Saved weights do not fit the network: {e}")
            return False
        self.sync_target()
        self.epsilon = self.config.min_epsilon
        return True
