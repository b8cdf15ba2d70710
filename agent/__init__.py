"""
Agent module for the fleet.

This module provides the learning core of each agent:
- FunctionApproximator: PyTorch Q-network with a numpy interface
- ExperienceReplayBuffer: FIFO transition memory
- QValueEstimator: DQN with target network and epsilon-greedy selection
- ModelStore: per-identity weight persistence
"""

from .model import (
    ModelConfig,
    QNetwork,
    FunctionApproximator,
    create_approximator,
    save_weights_file,
    load_weights_file,
)
from .replay_buffer import (
    Transition,
    ExperienceReplayBuffer,
)
from .checkpoint import ModelStore
from .q_agent import (
    QAgentConfig,
    QValueEstimator,
)

__all__ = [
    'ModelConfig',
    'QNetwork',
    'FunctionApproximator',
    'create_approximator',
    'save_weights_file',
    'load_weights_file',
    'Transition',
    'ExperienceReplayBuffer',
    'ModelStore',
    'QAgentConfig',
    'QValueEstimator',
]
