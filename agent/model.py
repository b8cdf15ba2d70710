"""
model.py - PyTorch Q-network and function approximator for fleet agents.

This module provides:
- QNetwork: feed-forward network mapping an observation vector to one
  Q-value per discrete action
- FunctionApproximator: numpy-in / numpy-out wrapper that owns the
  network and its optimizer (predict, fit, weight copy, save/load)
- save_weights_file / load_weights_file: checkpoint I/O

A fleet of agents trains side by side on one CPU, so the network stays small.

Model Components:
1. Two hidden ReLU layers (256 units by default)
2. Linear output head (Q-values are unbounded)
"""

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

logger = logging.getLogger(__name__)


Weights = Dict[str, torch.Tensor]


@dataclass
class ModelConfig:
    """
    Configuration for the Q-network.

    Attributes:
        input_dim: Size of the observation vector
        output_dim: Number of discrete actions
        hidden_dim: Width of both hidden layers
        learning_rate: Adam learning rate
    """
    input_dim: int = 25
    output_dim: int = 23
    hidden_dim: int = 256
    learning_rate: float = 0.001


class QNetwork(nn.Module):
    """Two hidden layers with a linear Q-value head."""

    def __init__(self, config: ModelConfig):
        super().__init__()
        self.config = config
        self.fc1 = nn.Linear(config.input_dim, config.hidden_dim)
        self.fc2 = nn.Linear(config.hidden_dim, config.hidden_dim)
        self.q_head = nn.Linear(config.hidden_dim, config.output_dim)

    def forward(self, states: torch.Tensor) -> torch.Tensor:
        """
        Args:
            states: Observation batch of shape (batch, input_dim)

        Returns:
            Q-values of shape (batch, output_dim)
        """
        x = F.relu(self.fc1(states))
        x = F.relu(self.fc2(x))
        return self.q_head(x)


class FunctionApproximator:
    """
    Trainable Q-function with a numpy interface.

    Usage:
        approx = FunctionApproximator(ModelConfig())
        q = approx.predict(states)          # (batch, output_dim)
        approx.fit(states, target_q)        # one optimization step
        other.set_weights(approx.get_weights())
    """

    def __init__(self, config: Optional[ModelConfig] = None):
        self.config = config if config is not None else ModelConfig()
        self.device = torch.device('cpu')
        self.model = QNetwork(self.config).to(self.device)
        self.optimizer = torch.optim.Adam(self.model.parameters(), lr=self.config.learning_rate)

    def _to_tensor(self, array: np.ndarray) -> torch.Tensor:
        tensor = torch.as_tensor(np.asarray(array, dtype=np.float32), device=self.device)
        if tensor.dim() == 1:
            tensor = tensor.unsqueeze(0)
        return tensor

    def predict(self, states: np.ndarray) -> np.ndarray:
        """Q-values for a batch of states (a single state is promoted to a batch)."""
        with torch.no_grad():
            q_values = self.model(self._to_tensor(states))
        return q_values.cpu().numpy()

    def fit(self, states: np.ndarray, targets: np.ndarray) -> float:
        """
        One optimization step (single epoch, one batch) on MSE loss.

        Returns:
            Loss before the update
        """
        self.model.train()
        predictions = self.model(self._to_tensor(states))
        loss = F.mse_loss(predictions, self._to_tensor(targets))

        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()
        return float(loss.item())

    def get_weights(self) -> Weights:
        """Deep copy of the network weights."""
        return copy.deepcopy(self.model.state_dict())

    def set_weights(self, weights: Weights) -> None:
        self.model.load_state_dict(weights)

    def save(self, path: str) -> None:
        save_weights_file(path, self.model.state_dict(), self.config)

    def load(self, path: str) -> None:
        """
        Load network weights from ``path``.

        Raises:
            FileNotFoundError: if no checkpoint exists yet
        """
        self.model.load_state_dict(load_weights_file(path))


def save_weights_file(path: str, weights: Weights, config: Optional[ModelConfig] = None) -> None:
    """Write a checkpoint holding ``weights`` (and the shape it was built for)."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    checkpoint = {'model_state_dict': weights}
    if config is not None:
        checkpoint['config'] = {
            'input_dim': config.input_dim,
            'output_dim': config.output_dim,
            'hidden_dim': config.hidden_dim,
        }
    torch.save(checkpoint, path)


def load_weights_file(path: str) -> Weights:
    """Read the weights from a checkpoint written by ``save_weights_file``."""
    checkpoint = torch.load(path, map_location='cpu', weights_only=False)
    return checkpoint['model_state_dict']


def create_approximator(config: Optional[ModelConfig] = None) -> FunctionApproximator:
    """
    Factory function to create a FunctionApproximator.

    Args:
        config: Model configuration (uses defaults if None)

    Returns:
        Freshly initialized approximator
    """
    return FunctionApproximator(config if config is not None else ModelConfig())
