"""
checkpoint.py - Per-identity model weight storage.

Each agent's live network is saved under ``<models_dir>/<identity>/model.pt``
so that a restarted fleet continues learning where it left off.

A missing checkpoint is the normal first-run case and is not an error.
Any other failure is logged and never propagates into the agent.
"""

import logging
import os
from typing import Optional

from .model import ModelConfig, Weights, load_weights_file, save_weights_file

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.pt"


class ModelStore:
    """
    Load/save model weights keyed by agent identity.

    Usage:
        store = ModelStore("bot_models")
        weights = store.load_model_weights("RL_Agent_123")   # None if new
        store.save_model_weights("RL_Agent_123", weights)
    """

    def __init__(self, models_dir: str = "bot_models"):
        self.models_dir = models_dir

    def path_for(self, identity: str) -> str:
        return os.path.join(self.models_dir, identity, MODEL_FILENAME)

    def load_model_weights(self, identity: str) -> Optional[Weights]:
        """Return stored weights for ``identity``, or None for a fresh start."""
        path = self.path_for(identity)
        try:
            weights = load_weights_file(path)
        except FileNotFoundError:
            logger.info(f"[{identity}] No saved model at {path}, starting fresh")
            return None
        except Exception as e:
            logger.error(f"[{identity}] Failed to load model from {path}: {e}")
            return None
        logger.info(f"[{identity}] Loaded model from {path}")
        return weights

    def save_model_weights(
        self,
        identity: str,
        weights: Weights,
        config: Optional[ModelConfig] = None
    ) -> bool:
        """Best-effort save; returns False (after logging) on failure."""
        path = self.path_for(identity)
        try:
            save_weights_file(path, weights, config)
        except (OSError, RuntimeError) as e:
            logger.error(f"[{identity}] Failed to save model to {path}: {e}")
            return False
        logger.info(f"[{identity}] Saved model to {path}")
        return True
