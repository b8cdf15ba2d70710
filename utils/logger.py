"""
logger.py - Logging utilities for the agent fleet.

This module provides:
- setup_logging: process-wide logging configuration
- EpisodeLogger: per-agent episode history (reward, steps, exploration, cause)

Each agent writes to its own directory, ``<log_dir>/<identity>/``:
- episodes.log   one human readable line per finished episode
- episodes.json  every episode record
- summary.json   running statistics
"""

import json
import logging
import os
import time
from collections import Counter, deque
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

RECENT_WINDOW = 100

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the whole process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT
    )


@dataclass
class EpisodeRecord:
    """One finished episode of one agent."""
    episode: int
    reward: float
    steps: int
    epsilon: float
    train_steps: int
    cause: str
    timestamp: float


class EpisodeLogger:
    """
    Episode history for one agent identity.

    Usage:
        episodes = EpisodeLogger(log_dir="logs", identity="RL_Agent_42")
        episodes.log_episode(1, reward=10.5, steps=100, epsilon=0.9, cause="death")
        episodes.save()
    """

    def __init__(self, log_dir: str = "logs", identity: str = "agent"):
        self.identity = identity
        self.run_dir = os.path.join(log_dir, identity)
        Path(self.run_dir).mkdir(parents=True, exist_ok=True)

        self.records: List[EpisodeRecord] = []
        self.recent_rewards: deque = deque(maxlen=RECENT_WINDOW)
        self.causes: Counter = Counter()
        self.start_time = time.time()

        self.text_log_path = os.path.join(self.run_dir, "episodes.log")
        with open(self.text_log_path, 'a') as f:
            f.write(f"# {identity} session started {datetime.now().isoformat()}\n")

    def log_episode(
        self,
        episode: int,
        reward: float,
        steps: int,
        epsilon: float = 0.0,
        train_steps: int = 0,
        cause: str = "ended"
    ) -> EpisodeRecord:
        """Record a finished episode and append it to the text log."""
        record = EpisodeRecord(
            episode=episode,
            reward=float(reward),
            steps=steps,
            epsilon=round(float(epsilon), 4),
            train_steps=train_steps,
            cause=cause,
            timestamp=time.time()
        )
        self.records.append(record)
        self.recent_rewards.append(record.reward)
        self.causes[cause] += 1

        try:
            with open(self.text_log_path, 'a') as f:
                f.write(f"Episode {episode:6d} | Reward: {record.reward:10.2f} | Steps: {steps:6d} | "
                        f"Epsilon: {record.epsilon:.4f} | Cause: {cause}\n")
        except OSError as e:
            logger.error(f"[{self.identity}] Failed to append to {self.text_log_path}: {e}")
        return record

    def get_summary(self) -> Dict:
        """Running statistics over every logged episode."""
        rewards = [r.reward for r in self.records]
        return {
            'identity': self.identity,
            'total_episodes': len(self.records),
            'total_steps': sum(r.steps for r in self.records),
            'best_reward': max(rewards) if rewards else None,
            'worst_reward': min(rewards) if rewards else None,
            'recent_mean_reward': (
                sum(self.recent_rewards) / len(self.recent_rewards)
                if self.recent_rewards else 0.0
            ),
            'episodes_by_cause': dict(self.causes),
            'elapsed_time': time.time() - self.start_time
        }

    def save(self) -> bool:
        """Best-effort write of history and summary; returns False (after logging) on failure."""
        try:
            Path(self.run_dir).mkdir(parents=True, exist_ok=True)
            with open(os.path.join(self.run_dir, "episodes.json"), 'w') as f:
                json.dump([asdict(r) for r in self.records], f, indent=2)
            with open(os.path.join(self.run_dir, "summary.json"), 'w') as f:
                json.dump(self.get_summary(), f, indent=2)
        except OSError as e:
            logger.error(f"[{self.identity}] Failed to save episode log in {self.run_dir}: {e}")
            return False
        return True
