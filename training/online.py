"""
online.py - Per-agent online Q-learning loop.

Each connected agent runs one OnlineTrainer. Every decision tick:
1. Observe the world
2. Reward the previous action and store the transition
3. Train the estimator on a replay batch
4. Choose and execute the next action
5. End the episode if the agent died

Usage:
    trainer = OnlineTrainer(estimator, episode_logger=episodes)
    trainer.begin_episode(session, game_data)
    while not await trainer.tick():
        await asyncio.sleep(1.0)
"""

import logging
import time
from typing import Callable, Optional

import numpy as np

from agent.q_agent import QValueEstimator
from agent.replay_buffer import ExperienceReplayBuffer, Transition
from env.actions import (
    Action,
    ActionOutcome,
    ActionRegistry,
    DEFAULT_REGISTRY,
    ENEMY_WARNING_PHRASE,
    OFFER_WOOD_PHRASE,
    REQUEST_WOOD_PHRASE,
)
from env.game_data import GameDataHolder
from env.observation import STACK_SIZE, ObservationIndex, build_observation
from integration.mc_client import GameSession
from training.reward import RewardShaper
from utils.logger import EpisodeLogger

logger = logging.getLogger(__name__)

DEATH_REWARD = -100.0
RECENT_DEATH_SECONDS = 10.0

# Anti-stall: too many IDLE picks while barely exploring
MAX_CONSECUTIVE_IDLE = 15
STALL_EPSILON_THRESHOLD = 0.1
STALL_EPSILON_BOOST = 0.3

SHARE_WOOD_THRESHOLD = 10
LOW_HEALTH_FOR_FLEE = 0.5


class OnlineTrainer:
    """
    Decision-train-act loop for one agent.

    The replay buffer and the estimator outlive individual sessions:
    an agent that reconnects keeps its experience and its weights.
    """

    def __init__(
        self,
        estimator: QValueEstimator,
        buffer: Optional[ExperienceReplayBuffer] = None,
        shaper: Optional[RewardShaper] = None,
        registry: ActionRegistry = DEFAULT_REGISTRY,
        game_data: Optional[GameDataHolder] = None,
        episode_logger: Optional[EpisodeLogger] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.estimator = estimator
        self.identity = estimator.identity
        self.buffer = buffer if buffer is not None else ExperienceReplayBuffer(
            estimator.config.replay_buffer_size
        )
        self.shaper = shaper if shaper is not None else RewardShaper()
        self.registry = registry
        self.game_data = game_data if game_data is not None else GameDataHolder()
        self.episode_logger = episode_logger
        self.clock = clock

        self.session: Optional[GameSession] = None
        self.episode = 0
        self.last_death_time: Optional[float] = None
        self._reset_episode_state()

    def _reset_episode_state(self) -> None:
        self.last_state: Optional[np.ndarray] = None
        self.last_action: Optional[int] = None
        self.last_outcome: Optional[ActionOutcome] = None
        self.episode_reward = 0.0
        self.episode_steps = 0
        self.consecutive_idle = 0

    # ------------------------------------------------------------------
    # Episode boundaries
    # ------------------------------------------------------------------

    def begin_episode(self, session: GameSession) -> None:
        """Attach to a freshly joined session and greet the server."""
        self.session = session
        self.game_data.ensure(session.version)
        self._reset_episode_state()
        self.episode += 1
        session.send_chat(
            f"Hello! I am {self.identity}, a learning agent working on survival and progression."
        )
        logger.info(f"[{self.identity}] Episode {self.episode} started "
                    f"(epsilon {self.estimator.epsilon:.4f}, buffer {len(self.buffer)})")

    def end_episode(self, cause: str) -> None:
        """Log the episode summary and detach from the session."""
        if self.session is None:
            return
        logger.info(f"[{self.identity}] Episode {self.episode} ended ({cause}): "
                    f"reward {self.episode_reward:.2f} over {self.episode_steps} steps")
        self.session = None
        if self.episode_logger is not None:
            self.episode_logger.log_episode(
                self.episode,
                reward=self.episode_reward,
                steps=self.episode_steps,
                epsilon=self.estimator.epsilon,
                train_steps=self.estimator.train_steps,
                cause=cause
            )
            self.episode_logger.save()

    def recently_died(self) -> bool:
        if self.last_death_time is None:
            return False
        return self.clock() - self.last_death_time < RECENT_DEATH_SECONDS

    def observe(self) -> np.ndarray:
        return build_observation(self.session, self.game_data.table, self.recently_died())

    # ------------------------------------------------------------------
    # Decision tick
    # ------------------------------------------------------------------

    async def tick(self) -> bool:
        """
        Run one decision tick.

        Returns:
            True when the episode reached its terminal state (death).
        """
        session = self.session
        if session is None or not session.is_connected:
            logger.warning(f"[{self.identity}] No live session, skipping tick")
            return False
        if self.game_data.table is None:
            logger.info(f"[{self.identity}] Waiting for game data")
            return False

        state = self.observe()

        if self.last_state is not None and self.last_action is not None:
            reward = self.shaper.compute_reward(
                self.last_state, state, self.last_outcome.success
            ) + self.last_outcome.reward
            self.episode_reward += reward
            logger.debug(f"[{self.identity}] Reward {reward:.2f} "
                         f"(episode total {self.episode_reward:.2f})")
            self.buffer.push(Transition(self.last_state, self.last_action, reward, state, False))
            self.estimator.train(self.buffer)

        action_id = self.estimator.select_action(state)
        logger.debug(f"[{self.identity}] Chose {Action(action_id).name} "
                     f"(epsilon {self.estimator.epsilon:.4f})")
        self._check_stall(action_id)

        outcome = await self.registry.dispatch(action_id, session, state, self.game_data.table)
        self.episode_steps += 1

        self.last_state = state
        self.last_action = action_id
        self.last_outcome = outcome

        if session.is_connected and session.health <= 0:
            await self._handle_death(state, action_id)
            return True
        return False

    def _check_stall(self, action_id: int) -> None:
        if action_id != Action.IDLE:
            self.consecutive_idle = 0
            return
        self.consecutive_idle += 1
        if (self.consecutive_idle > MAX_CONSECUTIVE_IDLE
                and self.estimator.epsilon < STALL_EPSILON_THRESHOLD):
            logger.warning(f"[{self.identity}] Idling too long, boosting exploration")
            self.estimator.boost_exploration(STALL_EPSILON_BOOST)
            self.consecutive_idle = 0

    async def _handle_death(self, state: np.ndarray, action_id: int) -> None:
        logger.info(f"[{self.identity}] Died, ending episode")
        self.buffer.push(Transition(state, action_id, DEATH_REWARD, state, True))
        self.estimator.train(self.buffer)
        self.episode_reward += DEATH_REWARD
        self.last_death_time = self.clock()
        session = self.session
        try:
            self.end_episode("death")
        finally:
            self.estimator.persist()
            session.disconnect()

    # ------------------------------------------------------------------
    # Chat cooperation
    # ------------------------------------------------------------------

    async def handle_chat(self, sender: str, text: str) -> None:
        """React to cooperation phrases from other agents."""
        session = self.session
        if session is None or sender == self.identity:
            return
        logger.info(f"[{self.identity}] Chat from {sender}: {text!r}")

        if REQUEST_WOOD_PHRASE in text:
            state = self.observe()
            wood = int(round(state[ObservationIndex.WOOD] * STACK_SIZE))
            if wood > SHARE_WOOD_THRESHOLD:
                session.send_chat(f"@{sender} {self.identity}: I have {wood} wood! "
                                  f"I can share some at my location.")
            else:
                session.send_chat(f"@{sender} {self.identity}: I don't have much wood, "
                                  f"but I'll try to find some.")
        elif OFFER_WOOD_PHRASE in text:
            session.send_chat(f"@{sender} {self.identity}: Thanks for the offer! "
                              f"I might come and collect if I need it.")
        elif ENEMY_WARNING_PHRASE in text:
            state = self.observe()
            logger.info(f"[{self.identity}] Enemy warning from {sender}, prioritizing safety")
            if state[ObservationIndex.HEALTH] < LOW_HEALTH_FOR_FLEE:
                await self.registry.dispatch(Action.FLEE_FROM_HOSTILE, session, state,
                                             self.game_data.table)
            elif state[ObservationIndex.ENEMY_NEARBY] == 0:
                await self.registry.dispatch(Action.ATTACK_NEAREST_HOSTILE, session, state,
                                             self.game_data.table)
