"""
manager.py - Top-level fleet orchestration.

FleetManager composes the slot scheduler with one agent lifecycle per
slot. In ``rl`` mode every slot has a stable identity (persisted across
restarts) and its own estimator, replay buffer and episode log; in
``rotate`` mode each connection gets a fresh random identity and simply
stays online for the configured lifetime.

SIGINT/SIGTERM trigger an orderly shutdown: cancel pending wake-ups,
disconnect every agent, persist every model, persist the identity list.
"""

import asyncio
import logging
import random
import signal
from typing import Dict, List, Optional, Set

import numpy as np

from agent.checkpoint import ModelStore
from agent.q_agent import QValueEstimator
from agent.replay_buffer import ExperienceReplayBuffer
from env.game_data import GameDataHolder
from integration.mc_client import GameClient
from training.online import OnlineTrainer
from utils.config import FleetConfig
from utils.logger import EpisodeLogger
from .lifecycle import AgentLifecycle
from .persistence import FleetStore
from .scheduler import SchedulerState, SlotScheduler

logger = logging.getLogger(__name__)

IDENTITY_SUFFIX_RANGE = 100000


class FleetManager:
    """
    Runs N agents on a shared event loop.

    Usage:
        manager = FleetManager(config, client)
        await manager.run_forever()      # until SIGINT/SIGTERM
    """

    def __init__(
        self,
        config: FleetConfig,
        client: GameClient,
        fleet_store: Optional[FleetStore] = None,
        model_store: Optional[ModelStore] = None,
        rng: Optional[random.Random] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.config = config
        self.client = client
        self.fleet_store = fleet_store if fleet_store is not None else FleetStore(config.fleet_config_file)
        self.model_store = model_store if model_store is not None else ModelStore(config.models_dir)
        self.rng = rng if rng is not None else random.Random(config.seed)

        self.game_data = GameDataHolder()
        self.scheduler = SlotScheduler(
            SchedulerState(config.agent_count), config.scheduler, self._spawn, loop
        )
        self.identities: List[str] = []
        self.trainers: Dict[int, OnlineTrainer] = {}
        self.agents: Dict[int, AgentLifecycle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._stopped: Optional[asyncio.Event] = None
        self._shut_down = False

    @property
    def learning(self) -> bool:
        return self.config.mode == 'rl'

    # ------------------------------------------------------------------
    # Start-up
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Resolve identities, build per-slot learners and arm every slot."""
        logger.info(f"Starting {self.config.agent_count} agents in {self.config.mode} mode "
                    f"against {self.config.server.host}:{self.config.server.port}")
        if self.learning:
            self.identities = self.resolve_identities()
            self.fleet_store.save_identities(self.identities)
            for slot_index, identity in enumerate(self.identities):
                self.trainers[slot_index] = self._build_trainer(slot_index, identity)
        self.scheduler.schedule_all()

    def resolve_identities(self) -> List[str]:
        """
        Reuse saved identities first, then generate the rest.

        Surplus saved identities are skipped; generated names never
        collide with any saved name.
        """
        saved = self.fleet_store.load_identities()
        known = set(saved)
        identities = []
        for name in saved:
            if len(identities) < self.config.agent_count:
                logger.info(f"[{name}] Reusing saved identity")
                identities.append(name)
            else:
                logger.info(f"[{name}] Skipping saved identity, agent count reached")
        while len(identities) < self.config.agent_count:
            name = self.generate_identity(known)
            logger.info(f"[{name}] Created new identity")
            identities.append(name)
        return identities

    def generate_identity(self, known: Set[str]) -> str:
        """``<prefix><0..99999>`` not in ``known``; the new name is added to it."""
        while True:
            name = f"{self.config.name_prefix}{self.rng.randrange(IDENTITY_SUFFIX_RANGE)}"
            if name not in known:
                known.add(name)
                return name

    def _build_trainer(self, slot_index: int, identity: str) -> OnlineTrainer:
        seed = None if self.config.seed is None else self.config.seed + slot_index
        estimator = QValueEstimator(
            self.config.agent,
            identity=identity,
            store=self.model_store,
            rng=np.random.default_rng(seed)
        )
        estimator.restore()
        return OnlineTrainer(
            estimator,
            buffer=ExperienceReplayBuffer(
                self.config.agent.replay_buffer_size, rng=np.random.default_rng(seed)
            ),
            game_data=self.game_data,
            episode_logger=EpisodeLogger(self.config.episode_log_dir, identity)
        )

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    def _spawn(self, slot_index: int) -> AgentLifecycle:
        """Scheduler callback for a free slot: create and connect an agent."""
        if self.learning:
            identity = self.identities[slot_index]
        else:
            in_use = {agent.identity for agent in self.scheduler.state.occupants()}
            identity = self.generate_identity(in_use)

        lifecycle = AgentLifecycle(
            slot_index,
            identity,
            self.client,
            self.scheduler,
            self.config.server,
            self.config.scheduler,
            trainer=self.trainers.get(slot_index)
        )
        self.agents[slot_index] = lifecycle
        logger.info(f"[{identity}] Spawning into slot {slot_index}")

        task = asyncio.get_running_loop().create_task(lifecycle.start())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return lifecycle

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Disconnect every agent, then persist all models and identities."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down fleet: disconnecting agents and saving models...")

        self.scheduler.cancel_all()
        for task in list(self._tasks):
            task.cancel()
        for lifecycle in self.agents.values():
            try:
                lifecycle.disconnect()
            except Exception as e:
                logger.error(f"[{lifecycle.identity}] Error while disconnecting: {e}", exc_info=True)

        for trainer in self.trainers.values():
            trainer.estimator.persist()
        if self.learning:
            self.fleet_store.save_identities(self.identities)

        if self._stopped is not None:
            self._stopped.set()
        logger.info("Fleet shutdown complete")

    def _on_signal(self, signame: str) -> None:
        logger.info(f"Received {signame}, stopping agents and saving models")
        self.shutdown()

    async def run_forever(self) -> None:
        """Run until a termination signal (or ``shutdown``) arrives."""
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig.name)
            except (NotImplementedError, RuntimeError):
                logger.warning(f"Cannot install handler for {sig.name} on this platform")
            else:
                installed.append(sig)

        self.initialize()
        try:
            await self._stopped.wait()
        finally:
            self.shutdown()
            for sig in installed:
                loop.remove_signal_handler(sig)
        # let pending disconnect callbacks run
        await asyncio.sleep(0)

    def get_stats(self) -> Dict:
        """Snapshot of slot and agent state."""
        return {
            'mode': self.config.mode,
            'slots': [
                {
                    'slot': slot.index,
                    'identity': slot.occupant.identity if slot.occupied else None,
                    'state': slot.occupant.state.name if slot.occupied else None,
                    'accumulated_delay_seconds': slot.accumulated_delay_seconds,
                }
                for slot in self.scheduler.state
            ],
            'failures': self.scheduler.failure_count,
            'epsilon': {
                trainer.identity: round(trainer.estimator.epsilon, 4)
                for trainer in self.trainers.values()
            },
        }
