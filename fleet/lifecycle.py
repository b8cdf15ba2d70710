"""
lifecycle.py - Per-slot agent state machine.

States:
- DISCONNECTED: Not connected (initial and final state)
- CONNECTING: Session requested, waiting for the join confirmation
- ACTIVE: Joined; decision ticks (rl) or lifetime timer (rotate) running
- EXPIRED: Lifetime timer fired, disconnecting
- FAILED: Connection refused/reset, fleet backs off
- ENDED: Session ended for any other reason

Every exit path frees the slot and, where the fleet mode calls for it,
re-arms the slot's wake-up timer.
"""

import asyncio
import logging
from enum import Enum, auto
from typing import Optional, Set

from integration.mc_client import (
    ConnectionErrorClass,
    GameClient,
    GameSession,
    SessionEvent,
    classify_error,
)
from training.online import OnlineTrainer
from utils.config import SchedulerConfig, ServerConfig
from .scheduler import SlotScheduler

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    """Agent lifecycle states."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    ACTIVE = auto()
    EXPIRED = auto()
    FAILED = auto()
    ENDED = auto()


class AgentLifecycle:
    """
    Drives one agent from connection to exit.

    With a trainer the agent runs the Q-learning decision tick and its
    slot is rescheduled whenever the session ends. Without one it simply
    stays online for ``lifetime_minutes`` and then rotates out.

    Usage:
        lifecycle = AgentLifecycle(slot, "RL_Agent_42", client, scheduler, server, timing, trainer)
        occupant = lifecycle            # handed to scheduler.occupy
        loop.create_task(lifecycle.start())
    """

    def __init__(
        self,
        slot_index: int,
        identity: str,
        client: GameClient,
        scheduler: SlotScheduler,
        server: ServerConfig,
        timing: SchedulerConfig,
        trainer: Optional[OnlineTrainer] = None
    ):
        self.slot_index = slot_index
        self.identity = identity
        self.client = client
        self.scheduler = scheduler
        self.server = server
        self.timing = timing
        self.trainer = trainer

        self.state = LifecycleState.DISCONNECTED
        self.session: Optional[GameSession] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._lifetime_timer: Optional[asyncio.TimerHandle] = None
        self._chat_tasks: Set[asyncio.Task] = set()
        self._closing = False
        self._exited = False

    @property
    def learning(self) -> bool:
        return self.trainer is not None

    def _transition_to(self, new_state: LifecycleState) -> None:
        if new_state != self.state:
            logger.info(f"[{self.identity}] Slot {self.slot_index}: "
                        f"{self.state.name} -> {new_state.name}")
            self.state = new_state

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Request a session from the game client."""
        self._transition_to(LifecycleState.CONNECTING)
        try:
            session = await self.client.connect(
                self.server.host, self.server.port, self.identity, self.server.version
            )
        except Exception as e:
            self._on_connect_error(e)
            return

        if self._closing:
            session.disconnect()
            return

        self.session = session
        session.on(SessionEvent.JOINED, self._on_joined)
        session.on(SessionEvent.ENDED, self._on_ended)
        session.on(SessionEvent.FAULTED, self._on_faulted)
        session.on(SessionEvent.CHAT, self._on_chat)

    def _on_connect_error(self, error: Exception) -> None:
        error_class = classify_error(error)
        if error_class.is_connection_error:
            self._on_faulted(error_class, str(error))
            return
        logger.error(f"[{self.identity}] Failed to connect: {error}")
        self._exited = True
        self._transition_to(LifecycleState.ENDED)
        self._release()
        self.scheduler.schedule_slot(self.slot_index)

    def _on_joined(self) -> None:
        if self.state != LifecycleState.CONNECTING:
            return
        self._transition_to(LifecycleState.ACTIVE)
        loop = asyncio.get_running_loop()
        if self.learning:
            self.trainer.begin_episode(self.session)
            self._tick_task = loop.create_task(self._tick_loop())
        else:
            lifetime = self.timing.lifetime_minutes * 60.0
            self._lifetime_timer = loop.call_later(lifetime, self._on_expired)
            logger.info(f"[{self.identity}] Online for {self.timing.lifetime_minutes:.0f} minutes")

    async def _tick_loop(self) -> None:
        """Decision ticks, each re-armed only after the previous one finished."""
        while True:
            try:
                terminal = await self.trainer.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[{self.identity}] Decision tick failed: {e}", exc_info=True)
                terminal = False
            if terminal:
                return
            await asyncio.sleep(self.timing.tick_interval_seconds)

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    def _on_expired(self) -> None:
        self._lifetime_timer = None
        if self._closing:
            return
        if self.state == LifecycleState.ACTIVE:
            self._exited = True
            self._transition_to(LifecycleState.EXPIRED)
            logger.info(f"[{self.identity}] Lifetime reached, rotating out")
            self._cancel_activity()
            if self.session is not None:
                self.session.disconnect()
        self._release()
        self.scheduler.schedule_slot(self.slot_index)

    def _on_faulted(self, error_class: ConnectionErrorClass, message: str = "") -> None:
        if self._closing:
            return
        if not error_class.is_connection_error:
            logger.error(f"[{self.identity}] Client error: {message}")
            if self.learning:
                self.trainer.estimator.persist()
            return
        if self._exited:
            return

        logger.warning(f"[{self.identity}] Connection {error_class.value}: {message}")
        self._exited = True
        self._transition_to(LifecycleState.FAILED)
        self._cancel_activity()
        try:
            self._finish_episode("connection failure")
        finally:
            if self.session is not None and self.session.is_connected:
                self.session.disconnect()
            self.scheduler.record_global_failure()
            self._release()
            self.scheduler.schedule_slot(self.slot_index, self.timing.failure_cooldown_seconds)

    def _on_ended(self, reason: str = "") -> None:
        logger.info(f"[{self.identity}] Disconnected: {reason}")
        if self._exited or self._closing:
            self._transition_to(LifecycleState.DISCONNECTED)
            return

        self._exited = True
        self._transition_to(LifecycleState.ENDED)
        self._cancel_activity(keep_lifetime=not self.learning)
        try:
            self._finish_episode(reason or "ended")
        finally:
            self._release()
            # rotate mode: a still-pending lifetime timer reschedules the slot
            if self.learning or self._lifetime_timer is None:
                self.scheduler.schedule_slot(self.slot_index)
            self._transition_to(LifecycleState.DISCONNECTED)

    def _on_chat(self, sender: str, text: str) -> None:
        if not self.learning or sender == self.identity:
            return
        task = asyncio.get_running_loop().create_task(self.trainer.handle_chat(sender, text))
        self._chat_tasks.add(task)
        task.add_done_callback(self._chat_tasks.discard)

    def disconnect(self) -> None:
        """Orderly shutdown: stop all activity and leave the server."""
        self._closing = True
        self._cancel_activity()
        try:
            if self.learning:
                self.trainer.end_episode("shutdown")
        finally:
            if self.session is not None and self.session.is_connected:
                self.session.disconnect()
            self._release()
            self._transition_to(LifecycleState.DISCONNECTED)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cancel_activity(self, keep_lifetime: bool = False) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None
        if self._lifetime_timer is not None and not keep_lifetime:
            self._lifetime_timer.cancel()
            self._lifetime_timer = None
        for task in list(self._chat_tasks):
            task.cancel()
        self._chat_tasks.clear()

    def _finish_episode(self, cause: str) -> None:
        if self.learning:
            try:
                self.trainer.end_episode(cause)
            finally:
                self.trainer.estimator.persist()

    def _release(self) -> None:
        self.scheduler.vacate(self.slot_index, self)
