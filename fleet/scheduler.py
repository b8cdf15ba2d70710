"""
scheduler.py - Slot-based connection scheduling for the agent fleet.

Each of N slots gets its own wake-up timer. Wake delays are staggered
deterministically by slot index inside [base, max] seconds so that the
fleet never joins the server all at once. A connection failure anywhere
pushes every slot's future delay back by a fixed penalty.

All mutations happen on the event-loop thread inside the callback that
observed the triggering event, so no locking is needed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from utils.config import SchedulerConfig

logger = logging.getLogger(__name__)


@dataclass
class Slot:
    """
    One reusable scheduling position.

    Attributes:
        index: Position in the slot array
        occupant: The agent currently holding the slot (None when free)
        accumulated_delay_seconds: Backoff added to every future wake-up
    """
    index: int
    occupant: Optional[Any] = None
    accumulated_delay_seconds: float = 0.0

    @property
    def occupied(self) -> bool:
        return self.occupant is not None


class SchedulerState:
    """Owned slot array, passed explicitly to the scheduler."""

    def __init__(self, slot_count: int):
        if slot_count <= 0:
            raise ValueError(f"slot_count must be positive, got {slot_count}")
        self.slots: List[Slot] = [Slot(index=i) for i in range(slot_count)]

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, index: int) -> Slot:
        return self.slots[index]

    def __iter__(self) -> Iterator[Slot]:
        return iter(self.slots)

    def occupants(self) -> List[Any]:
        return [slot.occupant for slot in self.slots if slot.occupied]


class SlotScheduler:
    """
    Decides when each slot next tries to connect.

    ``spawn(slot_index)`` is called when a timer fires on a free slot; it
    must create the new agent synchronously and return it. The returned
    agent becomes the slot's occupant before the callback returns, which
    is what guarantees at most one agent per slot.

    Usage:
        scheduler = SlotScheduler(SchedulerState(3), SchedulerConfig(), spawn)
        scheduler.schedule_all()
    """

    def __init__(
        self,
        state: SchedulerState,
        config: SchedulerConfig,
        spawn: Callable[[int], Any],
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.state = state
        self.config = config
        self.spawn = spawn
        self._loop = loop
        self._timers: Dict[int, asyncio.TimerHandle] = {}
        self.failure_count = 0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def interval_for(self, slot_index: int) -> float:
        """
        Wake delay for ``slot_index`` in seconds.

        ``base + (index mod (max - base + 1)) + accumulated delay``
        """
        base = int(self.config.base_interval_seconds)
        window = int(self.config.max_interval_seconds) - base + 1
        slot = self.state[slot_index]
        return float(base + (slot_index % window)) + slot.accumulated_delay_seconds

    def record_global_failure(self) -> None:
        """Back every slot off by one penalty unit. No ceiling is applied."""
        self.failure_count += 1
        for slot in self.state:
            slot.accumulated_delay_seconds += self.config.failure_penalty_seconds
        logger.warning(
            f"Connection failure #{self.failure_count}: all slots delayed by "
            f"{self.config.failure_penalty_seconds:.0f}s "
            f"(now +{self.state[0].accumulated_delay_seconds:.0f}s)"
        )

    def schedule_slot(self, slot_index: int, delay: Optional[float] = None) -> float:
        """
        Arm the one-shot wake-up timer for a slot.

        Any timer already pending for the slot is replaced.

        Args:
            slot_index: Slot to schedule
            delay: Explicit delay (cooldown); defaults to ``interval_for``

        Returns:
            The delay used, in seconds
        """
        if delay is None:
            delay = self.interval_for(slot_index)
        self.cancel_slot(slot_index)
        self._timers[slot_index] = self.loop.call_later(delay, self._fire, slot_index)
        logger.info(f"Slot {slot_index} scheduled in {delay:.0f}s")
        return delay

    def schedule_all(self) -> None:
        for slot in self.state:
            self.schedule_slot(slot.index)

    def is_pending(self, slot_index: int) -> bool:
        return slot_index in self._timers

    def _fire(self, slot_index: int) -> None:
        self._timers.pop(slot_index, None)
        slot = self.state[slot_index]
        if slot.occupied:
            logger.debug(f"Slot {slot_index} still occupied, skipping wake-up")
            return
        occupant = self.spawn(slot_index)
        if occupant is not None:
            self.occupy(slot_index, occupant)

    def occupy(self, slot_index: int, occupant: Any) -> None:
        self.state[slot_index].occupant = occupant

    def vacate(self, slot_index: int, occupant: Any = None) -> bool:
        """
        Free a slot.

        When ``occupant`` is given the slot is only freed if that occupant
        still holds it, so a stale agent cannot evict its successor.
        """
        slot = self.state[slot_index]
        if occupant is not None and slot.occupant is not occupant:
            return False
        slot.occupant = None
        return True

    def cancel_slot(self, slot_index: int) -> None:
        timer = self._timers.pop(slot_index, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for slot_index in list(self._timers):
            self.cancel_slot(slot_index)
