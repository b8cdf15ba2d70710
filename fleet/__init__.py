"""
Fleet module: scheduling and running many agents at once.

- SlotScheduler / SchedulerState / Slot: staggered wake-ups with global backoff
- AgentLifecycle / LifecycleState: per-slot connection state machine
- FleetManager: orchestration, identity persistence and shutdown
- FleetStore: identity list storage
"""

from .scheduler import (
    Slot,
    SchedulerState,
    SlotScheduler,
)
from .lifecycle import (
    LifecycleState,
    AgentLifecycle,
)
from .persistence import FleetStore
from .manager import FleetManager

__all__ = [
    'Slot',
    'SchedulerState',
    'SlotScheduler',
    'LifecycleState',
    'AgentLifecycle',
    'FleetStore',
    'FleetManager',
]
