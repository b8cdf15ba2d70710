"""
Integration module for the agent fleet.

This module provides integration with external Minecraft clients:
- GameClient / GameSession: Capability interface for connectivity,
  world queries and in-world actions
- SimulatedGameClient: In-memory client for dry runs and tests
"""

from .mc_client import (
    ActionError,
    Block,
    BlockQuery,
    ClientConfig,
    ConnectionErrorClass,
    Entity,
    EntityFilter,
    GameClient,
    GameSession,
    Goal,
    Item,
    Position,
    SessionEvent,
    SimulatedGameClient,
    SimulatedSession,
    SimulatedWorld,
    classify_error,
    create_client,
)

__all__ = [
    'ActionError',
    'Block',
    'BlockQuery',
    'ClientConfig',
    'ConnectionErrorClass',
    'Entity',
    'EntityFilter',
    'GameClient',
    'GameSession',
    'Goal',
    'Item',
    'Position',
    'SessionEvent',
    'SimulatedGameClient',
    'SimulatedSession',
    'SimulatedWorld',
    'classify_error',
    'create_client',
]
