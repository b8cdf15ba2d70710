"""
actions.py - Action definitions and handler registry for the fleet agents.

This module defines the discrete action set the Q-network chooses from
and the handlers that carry each action out through a GameSession.

Each action id is one output neuron of the Q-network. Handlers are
looked up in an ActionRegistry instead of a large branching switch, so
each one can be unit tested against a fake session.

To extend:
- Add the new action to the Action enum (the network output size follows)
- Write an ``async def`` handler taking an ActionContext and returning an
  ActionOutcome, and decorate it with ``@register(Action.NEW_ACTION)``
"""

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from enum import IntEnum
from typing import Awaitable, Callable, Dict, Optional

import numpy as np

from integration.mc_client import (
    ActionError,
    BlockQuery,
    EntityFilter,
    GameSession,
    Goal,
)
from .game_data import GameDataTable
from .observation import ObservationIndex, STACK_SIZE

logger = logging.getLogger(__name__)


class Action(IntEnum):
    """Discrete actions; the value is the Q-network output index."""
    WALK_RANDOM = 0
    ATTACK_NEAREST_HOSTILE = 1
    FLEE_FROM_HOSTILE = 2
    BUILD_BASIC_SHELTER = 3
    DIG_WOOD = 4
    CRAFT_WOODEN_PICKAXE = 5
    COLLECT_DROPPED_ITEMS = 6
    SLEEP = 7
    IDLE = 8
    MINE_STONE = 9
    CRAFT_STONE_PICKAXE = 10
    MINE_COAL = 11
    MINE_IRON = 12
    CRAFT_FURNACE = 13
    SMELT_IRON = 14
    CRAFT_IRON_PICKAXE = 15
    MINE_DIAMONDS = 16
    CRAFT_NETHER_PORTAL = 17
    GO_TO_NETHER = 18
    KILL_DRAGON = 19
    COMMUNICATE_REQUEST_WOOD = 20
    COMMUNICATE_OFFER_WOOD = 21
    COMMUNICATE_ENEMY_WARNING = 22


NUM_ACTIONS = len(Action)

# Chat phrases other agents react to (see training/online.py)
REQUEST_WOOD_PHRASE = "Need wood!"
OFFER_WOOD_PHRASE = "Have extra wood!"
ENEMY_WARNING_PHRASE = "Warning! Hostile mob"

# Rewards used by the dispatch boundary itself
UNAVAILABLE_REWARD = -1.0
UNKNOWN_ACTION_REWARD = -0.05
EXCEPTION_REWARD = -0.7


@dataclass(frozen=True)
class ActionOutcome:
    """Result of executing one action."""
    success: bool
    reward: float


@dataclass
class ActionContext:
    """Everything a handler may look at."""
    session: GameSession
    observation: np.ndarray
    game_data: GameDataTable

    @property
    def username(self) -> str:
        return self.session.username

    def feature(self, index: ObservationIndex) -> float:
        return float(self.observation[index])

    def count(self, index: ObservationIndex) -> float:
        """De-normalized inventory count for a count feature."""
        return self.feature(index) * STACK_SIZE

    def has_stone_or_better_pickaxe(self) -> bool:
        return bool(
            self.feature(ObservationIndex.HAS_STONE_PICKAXE) or
            self.feature(ObservationIndex.HAS_IRON_PICKAXE) or
            self.feature(ObservationIndex.HAS_DIAMOND_PICKAXE)
        )

    def nearest_other_player(self):
        return self.session.nearest_entity(EntityFilter(kind="player", exclude_username=self.username))


ActionHandler = Callable[[ActionContext], Awaitable[ActionOutcome]]


class ActionRegistry:
    """
    Maps action ids to handlers.

    ``dispatch`` is the error boundary for action execution: a handler
    that raises is converted into a fixed negative reward and never
    crashes the agent.
    """

    def __init__(self):
        self._handlers: Dict[Action, ActionHandler] = {}

    def register(self, action: Action) -> Callable[[ActionHandler], ActionHandler]:
        def decorator(handler: ActionHandler) -> ActionHandler:
            self._handlers[action] = handler
            return handler
        return decorator

    def handler_for(self, action_id: int) -> Optional[ActionHandler]:
        try:
            return self._handlers.get(Action(action_id))
        except ValueError:
            return None

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(
        self,
        action_id: int,
        session: Optional[GameSession],
        observation: np.ndarray,
        game_data: Optional[GameDataTable]
    ) -> ActionOutcome:
        """Execute ``action_id`` and return its outcome."""
        name = Action(action_id).name if action_id in Action._value2member_map_ else str(action_id)

        if session is None or session.position is None:
            logger.error(f"Session unavailable for action {name}")
            return ActionOutcome(False, UNAVAILABLE_REWARD)
        if game_data is None:
            logger.error(f"[{session.username}] Game data not initialized for action {name}")
            return ActionOutcome(False, UNAVAILABLE_REWARD)

        handler = self.handler_for(action_id)
        if handler is None:
            logger.error(f"[{session.username}] Unknown action id: {action_id}")
            return ActionOutcome(False, UNKNOWN_ACTION_REWARD)

        logger.debug(f"[{session.username}] Executing {name}")
        try:
            return await handler(ActionContext(session, observation, game_data))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{session.username}] Exception while executing {name}: {e}")
            return ActionOutcome(False, EXCEPTION_REWARD)


DEFAULT_REGISTRY = ActionRegistry()
register = DEFAULT_REGISTRY.register


async def _attempt(
    ctx: ActionContext,
    label: str,
    operation: Awaitable[None],
    success_reward: float,
    failure_reward: float
) -> ActionOutcome:
    """Await an in-world operation and map ActionError to a failure."""
    try:
        await operation
    except ActionError as e:
        logger.info(f"[{ctx.username}] {label} failed: {e}")
        return ActionOutcome(False, failure_reward)
    logger.info(f"[{ctx.username}] {label} succeeded")
    return ActionOutcome(True, success_reward)


def _skip(ctx: ActionContext, reason: str, reward: float) -> ActionOutcome:
    logger.debug(f"[{ctx.username}] {reason}")
    return ActionOutcome(False, reward)


# =============================================================================
# Movement and combat
# =============================================================================

@register(Action.WALK_RANDOM)
async def walk_random(ctx: ActionContext) -> ActionOutcome:
    pos = ctx.session.position
    offset = random.uniform(-10.0, 10.0)
    goal = Goal(x=pos.x + offset, z=pos.z + offset)
    return await _attempt(ctx, "Random walk", ctx.session.goto(goal), 0.1, -0.1)


@register(Action.ATTACK_NEAREST_HOSTILE)
async def attack_nearest_hostile(ctx: ActionContext) -> ActionOutcome:
    target = ctx.session.nearest_entity(EntityFilter(kind="mob", hostile_only=True, max_distance=5.0))
    if target is None:
        return _skip(ctx, "No hostile mob in reach", -0.1)
    return await _attempt(ctx, f"Attack on {target.name}", ctx.session.attack(target), 0.5, -0.1)


@register(Action.FLEE_FROM_HOSTILE)
async def flee_from_hostile(ctx: ActionContext) -> ActionOutcome:
    threat = ctx.session.nearest_entity(EntityFilter(kind="mob", hostile_only=True))
    if threat is None:
        return _skip(ctx, "Nothing to flee from", -0.1)
    pos = ctx.session.position
    dx = pos.x - threat.position.x
    dz = pos.z - threat.position.z
    norm = math.hypot(dx, dz) or 1.0
    goal = Goal(x=pos.x + dx / norm * 15.0, y=pos.y, z=pos.z + dz / norm * 15.0, reach=5.0)
    return await _attempt(ctx, f"Flee from {threat.name}", ctx.session.goto(goal), 0.8, -0.5)


@register(Action.BUILD_BASIC_SHELTER)
async def build_basic_shelter(ctx: ActionContext) -> ActionOutcome:
    session = ctx.session
    block_name = ctx.game_data.shelter_block
    if session.inventory_count(block_name) < 16:
        return _skip(ctx, f"Not enough {block_name} for a shelter (need 16)", -0.2)

    reward = 0.0
    try:
        await session.equip(block_name)
        base = session.position.floored()
        # Floor under and around the agent
        for x in (-1, 0, 1):
            for z in (-1, 0, 1):
                reference = session.block_at(base.offset(x, -1, z))
                if reference is not None and reference.name != block_name:
                    await session.place_block(reference, (0, 1, 0))
                    reward += 0.1
                    await session.wait_ticks(5)
        # Three layers of walls on the ring
        for y in range(3):
            for x in (-1, 0, 1):
                for z in (-1, 0, 1):
                    if abs(x) != 1 and abs(z) != 1:
                        continue
                    reference = session.block_at(base.offset(x, y - 1, z))
                    if reference is not None:
                        await session.place_block(reference, (0, 1, 0))
                        reward += 0.15
                        await session.wait_ticks(5)
    except ActionError as e:
        logger.info(f"[{ctx.username}] Shelter build failed: {e}")
        return ActionOutcome(False, -1.0)

    logger.info(f"[{ctx.username}] Built a basic shelter")
    return ActionOutcome(True, reward + 5.0)


# =============================================================================
# Gathering and crafting
# =============================================================================

async def _mine(ctx: ActionContext, label: str, query: BlockQuery, success: float, failure: float,
                missing: float) -> ActionOutcome:
    block = ctx.session.find_block(query)
    if block is None or not ctx.session.can_dig(block):
        return _skip(ctx, f"No {label} within reach", missing)
    return await _attempt(ctx, f"Mining {label}", ctx.session.dig(block), success, failure)


async def _craft(ctx: ActionContext, item_name: str, enough: bool, success: float, failure: float,
                 missing: float) -> ActionOutcome:
    if not enough or not ctx.session.has_recipe(item_name):
        return _skip(ctx, f"No recipe or materials for {item_name}", missing)
    return await _attempt(ctx, f"Crafting {item_name}", ctx.session.craft(item_name, 1), success, failure)


@register(Action.DIG_WOOD)
async def dig_wood(ctx: ActionContext) -> ActionOutcome:
    query = BlockQuery(name_contains=ctx.game_data.log_fragments, max_distance=16)
    return await _mine(ctx, "wood", query, 1.5, -0.5, -0.2)


@register(Action.CRAFT_WOODEN_PICKAXE)
async def craft_wooden_pickaxe(ctx: ActionContext) -> ActionOutcome:
    return await _craft(ctx, ctx.game_data.wooden_pickaxe, True, 2.0, -1.0, -0.5)


@register(Action.COLLECT_DROPPED_ITEMS)
async def collect_dropped_items(ctx: ActionContext) -> ActionOutcome:
    drop = ctx.session.nearest_entity(EntityFilter(kind="item", max_distance=10.0))
    if drop is None:
        return _skip(ctx, "No dropped items nearby", -0.1)
    return await _attempt(ctx, f"Collecting {drop.name}", ctx.session.collect(drop), 0.7, -0.3)


@register(Action.SLEEP)
async def sleep_in_bed(ctx: ActionContext) -> ActionOutcome:
    bed = ctx.session.find_block(BlockQuery(name_contains=(ctx.game_data.bed_fragment,), max_distance=16))
    if bed is None or ctx.feature(ObservationIndex.IS_DAY):
        return _skip(ctx, "No bed nearby or not night", -0.2)
    outcome = await _attempt(ctx, "Sleeping", ctx.session.sleep(bed), 1.0, -0.5)
    if outcome.success:
        session = ctx.session
        asyncio.get_running_loop().call_later(5.0, lambda: asyncio.ensure_future(session.wake()))
    return outcome


@register(Action.IDLE)
async def idle(ctx: ActionContext) -> ActionOutcome:
    return ActionOutcome(True, 0.05)


@register(Action.MINE_STONE)
async def mine_stone(ctx: ActionContext) -> ActionOutcome:
    if not ctx.feature(ObservationIndex.HAS_WOODEN_PICKAXE):
        return _skip(ctx, "Need a wooden pickaxe to mine stone", -0.3)
    query = BlockQuery(names=(ctx.game_data.stone_block,), max_distance=16)
    return await _mine(ctx, "stone", query, 1.8, -0.6, -0.3)


@register(Action.CRAFT_STONE_PICKAXE)
async def craft_stone_pickaxe(ctx: ActionContext) -> ActionOutcome:
    enough = ctx.count(ObservationIndex.STONE) >= 3
    return await _craft(ctx, ctx.game_data.stone_pickaxe, enough, 3.0, -1.2, -0.6)


@register(Action.MINE_COAL)
async def mine_coal(ctx: ActionContext) -> ActionOutcome:
    if not ctx.has_stone_or_better_pickaxe():
        return _skip(ctx, "Need a stone pickaxe to mine coal", -0.4)
    query = BlockQuery(names=(ctx.game_data.coal_ore_block,), max_distance=32)
    return await _mine(ctx, "coal", query, 2.5, -0.8, -0.4)


@register(Action.MINE_IRON)
async def mine_iron(ctx: ActionContext) -> ActionOutcome:
    if not ctx.has_stone_or_better_pickaxe():
        return _skip(ctx, "Need a stone pickaxe to mine iron", -0.5)
    query = BlockQuery(names=(ctx.game_data.iron_ore_block,), max_distance=32)
    return await _mine(ctx, "iron", query, 4.0, -1.5, -0.5)


@register(Action.CRAFT_FURNACE)
async def craft_furnace(ctx: ActionContext) -> ActionOutcome:
    enough = ctx.count(ObservationIndex.STONE) >= 8
    return await _craft(ctx, ctx.game_data.furnace_item, enough, 3.5, -1.5, -0.7)


@register(Action.SMELT_IRON)
async def smelt_iron(ctx: ActionContext) -> ActionOutcome:
    ready = (
        ctx.session.has_item(ctx.game_data.furnace_item) and
        ctx.count(ObservationIndex.COAL) >= 1 and
        ctx.count(ObservationIndex.IRON_ORE) >= 1
    )
    if not ready:
        return _skip(ctx, "Need a furnace, coal and iron ore to smelt", -0.8)
    # Furnace interaction is left to the client library; reward the intent.
    return ActionOutcome(True, 5.0)


@register(Action.CRAFT_IRON_PICKAXE)
async def craft_iron_pickaxe(ctx: ActionContext) -> ActionOutcome:
    enough = ctx.count(ObservationIndex.IRON_INGOT) >= 3
    return await _craft(ctx, ctx.game_data.iron_pickaxe, enough, 7.0, -2.5, -1.0)


@register(Action.MINE_DIAMONDS)
async def mine_diamonds(ctx: ActionContext) -> ActionOutcome:
    has_pick = (
        ctx.feature(ObservationIndex.HAS_IRON_PICKAXE) or
        ctx.feature(ObservationIndex.HAS_DIAMOND_PICKAXE)
    )
    if not has_pick:
        return _skip(ctx, "Need an iron pickaxe to mine diamonds", -1.5)
    query = BlockQuery(names=(ctx.game_data.diamond_ore_block,), max_distance=32)
    return await _mine(ctx, "diamonds", query, 15.0, -3.0, -1.0)


# =============================================================================
# Progression
# =============================================================================

@register(Action.CRAFT_NETHER_PORTAL)
async def craft_nether_portal(ctx: ActionContext) -> ActionOutcome:
    ready = (
        ctx.count(ObservationIndex.OBSIDIAN) >= 14 and
        ctx.feature(ObservationIndex.HAS_FLINT_AND_STEEL)
    )
    if not ready:
        return _skip(ctx, "Need 14 obsidian and flint and steel for a portal", -2.0)
    return ActionOutcome(True, 50.0)


@register(Action.GO_TO_NETHER)
async def go_to_nether(ctx: ActionContext) -> ActionOutcome:
    portal = ctx.session.find_block(BlockQuery(names=(ctx.game_data.nether_portal_block,), max_distance=10))
    if portal is None:
        return _skip(ctx, "No nether portal nearby", -2.0)
    p = portal.position
    return await _attempt(ctx, "Entering the nether", ctx.session.goto(Goal(x=p.x, y=p.y, z=p.z)), 100.0, -10.0)


@register(Action.KILL_DRAGON)
async def kill_dragon(ctx: ActionContext) -> ActionOutcome:
    if not ctx.feature(ObservationIndex.IN_END):
        return _skip(ctx, "Not in the end", -5.0)
    return ActionOutcome(True, 1000.0)


# =============================================================================
# Communication
# =============================================================================

@register(Action.COMMUNICATE_REQUEST_WOOD)
async def request_wood(ctx: ActionContext) -> ActionOutcome:
    if ctx.count(ObservationIndex.WOOD) >= 10 or not ctx.feature(ObservationIndex.OTHER_PLAYER_NEARBY):
        return _skip(ctx, "No need to request wood", -0.1)
    player = ctx.nearest_other_player()
    if player is None:
        return ActionOutcome(False, 0.0)
    ctx.session.send_chat(f"@{player.username} {ctx.username}: {REQUEST_WOOD_PHRASE} Can you help?")
    return ActionOutcome(True, 0.2)


@register(Action.COMMUNICATE_OFFER_WOOD)
async def offer_wood(ctx: ActionContext) -> ActionOutcome:
    if ctx.count(ObservationIndex.WOOD) <= 30 or not ctx.feature(ObservationIndex.OTHER_PLAYER_NEARBY):
        return _skip(ctx, "No spare wood to offer", -0.1)
    player = ctx.nearest_other_player()
    if player is None:
        return ActionOutcome(False, 0.0)
    ctx.session.send_chat(f"@{player.username} {ctx.username}: {OFFER_WOOD_PHRASE}")
    return ActionOutcome(True, 0.2)


@register(Action.COMMUNICATE_ENEMY_WARNING)
async def warn_about_enemy(ctx: ActionContext) -> ActionOutcome:
    if not ctx.feature(ObservationIndex.ENEMY_NEARBY) or not ctx.feature(ObservationIndex.OTHER_PLAYER_NEARBY):
        return _skip(ctx, "No enemy or nobody to warn", -0.1)
    player = ctx.nearest_other_player()
    enemy = ctx.session.nearest_entity(EntityFilter(kind="mob", hostile_only=True))
    if player is None or enemy is None:
        return ActionOutcome(False, 0.0)
    p = enemy.position
    ctx.session.send_chat(
        f"@{player.username} {ctx.username}: {ENEMY_WARNING_PHRASE} ({enemy.name}) "
        f"at {p.x:.0f}, {p.y:.0f}, {p.z:.0f}!"
    )
    return ActionOutcome(True, 0.5)
