"""
mc_client.py - Game client capability interface for the agent fleet.

This module provides a clean abstraction layer over the actual Minecraft
client/bot library. The rest of the fleet code interacts with this
interface rather than directly with protocol-level details.

It defines:
- GameClient: connects an identity and returns a GameSession
- GameSession: event source (joined, ended, faulted, chat) plus
  world queries and actions
- EntityFilter / BlockQuery: serializable predicates for world queries
- SimulatedGameClient: an in-memory world used for dry runs and tests

Swapping the underlying client library only requires a new GameClient /
GameSession pair; nothing else in the fleet depends on protocol details.

SAFETY NOTE:
This bot is intended to be used only where automation is explicitly
allowed by the server owner. Do not use this in violation of any
server's terms of service.
"""

import asyncio
import errno
import logging
import math
import random
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Any

logger = logging.getLogger(__name__)


class SessionEvent:
    """Event names emitted by a GameSession."""
    JOINED = "joined"
    ENDED = "ended"
    FAULTED = "faulted"
    CHAT = "chat"


class ConnectionErrorClass(Enum):
    """Classification of session faults."""
    REFUSED = "refused"
    RESET = "reset"
    OTHER = "other"

    @property
    def is_connection_error(self) -> bool:
        return self in (ConnectionErrorClass.REFUSED, ConnectionErrorClass.RESET)


def classify_error(error: BaseException) -> ConnectionErrorClass:
    """Map an exception raised by a client library to a fault class."""
    if isinstance(error, ConnectionRefusedError):
        return ConnectionErrorClass.REFUSED
    if isinstance(error, ConnectionResetError):
        return ConnectionErrorClass.RESET
    code = getattr(error, "errno", None)
    if code == errno.ECONNREFUSED:
        return ConnectionErrorClass.REFUSED
    if code == errno.ECONNRESET:
        return ConnectionErrorClass.RESET
    return ConnectionErrorClass.OTHER


class ActionError(Exception):
    """Raised by a session when an in-world action cannot be completed."""


@dataclass
class Position:
    """3D position in the world."""
    x: float
    y: float
    z: float

    def to_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def distance_to(self, other: 'Position') -> float:
        """Calculate Euclidean distance to another position."""
        return math.sqrt(
            (self.x - other.x) ** 2 +
            (self.y - other.y) ** 2 +
            (self.z - other.z) ** 2
        )

    def offset(self, dx: float, dy: float, dz: float) -> 'Position':
        return Position(self.x + dx, self.y + dy, self.z + dz)

    def floored(self) -> 'Position':
        return Position(math.floor(self.x), math.floor(self.y), math.floor(self.z))


@dataclass
class Block:
    """Block information."""
    position: Position
    name: str  # e.g. "oak_log"


@dataclass
class Entity:
    """Entity information."""
    entity_id: int
    kind: str  # "mob", "player" or "item"
    name: str
    position: Position
    hostile: bool = False
    username: Optional[str] = None


@dataclass
class Item:
    """Inventory stack."""
    name: str
    count: int


@dataclass(frozen=True)
class EntityFilter:
    """
    Predicate for nearest-entity queries.

    Attributes:
        kind: Entity kind to match ("mob", "player", "item"), any if None
        hostile_only: Only match hostile mobs
        max_distance: Maximum distance from the querying agent
        exclude_username: Skip players with this username (usually self)
    """
    kind: Optional[str] = None
    hostile_only: bool = False
    max_distance: Optional[float] = None
    exclude_username: Optional[str] = None

    def matches(self, entity: Entity, origin: Position) -> bool:
        if self.kind is not None and entity.kind != self.kind:
            return False
        if self.hostile_only and not entity.hostile:
            return False
        if self.exclude_username is not None and entity.username == self.exclude_username:
            return False
        if self.max_distance is not None and entity.position.distance_to(origin) >= self.max_distance:
            return False
        return True


@dataclass(frozen=True)
class BlockQuery:
    """
    Predicate for find-block queries.

    A block matches if its name is in ``names`` or contains any of the
    ``name_contains`` fragments, and it lies within ``max_distance``.
    """
    names: Tuple[str, ...] = ()
    name_contains: Tuple[str, ...] = ()
    max_distance: float = 16.0

    def matches(self, block: Block, origin: Position) -> bool:
        if block.position.distance_to(origin) > self.max_distance:
            return False
        if block.name in self.names:
            return True
        return any(fragment in block.name for fragment in self.name_contains)


@dataclass(frozen=True)
class Goal:
    """Navigation goal. ``y`` is ignored when None (XZ goal)."""
    x: float
    z: float
    y: Optional[float] = None
    reach: float = 0.0


@dataclass
class ClientConfig:
    """Connection settings shared by every agent."""
    host: str = "localhost"
    port: int = 25565
    version: str = "1.21.5"
    dry_run: bool = False


class GameSession(ABC):
    """
    One connected agent session.

    Sessions emit events to handlers registered with ``on``:
    - joined()
    - ended(reason)
    - faulted(error_class, error)
    - chat(sender, text)

    World queries are synchronous reads of the client's cached state.
    Actions are coroutines that raise ActionError (or any other
    exception) when they fail.
    """

    def __init__(self, username: str):
        self.username = username
        self._event_handlers: Dict[str, List[Callable]] = {}

    def on(self, event_type: str, handler: Callable) -> None:
        """Register an event handler."""
        self._event_handlers.setdefault(event_type, []).append(handler)

    def _emit(self, event_type: str, *args: Any) -> None:
        """Emit an event to registered handlers."""
        for handler in list(self._event_handlers.get(event_type, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"[{self.username}] Error in {event_type} handler: {e}", exc_info=True)

    # ---- state -------------------------------------------------------------

    @property
    @abstractmethod
    def version(self) -> str: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @property
    @abstractmethod
    def position(self) -> Optional[Position]: ...

    @property
    @abstractmethod
    def health(self) -> float:
        """Current health (0-20)."""

    @property
    @abstractmethod
    def food(self) -> float:
        """Current food level (0-20)."""

    @property
    @abstractmethod
    def in_water(self) -> bool: ...

    @property
    @abstractmethod
    def time_of_day(self) -> int:
        """World time of day in ticks (0-24000)."""

    @property
    @abstractmethod
    def dimension(self) -> str: ...

    # ---- queries -----------------------------------------------------------

    @abstractmethod
    def nearest_entity(self, query: EntityFilter) -> Optional[Entity]: ...

    @abstractmethod
    def find_block(self, query: BlockQuery) -> Optional[Block]: ...

    @abstractmethod
    def block_at(self, position: Position) -> Optional[Block]: ...

    @abstractmethod
    def inventory_items(self) -> List[Item]: ...

    def inventory_count(self, item_name: str) -> int:
        return sum(item.count for item in self.inventory_items() if item.name == item_name)

    def has_item(self, item_name: str) -> bool:
        return self.inventory_count(item_name) > 0

    @abstractmethod
    def can_dig(self, block: Block) -> bool: ...

    @abstractmethod
    def has_recipe(self, item_name: str) -> bool: ...

    # ---- actions -----------------------------------------------------------

    @abstractmethod
    async def goto(self, goal: Goal) -> None: ...

    @abstractmethod
    async def dig(self, block: Block) -> None: ...

    @abstractmethod
    async def place_block(self, reference: Block, face: Tuple[int, int, int]) -> None: ...

    @abstractmethod
    async def equip(self, item_name: str) -> None: ...

    @abstractmethod
    async def craft(self, item_name: str, count: int = 1) -> None: ...

    @abstractmethod
    async def sleep(self, bed: Block) -> None: ...

    @abstractmethod
    async def wake(self) -> None: ...

    @abstractmethod
    async def attack(self, entity: Entity) -> None: ...

    @abstractmethod
    async def collect(self, entity: Entity) -> None: ...

    @abstractmethod
    async def wait_ticks(self, ticks: int) -> None: ...

    @abstractmethod
    def send_chat(self, text: str) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...


class GameClient(ABC):
    """Factory for sessions; one client is shared by the whole fleet."""

    @abstractmethod
    async def connect(
        self,
        host: str,
        port: int,
        username: str,
        version: str
    ) -> GameSession:
        """
        Open a session for ``username``.

        Raises:
            ConnectionRefusedError / ConnectionResetError when the server
            cannot be reached.
        """


# =============================================================================
# Simulated client (dry run)
# =============================================================================

DEFAULT_RECIPES: Dict[str, Dict[str, int]] = {
    "wooden_pickaxe": {"oak_log": 2},
    "stone_pickaxe": {"cobblestone": 3, "oak_log": 1},
    "furnace": {"cobblestone": 8},
    "iron_pickaxe": {"iron_ingot": 3, "oak_log": 1},
}

BLOCK_DROPS: Dict[str, str] = {
    "oak_log": "oak_log",
    "stone": "cobblestone",
    "coal_ore": "coal",
    "iron_ore": "iron_ore",
    "diamond_ore": "diamond",
    "dirt": "dirt",
}


@dataclass
class SimulatedWorld:
    """Mutable in-memory world state behind a SimulatedSession."""
    blocks: List[Block] = field(default_factory=list)
    entities: List[Entity] = field(default_factory=list)
    inventory: Counter = field(default_factory=Counter)
    recipes: Dict[str, Dict[str, int]] = field(default_factory=lambda: dict(DEFAULT_RECIPES))
    position: Position = field(default_factory=lambda: Position(0.0, 64.0, 0.0))
    health: float = 20.0
    food: float = 20.0
    in_water: bool = False
    time_of_day: int = 1000
    dimension: str = "minecraft:overworld"
    sleeping: bool = False

    @classmethod
    def generate(cls, seed: Optional[int] = None) -> 'SimulatedWorld':
        """Scatter a handful of resources and mobs around spawn."""
        rng = random.Random(seed)
        world = cls()
        layout = [("oak_log", 12), ("stone", 20), ("coal_ore", 6), ("iron_ore", 4),
                  ("diamond_ore", 1), ("dirt", 20)]
        for name, count in layout:
            for _ in range(count):
                world.blocks.append(Block(
                    Position(rng.randint(-14, 14), 63 - rng.randint(0, 4), rng.randint(-14, 14)),
                    name
                ))
        for entity_id in range(2):
            world.entities.append(Entity(
                entity_id=entity_id,
                kind="mob",
                name="zombie",
                position=Position(rng.uniform(-25, 25), 64.0, rng.uniform(-25, 25)),
                hostile=True
            ))
        return world


class SimulatedSession(GameSession):
    """
    GameSession backed by a SimulatedWorld.

    Used by ``--dry-run`` and by the test-suite. Events are delivered
    through the running event loop with ``call_soon`` so that handlers
    registered right after ``connect`` still observe ``joined``.
    """

    def __init__(self, username: str, version: str, world: SimulatedWorld):
        super().__init__(username)
        self._version = version
        self.world = world
        self._connected = True
        self.chat_log: List[str] = []

    @property
    def version(self) -> str:
        return self._version

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def position(self) -> Optional[Position]:
        return self.world.position if self._connected else None

    @property
    def health(self) -> float:
        return self.world.health

    @property
    def food(self) -> float:
        return self.world.food

    @property
    def in_water(self) -> bool:
        return self.world.in_water

    @property
    def time_of_day(self) -> int:
        return self.world.time_of_day

    @property
    def dimension(self) -> str:
        return self.world.dimension

    def nearest_entity(self, query: EntityFilter) -> Optional[Entity]:
        origin = self.world.position
        candidates = [e for e in self.world.entities if query.matches(e, origin)]
        if not candidates:
            return None
        return min(candidates, key=lambda e: e.position.distance_to(origin))

    def find_block(self, query: BlockQuery) -> Optional[Block]:
        origin = self.world.position
        candidates = [b for b in self.world.blocks if query.matches(b, origin)]
        if not candidates:
            return None
        return min(candidates, key=lambda b: b.position.distance_to(origin))

    def block_at(self, position: Position) -> Optional[Block]:
        target = position.floored()
        for block in self.world.blocks:
            if block.position.floored() == target:
                return block
        return None

    def inventory_items(self) -> List[Item]:
        return [Item(name, count) for name, count in self.world.inventory.items() if count > 0]

    def can_dig(self, block: Block) -> bool:
        return block in self.world.blocks

    def has_recipe(self, item_name: str) -> bool:
        recipe = self.world.recipes.get(item_name)
        if recipe is None:
            return False
        return all(self.world.inventory[name] >= count for name, count in recipe.items())

    def _require_connected(self) -> None:
        if not self._connected:
            raise ActionError("not connected")

    async def goto(self, goal: Goal) -> None:
        self._require_connected()
        await asyncio.sleep(0)
        y = goal.y if goal.y is not None else self.world.position.y
        self.world.position = Position(goal.x, y, goal.z)

    async def dig(self, block: Block) -> None:
        self._require_connected()
        if block not in self.world.blocks:
            raise ActionError(f"no block to dig at {block.position.to_tuple()}")
        await asyncio.sleep(0)
        self.world.blocks.remove(block)
        drop = BLOCK_DROPS.get(block.name)
        if drop:
            self.world.inventory[drop] += 1

    async def place_block(self, reference: Block, face: Tuple[int, int, int]) -> None:
        self._require_connected()
        if self.world.inventory["dirt"] <= 0:
            raise ActionError("nothing to place")
        self.world.inventory["dirt"] -= 1
        pos = reference.position.offset(*face)
        self.world.blocks.append(Block(pos, "dirt"))

    async def equip(self, item_name: str) -> None:
        self._require_connected()
        if self.world.inventory[item_name] <= 0:
            raise ActionError(f"no {item_name} to equip")

    async def craft(self, item_name: str, count: int = 1) -> None:
        self._require_connected()
        if not self.has_recipe(item_name):
            raise ActionError(f"missing ingredients for {item_name}")
        for name, needed in self.world.recipes[item_name].items():
            self.world.inventory[name] -= needed * count
        self.world.inventory[item_name] += count

    async def sleep(self, bed: Block) -> None:
        self._require_connected()
        if self.world.time_of_day < 13000:
            raise ActionError("can only sleep at night")
        self.world.sleeping = True

    async def wake(self) -> None:
        self.world.sleeping = False

    async def attack(self, entity: Entity) -> None:
        self._require_connected()
        if entity in self.world.entities:
            self.world.entities.remove(entity)

    async def collect(self, entity: Entity) -> None:
        self._require_connected()
        if entity not in self.world.entities:
            raise ActionError("item already gone")
        self.world.entities.remove(entity)
        self.world.inventory[entity.name] += 1

    async def wait_ticks(self, ticks: int) -> None:
        await asyncio.sleep(0)

    def send_chat(self, text: str) -> None:
        if not self._connected:
            logger.warning(f"[{self.username}] Cannot send chat: not connected")
            return
        self.chat_log.append(text)
        logger.info(f"[{self.username}] [DRY RUN] chat: {text}")

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        asyncio.get_running_loop().call_soon(self._emit, SessionEvent.ENDED, "disconnect.quitting")

    def inject_fault(self, error_class: ConnectionErrorClass, message: str = "") -> None:
        """Simulate a client fault (tests and dry runs)."""
        self._emit(SessionEvent.FAULTED, error_class, message)

    def receive_chat(self, sender: str, text: str) -> None:
        self._emit(SessionEvent.CHAT, sender, text)


class SimulatedGameClient(GameClient):
    """
    GameClient that never touches the network.

    Args:
        refuse_connections: Raise ConnectionRefusedError on connect
        seed: Seed for world generation
    """

    def __init__(self, refuse_connections: bool = False, seed: Optional[int] = None):
        self.refuse_connections = refuse_connections
        self.seed = seed
        self.sessions: List[SimulatedSession] = []

    async def connect(
        self,
        host: str,
        port: int,
        username: str,
        version: str
    ) -> SimulatedSession:
        logger.info(f"[{username}] [DRY RUN] Connecting to {host}:{port} (version {version})")
        await asyncio.sleep(0)
        if self.refuse_connections:
            raise ConnectionRefusedError(f"connect ECONNREFUSED {host}:{port}")
        seed = None if self.seed is None else self.seed + len(self.sessions)
        session = SimulatedSession(username, version, SimulatedWorld.generate(seed))
        self.sessions.append(session)
        asyncio.get_running_loop().call_soon(session._emit, SessionEvent.JOINED)
        return session


def create_client(config: ClientConfig, seed: Optional[int] = None) -> GameClient:
    """
    Build the fleet's game client.

    Only the simulated client ships with the fleet; a networked client
    is plugged in by implementing GameClient / GameSession over a
    protocol library.

    Raises:
        RuntimeError: if a live connection is requested
    """
    if config.dry_run:
        logger.info("[DRY RUN] Using simulated game client")
        return SimulatedGameClient(seed=seed)
    raise RuntimeError(
        f"No networked game client is installed for {config.host}:{config.port}; "
        f"run with --dry-run or provide a GameClient implementation"
    )
