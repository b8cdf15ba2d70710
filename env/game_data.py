"""
game_data.py - Block and item name tables for the agent fleet.

The tables are built once, after the first successful connection tells
us the server version, and are then shared read-only by every agent.

To extend:
- Add new names to the relevant tuple/frozenset in ``for_version``
- Reference them by attribute from observation or action code
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameDataTable:
    """
    Immutable name tables for one game version.

    Attributes:
        version: Game version the tables were built for
        log_fragments: Name fragments identifying wood blocks
        bed_fragment: Name fragment identifying beds
        food_items: Item names that count as food
        wood_item: Inventory item counted as "wood"
        stone_item: Inventory item counted as "stone"
        coal_item / iron_ore_item / iron_ingot_item / obsidian_item /
        ender_eye_item: Resource items by tier
        shelter_block: Block used to build shelters
    """
    version: str
    log_fragments: Tuple[str, ...]
    bed_fragment: str
    food_items: FrozenSet[str]
    wood_item: str = "oak_log"
    stone_item: str = "cobblestone"
    coal_item: str = "coal"
    iron_ore_item: str = "iron_ore"
    iron_ingot_item: str = "iron_ingot"
    obsidian_item: str = "obsidian"
    ender_eye_item: str = "ender_eye"
    flint_and_steel_item: str = "flint_and_steel"
    furnace_item: str = "furnace"
    shelter_block: str = "dirt"
    stone_block: str = "stone"
    coal_ore_block: str = "coal_ore"
    iron_ore_block: str = "iron_ore"
    diamond_ore_block: str = "diamond_ore"
    nether_portal_block: str = "nether_portal"
    wooden_pickaxe: str = "wooden_pickaxe"
    stone_pickaxe: str = "stone_pickaxe"
    iron_pickaxe: str = "iron_pickaxe"
    diamond_pickaxe: str = "diamond_pickaxe"
    nether_dimension: str = "minecraft:the_nether"
    end_dimension: str = "minecraft:the_end"

    @classmethod
    def for_version(cls, version: str) -> 'GameDataTable':
        """Build the tables for ``version``."""
        logger.info(f"Game data initialized for version {version}")
        return cls(
            version=version,
            log_fragments=("log", "wood"),
            bed_fragment="bed",
            food_items=frozenset({
                "apple", "bread", "baked_potato", "carrot", "cooked_beef",
                "cooked_chicken", "cooked_mutton", "cooked_porkchop",
                "cooked_cod", "cooked_salmon", "golden_apple", "melon_slice",
                "sweet_berries", "beef", "porkchop", "chicken", "mutton",
            }),
        )


class GameDataHolder:
    """
    Set-once holder shared by the fleet.

    The first session to join initializes the table; later sessions
    reuse it by reference.
    """

    def __init__(self):
        self._table: Optional[GameDataTable] = None

    @property
    def table(self) -> Optional[GameDataTable]:
        return self._table

    def ensure(self, version: str) -> GameDataTable:
        if self._table is None:
            self._table = GameDataTable.for_version(version)
        return self._table
