"""
persistence.py - Fleet identity storage.

The active identity list is stored as a JSON array of
``{"username": ...}`` objects so that a restarted fleet reconnects
the same agents (and therefore reloads the same models).
"""

import json
import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


class FleetStore:
    """
    Load/save the fleet's identity list.

    Usage:
        store = FleetStore("bots_config.json")
        names = store.load_identities()
        store.save_identities(names)
    """

    def __init__(self, path: str = "bots_config.json"):
        self.path = path

    def load_identities(self) -> List[str]:
        """Saved identities, or an empty list on first run or unreadable file."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info(f"No fleet config at {self.path}, starting fresh")
            return []
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading fleet config {self.path}: {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"Fleet config {self.path} is not a list, ignoring it")
            return []

        identities = []
        for entry in data:
            username = entry.get('username') if isinstance(entry, dict) else None
            if isinstance(username, str) and username and username not in identities:
                identities.append(username)
            else:
                logger.warning(f"Skipping invalid fleet config entry: {entry!r}")
        return identities

    def save_identities(self, identities: List[str]) -> bool:
        """Best-effort save; returns False (after logging) on failure."""
        try:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump([{'username': name} for name in identities], f, indent=2)
        except OSError as e:
            logger.error(f"Error saving fleet config {self.path}: {e}")
            return False
        logger.info(f"Saved {len(identities)} identities to {self.path}")
        return True
