"""
Process-wide registry of live rooms.
"""

import asyncio
import logging
import random
from typing import Dict, List, Optional

from .constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from .room import Room
from .rules import RuleConfig
from .settings import Settings
from .stats import StatsTracker

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Maps room codes to rooms. Codes are unique among live rooms and case-insensitive."""

    def __init__(self, settings: Settings, stats: Optional[StatsTracker] = None,
                 rng: Optional[random.Random] = None):
        self.settings = settings
        self.stats = stats
        self.rng = rng or random.SystemRandom()
        self.rooms: Dict[str, Room] = {}
        self.lock = asyncio.Lock()

    def _generate_code(self) -> str:
        while True:
            code = ''.join(self.rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code

    async def create_room(self, rules: RuleConfig) -> Room:
        async with self.lock:
            code = self._generate_code()
            room = Room(code, self.settings, rules, stats=self.stats, on_expire=self.remove)
            self.rooms[code] = room
        logger.info(f"Room {code} created ({len(self.rooms)} live)")
        return room

    def get(self, code: Optional[str]) -> Optional[Room]:
        if not code:
            return None
        return self.rooms.get(code.strip().upper())

    async def remove(self, code: str) -> None:
        async with self.lock:
            room = self.rooms.pop(code.upper(), None)
        if room is None:
            return
        if self.stats is not None:
            self.stats.forget_room(room.code)
        logger.info(f"Room {room.code} removed ({len(self.rooms)} live)")

    def active_games(self) -> List[dict]:
        """Rooms with a game in progress, for spectators browsing."""
        return [room.summary() for room in self.rooms.values() if room.started and not room.closed]

    async def close_all(self) -> None:
        async with self.lock:
            rooms = list(self.rooms.values())
            self.rooms.clear()
        for room in rooms:
            await room.close("server shutting down")
        if rooms:
            logger.info(f"Closed {len(rooms)} rooms")

    def __len__(self) -> int:
        return len(self.rooms)
