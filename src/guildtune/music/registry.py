"""Lookup table of per-guild music managers."""

from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional

from .manager import GuildMusicManager

__all__ = ["GuildQueueRegistry"]

ManagerFactory = Callable[[int], GuildMusicManager]


class GuildQueueRegistry:
    """Create one :class:`GuildMusicManager` per guild on first use.

    Entries are never evicted; a guild that left voice keeps its idle manager.
    """

    def __init__(self, factory: ManagerFactory) -> None:
        self._factory = factory
        self._managers: Dict[int, GuildMusicManager] = {}
        self._lock = threading.Lock()

    def get_or_create(self, guild_id: int) -> GuildMusicManager:
        with self._lock:
            manager = self._managers.get(guild_id)
            if manager is None:
                manager = self._factory(guild_id)
                self._managers[guild_id] = manager
            return manager

    def get(self, guild_id: int) -> Optional[GuildMusicManager]:
        with self._lock:
            return self._managers.get(guild_id)

    def managers(self) -> List[GuildMusicManager]:
        with self._lock:
            return list(self._managers.values())

    def __contains__(self, guild_id: object) -> bool:
        with self._lock:
            return guild_id in self._managers

    def __len__(self) -> int:
        with self._lock:
            return len(self._managers)
