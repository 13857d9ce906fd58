"""FIFO track queue owned by a single guild."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, List, Optional

from .tracks import Track

__all__ = ["GuildQueue"]


class GuildQueue:
    """A thread-safe deque that only grows at the back and shrinks at the front."""

    def __init__(self) -> None:
        self._queue: Deque[Track] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def __bool__(self) -> bool:
        return len(self) > 0

    def enqueue(self, track: Track) -> int:
        """Append ``track`` and return the new queue length."""

        with self._lock:
            self._queue.append(track)
            return len(self._queue)

    def dequeue(self) -> Optional[Track]:
        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
            return dropped

    def snapshot(self) -> List[Track]:
        with self._lock:
            return list(self._queue)

    def total_duration_ms(self) -> int:
        with self._lock:
            return sum(track.duration_ms for track in self._queue)
