"""In-memory room table with one lock per room.

The table lock only guards the dictionaries; it is never held while a room is
being mutated. Each ``upsert`` publishes a fresh view for lock-free reads and
hands the same view to the snapshot writer.
"""
import copy
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import RoomNotFound
from .room import Room

logger = logging.getLogger(__name__)


class RoomStore:

    def __init__(self, writer=None):
        self._rooms: Dict[str, Room] = {}
        self._views: Dict[str, dict] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._table_lock = threading.Lock()
        self._writer = writer

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def all_codes(self) -> List[str]:
        with self._table_lock:
            return list(self._rooms)

    def get(self, code: str) -> Optional[Room]:
        """Detached copy of the room as of its last upsert."""
        view = self._views.get(code)
        return Room.from_dict(view) if view is not None else None

    def view(self, code: str) -> Optional[dict]:
        view = self._views.get(code)
        return copy.deepcopy(view) if view is not None else None

    def insert(self, room: Room) -> bool:
        """Add a new room; False if its code is already taken."""
        with self._table_lock:
            if room.code in self._rooms:
                return False
            self._rooms[room.code] = room
            self._locks[room.code] = threading.RLock()
            view = self._publish(room)
        self._persist(room.code, view)
        return True

    def upsert(self, room: Room) -> None:
        """Store ``room``. Callers mutating an existing room must hold its lock."""
        room.touch()
        with self._table_lock:
            self._rooms[room.code] = room
            self._locks.setdefault(room.code, threading.RLock())
            view = self._publish(room)
        self._persist(room.code, view)

    def remove(self, code: str) -> None:
        with self._lock_for(code):
            with self._table_lock:
                if self._rooms.pop(code, None) is None:
                    raise RoomNotFound(code)
                self._views.pop(code, None)
                self._locks.pop(code, None)
        self._persist(code, None)

    @contextmanager
    def locked(self, code: str) -> Iterator[Room]:
        """Hold the room's exclusive lock and yield the live room."""
        with self._lock_for(code):
            room = self._rooms.get(code)
            # The room may have been removed while we waited for its lock
            if room is None:
                raise RoomNotFound(code)
            yield room

    def load(self, rooms: Iterable[Room]) -> int:
        """Replace the table with ``rooms`` without re-persisting them."""
        with self._table_lock:
            self._rooms.clear()
            self._views.clear()
            self._locks.clear()
            for room in rooms:
                self._rooms[room.code] = room
                self._locks[room.code] = threading.RLock()
                self._publish(room)
            count = len(self._rooms)
        logger.info(f"[store-load] rooms={count}")
        return count

    def _lock_for(self, code: str) -> threading.RLock:
        with self._table_lock:
            lock = self._locks.get(code)
        if lock is None:
            raise RoomNotFound(code)
        return lock

    def _publish(self, room: Room) -> dict:
        view = room.to_dict()
        self._views[room.code] = view
        return view

    def _persist(self, code: str, view: Optional[dict]) -> None:
        if self._writer is not None:
            self._writer.schedule(code, view)
