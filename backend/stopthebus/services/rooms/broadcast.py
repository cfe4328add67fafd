import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Set

from flask_socketio import join_room, leave_room

from .events import RoomEvent

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'


def room_channel(code: str) -> str:
    return f"room:{code}"


class BroadcastHub:
    """Tracks socket subscribers per room and pushes events to them.

    Delivery is best-effort: a subscriber that is gone before an emit simply
    misses it and is expected to re-read the room view.
    """

    def __init__(self, socketio, namespace=NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace
        self._members: Dict[str, Set[str]] = defaultdict(set)
        self._sid_rooms: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def subscribe(self, sid: str, code: str) -> int:
        # Needs a Socket.IO request context (called from event handlers)
        join_room(room_channel(code), sid=sid, namespace=self.namespace)
        with self._lock:
            self._members[code].add(sid)
            self._sid_rooms[sid].add(code)
            return len(self._members[code])

    def unsubscribe(self, sid: str, code: str) -> int:
        leave_room(room_channel(code), sid=sid, namespace=self.namespace)
        with self._lock:
            self._forget(sid, code)
            self._sid_rooms[sid].discard(code)
            if not self._sid_rooms[sid]:
                del self._sid_rooms[sid]
            return len(self._members.get(code, ()))

    def drop(self, sid: str) -> List[str]:
        """Forget a disconnected socket; returns codes left without subscribers."""
        with self._lock:
            codes = self._sid_rooms.pop(sid, set())
            emptied = []
            for code in codes:
                self._forget(sid, code)
                if code not in self._members:
                    emptied.append(code)
            return emptied

    def forget_room(self, code: str) -> int:
        """Drop every subscription to a closed room; returns how many were dropped."""
        with self._lock:
            members = self._members.pop(code, set())
            for sid in members:
                rooms = self._sid_rooms.get(sid)
                if rooms is None:
                    continue
                rooms.discard(code)
                if not rooms:
                    del self._sid_rooms[sid]
        self.socketio.close_room(room_channel(code), namespace=self.namespace)
        return len(members)

    def subscriber_count(self, code: str) -> int:
        with self._lock:
            return len(self._members.get(code, ()))

    def publish(self, code: str, events: Iterable[RoomEvent]) -> int:
        sent = 0
        for event in events:
            try:
                self.socketio.emit(event.name, event.payload, to=room_channel(code), namespace=self.namespace)
            except Exception:
                logger.exception(f"[emit-failed] room={code} event={event.name}")
                continue
            sent += 1
        return sent

    def _forget(self, sid: str, code: str) -> None:
        members = self._members.get(code)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._members[code]
