import json
import threading
import time
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from stopthebus import db, socketio
from stopthebus.models import RoomSnapshot
from .room import Room


class SnapshotWriter:
    """Write-behind persistence for room views.

    - Pending snapshots are coalesced per room code; only the newest is written
    - A background task flushes every SNAPSHOT_INTERVAL_SEC
    - In TESTING mode every schedule flushes synchronously
    - A failed flush is rolled back in the database only and retried next tick
    """

    def __init__(self, app):
        self.app = app
        self._pending: Dict[str, Optional[dict]] = {}
        self._lock = threading.Lock()
        self._started = False

    @property
    def synchronous(self) -> bool:
        return bool(self.app.config.get('TESTING'))

    def schedule(self, code: str, view: Optional[dict]) -> None:
        """Queue ``view`` for ``code``; None queues a delete."""
        with self._lock:
            self._pending[code] = view
        if self.synchronous:
            self.flush()

    def pending_codes(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def flush(self) -> int:
        with self._lock:
            batch, self._pending = self._pending, {}
        if not batch:
            return 0
        with self.app.app_context():
            try:
                for code, view in batch.items():
                    self._write(code, view)
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                self.app.logger.exception(f"[snapshot-failed] rooms={sorted(batch)} will retry")
                with self._lock:
                    # Newer snapshots queued meanwhile win over the failed batch
                    for code, view in batch.items():
                        self._pending.setdefault(code, view)
                return 0
        self.app.logger.debug(f"[snapshot] wrote rooms={sorted(batch)}")
        return len(batch)

    def _write(self, code: str, view: Optional[dict]) -> None:
        if view is None:
            RoomSnapshot.query.filter_by(code=code).delete()
            return
        snap = RoomSnapshot.query.filter_by(code=code).first() or RoomSnapshot(code=code)
        snap.data = json.dumps(view)
        snap.updated_at = time.time()
        db.session.add(snap)

    def start(self) -> None:
        if self.synchronous or self._started:
            return
        self._started = True
        socketio.start_background_task(self._run)

    def _run(self) -> None:
        interval = float(self.app.config.get('SNAPSHOT_INTERVAL_SEC', 2))
        self.app.logger.info(f"[snapshot-worker] started interval={interval}s")
        while True:
            socketio.sleep(interval)
            self.flush()


def load_rooms(app) -> List[Room]:
    """Read every persisted room. Corrupt rows are skipped; never raises."""
    rooms = []
    with app.app_context():
        try:
            snapshots = RoomSnapshot.query.all()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception('[snapshot-load] could not read snapshots, starting empty')
            return []
        for snap in snapshots:
            try:
                room = Room.from_dict(snap.to_dict())
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                app.logger.warning(f"[snapshot-load] skipping corrupt room={snap.code}: {exc}")
                continue
            rooms.append(room)
    app.logger.info(f"[snapshot-load] restored rooms={len(rooms)}")
    return rooms
