import json
import time

from stopthebus import db


class RoomSnapshot(db.Model):
    """Last persisted state of one room, keyed by its code."""
    __tablename__ = 'room_snapshot'
    code = db.Column(db.String(16), primary_key=True)
    data = db.Column(db.Text, nullable=False)  # JSON-encoded room view
    updated_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return json.loads(self.data)
