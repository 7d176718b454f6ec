from datetime import datetime
from models.db import db

class SlotLock(db.Model):
    """One lockable row per (date, hour) key; created on first use and never deleted."""
    __tablename__ = "slot_locks"

    lock_date = db.Column(db.Date, primary_key=True)
    slot_hour = db.Column(db.Integer, primary_key=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
