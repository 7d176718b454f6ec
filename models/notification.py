from datetime import datetime
from models.db import db

class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    notification_type = db.Column(db.String(30), nullable=False, index=True)
    # new_booking, booking_approved, booking_cancelled, booking_updated, payment_completed, system

    title = db.Column(db.String(160), nullable=False)
    message = db.Column(db.Text, nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)
    priority = db.Column(db.String(10), nullable=False, default="normal")  # low, normal, high

    is_read = db.Column(db.Boolean, default=False, nullable=False, index=True)
    read_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
