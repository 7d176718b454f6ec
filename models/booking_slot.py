from datetime import datetime
from models.db import db

class BookingSlot(db.Model):
    __tablename__ = "booking_slots"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    slot_date = db.Column(db.Date, nullable=False, index=True)
    slot_hour = db.Column(db.Integer, nullable=False)  # 0-23, slot covers hour:00 to hour+1:00

    is_night_rate = db.Column(db.Boolean, default=False, nullable=False)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False)

    # cleared when the owning booking is cancelled or expires
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    released_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="slots")

    __table_args__ = (
        db.CheckConstraint("slot_hour >= 0 AND slot_hour <= 23", name="ck_booking_slots_hour"),
        # Hard business-rule: an hour on a date can only be held by one live booking
        db.Index(
            "uq_booking_slots_active_hold",
            "slot_date",
            "slot_hour",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
    )
