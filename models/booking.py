from datetime import datetime
from decimal import Decimal
from models.db import db

BOOKING_STATUSES = ("pending", "approved", "completed", "cancelled")
ACTIVE_STATUSES = ("pending", "approved", "completed")
TERMINAL_STATUSES = ("completed", "cancelled")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    booking_number = db.Column(db.String(20), unique=True, nullable=False, index=True)  # BK-YYYYMMDD-NNN

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    booking_date = db.Column(db.Date, nullable=False, index=True)
    total_hours = db.Column(db.Integer, nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    advance_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    advance_payment_method = db.Column(db.String(20), nullable=True)
    advance_payment_proof = db.Column(db.String(255), nullable=True)

    # outstanding balance; driven to zero when the booking is completed
    remaining_payment = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    remaining_payment_method = db.Column(db.String(20), nullable=True)
    remaining_payment_proof = db.Column(db.String(255), nullable=True)
    remaining_payment_date = db.Column(db.DateTime, nullable=True)

    # how the remaining balance was settled (reporting only, never a balance)
    remaining_cash_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    remaining_online_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    remaining_online_method = db.Column(db.String(20), nullable=True)

    extra_charges = db.Column(db.JSON, nullable=False, default=list)  # [{description, amount}]
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    # status values: pending, approved, completed, cancelled

    pending_expires_at = db.Column(db.DateTime, nullable=True, index=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_reason = db.Column(db.String(255), nullable=True)

    customer_notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = db.relationship("Customer", back_populates="bookings")
    slots = db.relationship(
        "BookingSlot",
        back_populates="booking",
        order_by="BookingSlot.slot_hour",
        cascade="all, delete-orphan",
    )
    payments = db.relationship(
        "Payment",
        back_populates="booking",
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'approved', 'completed', 'cancelled')", name="ck_bookings_status"),
        db.CheckConstraint("advance_payment >= 0", name="ck_bookings_advance"),
        db.CheckConstraint("remaining_payment >= 0", name="ck_bookings_remaining"),
        db.CheckConstraint("remaining_cash_amount >= 0", name="ck_bookings_remaining_cash"),
        db.CheckConstraint("remaining_online_amount >= 0", name="ck_bookings_remaining_online"),
        db.CheckConstraint("discount_amount >= 0", name="ck_bookings_discount"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def held_hours(self):
        return sorted(s.slot_hour for s in self.slots if s.is_active)

    @property
    def amount_collected(self) -> Decimal:
        """Advance plus whatever was received when the remaining balance was settled."""
        return (
            Decimal(self.advance_payment or 0)
            + Decimal(self.remaining_cash_amount or 0)
            + Decimal(self.remaining_online_amount or 0)
        )

    def is_expired(self, now: datetime) -> bool:
        return (
            self.status == "pending"
            and self.pending_expires_at is not None
            and self.pending_expires_at < now
        )
