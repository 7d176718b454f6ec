from datetime import datetime
from models.db import db

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    payment_type = db.Column(db.String(20), nullable=False)  # advance, remaining
    channel = db.Column(db.String(20), nullable=False)       # cash, online
    method = db.Column(db.String(20), nullable=False)        # cash, easypaisa, sadapay, bank, ...
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    proof_ref = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="payments")

    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_positive_amount"),
    )
