"""
Booking lifecycle signals. Receivers get ``sender`` (the Flask app) plus the
keyword payload listed next to each signal. Signals fire only after the
originating transaction has committed, so a failing receiver is logged and
skipped: the booking change it reports is already saved.
"""
import logging

from blinker import Namespace
from flask import current_app

from models import db

logger = logging.getLogger(__name__)

_signals = Namespace()

# booking_id, booking_number, customer_name, booking_date, hours_count, manual
booking_created = _signals.signal("booking-created")
# booking_id, booking_number
booking_approved = _signals.signal("booking-approved")
# booking_id, booking_number, reason, expired
booking_cancelled = _signals.signal("booking-cancelled")
# booking_id, booking_number, booking_date, hours
booking_rescheduled = _signals.signal("booking-rescheduled")
# booking_id, booking_number, result (PaymentResult)
payment_completed = _signals.signal("payment-completed")


def emit(signal, **payload):
    sender = current_app._get_current_object()
    for receiver in signal.receivers_for(sender):
        try:
            receiver(sender, **payload)
        except Exception:
            logger.exception("Receiver %r failed on %s", receiver, signal.name)
            db.session.rollback()
