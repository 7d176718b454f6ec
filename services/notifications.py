"""
Admin notification feed fed by booking lifecycle signals.

Delivering notifications (web push, service workers) is someone else's job;
this only records them so the admin dashboard can poll and mark them read.
"""
import logging
from datetime import datetime

from models import db
from models.notification import Notification
from services import events
from utils.clock import local_now

logger = logging.getLogger(__name__)


def _record(notification_type: str, title: str, message: str, booking_id=None, priority="normal"):
    row = Notification(
        notification_type=notification_type,
        title=title,
        message=message,
        booking_id=booking_id,
        priority=priority,
    )
    db.session.add(row)
    db.session.commit()
    return row


def on_booking_created(sender, booking_id, booking_number, customer_name, booking_date, hours_count,
                       manual=False, **extra):
    _record(
        "new_booking",
        "Manual Booking" if manual else "New Booking",
        f"{customer_name} booked {hours_count} hour(s) on {booking_date.isoformat()} (#{booking_number}).",
        booking_id=booking_id,
        priority="normal" if manual else "high",
    )


def on_booking_approved(sender, booking_id, booking_number, **extra):
    _record("booking_approved", "Booking Approved", f"Booking #{booking_number} has been approved.",
            booking_id=booking_id)


def on_booking_cancelled(sender, booking_id, booking_number, reason=None, expired=False, **extra):
    if expired:
        _record(
            "system",
            "Booking Auto-Cancelled",
            f"Booking #{booking_number} was automatically cancelled due to pending timeout. Slots have been released.",
            booking_id=booking_id,
            priority="low",
        )
        return
    _record("booking_cancelled", "Booking Cancelled", f"Booking #{booking_number} was cancelled: {reason}",
            booking_id=booking_id)


def on_booking_rescheduled(sender, booking_id, booking_number, booking_date, hours, **extra):
    slots = ", ".join(f"{h:02d}:00" for h in hours)
    _record("booking_updated", "Booking Rescheduled",
            f"Booking #{booking_number} moved to {booking_date.isoformat()} at {slots}.", booking_id=booking_id)


def on_payment_completed(sender, booking_id, booking_number, result, **extra):
    _record(
        "payment_completed",
        "Payment Completed",
        f"Booking #{booking_number} settled: Rs {result.cash_amount} cash, Rs {result.online_amount} online.",
        booking_id=booking_id,
    )


def register_notification_handlers():
    # blinker ignores a receiver that is already connected
    events.booking_created.connect(on_booking_created)
    events.booking_approved.connect(on_booking_approved)
    events.booking_cancelled.connect(on_booking_cancelled)
    events.booking_rescheduled.connect(on_booking_rescheduled)
    events.payment_completed.connect(on_payment_completed)


def list_notifications(unread_only: bool = False, limit: int = 50):
    q = Notification.query
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, now: datetime = None):
    row = db.session.get(Notification, notification_id)
    if row is None:
        return None
    if not row.is_read:
        row.is_read = True
        row.read_at = now or local_now()
        db.session.commit()
    return row


def mark_all_read(now: datetime = None) -> int:
    now = now or local_now()
    count = (
        Notification.query
        .filter(Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": now}, synchronize_session=False)
    )
    db.session.commit()
    return count
