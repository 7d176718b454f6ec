from datetime import date
from decimal import Decimal

from sqlalchemy import func

from models import db
from models.booking import Booking
from models.payment import Payment
from utils.money import ZERO, money_str


def _date_filter(q, column, start: date = None, end: date = None):
    if start:
        q = q.filter(column >= start)
    if end:
        q = q.filter(column <= end)
    return q


def revenue_summary(start: date = None, end: date = None) -> dict:
    """
    Revenue over bookings whose booking_date falls in [start, end].

    Collected revenue is advance + cash + online settlement of completed
    bookings. remaining_payment is an outstanding balance (zero once
    completed) and is never counted as money received.
    """
    completed = _date_filter(
        db.session.query(
            func.count(Booking.id),
            func.coalesce(func.sum(Booking.advance_payment), 0),
            func.coalesce(func.sum(Booking.remaining_cash_amount), 0),
            func.coalesce(func.sum(Booking.remaining_online_amount), 0),
            func.coalesce(func.sum(Booking.discount_amount), 0),
        ).filter(Booking.status == "completed"),
        Booking.booking_date, start, end,
    ).one()
    count_completed, advance_completed, cash, online, discounts = completed

    approved = _date_filter(
        db.session.query(
            func.coalesce(func.sum(Booking.advance_payment), 0),
            func.coalesce(func.sum(Booking.remaining_payment), 0),
        ).filter(Booking.status == "approved"),
        Booking.booking_date, start, end,
    ).one()
    advance_approved, outstanding = approved

    counts = dict(
        _date_filter(
            db.session.query(Booking.status, func.count(Booking.id)).group_by(Booking.status),
            Booking.booking_date, start, end,
        ).all()
    )

    extras = ZERO
    for (charges,) in _date_filter(
        db.session.query(Booking.extra_charges).filter(Booking.status == "completed"),
        Booking.booking_date, start, end,
    ).all():
        extras += sum((Decimal(str(c.get("amount", 0))) for c in charges or []), ZERO)

    by_method = {}
    method_rows = _date_filter(
        db.session.query(Payment.method, func.coalesce(func.sum(Payment.amount), 0))
        .join(Booking, Payment.booking_id == Booking.id)
        .filter(Booking.status.in_(("approved", "completed")))
        .group_by(Payment.method),
        Booking.booking_date, start, end,
    ).all()
    for method, amount in method_rows:
        by_method[method] = money_str(amount)

    total_revenue = Decimal(advance_completed) + Decimal(cash) + Decimal(online)
    return {
        "total_revenue": money_str(total_revenue),
        "advance_received": money_str(Decimal(advance_completed) + Decimal(advance_approved)),
        "remaining_cash_received": money_str(cash),
        "remaining_online_received": money_str(online),
        "pending_revenue": money_str(outstanding),
        "discount_total": money_str(discounts),
        "extra_charges_total": money_str(extras),
        "completed_bookings": count_completed,
        "bookings_by_status": {s: counts.get(s, 0) for s in ("pending", "approved", "completed", "cancelled")},
        "by_method": by_method,
    }
