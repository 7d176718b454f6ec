"""
Booking lifecycle: pending -> approved -> completed, any non-terminal -> cancelled.
Live bookings can be moved to other hours; admins can also book on a customer's behalf.

Slot exclusivity is decided inside ``SlotStore.with_lock``; the conflict
check done before taking the lock only exists to fail fast.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.customer import Customer
from models.payment import Payment
from services import events
from services.availability import check_conflict
from services.customers import find_or_create_customer, normalize_phone
from services.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from services.pricing import price_hours
from services.slot_store import SlotStore, atomic, is_hold_collision, lock_booking
from utils.money import ZERO, money_str, to_money

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 3
EXPIRY_REASON = "Auto-cancelled: pending hold expired before approval"


def payment_channel(method: str) -> str:
    return "cash" if method == "cash" else "online"


def validate_payment_method(method, field: str) -> str:
    method = (method or "").strip().lower() if isinstance(method, str) else ""
    allowed = current_app.config.get("PAYMENT_METHODS", ["cash", "online"])
    if method not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(allowed)}", field=field, allowed=list(allowed)
        )
    return method


def _validate_hours(hours):
    if not isinstance(hours, (list, tuple, set)) or not hours:
        raise ValidationError("At least one slot hour is required", field="hours")
    clean = []
    for h in hours:
        if isinstance(h, bool) or not isinstance(h, int) or not 0 <= h <= 23:
            raise ValidationError("Slot hours must be whole numbers between 0 and 23", field="hours")
        clean.append(h)
    if len(set(clean)) != len(clean):
        raise ValidationError("Slot hours must not repeat", field="hours")
    max_hours = current_app.config.get("MAX_BOOKING_HOURS", 12)
    if len(clean) > max_hours:
        raise ValidationError(f"A booking can cover at most {max_hours} hours", field="hours")
    return sorted(clean)


def _next_booking_number(now: datetime) -> str:
    prefix = f"BK-{now:%Y%m%d}-"
    count = Booking.query.filter(Booking.booking_number.like(prefix + "%")).count()
    return f"{prefix}{count + 1:03d}"


def _cancel(booking: Booking, reason: str, now: datetime, store: SlotStore):
    booking.status = "cancelled"
    booking.cancelled_at = now
    booking.cancelled_reason = reason
    booking.pending_expires_at = None
    store.release(booking, now)


def _release_expired_holds(store: SlotStore, slot_date: date, hours, now: datetime):
    released = []
    for hold in store.active_holds(slot_date, hours):
        booking = hold.booking
        if booking in released or not booking.is_expired(now):
            continue
        db.session.refresh(booking, with_for_update=True)
        if booking.is_expired(now):
            _cancel(booking, EXPIRY_REASON, now, store)
            released.append(booking)
    return released


def _slot_conflict(slot_date: date, conflicts) -> ConflictError:
    return ConflictError(
        "Slot conflict: one or more slots were just booked by another customer",
        date=slot_date.isoformat(),
        conflicts=conflicts,
    )


def _reserve(slot_date: date, hours, customer: dict, pricing: dict, now: datetime,
             min_advance, auto_approve: bool = False, manual: bool = False) -> Booking:
    if not isinstance(slot_date, date):
        raise ValidationError("booking date is required", field="date")
    hours = _validate_hours(hours)
    pricing = pricing or {}

    priced, total = price_hours(hours)
    advance = to_money(pricing.get("advance_payment"), "advance_payment")
    required = min(to_money(min_advance), total)
    if advance < required:
        raise ValidationError(
            f"An advance payment of at least Rs {money_str(required)} is required",
            field="advance_payment",
            required=money_str(required),
        )
    if advance > total:
        raise ValidationError(
            "Advance payment cannot exceed the total amount",
            field="advance_payment",
            total_amount=money_str(total),
        )
    advance_method = None
    if advance > ZERO:
        advance_method = validate_payment_method(pricing.get("advance_payment_method"), "advance_payment_method")
    advance_proof = (pricing.get("advance_payment_proof") or "").strip()[:255] or None
    notes = (pricing.get("customer_notes") or "").strip() or None

    conflicts = check_conflict(slot_date, hours, now)
    if conflicts:
        logger.info("Booking pre-check conflict on %s: %s", slot_date, conflicts)
        raise ConflictError(
            "Some selected slots are no longer available",
            date=slot_date.isoformat(),
            conflicts=conflicts,
        )

    store = SlotStore()
    hold_minutes = current_app.config.get("PENDING_HOLD_MINUTES", 30)
    expired = []

    def _claim():
        expired[:] = _release_expired_holds(store, slot_date, hours, now)

        live = store.active_holds(slot_date, hours)
        if live:
            raise _slot_conflict(slot_date, [{"hour": h.slot_hour, "status": h.booking.status} for h in live])

        booking = Booking(
            booking_number=_next_booking_number(now),
            customer=find_or_create_customer(customer),
            booking_date=slot_date,
            total_hours=len(hours),
            total_amount=total,
            advance_payment=advance,
            advance_payment_method=advance_method,
            advance_payment_proof=advance_proof,
            remaining_payment=total - advance,
            remaining_cash_amount=ZERO,
            remaining_online_amount=ZERO,
            discount_amount=ZERO,
            extra_charges=[],
            customer_notes=notes,
        )
        if auto_approve:
            booking.status = "approved"
            booking.approved_at = now
        else:
            booking.status = "pending"
            booking.pending_expires_at = now + timedelta(minutes=hold_minutes)
        db.session.add(booking)
        store.add_holds(booking, priced)
        if advance > ZERO:
            booking.payments.append(Payment(
                payment_type="advance",
                channel=payment_channel(advance_method),
                method=advance_method,
                amount=advance,
                proof_ref=advance_proof,
            ))
        return booking

    for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
        try:
            booking = store.with_lock(slot_date, hours, _claim)
            break
        except IntegrityError as exc:
            if is_hold_collision(exc):
                logger.warning("Active-hold index rejected booking on %s hours=%s", slot_date, hours)
                raise _slot_conflict(slot_date, [{"hour": h, "status": "pending"} for h in hours])
            if attempt == MAX_CREATE_ATTEMPTS:
                raise
            # booking number or customer phone taken by a concurrent insert
            logger.info("Retrying booking creation (attempt %s): %s", attempt, exc.orig)

    _emit_expired(expired)

    logger.info("Booking %s created for %s hours=%s status=%s",
                booking.booking_number, slot_date, hours, booking.status)
    events.emit(
        events.booking_created,
        booking_id=booking.id,
        booking_number=booking.booking_number,
        customer_name=booking.customer.name,
        booking_date=booking.booking_date,
        hours_count=booking.total_hours,
        manual=manual,
    )
    if auto_approve:
        events.emit(events.booking_approved, booking_id=booking.id, booking_number=booking.booking_number)
    return booking


def _emit_expired(expired):
    for old in expired:
        events.emit(events.booking_cancelled, booking_id=old.id, booking_number=old.booking_number,
                    reason=EXPIRY_REASON, expired=True)


def create_booking(slot_date: date, hours, customer: dict, pricing: dict, now: datetime) -> Booking:
    """
    Reserve `hours` on `slot_date` for `customer` as a pending booking.

    pricing: {advance_payment, advance_payment_method, advance_payment_proof, customer_notes}
    Raises ValidationError, or ConflictError listing the hours already held.
    """
    return _reserve(slot_date, hours, customer, pricing, now,
                    min_advance=current_app.config.get("ADVANCE_PAYMENT_REQUIRED", 500))


def create_manual_booking(slot_date: date, hours, customer: dict, pricing: dict, now: datetime,
                          auto_approve: bool = False) -> Booking:
    """Admin booking taken over the phone or at the counter: no minimum advance, optionally approved at once."""
    return _reserve(slot_date, hours, customer, pricing, now, min_advance=0, auto_approve=auto_approve, manual=True)


def reschedule_booking(booking_id: int, slot_date: date, hours, now: datetime) -> Booking:
    """
    Move a pending or approved booking to other hours, on the same or another date.

    The booking's own holds never conflict with the new hours. Price, hours and
    outstanding balance are recomputed; the advance already paid is kept.
    """
    if not isinstance(slot_date, date):
        raise ValidationError("booking date is required", field="date")
    hours = _validate_hours(hours)

    conflicts = check_conflict(slot_date, hours, now, exclude_booking_id=booking_id)
    if conflicts:
        raise ConflictError(
            "Some selected slots are no longer available",
            date=slot_date.isoformat(),
            conflicts=conflicts,
        )

    priced, total = price_hours(hours)
    store = SlotStore()
    expired = []

    def _move():
        booking = lock_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        if booking.status not in ("pending", "approved") or booking.is_expired(now):
            raise InvalidTransitionError(
                f"Only live pending or approved bookings can be rescheduled (current status: {booking.status})",
                booking_id=booking_id, current=booking.status, target="rescheduled",
            )
        advance = Decimal(booking.advance_payment or 0)
        if advance > total:
            raise ValidationError(
                "The advance already paid exceeds the new total",
                field="hours",
                advance_payment=money_str(advance),
                total_amount=money_str(total),
            )

        expired[:] = _release_expired_holds(store, slot_date, hours, now)
        live = [h for h in store.active_holds(slot_date, hours) if h.booking_id != booking.id]
        if live:
            raise _slot_conflict(slot_date, [{"hour": h.slot_hour, "status": h.booking.status} for h in live])

        store.release(booking, now)
        db.session.flush()
        booking.booking_date = slot_date
        booking.total_hours = len(hours)
        booking.total_amount = total
        booking.remaining_payment = total - advance
        store.add_holds(booking, priced)
        return booking

    try:
        booking = store.with_lock(slot_date, hours, _move)
    except IntegrityError as exc:
        if not is_hold_collision(exc):
            raise
        logger.warning("Active-hold index rejected reschedule of booking %s", booking_id)
        raise _slot_conflict(slot_date, [{"hour": h, "status": "pending"} for h in hours])

    _emit_expired(expired)

    logger.info("Booking %s moved to %s hours=%s", booking.booking_number, slot_date, hours)
    events.emit(events.booking_rescheduled, booking_id=booking.id, booking_number=booking.booking_number,
                booking_date=booking.booking_date, hours=hours)
    return booking


def approve_booking(booking_id: int, now: datetime, admin_notes: str = None) -> Booking:
    with atomic():
        booking = lock_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        if booking.status != "pending":
            raise InvalidTransitionError(
                f"Only pending bookings can be approved (current status: {booking.status})",
                booking_id=booking_id, current=booking.status, target="approved",
            )
        if booking.is_expired(now):
            raise InvalidTransitionError(
                "This booking's pending hold has expired",
                booking_id=booking_id, current=booking.status, target="approved",
            )
        booking.status = "approved"
        booking.approved_at = now
        booking.pending_expires_at = None
        if admin_notes:
            booking.admin_notes = admin_notes

    logger.info("Booking %s approved", booking.booking_number)
    events.emit(events.booking_approved, booking_id=booking.id, booking_number=booking.booking_number)
    return booking


def cancel_booking(booking_id: int, reason: str, now: datetime) -> Booking:
    reason = (reason or "").strip()[:255] or "Cancelled by admin"
    with atomic():
        booking = lock_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        if booking.is_terminal:
            raise InvalidTransitionError(
                f"Booking is already {booking.status}",
                booking_id=booking_id, current=booking.status, target="cancelled",
            )
        _cancel(booking, reason, now, SlotStore())

    logger.info("Booking %s cancelled: %s", booking.booking_number, reason)
    events.emit(events.booking_cancelled, booking_id=booking.id, booking_number=booking.booking_number,
                reason=reason, expired=False)
    return booking


def expire_pending_bookings(now: datetime) -> int:
    """
    Cancel every pending booking whose hold expired before `now`.
    Each booking is re-checked under its row lock, so a booking approved
    after the scan is left alone, and a second run finds nothing to do.
    """
    candidate_ids = db.session.execute(
        select(Booking.id)
        .where(
            Booking.status == "pending",
            Booking.pending_expires_at.isnot(None),
            Booking.pending_expires_at < now,
        )
        .order_by(Booking.pending_expires_at.asc())
    ).scalars().all()
    db.session.commit()

    store = SlotStore()
    expired = []
    for booking_id in candidate_ids:
        try:
            with atomic():
                booking = lock_booking(booking_id)
                if booking is None or not booking.is_expired(now):
                    continue
                _cancel(booking, EXPIRY_REASON, now, store)
                expired.append((booking.id, booking.booking_number))
        except ConflictError:
            logger.warning("Skipping booking %s: row is locked by another transaction", booking_id)

    for booking_id, booking_number in expired:
        events.emit(events.booking_cancelled, booking_id=booking_id, booking_number=booking_number,
                    reason=EXPIRY_REASON, expired=True)
    if expired:
        logger.info("Expired %d pending bookings", len(expired))
    return len(expired)


def get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found", booking_id=booking_id)
    return booking


def find_booking(booking_number: str, phone: str) -> Booking:
    """Public lookup; both the booking number and the customer's phone must match."""
    booking_number = (booking_number or "").strip().upper()
    phone = normalize_phone(phone)
    booking = None
    if booking_number and phone:
        booking = (
            Booking.query
            .join(Customer, Booking.customer_id == Customer.id)
            .filter(Booking.booking_number == booking_number, Customer.phone == phone)
            .first()
        )
    if booking is None:
        raise NotFoundError("Booking not found", booking_number=booking_number or None)
    return booking


def list_bookings(status: str = None, booking_date: date = None, limit: int = 200):
    q = Booking.query
    if status:
        q = q.filter(Booking.status == status)
    if booking_date:
        q = q.filter(Booking.booking_date == booking_date)
    return q.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(limit).all()
