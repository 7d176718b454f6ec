"""
Slot Store: persisted slot holds plus the locking primitives used by every
state-changing booking operation.

Exclusivity is enforced in two layers:

1. ``with_lock(date, hours, fn)`` takes row locks on ``slot_locks`` rows for
   exactly the requested (date, hour) keys, so overlapping requests serialize
   while non-overlapping ones proceed in parallel;
2. the partial unique index ``uq_booking_slots_active_hold`` rejects a second
   active hold on the same key even if a caller bypasses the lock.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from models.booking import Booking
from models.booking_slot import BookingSlot
from models.slot_lock import SlotLock
from services.errors import ConflictError

logger = logging.getLogger(__name__)


def _is_lock_timeout(exc: OperationalError) -> bool:
    # sqlite: "database is locked"; postgres: "canceling statement due to lock timeout"
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in ("database is locked", "lock timeout", "could not obtain lock"))


def is_hold_collision(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc))
    return "uq_booking_slots_active_hold" in message or "booking_slots.slot_date" in message


def _apply_lock_timeout(session):
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        seconds = current_app.config.get("SLOT_LOCK_TIMEOUT_SECONDS", 5)
        # SET does not take bind parameters
        session.execute(db.text(f"SET LOCAL lock_timeout = '{int(seconds * 1000)}ms'"))


@contextmanager
def atomic(session=None, slot_date: date = None):
    """
    One transaction: commit on success, roll back on any exception.
    A lock wait that runs past the configured timeout is reported as ConflictError.
    """
    session = session or db.session
    try:
        _apply_lock_timeout(session)
        yield session
        session.commit()
    except OperationalError as exc:
        session.rollback()
        if _is_lock_timeout(exc):
            logger.warning("Lock wait timed out (date=%s): %s", slot_date, exc.orig)
            raise ConflictError(
                "Slots are being booked by someone else, please try again",
                date=slot_date.isoformat() if slot_date else None,
                conflicts=[],
                reason="lock_timeout",
            )
        raise
    except Exception:
        session.rollback()
        raise


def lock_booking(booking_id: int, session=None):
    """Row-lock a booking for the rest of the current transaction."""
    session = session or db.session
    if session.get_bind().dialect.name == "sqlite":
        # sqlite ignores FOR UPDATE; a no-op write takes the database write lock before the read
        bookings = Booking.__table__
        session.execute(
            update(bookings)
            .where(bookings.c.id == booking_id)
            .values(updated_at=bookings.c.updated_at)
        )
    return session.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


class SlotStore:
    def __init__(self, session=None):
        self.session = session or db.session

    # ---------- reads ----------
    def active_holds(self, slot_date: date, hours=None):
        q = (
            select(BookingSlot)
            .join(Booking, BookingSlot.booking_id == Booking.id)
            .where(
                BookingSlot.slot_date == slot_date,
                BookingSlot.is_active.is_(True),
                Booking.status.in_(("pending", "approved", "completed")),
            )
            .order_by(BookingSlot.slot_hour.asc())
        )
        if hours is not None:
            q = q.where(BookingSlot.slot_hour.in_(list(hours)))
        return self.session.execute(q).scalars().all()

    # ---------- locking ----------
    def lock(self, slot_date: date, hours):
        """Create (if missing) and row-lock the lock rows for the given keys, in hour order."""
        keys = sorted(set(hours))
        rows = [{"lock_date": slot_date, "slot_hour": h, "created_at": datetime.utcnow()} for h in keys]
        dialect = self.session.get_bind().dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
            self.session.execute(insert(SlotLock).values(rows).on_conflict_do_nothing())
        elif dialect == "sqlite":
            # the write also takes sqlite's database-wide RESERVED lock, serializing writers
            from sqlalchemy.dialects.sqlite import insert
            self.session.execute(insert(SlotLock).values(rows).on_conflict_do_nothing())
        else:
            for row in rows:
                if self.session.get(SlotLock, (row["lock_date"], row["slot_hour"])) is None:
                    try:
                        with self.session.begin_nested():
                            self.session.add(SlotLock(**row))
                    except IntegrityError:
                        pass  # created concurrently, which is all we needed

        return self.session.execute(
            select(SlotLock)
            .where(SlotLock.lock_date == slot_date, SlotLock.slot_hour.in_(keys))
            .order_by(SlotLock.slot_hour.asc())
            .with_for_update()
        ).scalars().all()

    def with_lock(self, slot_date: date, hours, fn):
        """
        Run fn() inside one transaction holding the (date, hour) locks.
        Commits fn's writes and returns its result; rolls everything back on error.
        """
        with atomic(self.session, slot_date=slot_date):
            self.lock(slot_date, hours)
            result = fn()
        return result

    # ---------- writes ----------
    def add_holds(self, booking: Booking, priced_hours):
        """priced_hours: iterable of (hour, is_night_rate, hourly_rate)."""
        for hour, is_night, rate in priced_hours:
            booking.slots.append(BookingSlot(
                slot_date=booking.booking_date,
                slot_hour=hour,
                is_night_rate=is_night,
                hourly_rate=rate,
                is_active=True,
            ))
        # surface a unique-index collision here, inside the locked section
        self.session.flush()

    def release(self, booking: Booking, now: datetime) -> int:
        released = 0
        for hold in booking.slots:
            if hold.is_active:
                hold.is_active = False
                hold.released_at = now
                released += 1
        return released
