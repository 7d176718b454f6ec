"""Exclusivity under contention: the slot locks and the active-hold index."""
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.booking_slot import BookingSlot
from models.slot_lock import SlotLock
from services import bookings as booking_service
from services import payments as payment_service
from services.bookings import approve_booking, cancel_booking, create_booking, expire_pending_bookings
from services.errors import ConflictError, InvalidTransitionError
from services.payments import complete_payment
from services.slot_store import SlotStore, is_hold_collision, lock_booking

from .conftest import BOOKING_DAY, build_app


def test_simultaneous_overlapping_creates_one_wins(app, clock):
    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = []
    guard = threading.Lock()

    def attempt(n):
        with app.app_context():
            barrier.wait()
            try:
                booking = create_booking(
                    BOOKING_DAY,
                    [18, 19],
                    customer={"name": f"Team {n}", "phone": f"0300000000{n}"},
                    pricing={"advance_payment": 500, "advance_payment_method": "cash"},
                    now=clock(),
                )
                result = ("ok", booking.booking_number)
            except ConflictError as exc:
                result = ("conflict", exc.details.get("reason"))
            with guard:
                outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(outcomes) == workers
    assert [o[0] for o in outcomes].count("ok") == 1

    db.session.expire_all()
    assert Booking.query.count() == 1
    holds = BookingSlot.query.filter(BookingSlot.is_active.is_(True)).all()
    assert sorted(h.slot_hour for h in holds) == [18, 19]


def test_hold_taken_between_precheck_and_lock_is_caught(make_booking, clock, monkeypatch):
    make_booking([18])
    # pretend the advisory check ran before the first booking landed
    monkeypatch.setattr(booking_service, "check_conflict", lambda *args, **kwargs: [])

    with pytest.raises(ConflictError) as exc:
        make_booking([17, 18], who={"name": "Bilal", "phone": "03111111111"})

    assert exc.value.conflicting_hours == [18]
    assert Booking.query.count() == 1


def test_active_hold_index_rejects_a_second_hold(make_booking):
    booking = make_booking([18])
    store = SlotStore()

    with pytest.raises(IntegrityError) as exc:
        store.add_holds(booking, [(18, True, Decimal("2000.00"))])
    db.session.rollback()

    assert is_hold_collision(exc.value)


def test_released_holds_do_not_block_the_index(make_booking, clock):
    make_booking([18])
    clock.advance(minutes=31)
    expire_pending_bookings(clock())

    # the inactive hold row stays behind for history
    again = make_booking([18], who={"name": "Bilal", "phone": "03111111111"})
    assert again.held_hours == [18]
    assert BookingSlot.query.filter(BookingSlot.slot_hour == 18).count() == 2


def test_lock_rows_are_created_once(make_booking, clock):
    make_booking([18, 19])
    first = Booking.query.first()
    cancel_booking(first.id, "rebook", clock())
    make_booking([18, 19], who={"name": "Bilal", "phone": "03111111111"})

    keys = [(r.lock_date, r.slot_hour) for r in SlotLock.query.order_by(SlotLock.slot_hour)]
    assert keys == [(BOOKING_DAY, 18), (BOOKING_DAY, 19)]


def test_cancel_waits_for_a_payment_in_flight(app, make_booking, clock, monkeypatch):
    booking = make_booking([18, 19])
    approve_booking(booking.id, clock())
    booking_id = booking.id
    outcome = {}

    def cancel_from_another_request():
        with app.app_context():
            try:
                cancel_booking(booking_id, "customer called", clock())
                outcome["result"] = "cancelled"
            except InvalidTransitionError as exc:
                outcome["result"] = exc.details["current"]

    canceller = threading.Thread(target=cancel_from_another_request)

    def lock_then_race(booking_id, session=None):
        locked = lock_booking(booking_id, session)
        canceller.start()
        canceller.join(timeout=0.5)
        outcome["waited"] = canceller.is_alive()
        return locked

    monkeypatch.setattr(payment_service, "lock_booking", lock_then_race)
    complete_payment(booking_id, payment_amount=3500, payment_method="cash", now=clock())
    canceller.join(timeout=30)

    assert outcome == {"waited": True, "result": "completed"}
    db.session.expire_all()
    settled = db.session.get(Booking, booking_id)
    assert settled.status == "completed"
    assert settled.cancelled_at is None
    assert sorted(h.slot_hour for h in settled.slots if h.is_active) == [18, 19]


def test_sweep_leaves_a_booking_approved_after_its_scan(app, make_booking, clock, monkeypatch):
    booking = make_booking([10])
    booking_id = booking.id
    raced = []

    def approve_from_another_request():
        with app.app_context():
            # the admin acted just before the hold ran out
            approve_booking(booking_id, datetime(2026, 2, 10, 9, 29))

    def approve_then_lock(booking_id, session=None):
        if not raced:
            raced.append(booking_id)
            approver = threading.Thread(target=approve_from_another_request)
            approver.start()
            approver.join(timeout=30)
        return lock_booking(booking_id, session)

    monkeypatch.setattr(booking_service, "lock_booking", approve_then_lock)
    clock.advance(minutes=31)

    assert expire_pending_bookings(clock()) == 0
    assert raced == [booking_id]
    db.session.expire_all()
    kept = db.session.get(Booking, booking_id)
    assert kept.status == "approved"
    assert kept.cancelled_at is None
    assert [h.slot_hour for h in kept.slots if h.is_active] == [10]


def test_lock_wait_past_the_timeout_is_a_conflict(tmp_path, clock, customer):
    db_path = tmp_path / "groundslot-busy.db"
    app = build_app(db_path, clock, SLOT_LOCK_TIMEOUT_SECONDS=0.2)
    with app.app_context():
        db.create_all()
        pending = create_booking(BOOKING_DAY, [10], customer=customer,
                                 pricing={"advance_payment": 500, "advance_payment_method": "cash"}, now=clock())
        pending_id = pending.id

        blocker = sqlite3.connect(str(db_path), isolation_level=None)
        blocker.execute("BEGIN IMMEDIATE")
        try:
            with pytest.raises(ConflictError) as exc:
                create_booking(BOOKING_DAY, [18, 19], customer=customer,
                               pricing={"advance_payment": 500, "advance_payment_method": "cash"}, now=clock())
            assert exc.value.details["reason"] == "lock_timeout"
            assert exc.value.conflicting_hours == []

            with pytest.raises(ConflictError) as exc:
                approve_booking(pending_id, clock())
            assert exc.value.details["reason"] == "lock_timeout"
        finally:
            blocker.execute("ROLLBACK")
            blocker.close()

        assert Booking.query.count() == 1
        assert db.session.get(Booking, pending_id).status == "pending"
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
