from datetime import timedelta

from services.bookings import approve_booking, cancel_booking
from services.payments import complete_payment
from services.revenue import revenue_summary

from .conftest import BOOKING_DAY


def _settled_night_booking(make_booking, clock):
    booking = make_booking([18, 19])
    approve_booking(booking.id, clock())
    complete_payment(booking.id, payment_amount=3500, payment_method="split", split_cash=2000,
                     split_online=1500, online_method="easypaisa", now=clock())
    return booking


def test_settled_booking_counts_advance_cash_and_online(make_booking, clock):
    _settled_night_booking(make_booking, clock)

    summary = revenue_summary()
    assert summary["total_revenue"] == "4000.00"
    assert summary["advance_received"] == "500.00"
    assert summary["remaining_cash_received"] == "2000.00"
    assert summary["remaining_online_received"] == "1500.00"
    assert summary["pending_revenue"] == "0.00"
    assert summary["completed_bookings"] == 1


def test_mixed_statuses(make_booking, clock):
    _settled_night_booking(make_booking, clock)
    waiting = make_booking([10], method="cash", who={"name": "Bilal", "phone": "03111111111"})
    approve_booking(waiting.id, clock())
    dropped = make_booking([12], method="cash", who={"name": "Chaudhry", "phone": "03222222222"})
    cancel_booking(dropped.id, "rain", clock())
    make_booking([14], who={"name": "Danish", "phone": "03333333333"})

    summary = revenue_summary()
    assert summary["total_revenue"] == "4000.00"
    assert summary["advance_received"] == "1000.00"
    assert summary["pending_revenue"] == "1000.00"
    assert summary["bookings_by_status"] == {"pending": 1, "approved": 1, "completed": 1, "cancelled": 1}
    assert summary["by_method"] == {"easypaisa": "2000.00", "cash": "2500.00"}


def test_extras_and_discounts_are_reported(make_booking, clock):
    booking = make_booking([18, 19])
    approve_booking(booking.id, clock())
    complete_payment(
        booking.id,
        payment_amount=3600,
        payment_method="cash",
        extra_charges=[{"description": "Balls", "amount": 400}, {"description": "Water", "amount": 200}],
        discount_amount=500,
        now=clock(),
    )

    summary = revenue_summary()
    assert summary["extra_charges_total"] == "600.00"
    assert summary["discount_total"] == "500.00"
    assert summary["total_revenue"] == "4100.00"


def test_date_range_filters_on_booking_date(make_booking, clock):
    _settled_night_booking(make_booking, clock)

    assert revenue_summary(BOOKING_DAY, BOOKING_DAY)["total_revenue"] == "4000.00"
    later = revenue_summary(start=BOOKING_DAY + timedelta(days=1))
    assert later["total_revenue"] == "0.00"
    assert later["completed_bookings"] == 0
    assert later["by_method"] == {}
