"""
Conflict checker: read-only projection over live slot holds.

Results are advisory; ``create_booking`` re-checks under lock.
"""
from datetime import date, datetime

from services.pricing import hourly_rate, is_night_hour
from services.slot_store import SlotStore

HOURS_PER_DAY = 24


def is_past(slot_date: date, hour: int, now: datetime) -> bool:
    # the running hour is no longer bookable
    today = now.date()
    if slot_date < today:
        return True
    return slot_date == today and hour <= now.hour


def _hold_statuses(slot_date: date, now: datetime, hours=None, exclude_booking_id=None) -> dict:
    statuses = {}
    for hold in SlotStore().active_holds(slot_date, hours):
        booking = hold.booking
        if booking.id == exclude_booking_id:
            continue
        if booking.is_expired(now):
            continue  # expired pending holds are free even before the sweep runs
        statuses[hold.slot_hour] = booking.status
    return statuses


def get_availability(slot_date: date, now: datetime):
    held = _hold_statuses(slot_date, now)
    out = []
    for hour in range(HOURS_PER_DAY):
        status = held.get(hour, "available")
        if is_past(slot_date, hour, now):
            status = "past"
        out.append({
            "hour": hour,
            "status": status,
            "is_night_rate": is_night_hour(hour),
            "hourly_rate": hourly_rate(hour),
        })
    return out


def check_conflict(slot_date: date, hours, now: datetime, exclude_booking_id: int = None):
    """
    Returns [{hour, status}] for each requested hour that is not available.
    Holds owned by exclude_booking_id are ignored (moving a booking within its own hours).
    """
    requested = sorted(set(hours))
    held = _hold_statuses(slot_date, now, requested, exclude_booking_id)
    conflicts = []
    for hour in requested:
        if is_past(slot_date, hour, now):
            conflicts.append({"hour": hour, "status": "past"})
        elif hour in held:
            conflicts.append({"hour": hour, "status": held[hour]})
    return conflicts
