from decimal import Decimal

from flask import current_app

from utils.money import to_money


def is_night_hour(hour: int) -> bool:
    """Night window wraps midnight: [NIGHT_START_HOUR, 24) + [0, NIGHT_END_HOUR)."""
    start = current_app.config.get("NIGHT_START_HOUR", 17)
    end = current_app.config.get("NIGHT_END_HOUR", 7)
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def hourly_rate(hour: int) -> Decimal:
    if is_night_hour(hour):
        return to_money(current_app.config.get("NIGHT_RATE_PER_HOUR", 2000), "NIGHT_RATE_PER_HOUR")
    return to_money(current_app.config.get("DAY_RATE_PER_HOUR", 1500), "DAY_RATE_PER_HOUR")


def price_hours(hours):
    """Returns ([(hour, is_night_rate, rate), ...], total)."""
    priced = [(h, is_night_hour(h), hourly_rate(h)) for h in sorted(hours)]
    total = sum((rate for _, _, rate in priced), Decimal("0.00"))
    return priced, total
