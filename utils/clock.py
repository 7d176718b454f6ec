from datetime import datetime
from zoneinfo import ZoneInfo

from flask import current_app


def local_now() -> datetime:
    """
    Current wall-clock time at the ground, as a naive datetime.
    Tests (or a staging box) can pin it with app.config["CLOCK"] = callable.
    """
    clock = current_app.config.get("CLOCK")
    if clock is not None:
        return clock()
    tz = ZoneInfo(current_app.config.get("GROUND_TIMEZONE", "Asia/Karachi"))
    return datetime.now(tz).replace(tzinfo=None)
