import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as groundslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "groundslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret checked on /admin routes (X-Admin-Token header)
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

    # Ground-local time zone; "today" and "past" slots are judged in it
    GROUND_TIMEZONE = os.getenv("GROUND_TIMEZONE", "Asia/Karachi")
    # Optional callable returning a naive local datetime (tests pin the clock with it)
    CLOCK = None

    # Pending hold: unapproved bookings release their slots after 30 minutes
    PENDING_HOLD_MINUTES = int(os.getenv("PENDING_HOLD_MINUTES", "30"))

    # Max seconds to wait for a slot/booking row lock before reporting a conflict
    SLOT_LOCK_TIMEOUT_SECONDS = float(os.getenv("SLOT_LOCK_TIMEOUT_SECONDS", "5"))

    # Pricing (PKR per hour); night window wraps midnight, 17:00 -> 07:00
    DAY_RATE_PER_HOUR = int(os.getenv("DAY_RATE_PER_HOUR", "1500"))
    NIGHT_RATE_PER_HOUR = int(os.getenv("NIGHT_RATE_PER_HOUR", "2000"))
    NIGHT_START_HOUR = int(os.getenv("NIGHT_START_HOUR", "17"))
    NIGHT_END_HOUR = int(os.getenv("NIGHT_END_HOUR", "7"))

    # Booking policy
    ADVANCE_PAYMENT_REQUIRED = int(os.getenv("ADVANCE_PAYMENT_REQUIRED", "500"))
    MAX_BOOKING_HOURS = int(os.getenv("MAX_BOOKING_HOURS", "12"))
    PAYMENT_METHODS = ["cash", "easypaisa", "sadapay", "jazzcash", "bank", "online"]

    # Currency rounding allowance when matching payments against the computed payable
    PAYMENT_TOLERANCE = os.getenv("PAYMENT_TOLERANCE", "0.01")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
