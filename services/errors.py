"""
Error kinds raised by the booking and payment services.

Every error carries a stable ``code``, the HTTP status the API should answer
with, and a ``details`` dict with enough structure for the admin/booking UI
to render a precise message (expected vs received amounts, conflicting
hours, ...).
"""


class BookingError(Exception):
    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(BookingError):
    code = "validation_error"
    status_code = 400


class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404


class ConflictError(BookingError):
    """Requested hours are held by another live booking (or could not be locked in time)."""
    code = "slot_conflict"
    status_code = 409

    @property
    def conflicting_hours(self):
        return [c["hour"] for c in self.details.get("conflicts", [])]


class InvalidTransitionError(BookingError):
    code = "invalid_transition"
    status_code = 409


class AmountMismatchError(BookingError):
    code = "amount_mismatch"
    status_code = 422


class SplitMismatchError(BookingError):
    code = "split_mismatch"
    status_code = 422
