from .db import db
from .customer import Customer
from .booking import Booking
from .booking_slot import BookingSlot
from .slot_lock import SlotLock
from .payment import Payment
from .notification import Notification
from .audit_log import AuditLog
