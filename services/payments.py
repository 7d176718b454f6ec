"""
Payment reconciliation: settles a booking's outstanding balance.

Two different things are recorded on completion and must never be mixed up:
``remaining_payment`` is the outstanding balance and goes to zero, while
``remaining_cash_amount`` / ``remaining_online_amount`` record how that
balance was paid and feed revenue reporting.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app

from models.payment import Payment
from services import events
from services.bookings import payment_channel, validate_payment_method
from services.errors import (
    AmountMismatchError,
    InvalidTransitionError,
    NotFoundError,
    SplitMismatchError,
    ValidationError,
)
from services.slot_store import atomic, lock_booking
from utils.clock import local_now
from utils.money import ZERO, money_str, to_money

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    booking_id: int
    booking_number: str
    balance_before: Decimal
    balance_after: Decimal
    total_extra: Decimal
    discount_applied: Decimal
    payment_amount: Decimal
    cash_amount: Decimal
    online_amount: Decimal
    online_method: str
    new_total_amount: Decimal

    def to_dict(self) -> dict:
        out = asdict(self)
        for key, value in out.items():
            if isinstance(value, Decimal):
                out[key] = money_str(value)
        return out


def _tolerance() -> Decimal:
    return Decimal(str(current_app.config.get("PAYMENT_TOLERANCE", "0.01")))


def _parse_charges(extra_charges):
    if extra_charges is None:
        return []
    if not isinstance(extra_charges, (list, tuple)):
        raise ValidationError("extra_charges must be a list", field="extra_charges")
    charges = []
    for item in extra_charges:
        if not isinstance(item, dict):
            raise ValidationError("Each extra charge needs a description and an amount", field="extra_charges")
        description = (item.get("description") or "").strip() if isinstance(item.get("description"), str) else ""
        amount = to_money(item.get("amount"), "extra_charges.amount")
        if not description:
            raise ValidationError("Each extra charge needs a description", field="extra_charges.description")
        if amount <= ZERO:
            raise ValidationError("Extra charge amounts must be positive", field="extra_charges.amount")
        charges.append({"description": description[:120], "amount": amount})
    return charges


def complete_payment(
    booking_id: int,
    payment_amount,
    payment_method: str,
    split_cash=0,
    split_online=0,
    online_method: str = None,
    extra_charges=None,
    discount_amount=0,
    proof_ref: str = None,
    admin_notes: str = None,
    now: datetime = None,
) -> PaymentResult:
    payment = to_money(payment_amount, "payment_amount")
    cash = to_money(split_cash, "split_cash")
    online = to_money(split_online, "split_online")
    discount_requested = to_money(discount_amount, "discount_amount")
    for field, value in (("payment_amount", payment), ("split_cash", cash),
                         ("split_online", online), ("discount_amount", discount_requested)):
        if value < ZERO:
            raise ValidationError(f"{field} cannot be negative", field=field)
    charges = _parse_charges(extra_charges)
    split_given = cash > ZERO or online > ZERO
    if split_given and isinstance(payment_method, str) and payment_method.strip().lower() == "split":
        method = "split"
    else:
        method = validate_payment_method(payment_method, "payment_method")
    if online > ZERO or (not split_given and method != "cash"):
        fallback = None if method in ("cash", "split") else method
        online_method = validate_payment_method(online_method or fallback, "online_method")
        if online_method == "cash":
            raise ValidationError("online_method cannot be cash", field="online_method")
    else:
        online_method = None
    proof_ref = (proof_ref or "").strip()[:255] or None
    now = now or local_now()
    tolerance = _tolerance()

    with atomic():
        booking = lock_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", booking_id=booking_id)
        if booking.status != "approved":
            raise InvalidTransitionError(
                f"Booking must be approved to complete payment (current status: {booking.status})",
                booking_id=booking_id, current=booking.status, target="completed",
            )

        balance_before = Decimal(booking.remaining_payment or 0)
        total_extra = sum((c["amount"] for c in charges), ZERO)
        # a discount can only offset charges added now, never the existing balance
        discount = min(discount_requested, total_extra)
        expected = balance_before + total_extra - discount

        if abs(payment - expected) > tolerance:
            logger.warning("Payment mismatch on %s: expected %s received %s",
                           booking.booking_number, expected, payment)
            raise AmountMismatchError(
                f"Payment amount mismatch: expected Rs {money_str(expected)}, received Rs {money_str(payment)}",
                booking_id=booking_id,
                expected=money_str(expected),
                received=money_str(payment),
                difference=money_str(payment - expected),
                remaining_before=money_str(balance_before),
                total_extra=money_str(total_extra),
                discount=money_str(discount),
            )

        if split_given:
            if abs(cash + online - payment) > tolerance:
                raise SplitMismatchError(
                    f"Cash (Rs {money_str(cash)}) and online (Rs {money_str(online)}) "
                    f"must add up to the payment (Rs {money_str(payment)})",
                    booking_id=booking_id,
                    cash=money_str(cash),
                    online=money_str(online),
                    payment=money_str(payment),
                )
        elif method == "cash":
            cash = payment
        else:
            online = payment

        booking.status = "completed"
        booking.completed_at = now
        booking.remaining_payment = ZERO
        booking.remaining_payment_method = method
        booking.remaining_payment_proof = proof_ref
        booking.remaining_payment_date = now
        booking.remaining_cash_amount = cash
        booking.remaining_online_amount = online
        booking.remaining_online_method = online_method
        booking.extra_charges = list(booking.extra_charges or []) + [
            {"description": c["description"], "amount": money_str(c["amount"])} for c in charges
        ]
        booking.total_amount = Decimal(booking.total_amount) + total_extra - discount
        booking.discount_amount = Decimal(booking.discount_amount or 0) + discount
        if admin_notes:
            booking.admin_notes = admin_notes

        if cash > ZERO:
            booking.payments.append(Payment(payment_type="remaining", channel="cash", method="cash",
                                            amount=cash, proof_ref=proof_ref))
        if online > ZERO:
            booking.payments.append(Payment(payment_type="remaining", channel=payment_channel(online_method),
                                            method=online_method, amount=online, proof_ref=proof_ref))

        # advance + cash + online must equal the (possibly increased) total before we commit
        gap = booking.amount_collected - booking.total_amount
        if abs(gap) > tolerance:
            raise AmountMismatchError(
                "Payments do not reconcile with the booking total",
                booking_id=booking_id,
                expected=money_str(booking.total_amount),
                received=money_str(booking.amount_collected),
                difference=money_str(gap),
            )

        result = PaymentResult(
            booking_id=booking.id,
            booking_number=booking.booking_number,
            balance_before=balance_before,
            balance_after=ZERO,
            total_extra=total_extra,
            discount_applied=discount,
            payment_amount=payment,
            cash_amount=cash,
            online_amount=online,
            online_method=online_method,
            new_total_amount=booking.total_amount,
        )

    logger.info("Payment completed for %s: cash=%s online=%s", result.booking_number, cash, online)
    events.emit(events.payment_completed, booking_id=result.booking_id,
                booking_number=result.booking_number, result=result)
    return result
