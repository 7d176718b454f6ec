from utils.money import money_str


def _iso(value):
    return value.isoformat() if value else None


def booking_summary(b):
    return {
        "id": b.id,
        "booking_number": b.booking_number,
        "booking_date": b.booking_date.isoformat(),
        "hours": b.held_hours or [s.slot_hour for s in b.slots],
        "status": b.status,
        "total_amount": money_str(b.total_amount),
        "advance_payment": money_str(b.advance_payment),
        "remaining_payment": money_str(b.remaining_payment),
        "pending_expires_at": _iso(b.pending_expires_at),
        "created_at": _iso(b.created_at),
    }


def booking_detail(b):
    out = booking_summary(b)
    out.update({
        "total_hours": b.total_hours,
        "advance_payment_method": b.advance_payment_method,
        "advance_payment_proof": b.advance_payment_proof,
        "remaining_payment_method": b.remaining_payment_method,
        "remaining_payment_proof": b.remaining_payment_proof,
        "remaining_payment_date": _iso(b.remaining_payment_date),
        "remaining_cash_amount": money_str(b.remaining_cash_amount),
        "remaining_online_amount": money_str(b.remaining_online_amount),
        "remaining_online_method": b.remaining_online_method,
        "extra_charges": b.extra_charges or [],
        "discount_amount": money_str(b.discount_amount),
        "amount_collected": money_str(b.amount_collected),
        "approved_at": _iso(b.approved_at),
        "completed_at": _iso(b.completed_at),
        "cancelled_at": _iso(b.cancelled_at),
        "cancelled_reason": b.cancelled_reason,
        "customer_notes": b.customer_notes,
        "admin_notes": b.admin_notes,
        "updated_at": _iso(b.updated_at),
        "customer": {
            "id": b.customer.id,
            "name": b.customer.name,
            "phone": b.customer.phone,
            "email": b.customer.email,
        },
        "slots": [
            {
                "hour": s.slot_hour,
                "is_night_rate": s.is_night_rate,
                "hourly_rate": money_str(s.hourly_rate),
                "is_active": s.is_active,
            }
            for s in b.slots
        ],
        "payments": [
            {
                "type": p.payment_type,
                "channel": p.channel,
                "method": p.method,
                "amount": money_str(p.amount),
                "created_at": _iso(p.created_at),
            }
            for p in b.payments
        ],
    })
    return out
