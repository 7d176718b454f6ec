from datetime import date

from flask import Blueprint, jsonify, request

from models.booking import BOOKING_STATUSES
from routes.booking import parse_date
from security.rbac import require_admin
from services.bookings import (
    approve_booking,
    cancel_booking,
    create_manual_booking,
    expire_pending_bookings,
    get_booking,
    list_bookings,
    reschedule_booking,
)
from services.notifications import list_notifications, mark_all_read, mark_read
from services.payments import complete_payment
from services.revenue import revenue_summary
from utils.audit import log_event
from utils.clock import local_now
from utils.serialize import booking_detail, booking_summary

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

def _optional_date(name):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return False


@admin_bp.get("/bookings")
@require_admin
def bookings():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in BOOKING_STATUSES:
        return jsonify(error="Invalid status"), 400
    booking_date = _optional_date("date")
    if booking_date is False:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    rows = list_bookings(status=status, booking_date=booking_date)
    return jsonify([booking_summary(b) for b in rows]), 200


@admin_bp.post("/bookings")
@require_admin
def create_manual():
    data = request.get_json(silent=True) or {}
    slot_date = parse_date(data.get("date"))

    booking = create_manual_booking(
        slot_date,
        data.get("hours"),
        customer=data.get("customer") or {},
        pricing={
            "advance_payment": data.get("advance_payment"),
            "advance_payment_method": data.get("advance_payment_method"),
            "advance_payment_proof": data.get("advance_payment_proof"),
            "customer_notes": data.get("notes"),
        },
        now=local_now(),
        auto_approve=bool(data.get("auto_approve")),
    )
    log_event("BOOKING_CREATE_MANUAL", actor="admin", entity="booking", entity_id=booking.id,
              metadata={"date": slot_date.isoformat(), "hours": booking.held_hours, "status": booking.status})
    return jsonify(booking_summary(booking)), 201


@admin_bp.get("/bookings/<int:booking_id>")
@require_admin
def booking(booking_id: int):
    return jsonify(booking_detail(get_booking(booking_id))), 200


@admin_bp.post("/bookings/<int:booking_id>/approve")
@require_admin
def approve(booking_id: int):
    data = request.get_json(silent=True) or {}
    notes = (data.get("admin_notes") or "").strip() or None

    b = approve_booking(booking_id, local_now(), admin_notes=notes)
    log_event("BOOKING_APPROVE", actor="admin", entity="booking", entity_id=b.id)
    return jsonify(booking_summary(b)), 200


@admin_bp.post("/bookings/<int:booking_id>/reschedule")
@require_admin
def reschedule(booking_id: int):
    data = request.get_json(silent=True) or {}
    slot_date = parse_date(data.get("date"))

    b = reschedule_booking(booking_id, slot_date, data.get("hours"), local_now())
    log_event("BOOKING_RESCHEDULE", actor="admin", entity="booking", entity_id=b.id,
              metadata={"date": slot_date.isoformat(), "hours": b.held_hours})
    return jsonify(booking_summary(b)), 200


@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_admin
def cancel(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "Admin cancellation"

    b = cancel_booking(booking_id, reason, local_now())
    log_event("BOOKING_CANCEL", actor="admin", entity="booking", entity_id=b.id, metadata={"reason": reason})
    return jsonify(booking_summary(b)), 200


@admin_bp.post("/bookings/<int:booking_id>/complete-payment")
@require_admin
def complete(booking_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("payment_amount") is None:
        return jsonify(error="payment_amount is required"), 400

    result = complete_payment(
        booking_id,
        payment_amount=data.get("payment_amount"),
        payment_method=data.get("payment_method"),
        split_cash=data.get("cash_amount") or 0,
        split_online=data.get("online_amount") or 0,
        online_method=data.get("online_method"),
        extra_charges=data.get("extra_charges") or [],
        discount_amount=data.get("discount_amount") or 0,
        proof_ref=data.get("payment_proof"),
        admin_notes=(data.get("admin_notes") or "").strip() or None,
        now=local_now(),
    )
    log_event("PAYMENT_COMPLETE", actor="admin", entity="booking", entity_id=booking_id, metadata=result.to_dict())
    return jsonify(result.to_dict()), 200


@admin_bp.post("/bookings/expire")
@require_admin
def expire():
    count = expire_pending_bookings(local_now())
    log_event("BOOKING_EXPIRE_SWEEP", actor="admin", metadata={"expired": count})
    return jsonify(expired=count), 200


@admin_bp.get("/dashboard")
@require_admin
def dashboard():
    start = _optional_date("start")
    end = _optional_date("end")
    if start is False or end is False:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
    return jsonify(revenue_summary(start, end)), 200


@admin_bp.get("/notifications")
@require_admin
def notifications():
    unread_only = (request.args.get("unread") or "").lower() in ("1", "true", "yes")
    rows = list_notifications(unread_only=unread_only)
    return jsonify([
        {
            "id": n.id,
            "type": n.notification_type,
            "title": n.title,
            "message": n.message,
            "booking_id": n.booking_id,
            "priority": n.priority,
            "is_read": n.is_read,
            "created_at": n.created_at.isoformat(),
        }
        for n in rows
    ]), 200


@admin_bp.post("/notifications/<int:notification_id>/read")
@require_admin
def notification_read(notification_id: int):
    row = mark_read(notification_id, local_now())
    if row is None:
        return jsonify(error="Notification not found"), 404
    return jsonify(id=row.id, is_read=row.is_read), 200


@admin_bp.post("/notifications/mark-all-read")
@require_admin
def notifications_read_all():
    return jsonify(updated=mark_all_read(local_now())), 200
