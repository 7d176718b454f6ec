from datetime import date

from flask import Blueprint, request, jsonify

from services.availability import check_conflict, get_availability
from services.bookings import create_booking, find_booking
from services.errors import ValidationError
from utils.audit import log_event
from utils.clock import local_now
from utils.money import money_str
from utils.serialize import booking_summary

booking_bp = Blueprint("booking", __name__)

def parse_date(date_str):
    # Expect ISO format like "2026-02-10"
    if not date_str or not isinstance(date_str, str):
        raise ValidationError("date is required (YYYY-MM-DD)", field="date")
    try:
        return date.fromisoformat(date_str)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD", field="date")


# ---------- PUBLIC: slot availability for a day ----------
@booking_bp.get("/availability")
def availability():
    slot_date = parse_date(request.args.get("date"))
    slots = get_availability(slot_date, local_now())
    return jsonify(
        date=slot_date.isoformat(),
        slots=[dict(s, hourly_rate=money_str(s["hourly_rate"])) for s in slots],
    ), 200


# ---------- PUBLIC: pre-submit conflict check (advisory) ----------
@booking_bp.post("/availability/check")
def availability_check():
    data = request.get_json(silent=True) or {}
    slot_date = parse_date(data.get("date"))
    hours = data.get("hours")
    if not isinstance(hours, list) or not all(isinstance(h, int) and not isinstance(h, bool) for h in hours):
        return jsonify(error="hours must be a list of integers"), 400

    conflicts = check_conflict(slot_date, hours, local_now())
    return jsonify(date=slot_date.isoformat(), available=not conflicts, conflicts=conflicts), 200


# ---------- PUBLIC: book slots (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
def create():
    data = request.get_json(silent=True) or {}
    slot_date = parse_date(data.get("date"))

    booking = create_booking(
        slot_date,
        data.get("hours"),
        customer=data.get("customer") or {},
        pricing={
            "advance_payment": data.get("advance_payment"),
            "advance_payment_method": data.get("advance_payment_method"),
            "advance_payment_proof": data.get("advance_payment_proof"),
            "customer_notes": data.get("customer_notes"),
        },
        now=local_now(),
    )

    log_event("BOOKING_CREATE", actor="public", entity="booking", entity_id=booking.id,
              metadata={"date": slot_date.isoformat(), "hours": booking.held_hours})
    return jsonify(booking_summary(booking)), 201


# ---------- PUBLIC: check my booking ----------
@booking_bp.get("/bookings/lookup")
def lookup():
    booking = find_booking(request.args.get("booking_number"), request.args.get("phone"))
    return jsonify(booking_summary(booking)), 200
