import re

from models import db
from models.customer import Customer
from services.errors import ValidationError


def normalize_phone(value: str) -> str:
    raw = (value or "").strip()
    digits = re.sub(r"\D", "", raw)
    if not digits:
        return ""
    return ("+" + digits) if raw.startswith("+") else digits


def _clean(value, limit: int):
    value = (value or "").strip() if isinstance(value, str) else ""
    return value[:limit] or None


def find_or_create_customer(data: dict) -> Customer:
    """
    Phone is the identity key. An existing customer keeps their name; only
    contact fields that are still empty get filled in from the new request.
    """
    data = data or {}
    name = _clean(data.get("name"), 120)
    phone = normalize_phone(data.get("phone"))
    if not name:
        raise ValidationError("Customer name is required", field="customer.name")
    if len(phone.lstrip("+")) < 7 or len(phone) > 30:
        raise ValidationError("A valid customer phone number is required", field="customer.phone")

    email = _clean(data.get("email"), 255)
    address = _clean(data.get("address"), 255)
    alternate_phone = normalize_phone(data.get("alternate_phone")) or None

    customer = Customer.query.filter_by(phone=phone).first()
    if customer is None:
        customer = Customer(
            name=name,
            phone=phone,
            email=email,
            address=address,
            alternate_phone=alternate_phone,
        )
        db.session.add(customer)
        db.session.flush()
        return customer

    if email and not customer.email:
        customer.email = email
    if address and not customer.address:
        customer.address = address
    if alternate_phone and not customer.alternate_phone:
        customer.alternate_phone = alternate_phone
    return customer
