from flask import Blueprint, jsonify

from .booking import booking_bp
from .admin import admin_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
