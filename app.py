import logging

from flask import Flask, jsonify
from config import Config
from routes import health_bp, booking_bp, admin_bp

from models import db
from flask_migrate import Migrate
from services.errors import BookingError
from services.notifications import register_notification_handlers

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # sqlite waits on its busy handler instead of a row lock; bound it the same way
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(engine_options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config.get("SLOT_LOCK_TIMEOUT_SECONDS", 5))
        engine_options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Lifecycle signals -> admin notification feed
    register_notification_handlers()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 409:
            logger.warning("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from services.bookings import expire_pending_bookings
from utils.audit import log_event
from utils.clock import local_now

def register_cli(app):
    @app.cli.command("expire-pending")
    def expire_pending():
        """Cancel pending bookings whose hold has expired (run from cron every few minutes)."""
        count = expire_pending_bookings(local_now())
        if count:
            log_event("BOOKING_EXPIRE_SWEEP", actor="scheduler", metadata={"expired": count})
        click.echo(f"Expired {count} pending booking(s)")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
