import os
import logging
from datetime import datetime, timezone
from decimal import Decimal
from logging.handlers import RotatingFileHandler

import click
from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from payhook.config import config_by_name
from payhook.errors import NotificationError, StorageError
from payhook.extensions import db


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Logging ---
    configure_logging(app)

    # --- Trusted proxies (client address for rate limiting) ---
    if app.config["PROXY_FIX_X_FOR"]:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=app.config["PROXY_FIX_X_FOR"])

    # --- Init extensions ---
    db.init_app(app)

    # --- Import models so create_all() can discover them ---
    with app.app_context():
        from payhook import models  # noqa: F401

    # --- Ingest pipeline ---
    init_pipeline(app)

    # --- Register blueprints ---
    from payhook.blueprints.webhooks import webhooks_bp

    app.register_blueprint(webhooks_bp)

    # --- Error handlers (JSON everywhere; PayPal never sees HTML) ---
    @app.errorhandler(404)
    def not_found(e):
        return jsonify(status=404, message="Not Found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(status=405, message="Method Not Allowed"), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(status=500, message="Internal Server Error"), 500

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- CLI commands ---
    register_cli(app)

    return app


def configure_logging(app):
    """INFO logging outside debug, plus a size-rotated file when LOG_FILE is set."""
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    log_file = app.config.get("LOG_FILE")
    if not log_file:
        return

    log_file = os.path.abspath(log_file)
    root = logging.getLogger()
    for handler in root.handlers:
        if getattr(handler, "baseFilename", None) == log_file:
            return  # already attached (create_app called twice)

    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=app.config["LOG_MAX_BYTES"],
        backupCount=app.config["LOG_BACKUP_COUNT"],
    )
    handler.setFormatter(
        logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    if root.level > logging.INFO:
        root.setLevel(logging.INFO)


def init_pipeline(app):
    """Build the pool, store, and services, and hang the orchestrator on the app.

    Stored as app.extensions["payhook"]; nothing here is module-global.
    """
    from payhook.services.ingest_service import IngestOrchestrator
    from payhook.services.payment_store import ConnectionPool, PaymentStore
    from payhook.services.paypal_service import SignatureVerifier
    from payhook.services.rate_limiter import RateLimiter
    from payhook.services.stats_service import StatsEngine
    from payhook.services.telegram_service import NotificationDispatcher

    cfg = app.config

    with app.app_context():
        pool = ConnectionPool(db.engine)

    store = PaymentStore(pool)
    try:
        store.ensure_schema()
    except StorageError as e:
        app.logger.error(f"Could not create payments table: {e.detail}")

    rate_limiter = None
    if cfg["RATE_LIMIT_ENABLED"]:
        rate_limiter = RateLimiter(
            max_requests=cfg["RATE_LIMIT_MAX_REQUESTS"],
            window_seconds=cfg["RATE_LIMIT_WINDOW"],
            storage_uri=cfg["RATE_LIMIT_STORAGE_URI"],
            strategy=cfg["RATE_LIMIT_STRATEGY"],
        )

    app.extensions["payhook"] = IngestOrchestrator(
        store=store,
        stats=StatsEngine(store, cleanup_days=cfg["CLEANUP_DAYS"]),
        dispatcher=NotificationDispatcher(
            bot_token=cfg["TELEGRAM_BOT_TOKEN"],
            chat_id=cfg["TELEGRAM_CHAT_ID"],
            service_name=cfg["SERVICE_NAME"],
            template=cfg["MESSAGE_TEMPLATE"],
            api_base=cfg["TELEGRAM_API_BASE"],
            timeout=cfg["TELEGRAM_TIMEOUT"],
        ),
        verifier=SignatureVerifier(
            webhook_id=cfg["PAYPAL_WEBHOOK_ID"],
            client_id=cfg["PAYPAL_CLIENT_ID"],
            client_secret=cfg["PAYPAL_CLIENT_SECRET"],
            api_base=cfg["PAYPAL_API_BASE"],
            timeout=cfg["PAYPAL_TIMEOUT"],
        ),
        rate_limiter=rate_limiter,
        notify_delay=cfg["NOTIFY_DELAY_SECONDS"],
        notify_in_background=cfg["NOTIFY_IN_BACKGROUND"],
    )


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("init-db")
    def init_db():
        """Create the payments table if it doesn't exist."""
        app.extensions["payhook"].store.ensure_schema()
        click.echo("payments table ready.")

    @app.cli.command("payment-stats")
    def payment_stats():
        """Print rolling payment counts and totals (no cleanup)."""
        snapshot = app.extensions["payhook"].stats.compute()
        for label, totals in snapshot.windows.items():
            click.echo(f"  Last {label:>3}: {totals.count} payment(s), {totals.total:.2f} total")

    @app.cli.command("purge-payments")
    def purge_payments():
        """Delete payments older than CLEANUP_DAYS.

        Usage:
            flask purge-payments
        """
        stats = app.extensions["payhook"].stats
        deleted = stats.cleanup()
        click.echo(f"Removed {deleted} payment(s) older than {stats.cleanup_days} days.")

    @app.cli.command("send-test-notification")
    def send_test_notification():
        """Render the alert template with current stats and send it to Telegram."""
        orchestrator = app.extensions["payhook"]
        dispatcher = orchestrator.dispatcher
        if not dispatcher.enabled:
            click.echo("ERROR: TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must both be set.")
            return

        now = datetime.now(timezone.utc)
        payment = {
            "payment_id": "PAY-TEST-NOTIFICATION",
            "amount": Decimal("1.00"),
            "currency": "USD",
            "status": "completed",
            "create_time": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "processed_at": now.strftime("%Y-%m-%d %H:%M:%S"),
        }
        snapshot = orchestrator.stats.compute(now)

        from payhook.services.telegram_service import render_message

        text = render_message(dispatcher.template, dispatcher.build_values(payment, snapshot))
        try:
            dispatcher.send(text)
        except NotificationError as e:
            click.echo(f"ERROR: {e}")
            return
        click.echo("Test notification sent.")
