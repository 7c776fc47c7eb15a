"""Webhooks blueprint — /paypal/webhooks

Receives PayPal webhook deliveries. Raw body is required for signature
verification. Every response is JSON {"status": <code>, "message": <text>}.

Route Map:
  POST /paypal/webhooks  — verify, store, and announce a payment
  POST /                 — same handler, for deployments that pointed PayPal at the site root
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.route("/paypal/webhooks", methods=["POST"])
@webhooks_bp.route("/", methods=["POST"])
def paypal_webhook():
    """Receive and process a PayPal webhook delivery.

    1. Rate limit by client address
    2. Verify the signature with PayPal
    3. Validate and store PAYMENT.SALE.COMPLETED events
    4. Update stats, schedule the Telegram alert
    """
    orchestrator = current_app.extensions["payhook"]

    result = orchestrator.handle(
        request.get_data(as_text=True),
        request.headers,
        get_remote_address(),
    )
    return jsonify(result.to_dict()), result.status
