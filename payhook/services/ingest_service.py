"""Ingest service — runs one PayPal webhook delivery through the pipeline.

    rate limit -> signature -> payload -> store -> stats + cleanup -> notify

Each step can end the request early with the status PayPal should see.
Nothing touches storage until the signature and payload have both been
accepted. Once the payment row is written, the answer is 200 no matter
what happens to stats or the Telegram alert.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from payhook.errors import AuthError, PayhookError, StorageError, ThrottleError, ValidationError
from payhook.services.payment_store import PaymentRecord

logger = logging.getLogger(__name__)

RELEVANT_EVENT_TYPE = "PAYMENT.SALE.COMPLETED"

# Checked in this order; the first missing one is named in the 400.
REQUIRED_RESOURCE_FIELDS = ["id", "state", "amount", "create_time"]

PROCESSED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"

# Numeric(12, 2) leaves 10 digits before the decimal point.
AMOUNT_INTEGER_DIGITS = 10


@dataclass(frozen=True)
class IngestResult:
    status: int
    message: str

    def to_dict(self):
        return {"status": self.status, "message": self.message}


# ──────────────────────────────────────────────
# Payload parsing
# ──────────────────────────────────────────────

def parse_event(raw_body):
    """Decode the webhook body. Raises ValidationError unless it's an object with event_type."""
    try:
        data = json.loads(raw_body)
    except (TypeError, ValueError):
        raise ValidationError("Invalid Payload")

    if not isinstance(data, dict) or not isinstance(data.get("event_type"), str):
        raise ValidationError("Invalid Payload")
    return data


def parse_amount(total):
    """Convert resource.amount.total to a finite Decimal, or raise ValidationError.

    Digit-grouping underscores and values too large for the amount column
    are rejected.
    """
    if isinstance(total, bool) or not isinstance(total, (str, int, float)):
        raise ValidationError("Invalid amount")
    text = str(total).strip()
    if "_" in text:
        raise ValidationError("Invalid amount")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError("Invalid amount")
    if not amount.is_finite():
        raise ValidationError("Invalid amount")
    if amount and amount.adjusted() >= AMOUNT_INTEGER_DIGITS:
        raise ValidationError("Invalid amount")
    return amount


def build_payment_record(event, processed_at):
    """Validate a PAYMENT.SALE.COMPLETED event and turn it into a PaymentRecord."""
    resource = event.get("resource")
    if not isinstance(resource, dict):
        raise ValidationError("Missing required field: resource")

    for field in REQUIRED_RESOURCE_FIELDS:
        if resource.get(field) is None:
            raise ValidationError(f"Missing required field: {field}")

    amount_data = resource["amount"]
    if not isinstance(amount_data, dict) or amount_data.get("total") is None:
        raise ValidationError("Invalid amount")
    amount = parse_amount(amount_data["total"])

    currency = amount_data.get("currency")
    if not currency:
        raise ValidationError("Missing required field: amount.currency")

    return PaymentRecord(
        payment_id=str(resource["id"]),
        amount=amount,
        currency=str(currency),
        status=str(resource["state"]),
        create_time=str(resource["create_time"]),
        processed_at=processed_at,
    )


# ──────────────────────────────────────────────
# Orchestrator
# ──────────────────────────────────────────────

class IngestOrchestrator:
    """Sequences the pipeline for a single delivery.

    All collaborators are injected; create_app() builds one per app.
    rate_limiter may be None when rate limiting is disabled.
    """

    def __init__(self, store, stats, dispatcher, verifier, rate_limiter=None,
                 notify_delay=0, notify_in_background=True):
        self.store = store
        self.stats = stats
        self.dispatcher = dispatcher
        self.verifier = verifier
        self.rate_limiter = rate_limiter
        self.notify_delay = notify_delay
        self.notify_in_background = notify_in_background

    def handle(self, raw_body, headers, source_key):
        """Process one delivery and return the IngestResult to send back."""
        try:
            message = self._process(raw_body, headers, source_key)
        except StorageError as e:
            logger.error(f"Storage failure while processing webhook: {e.detail}", exc_info=True)
            return IngestResult(e.status_code, e.message)
        except PayhookError as e:
            logger.info(f"Webhook from {source_key} rejected ({e.status_code}): {e.message}")
            return IngestResult(e.status_code, e.message)
        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)
            return IngestResult(500, "Internal Server Error")

        return IngestResult(200, message)

    def _process(self, raw_body, headers, source_key):
        # --- Rate limit ---
        if self.rate_limiter is not None and not self.rate_limiter.allow(source_key):
            raise ThrottleError()

        # --- Signature ---
        if not self.verifier.verify(raw_body, headers):
            raise AuthError()

        # --- Payload ---
        event = parse_event(raw_body)
        event_type = event["event_type"]
        if event_type != RELEVANT_EVENT_TYPE:
            logger.info(f"Received irrelevant webhook event: {event_type}")
            return "No relevant webhook event"

        now = datetime.now(timezone.utc)
        record = build_payment_record(event, now)

        # --- Persist (skip PayPal redeliveries) ---
        if self.store.exists(record.payment_id):
            logger.info(f"Duplicate payment {record.payment_id}, skipping")
            return "Payment already processed"

        self.store.insert(record)

        # --- Stats + notification ---
        self._notify(record, now)

        logger.info(f"Payment {record.payment_id} processed successfully")
        return "Payment processed successfully"

    def _notify(self, record, now):
        """Compute stats (with retention sweep) and schedule the alert.

        The payment is already stored, so failures here are logged only.
        """
        try:
            snapshot = self.stats.compute_and_cleanup(now)
        except StorageError as e:
            logger.error(
                f"Stats update failed after storing payment {record.payment_id}, "
                f"notification skipped: {e.detail}"
            )
            return None

        if not self.dispatcher.enabled:
            return None

        payment = {
            "payment_id": record.payment_id,
            "amount": record.amount,
            "currency": record.currency,
            "status": record.status,
            "create_time": record.create_time,
            "processed_at": now.strftime(PROCESSED_AT_FORMAT),
        }
        return self._schedule(payment, snapshot)

    def _schedule(self, payment, snapshot):
        """Run dispatch after notify_delay, on a timer thread or inline."""
        if self.notify_in_background:
            timer = threading.Timer(
                self.notify_delay, self.dispatcher.dispatch, args=(payment, snapshot)
            )
            timer.daemon = True
            timer.start()
            return timer

        if self.notify_delay > 0:
            time.sleep(self.notify_delay)
        self.dispatcher.dispatch(payment, snapshot)
        return None
