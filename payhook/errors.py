"""Error taxonomy for the webhook ingestion pipeline.

Every error carries the HTTP status it maps to and the message that is
safe to return to PayPal. PayPal retries on 5xx (and 429), never on
2xx/4xx, so the status attached here decides whether an event is
redelivered.
"""


class PayhookError(Exception):
    """Base class for pipeline errors that end the request early."""

    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message=None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(PayhookError):
    """Malformed body or missing/invalid resource field."""

    status_code = 400
    public_message = "Invalid Payload"


class AuthError(PayhookError):
    """Webhook signature missing or not confirmed by PayPal."""

    status_code = 401
    public_message = "Invalid Webhook Signature"


class ThrottleError(PayhookError):
    status_code = 429
    public_message = "Too Many Requests"


class StorageError(PayhookError):
    """Pool, connection, or statement failure.

    The detail goes to the log; callers only ever see the generic message.
    """

    status_code = 500

    def __init__(self, detail=None):
        super().__init__(detail or self.public_message)
        self.message = self.public_message
        self.detail = detail


class NotificationError(Exception):
    """Outbound Telegram failure. Logged by the dispatcher, never surfaced."""
