"""Telegram service — payment alerts to a chat.

Best-effort only. An unconfigured bot is a silent no-op, and a failed
send is logged and dropped: the webhook response never depends on
whether the alert got through, and nothing is retried.

Usage:
    dispatcher = NotificationDispatcher(bot_token, chat_id, "My Shop", template)
    dispatcher.dispatch(payment_values, stats_snapshot)
"""

import logging
import re

import requests

from payhook.errors import NotificationError

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def render_message(template, values):
    """Replace each {key} with values[key]. Unknown placeholders stay as-is."""

    def _substitute(match):
        key = match.group(1)
        if key in values:
            return str(values[key])
        return match.group(0)

    return PLACEHOLDER_RE.sub(_substitute, template)


class NotificationDispatcher:
    def __init__(self, bot_token, chat_id, service_name, template,
                 api_base="https://api.telegram.org", timeout=10):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.service_name = service_name
        self.template = template
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @property
    def enabled(self):
        return bool(self.bot_token and self.chat_id)

    def build_values(self, payment, stats):
        """Flat placeholder map: payment fields + window stats + service_name."""
        values = {key: str(value) for key, value in payment.items()}
        values.update(stats.as_placeholders())
        values["service_name"] = self.service_name
        return values

    def dispatch(self, payment, stats):
        """Render and send the alert. Never raises."""
        if not self.enabled:
            logger.debug("Telegram not configured — skipping payment notification.")
            return

        try:
            text = render_message(self.template, self.build_values(payment, stats))
            self.send(text)
            logger.info(f"Telegram notification sent for payment {payment.get('payment_id')}")
        except NotificationError as e:
            logger.error(f"Failed to send Telegram notification: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending Telegram notification: {e}", exc_info=True)

    def send(self, text):
        """POST one message to the configured chat.

        Raises NotificationError on network failure, non-2xx status, or
        a Telegram response with ok=false.
        """
        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        params = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
        }

        try:
            resp = requests.post(url, data=params, timeout=self.timeout)
        except requests.RequestException as e:
            # str(e) can contain the URL, and with it the bot token.
            raise NotificationError(f"{type(e).__name__} while calling Telegram") from e

        if not 200 <= resp.status_code < 300:
            raise NotificationError(f"Telegram returned HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("ok") is False:
            raise NotificationError(
                f"Telegram rejected the message: {body.get('description', 'unknown error')}"
            )
