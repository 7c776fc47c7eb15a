"""PayPal service — webhook signature verification.

PayPal signs each webhook delivery; the transmission headers are sent
back to PayPal's verify-webhook-signature API together with the event
body and our webhook id. Only a "SUCCESS" verdict authenticates the
request.

Fails closed: missing headers, an unparsable body, network errors,
non-200 responses, and any other verdict all return False.
"""

import json
import logging
import threading
import time

import requests

logger = logging.getLogger(__name__)

TRANSMISSION_ID_HEADER = "PayPal-Transmission-Id"
TRANSMISSION_TIME_HEADER = "PayPal-Transmission-Time"
CERT_URL_HEADER = "PayPal-Cert-Url"
AUTH_ALGO_HEADER = "PayPal-Auth-Algo"
TRANSMISSION_SIG_HEADER = "PayPal-Transmission-Sig"

VERIFICATION_SUCCESS = "SUCCESS"

# Refresh the OAuth token this many seconds before PayPal says it expires.
_TOKEN_EXPIRY_MARGIN = 60


class SignatureVerifier:
    def __init__(self, webhook_id, client_id, client_secret,
                 api_base="https://api-m.paypal.com", timeout=15):
        self.webhook_id = webhook_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

        self._token = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    # ──────────────────────────────────────────────
    # OAuth
    # ──────────────────────────────────────────────

    def _get_access_token(self):
        """Return a cached client-credentials token, fetching a new one when stale.

        Raises requests.RequestException / ValueError / KeyError on failure.
        """
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            resp = requests.post(
                f"{self.api_base}/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()

            self._token = body["access_token"]
            expires_in = int(body.get("expires_in", 0))
            self._token_expires_at = (
                time.monotonic() + max(expires_in - _TOKEN_EXPIRY_MARGIN, 0)
            )
            return self._token

    def _drop_token(self):
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    # ──────────────────────────────────────────────
    # Verification
    # ──────────────────────────────────────────────

    def verify(self, raw_body, headers):
        """Ask PayPal whether this delivery is authentic.

        Args:
            raw_body: The request body exactly as received.
            headers:  Request headers (any mapping with .get()).

        Returns True only for HTTP 200 + verification_status == "SUCCESS".
        """
        transmission_id = headers.get(TRANSMISSION_ID_HEADER) or ""
        transmission_time = headers.get(TRANSMISSION_TIME_HEADER) or ""
        cert_url = headers.get(CERT_URL_HEADER) or ""

        if not transmission_id or not transmission_time or not cert_url:
            logger.warning("Webhook received without PayPal transmission headers")
            return False

        try:
            webhook_event = json.loads(raw_body)
        except ValueError:
            logger.warning(f"Webhook {transmission_id} body is not valid JSON, cannot verify")
            return False

        payload = {
            "transmission_id": transmission_id,
            "transmission_time": transmission_time,
            "cert_url": cert_url,
            "auth_algo": headers.get(AUTH_ALGO_HEADER) or "",
            "transmission_sig": headers.get(TRANSMISSION_SIG_HEADER) or "",
            "webhook_id": self.webhook_id,
            "webhook_event": webhook_event,
        }

        try:
            token = self._get_access_token()
            resp = requests.post(
                f"{self.api_base}/v1/notifications/verify-webhook-signature",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.error(f"PayPal signature verification call failed for {transmission_id}: {e}")
            return False

        if resp.status_code == 401:
            # Token revoked or expired early; the next delivery fetches a new one.
            self._drop_token()

        if resp.status_code != 200:
            logger.warning(
                f"PayPal verification returned HTTP {resp.status_code} for {transmission_id}"
            )
            return False

        try:
            result = resp.json()
        except ValueError:
            logger.warning(f"PayPal verification response for {transmission_id} is not JSON")
            return False

        status = result.get("verification_status") if isinstance(result, dict) else None
        if status != VERIFICATION_SUCCESS:
            logger.warning(f"Webhook {transmission_id} failed verification: {status}")
            return False

        return True
