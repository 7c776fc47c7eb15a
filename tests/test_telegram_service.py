"""Tests for message rendering and the Telegram dispatcher."""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from payhook.errors import NotificationError
from payhook.services.payment_store import WindowTotals
from payhook.services.stats_service import StatsSnapshot
from payhook.services.telegram_service import NotificationDispatcher, render_message

PAYMENT = {
    "payment_id": "PAY-1",
    "amount": Decimal("10.00"),
    "currency": "USD",
    "status": "completed",
    "create_time": "2026-10-19T11:59:30Z",
    "processed_at": "2026-10-19 12:00:00",
}

SNAPSHOT = StatsSnapshot(windows={
    "24h": WindowTotals(3, Decimal("42.5")),
    "7d": WindowTotals(7, Decimal("99.99")),
    "28d": WindowTotals(12, Decimal("250")),
})


@pytest.fixture
def dispatcher():
    return NotificationDispatcher(
        bot_token="123456:abc",
        chat_id="-1001",
        service_name="Corner Shop",
        template="{service_name}: {amount} {currency} ({payments24h} today)",
    )


class TestRenderMessage:
    def test_all_placeholders_substituted(self):
        text = render_message(
            "Got {amount}, {payments24h} payments in 24h",
            {"amount": "10.00", "payments24h": "4"},
        )
        assert text == "Got 10.00, 4 payments in 24h"

    def test_unmatched_placeholders_left_verbatim(self):
        text = render_message("{amount} via {gateway}", {"amount": "10.00"})
        assert text == "10.00 via {gateway}"

    def test_repeated_placeholder(self):
        assert render_message("{x}-{x}", {"x": 1}) == "1-1"

    def test_substituted_values_are_not_rescanned(self):
        assert render_message("{a}", {"a": "{b}", "b": "nope"}) == "{b}"


class TestBuildValues:
    def test_merges_payment_stats_and_service_name(self, dispatcher):
        values = dispatcher.build_values(PAYMENT, SNAPSHOT)

        assert values["payment_id"] == "PAY-1"
        assert values["amount"] == "10.00"
        assert values["payments24h"] == "3"
        assert values["sumamounts24h"] == "42.50"
        assert values["sumamounts28d"] == "250.00"
        assert values["service_name"] == "Corner Shop"


class TestDispatch:
    def test_sends_form_encoded_message(self, dispatcher, mock_telegram):
        dispatcher.dispatch(PAYMENT, SNAPSHOT)

        mock_telegram.assert_called_once()
        args, kwargs = mock_telegram.call_args
        assert args[0] == "https://api.telegram.org/bot123456:abc/sendMessage"
        assert kwargs["data"] == {
            "chat_id": "-1001",
            "text": "Corner Shop: 10.00 USD (3 today)",
            "parse_mode": "HTML",
        }

    @pytest.mark.parametrize("token, chat_id", [(None, "-1001"), ("123456:abc", ""), (None, None)])
    def test_unconfigured_is_noop(self, token, chat_id, mock_telegram):
        dispatcher = NotificationDispatcher(token, chat_id, "Corner Shop", "{amount}")
        dispatcher.dispatch(PAYMENT, SNAPSHOT)
        mock_telegram.assert_not_called()

    def test_network_failure_is_swallowed(self, dispatcher, mock_telegram, caplog):
        mock_telegram.side_effect = requests.Timeout("read timed out")

        with caplog.at_level(logging.ERROR):
            dispatcher.dispatch(PAYMENT, SNAPSHOT)

        assert "Failed to send Telegram notification" in caplog.text
        # bot token must not leak into logs
        assert "123456:abc" not in caplog.text

    def test_http_failure_is_swallowed(self, dispatcher, mock_telegram, caplog):
        mock_telegram.return_value.status_code = 403

        with caplog.at_level(logging.ERROR):
            dispatcher.dispatch(PAYMENT, SNAPSHOT)

        assert "HTTP 403" in caplog.text


class TestSend:
    def test_ok_false_raises(self, dispatcher, mock_telegram):
        mock_telegram.return_value.json.return_value = {
            "ok": False,
            "description": "Bad Request: chat not found",
        }
        with pytest.raises(NotificationError, match="chat not found"):
            dispatcher.send("hello")

    def test_non_json_success_is_accepted(self, dispatcher, mock_telegram):
        response = MagicMock(status_code=200)
        response.json.side_effect = ValueError("not json")
        mock_telegram.return_value = response

        dispatcher.send("hello")
