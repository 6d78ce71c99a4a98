"""
Tests for app/services/notifier.py.

The Telegram Bot API is replaced by httpx.MockTransport.
"""
import json
from datetime import datetime

import httpx

from app.services.notifier import TelegramNotifier, build_payment_message, format_currency


def make_notifier(handler, token="123:abc", owner_id="42") -> TelegramNotifier:
    return TelegramNotifier(token, owner_id, timeout=1.0, transport=httpx.MockTransport(handler))


class TestMessage:
    def test_format_currency(self):
        assert format_currency(10000) == "Rp 10.000"
        assert format_currency(1500000) == "Rp 1.500.000"
        assert format_currency(500) == "Rp 500"

    def test_plain_message(self):
        text = build_payment_message("QRIS-A", 10000, paid_at=datetime(2024, 1, 15, 10, 0, 0))
        assert "Rp 10.000" in text
        assert "QRIS-A" in text
        assert "2024-01-15 10:00:00" in text
        assert "adjustment" not in text

    def test_adjusted_message(self):
        text = build_payment_message(
            "QRIS-A", 5002, original_amount=5000, was_adjusted=True, adjustment=2,
        )
        assert "Rp 5.000 -> Rp 5.002" in text
        assert "(+2)" in text


class TestTelegramNotifier:
    async def test_sends_to_owner(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        result = await make_notifier(handler).send_payment_notification("QRIS-A", 10000)
        assert result.success is True
        assert result.skipped is False
        assert seen["url"] == "https://api.telegram.org/bot123:abc/sendMessage"
        assert seen["body"]["chat_id"] == "42"
        assert "QRIS-A" in seen["body"]["text"]

    async def test_skipped_when_unconfigured(self):
        def handler(request):
            raise AssertionError("must not call Telegram")

        result = await make_notifier(handler, token=None).send_payment_notification("QRIS-A", 10000)
        assert result.success is True
        assert result.skipped is True

    async def test_api_error_is_reported_not_raised(self):
        handler = lambda request: httpx.Response(
            400, json={"ok": False, "error_code": 400, "description": "chat not found"}
        )
        result = await make_notifier(handler).send_payment_notification("QRIS-A", 10000)
        assert result.success is False
        assert "chat not found" in result.message

    async def test_transport_error_is_reported_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await make_notifier(handler).send_payment_notification("QRIS-A", 10000)
        assert result.success is False
