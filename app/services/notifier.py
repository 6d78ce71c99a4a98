"""
Payment notifications to the merchant owner over the Telegram Bot API.

Best effort: failures are logged and reported in the NotificationResult,
never raised into the payment confirmation path.
"""
import logging
from datetime import datetime
from typing import Optional

import httpx

from app.services.clock import utcnow

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class NotificationResult:
    def __init__(self, success: bool, message: str, skipped: bool = False):
        self.success = success
        self.message = message
        self.skipped = skipped


def format_currency(amount: int) -> str:
    return "Rp " + f"{amount:,}".replace(",", ".")


def build_payment_message(
    transaction_id: str,
    amount: int,
    paid_at: Optional[datetime] = None,
    original_amount: Optional[int] = None,
    was_adjusted: bool = False,
    adjustment: Optional[int] = None,
) -> str:
    paid_at = paid_at or utcnow()
    lines = [
        "PAYMENT RECEIVED",
        "",
        f"Amount: {format_currency(amount)}",
        f"Transaction ID: {transaction_id}",
        f"Time: {paid_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        "Method: QRIS",
        "Status: SUCCESS",
    ]
    if was_adjusted and original_amount:
        lines += [
            "",
            "Amount adjustment:",
            f"  {format_currency(original_amount)} -> {format_currency(amount)}",
            f"  (+{adjustment if adjustment is not None else amount - original_amount})",
        ]
    return "\n".join(lines)


class TelegramNotifier:
    def __init__(
        self,
        token: Optional[str],
        owner_id: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self._owner_id = owner_id
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._token and self._owner_id)

    async def send_payment_notification(
        self,
        transaction_id: str,
        amount: int,
        paid_at: Optional[datetime] = None,
        original_amount: Optional[int] = None,
        was_adjusted: bool = False,
        adjustment: Optional[int] = None,
    ) -> NotificationResult:
        if not self.configured:
            logger.info("Telegram not configured - notification skipped",
                        extra={"transaction_id": transaction_id})
            return NotificationResult(True, "Telegram not configured - notification skipped", skipped=True)

        text = build_payment_message(
            transaction_id, amount, paid_at, original_amount, was_adjusted, adjustment
        )
        url = f"{TELEGRAM_API_BASE}/bot{self._token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json={"chat_id": self._owner_id, "text": text})
                result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to send Telegram notification",
                         extra={"transaction_id": transaction_id, "error": str(e)})
            return NotificationResult(False, str(e))

        if not result.get("ok"):
            error = f"{result.get('error_code', 0)}: {result.get('description', 'Unknown error')}"
            logger.warning("Telegram API error",
                           extra={"transaction_id": transaction_id, "error": error})
            return NotificationResult(False, error)

        logger.info("Telegram notification sent", extra={"transaction_id": transaction_id})
        return NotificationResult(True, "Notification sent successfully")
