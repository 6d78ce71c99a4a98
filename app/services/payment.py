"""
Payment request service.

Orchestrates:
1. Check required configuration (static payload, feed credentials)
2. Reserve a non-colliding amount (allocator, provisional pending row)
3. Build the dynamic payload and render the QR image
4. Confirm the reservation with the payload, or roll it back on failure
5. Status checks with lazy expiry and feed-based payment confirmation
"""
import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app import models
from app.config import Settings
from app.feeds.base import SettlementFeed
from app.feeds.orderkuota import OrderKuotaFeed
from app.services.allocator import AllocationResult, AmountAllocator, fetch_feed_amounts
from app.services.clock import utcnow
from app.services.lifecycle import LifecycleController
from app.services.notifier import NotificationResult, TelegramNotifier
from app.services.payload import build_dynamic_payload
from app.services.qr_image import render_qr_png, to_data_url
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)


class CreatedPayment:
    def __init__(self, transaction: models.Transaction, allocation: AllocationResult, qr_image: str):
        self.transaction = transaction
        self.allocation = allocation
        self.qr_image = qr_image


class PaymentStatus:
    def __init__(self, transaction: models.Transaction, status: str):
        self.transaction = transaction
        self.status = status


class PaymentService:
    def __init__(
        self,
        settings: Settings,
        allocator: AmountAllocator,
        lifecycle: LifecycleController,
        feed_factory: Callable[[], Optional[SettlementFeed]],
        notifier: TelegramNotifier,
        render_image: Callable[[str], bytes] = render_qr_png,
    ):
        self.settings = settings
        self.allocator = allocator
        self.lifecycle = lifecycle
        self.feed_factory = feed_factory
        self.notifier = notifier
        self.render_image = render_image

    async def create_payment(self, db: Session, amount: int) -> CreatedPayment:
        """
        Create a pending payment request for `amount`.

        Raises:
            ConfigurationMissingError: static payload or feed credentials unset
            MalformedPayloadError: the configured static payload is unusable
        """
        static_payload = self.settings.require_static_payload()
        self.settings.require_feed_credentials()

        txn, allocation = await self.allocator.reserve(db, amount)
        try:
            payload = build_dynamic_payload(static_payload, allocation.final_amount)
            qr_image = to_data_url(self.render_image(payload))
        except Exception:
            self.allocator.release(db, txn.id)
            raise

        txn = TransactionStore(db).attach_payload(txn.id, payload)
        logger.info(
            "QRIS created",
            extra={
                "transaction_id": txn.id,
                "requested_amount": amount,
                "final_amount": txn.final_amount,
                "adjustment": txn.adjustment,
            },
        )
        return CreatedPayment(txn, allocation, qr_image)

    def cancel_payment(self, db: Session, transaction_id: str) -> models.Transaction:
        return self.lifecycle.cancel(db, transaction_id)

    async def check_status(self, db: Session, transaction_id: str) -> PaymentStatus:
        """
        Current status with lazy expiry. A pending, unexpired request is
        matched against the settlement feed and confirmed when a static
        credit for its final amount has arrived.

        Raises:
            NotFoundError: unknown id
        """
        txn = TransactionStore(db).get(transaction_id)
        status = self.lifecycle.effective_status(txn)
        if status != models.STATUS_PENDING:
            return PaymentStatus(txn, status)

        credits = await fetch_feed_amounts(self.feed_factory())
        if txn.final_amount not in credits:
            return PaymentStatus(txn, status)

        # The request may have been cancelled or removed while the feed was read
        txn = TransactionStore(db).reload(transaction_id)
        status = self.lifecycle.effective_status(txn)
        if status != models.STATUS_PENDING:
            return PaymentStatus(txn, status)

        paid = self.lifecycle.confirm_payment(db, txn.id)
        if paid is None:
            db.refresh(txn)
            return PaymentStatus(txn, self.lifecycle.effective_status(txn))

        await self.notify_paid(paid)
        return PaymentStatus(paid, paid.status)

    async def notify_paid(self, txn: models.Transaction) -> NotificationResult:
        return await self.notifier.send_payment_notification(
            transaction_id=txn.id,
            amount=txn.final_amount,
            paid_at=txn.paid_at,
            original_amount=txn.requested_amount,
            was_adjusted=txn.was_adjusted,
            adjustment=txn.adjustment,
        )


def build_payment_service(
    settings: Settings,
    session_factory,
    clock=utcnow,
    feed_factory: Optional[Callable[[], Optional[SettlementFeed]]] = None,
    notifier: Optional[TelegramNotifier] = None,
) -> PaymentService:
    """Wire the service from settings. Tests pass a fake feed and clock."""

    def orderkuota_feed() -> Optional[SettlementFeed]:
        if not settings.orderkuota_merchant_id or not settings.orderkuota_api_key:
            return None
        return OrderKuotaFeed(
            merchant_id=settings.orderkuota_merchant_id,
            api_key=settings.orderkuota_api_key,
            base_url=settings.orderkuota_base_url,
            timeout=settings.feed_timeout_seconds,
        )

    feed_factory = feed_factory or orderkuota_feed
    allocator = AmountAllocator(
        feed_factory,
        clock=clock,
        ttl=timedelta(seconds=settings.transaction_ttl_seconds),
        max_attempts=settings.max_probe_attempts,
    )
    lifecycle = LifecycleController(
        session_factory,
        clock=clock,
        cancel_retention=timedelta(seconds=settings.cancel_retention_seconds),
        sweep_interval=timedelta(seconds=settings.sweep_interval_seconds),
        sweep_grace=timedelta(seconds=settings.sweep_grace_seconds),
    )
    if notifier is None:
        notifier = TelegramNotifier(
            settings.telegram_token,
            settings.owner_id,
            timeout=settings.telegram_timeout_seconds,
        )
    return PaymentService(settings, allocator, lifecycle, feed_factory, notifier)
