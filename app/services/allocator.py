"""
Amount collision avoidance.

Payments arrive on the merchant's static QR account without any reference
other than the amount, so two open requests must never share an amount.
The collision set is the union of:
- confirmed static-QR credits on the settlement feed
- final amounts of transactions still pending in the store

Probe: base, base+1, ... up to MAX_PROBE_ATTEMPTS values. When every probe
collides, fall back to base + random(100..1099). The fallback is NOT checked
against the collision set again; a residual collision is an accepted risk.
"""
import logging
import random
import threading
from datetime import timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app import models
from app.errors import CollisionFeedError
from app.feeds.base import SettlementFeed, static_credit_amounts
from app.services.clock import utcnow
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)

MAX_PROBE_ATTEMPTS = 100
FALLBACK_MIN = 100
FALLBACK_MAX = 1099
TRANSACTION_TTL = timedelta(minutes=5)


class AllocationResult:
    def __init__(self, final_amount: int, was_adjusted: bool, adjustment: int):
        self.final_amount = final_amount
        self.was_adjusted = was_adjusted
        self.adjustment = adjustment

    def __repr__(self):
        return (
            f"AllocationResult(final_amount={self.final_amount}, "
            f"was_adjusted={self.was_adjusted}, adjustment={self.adjustment})"
        )


def find_unique_amount(
    base_amount: int,
    taken: Iterable[int],
    max_attempts: int = MAX_PROBE_ATTEMPTS,
    rng: Optional[random.Random] = None,
) -> AllocationResult:
    taken = set(taken)
    amount = base_amount
    for _ in range(max_attempts):
        if amount not in taken:
            return AllocationResult(
                final_amount=amount,
                was_adjusted=amount != base_amount,
                adjustment=amount - base_amount,
            )
        amount += 1

    suffix = (rng or random).randint(FALLBACK_MIN, FALLBACK_MAX)
    final_amount = base_amount + suffix
    logger.warning(
        "Probe exhausted, using random fallback amount",
        extra={"amount": base_amount, "final_amount": final_amount, "attempts": max_attempts},
    )
    return AllocationResult(final_amount=final_amount, was_adjusted=True, adjustment=suffix)


async def fetch_feed_amounts(feed: Optional[SettlementFeed]) -> List[int]:
    """Static-QR credit amounts from the feed; an unreachable feed counts as empty."""
    if feed is None:
        return []
    try:
        records = await feed.fetch_recent_credits()
    except CollisionFeedError as e:
        logger.warning("Settlement feed unavailable, assuming no credits", extra={"error": str(e)})
        return []
    return static_credit_amounts(records)


async def allocate(
    base_amount: int,
    pending_amounts: Iterable[int],
    feed: Optional[SettlementFeed],
    max_attempts: int = MAX_PROBE_ATTEMPTS,
) -> AllocationResult:
    """Find a final amount for base_amount without reserving it."""
    feed_amounts = await fetch_feed_amounts(feed)
    return find_unique_amount(base_amount, set(feed_amounts) | set(pending_amounts), max_attempts)


class AmountAllocator:
    """
    Allocates and reserves amounts.

    reserve() inserts a provisional pending record while holding the lock,
    so a second request can never observe the same amount as free. The feed
    is fetched before the lock is taken.
    """

    def __init__(
        self,
        feed_factory: Callable[[], Optional[SettlementFeed]],
        clock: Callable = utcnow,
        ttl: timedelta = TRANSACTION_TTL,
        max_attempts: int = MAX_PROBE_ATTEMPTS,
    ):
        self._feed_factory = feed_factory
        self._clock = clock
        self._ttl = ttl
        self._max_attempts = max_attempts
        self._lock = threading.Lock()

    async def reserve(self, db: Session, base_amount: int) -> Tuple[models.Transaction, AllocationResult]:
        feed_amounts = await fetch_feed_amounts(self._feed_factory())

        with self._lock:
            store = TransactionStore(db)
            taken = set(feed_amounts) | store.pending_amounts()
            result = find_unique_amount(base_amount, taken, self._max_attempts)
            now = self._clock()
            txn = store.create(models.Transaction(
                id=models.generate_id(),
                requested_amount=base_amount,
                final_amount=result.final_amount,
                adjustment=result.adjustment,
                was_adjusted=result.was_adjusted,
                status=models.STATUS_PENDING,
                created_at=now,
                expires_at=now + self._ttl,
            ))

        logger.info(
            "Amount reserved",
            extra={
                "transaction_id": txn.id,
                "requested_amount": base_amount,
                "final_amount": result.final_amount,
                "adjustment": result.adjustment,
            },
        )
        return txn, result

    def release(self, db: Session, transaction_id: str) -> None:
        """Roll back a provisional reservation."""
        with self._lock:
            TransactionStore(db).delete(transaction_id)
        logger.info("Reservation rolled back", extra={"transaction_id": transaction_id})
