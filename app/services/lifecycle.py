"""
Transaction lifecycle controller.

Owns every time-driven side effect on the store:
- cancel: pending -> cancelled, row deleted CANCEL_RETENTION later so
  clients polling the status still see "cancelled" for a while
- confirm_payment: pending -> success for one request, by id
- periodic sweep: every SWEEP_INTERVAL, delete any row more than
  SWEEP_GRACE past its expiry, whatever its status
- force_cleanup: on demand, delete every non-pending or expired row

Timers are asyncio tasks created by start() and cancelled by stop().
The clock is injected; advance_and_sweep() runs due deletions and the
stale sweep against it without waiting on real time.
"""
import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app import models
from app.errors import InvalidStateError
from app.services.clock import utcnow
from app.services.store import TransactionStore

logger = logging.getLogger(__name__)

CANCEL_RETENTION = timedelta(seconds=30)
SWEEP_INTERVAL = timedelta(minutes=5)
SWEEP_GRACE = timedelta(minutes=5)


def is_expired(txn: models.Transaction, now: datetime) -> bool:
    return now > txn.expires_at


class LifecycleController:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] = utcnow,
        cancel_retention: timedelta = CANCEL_RETENTION,
        sweep_interval: timedelta = SWEEP_INTERVAL,
        sweep_grace: timedelta = SWEEP_GRACE,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._cancel_retention = cancel_retention
        self._sweep_interval = sweep_interval
        self._sweep_grace = sweep_grace

        self._removals: Dict[str, datetime] = {}
        self._removals_lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sweep_task: Optional[asyncio.Task] = None
        self._timers: set = set()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------
    def effective_status(self, txn: models.Transaction) -> str:
        """Stored status, except a pending row past its expiry reads as expired."""
        if txn.status == models.STATUS_PENDING and is_expired(txn, self._clock()):
            return models.STATUS_EXPIRED
        return txn.status

    def cancel(self, db: Session, transaction_id: str) -> models.Transaction:
        """
        Cancel a pending transaction and schedule its removal.

        Raises:
            NotFoundError: unknown id
            InvalidStateError: transaction is not pending (including a
                transaction that is already cancelled)
        """
        store = TransactionStore(db)
        txn = store.get(transaction_id)
        if txn.status != models.STATUS_PENDING:
            raise InvalidStateError(txn.status, f"Cannot cancel transaction with status: {txn.status}")

        txn = store.set_status(transaction_id, models.STATUS_CANCELLED, self._clock())
        self.schedule_removal(transaction_id, self._cancel_retention)
        logger.info("Transaction cancelled", extra={"transaction_id": transaction_id})
        return txn

    def expire(self, db: Session, transaction_id: str) -> models.Transaction:
        """
        Administrative hook: persist pending -> expired for one request.

        The request path never calls this; expiry there is lazy
        (effective_status) and reaped by the sweep.
        """
        txn = TransactionStore(db).set_status(transaction_id, models.STATUS_EXPIRED, self._clock())
        logger.info("Transaction expired", extra={"transaction_id": transaction_id})
        return txn

    def confirm_payment(self, db: Session, transaction_id: str) -> Optional[models.Transaction]:
        """
        Mark one pending request as paid.

        Returns None when the request has left pending in the meantime
        (cancelled, expired or already confirmed).

        Raises:
            NotFoundError: unknown id
        """
        store = TransactionStore(db)
        txn = store.reload(transaction_id)
        if txn.status != models.STATUS_PENDING:
            logger.info(
                "Payment not confirmed",
                extra={"transaction_id": transaction_id, "status": txn.status},
            )
            return None
        txn = store.set_status(transaction_id, models.STATUS_SUCCESS, self._clock())
        logger.info(
            "Payment confirmed",
            extra={"transaction_id": txn.id, "final_amount": txn.final_amount},
        )
        return txn

    # ------------------------------------------------------------------
    # Scheduled removal
    # ------------------------------------------------------------------
    def schedule_removal(self, transaction_id: str, delay: timedelta) -> None:
        with self._removals_lock:
            self._removals[transaction_id] = self._clock() + delay
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._spawn_timer, transaction_id, delay.total_seconds())

    def scheduled_removals(self) -> Dict[str, datetime]:
        with self._removals_lock:
            return dict(self._removals)

    def _spawn_timer(self, transaction_id: str, seconds: float) -> None:
        if self._loop is None:
            return
        task = self._loop.create_task(self._remove_later(transaction_id, seconds))
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)

    async def _remove_later(self, transaction_id: str, seconds: float) -> None:
        await asyncio.sleep(seconds)
        db = self._session_factory()
        try:
            self.remove_scheduled(db, transaction_id)
        finally:
            db.close()

    def remove_scheduled(self, db: Session, transaction_id: str) -> bool:
        """Delete one row whose removal was scheduled, without re-checking the due time."""
        with self._removals_lock:
            if self._removals.pop(transaction_id, None) is None:
                return False
        removed = TransactionStore(db).delete(transaction_id)
        logger.info("Cleaned up cancelled transaction", extra={"transaction_id": transaction_id})
        return removed

    def run_due(self, db: Session) -> int:
        """Delete every row whose scheduled removal time has passed."""
        now = self._clock()
        with self._removals_lock:
            due = [tid for tid, at in self._removals.items() if at <= now]
            for tid in due:
                del self._removals[tid]
        removed = TransactionStore(db).delete_many(due)
        for tid in due:
            logger.info("Cleaned up cancelled transaction", extra={"transaction_id": tid})
        return removed

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    def sweep_stale(self, db: Session) -> int:
        """Delete rows more than the grace period past expiry, regardless of status."""
        cutoff = self._clock() - self._sweep_grace
        stale_ids = [
            tid for (tid,) in db.query(models.Transaction.id).filter(
                models.Transaction.expires_at < cutoff
            ).all()
        ]
        removed = self._delete(db, stale_ids)
        if removed:
            logger.info("Auto-cleanup completed", extra={"count": removed})
        return removed

    def force_cleanup(self, db: Session) -> int:
        """Delete every row that is no longer pending or whose expiry has passed."""
        now = self._clock()
        ids = [
            tid for (tid,) in db.query(models.Transaction.id).filter(
                (models.Transaction.status != models.STATUS_PENDING)
                | (models.Transaction.expires_at < now)
            ).all()
        ]
        removed = self._delete(db, ids)
        logger.info("Manual cleanup completed", extra={"count": removed})
        return removed

    def advance_and_sweep(self, db: Session) -> int:
        """Run due removals then the stale sweep; returns rows removed."""
        return self.run_due(db) + self.sweep_stale(db)

    def _delete(self, db: Session, transaction_ids) -> int:
        with self._removals_lock:
            for tid in transaction_ids:
                self._removals.pop(tid, None)
        return TransactionStore(db).delete_many(transaction_ids)

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------
    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info("Auto-cleanup scheduler started")

    async def stop(self) -> None:
        tasks = list(self._timers)
        if self._sweep_task is not None:
            tasks.append(self._sweep_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._sweep_task = None
        self._loop = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval.total_seconds())
            db = self._session_factory()
            try:
                self.advance_and_sweep(db)
            except Exception:
                logger.exception("Auto-cleanup failed")
            finally:
                db.close()
