"""
Transaction store.

Owns every read and write of Transaction rows. Status changes go through
set_status(), which enforces the one-way state machine:

    pending -> success | cancelled | expired   (all terminal)
"""
from typing import List

from sqlalchemy.orm import Session

from app import models
from app.errors import DuplicateTransactionError, InvalidStateError, NotFoundError


class TransactionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, txn: models.Transaction) -> models.Transaction:
        if txn.id is None:
            txn.id = models.generate_id()
        if self.db.get(models.Transaction, txn.id) is not None:
            raise DuplicateTransactionError(txn.id)
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def get(self, transaction_id: str) -> models.Transaction:
        txn = self.db.get(models.Transaction, transaction_id)
        if txn is None:
            raise NotFoundError(transaction_id)
        return txn

    def reload(self, transaction_id: str) -> models.Transaction:
        """Re-read one row, overwriting whatever the session has cached for it."""
        txn = self.db.query(models.Transaction).filter(
            models.Transaction.id == transaction_id
        ).populate_existing().one_or_none()
        if txn is None:
            raise NotFoundError(transaction_id)
        return txn

    def set_status(self, transaction_id: str, new_status: str, at) -> models.Transaction:
        """
        Move a pending transaction to a terminal status and stamp the
        matching timestamp column with `at`.

        Re-requesting the status the transaction already has is a no-op.

        Raises:
            NotFoundError: unknown id
            InvalidStateError: transaction is not pending, or new_status is
                not a terminal status
        """
        txn = self.get(transaction_id)
        if new_status not in models.TERMINAL_STATUSES:
            raise InvalidStateError(txn.status, f"Cannot transition to status: {new_status}")
        if txn.status == new_status:
            return txn
        if txn.status != models.STATUS_PENDING:
            raise InvalidStateError(txn.status)

        txn.status = new_status
        setattr(txn, models.TRANSITION_TIMESTAMPS[new_status], at)
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def attach_payload(self, transaction_id: str, payload: str) -> models.Transaction:
        txn = self.get(transaction_id)
        txn.payload = payload
        self.db.commit()
        self.db.refresh(txn)
        return txn

    def delete(self, transaction_id: str) -> bool:
        txn = self.db.get(models.Transaction, transaction_id)
        if txn is None:
            return False
        self.db.delete(txn)
        self.db.commit()
        return True

    def delete_many(self, transaction_ids: List[str]) -> int:
        if not transaction_ids:
            return 0
        deleted = self.db.query(models.Transaction).filter(
            models.Transaction.id.in_(transaction_ids)
        ).delete(synchronize_session="fetch")
        self.db.commit()
        return deleted

    def list_pending(self) -> List[models.Transaction]:
        return self.db.query(models.Transaction).filter(
            models.Transaction.status == models.STATUS_PENDING
        ).all()

    def list_all(self) -> List[models.Transaction]:
        return self.db.query(models.Transaction).order_by(models.Transaction.created_at).all()

    def pending_amounts(self) -> set:
        rows = self.db.query(models.Transaction.final_amount).filter(
            models.Transaction.status == models.STATUS_PENDING
        ).all()
        return {amount for (amount,) in rows}

    def size(self) -> int:
        return self.db.query(models.Transaction).count()
