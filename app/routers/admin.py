from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_payment_service
from app.routers.qris import transaction_out
from app.schemas.responses import (
    CleanupData,
    CleanupResponse,
    TransactionListData,
    TransactionListResponse,
)
from app.services.payment import PaymentService
from app.services.store import TransactionStore

router = APIRouter()


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """All transactions currently held in memory, with lazy expiry applied."""
    txns = TransactionStore(db).list_all()
    items = [transaction_out(t, service.lifecycle.effective_status(t)) for t in txns]
    return TransactionListResponse(
        message="Active transactions retrieved",
        data=TransactionListData(total_transactions=len(items), transactions=items),
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup(
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """Remove every transaction that is no longer pending or has expired."""
    cleaned = service.lifecycle.force_cleanup(db)
    return CleanupResponse(
        message=f"Cleanup completed: {cleaned} transactions removed",
        data=CleanupData(
            cleaned_count=cleaned,
            remaining_transactions=TransactionStore(db).size(),
        ),
        timestamp=datetime.now(timezone.utc),
    )
