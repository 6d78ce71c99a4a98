from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_payment_service
from app.errors import ConfigurationMissingError, InvalidStateError, MalformedPayloadError, NotFoundError
from app.schemas.requests import CreatePaymentRequest, TelegramNotifyRequest
from app.schemas.responses import (
    CreatedPaymentOut,
    CreatePaymentResponse,
    NotifyResponse,
    TransactionOut,
    TransactionResponse,
)
from app.services.payment import PaymentService

router = APIRouter()


def transaction_out(txn, status: str) -> TransactionOut:
    out = TransactionOut.model_validate(txn)
    out.status = status
    return out


@router.post("/create", response_model=CreatePaymentResponse, status_code=201)
async def create(
    request: CreatePaymentRequest,
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Create a dynamic QRIS payment request.

    - Reserves a final amount that no pending request or recent static
      credit on the settlement feed already uses (amount + 1, + 2, ...)
    - Builds the dynamic payload and renders it as a PNG data URL
    - The request stays pending for 5 minutes
    """
    try:
        created = await service.create_payment(db, request.amount)
    except ConfigurationMissingError as e:
        raise HTTPException(status_code=500, detail=e.message)
    except MalformedPayloadError as e:
        raise HTTPException(status_code=422, detail=f"Invalid QRIS configuration: {e.message}")

    txn = created.transaction
    if created.allocation.was_adjusted:
        message = (
            f"QRIS created with adjusted amount "
            f"({txn.requested_amount} -> {txn.final_amount})"
        )
    else:
        message = "QRIS created"

    data = CreatedPaymentOut(
        **transaction_out(txn, txn.status).model_dump(),
        qr_image=created.qr_image,
    )
    return CreatePaymentResponse(message=message, data=data, timestamp=datetime.now(timezone.utc))


@router.post("/cancel/{transaction_id}", response_model=TransactionResponse)
async def cancel(
    transaction_id: str,
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """Cancel a pending payment request. The record stays readable for 30 seconds."""
    try:
        txn = service.cancel_payment(db, transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return TransactionResponse(
        message="Transaction cancelled successfully",
        data=transaction_out(txn, txn.status),
    )


@router.get("/status/{transaction_id}", response_model=TransactionResponse)
async def status(
    transaction_id: str,
    db: Session = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Current status of a payment request.

    A pending request past its expiry is reported as expired. A pending
    request whose amount has arrived on the settlement feed is confirmed.
    """
    try:
        result = await service.check_status(db, transaction_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return TransactionResponse(
        message=f"Transaction is {result.status}",
        data=transaction_out(result.transaction, result.status),
    )


@router.post("/telegram-notify", response_model=NotifyResponse)
async def telegram_notify(
    request: TelegramNotifyRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Send a payment notification to the owner's Telegram chat (skipped when unconfigured)."""
    result = await service.notifier.send_payment_notification(
        transaction_id=request.transaction_id,
        amount=request.amount,
        paid_at=request.paid_at,
        original_amount=request.original_amount,
        was_adjusted=request.was_adjusted,
        adjustment=request.adjustment,
    )
    if not result.success:
        raise HTTPException(status_code=502, detail=f"Failed to send Telegram notification: {result.message}")
    return NotifyResponse(status=True, message=result.message)
