from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    requested_amount: int
    final_amount: int
    was_adjusted: bool
    adjustment: int
    payload: Optional[str]
    status: str  # pending | success | cancelled | expired (lazy expiry applied)
    created_at: datetime
    expires_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None


class CreatedPaymentOut(TransactionOut):
    qr_image: str  # data:image/png;base64,...


class CreatePaymentResponse(BaseModel):
    status: bool = True
    message: str
    data: CreatedPaymentOut
    timestamp: datetime


class TransactionResponse(BaseModel):
    status: bool = True
    message: str
    data: TransactionOut


class TransactionListData(BaseModel):
    total_transactions: int
    transactions: List[TransactionOut]


class TransactionListResponse(BaseModel):
    status: bool = True
    message: str
    data: TransactionListData
    timestamp: datetime


class CleanupData(BaseModel):
    cleaned_count: int
    remaining_transactions: int


class CleanupResponse(BaseModel):
    status: bool = True
    message: str
    data: CleanupData
    timestamp: datetime


class NotifyResponse(BaseModel):
    status: bool
    message: str


class ErrorResponse(BaseModel):
    status: bool = False
    message: str
