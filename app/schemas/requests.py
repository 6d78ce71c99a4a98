from datetime import datetime
from pydantic import BaseModel, StrictInt, field_validator
from typing import Optional


class CreatePaymentRequest(BaseModel):
    amount: StrictInt

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Amount is required and must be greater than 0")
        return v


class TelegramNotifyRequest(BaseModel):
    transaction_id: str
    amount: int
    original_amount: Optional[int] = None
    was_adjusted: bool = False
    adjustment: Optional[int] = None
    paid_at: Optional[datetime] = None

    @field_validator("transaction_id")
    @classmethod
    def validate_transaction_id(cls, v):
        if not v:
            raise ValueError("transaction_id cannot be empty")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("amount must be greater than 0")
        return v
