from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from app.database import Base
import secrets

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"

TERMINAL_STATUSES = (STATUS_SUCCESS, STATUS_CANCELLED, STATUS_EXPIRED)

# Which timestamp column a transition stamps
TRANSITION_TIMESTAMPS = {
    STATUS_SUCCESS: "paid_at",
    STATUS_CANCELLED: "cancelled_at",
    STATUS_EXPIRED: "expired_at",
}


def generate_id():
    return f"QRIS-{secrets.token_hex(4).upper()}"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True, default=generate_id)
    requested_amount = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False, index=True)
    adjustment = Column(Integer, nullable=False, default=0)
    was_adjusted = Column(Boolean, nullable=False, default=False)
    payload = Column(Text, nullable=True)  # NULL while the reservation is provisional
    status = Column(String, nullable=False, default=STATUS_PENDING, index=True)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Transaction {self.id} {self.final_amount} {self.status}>"
