"""
Payment intent projection.

Status moves along a fixed graph:

    (none) --created--> PENDING --completed--> COMPLETED --refunded--> REFUNDED
                           |--expired--> EXPIRED
                           |--cancelled--> CANCELLED

EXPIRED, REFUNDED and CANCELLED are terminal. payer, paid_at and
platform_fee are written once, on PENDING -> COMPLETED.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from gateway_indexer.core.typing import utc_now


class PaymentStatus(str, Enum):
    """Status of a payment intent."""

    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({PaymentStatus.EXPIRED, PaymentStatus.REFUNDED, PaymentStatus.CANCELLED})


class PaymentIntent(SQLModel, table=True):
    __tablename__ = "payment_intent"

    payment_id: str = Field(primary_key=True)  # 0x-prefixed hex of the bytes32 id
    merchant: str = Field(index=True)
    token_address: str
    amount: str  # decimal string
    expiry_timestamp: int
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    created_at: int  # block timestamp of the creation event
    payer: Optional[str] = None
    paid_at: Optional[int] = None
    platform_fee: Optional[str] = None
    block_number: int = Field(index=True)
    transaction_hash: str
    indexed_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (Index("ix_payment_intent_merchant_status", "merchant", "status"),)


__all__ = ["PaymentIntent", "PaymentStatus", "TERMINAL_STATUSES"]
