"""
Webhook subscriptions and the delivery outbox.

Deliveries are written in the same transaction as the projection change that
triggered them, then picked up by the dispatcher. A delivery's status only
moves pending -> success or pending -> failed; both are terminal.

Usage:
    from gateway_indexer.models.webhook import WebhookDelivery, DeliveryStatus

    delivery = WebhookDelivery(subscription_id=1, payment_id="0x..", event_type="payment.created", payload="{}")
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Index, Text
from sqlmodel import Field, SQLModel

from gateway_indexer.core.typing import utc_now


class DeliveryStatus(str, Enum):
    """Status of a webhook delivery."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookSubscriptionBase(SQLModel):
    merchant_address: str = Field(index=True)
    url: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now)


class WebhookSubscription(WebhookSubscriptionBase, table=True):
    """
    A merchant endpoint that receives signed event notifications.

    The secret is generated once at registration and handed back to the
    merchant a single time; read paths use WebhookSubscriptionRead.
    """

    __tablename__ = "webhook_subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    secret: str


class WebhookSubscriptionRead(WebhookSubscriptionBase):
    """Subscription as exposed to readers (never carries the secret)."""

    id: int


class WebhookDelivery(SQLModel, table=True):
    """
    One notification of one event to one subscription.

    Attributes:
        payload: JSON text of the event `data` object
        attempts: Number of send attempts made so far
        last_attempt_at: Unix seconds of the most recent attempt
        next_retry_at: Unix seconds before which the delivery is not due;
            None means due immediately
        last_error: Failure reason of the most recent attempt
        response_status: HTTP status of the most recent attempt, if any
    """

    __tablename__ = "webhook_delivery"

    id: Optional[int] = Field(default=None, primary_key=True)
    subscription_id: int = Field(foreign_key="webhook_subscription.id", index=True)
    payment_id: str = Field(index=True)
    event_type: str
    payload: str = Field(sa_column=Column(Text, nullable=False))
    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING, index=True)
    attempts: int = Field(default=0)
    last_attempt_at: Optional[int] = None
    next_retry_at: Optional[int] = None
    last_error: Optional[str] = None
    response_status: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        # Due-delivery scan: status + next_retry_at
        Index("ix_webhook_delivery_due", "status", "next_retry_at"),
    )


__all__ = [
    "DeliveryStatus",
    "WebhookSubscription",
    "WebhookSubscriptionRead",
    "WebhookDelivery",
]
