"""
Webhook Outbox

Durable queue of webhook deliveries. Deliveries are enqueued inside the
ingestion transaction that produced the triggering projection change, so a
notification exists if and only if its event was persisted.

Usage:
    from gateway_indexer.services.webhook_outbox import (
        register_subscription,
        enqueue_deliveries,
        list_deliveries,
    )

    with Session(engine) as session:
        subscription, secret = register_subscription(session, merchant, "https://shop.example/hooks")
        # `secret` is returned here once and never again

        deliveries = enqueue_deliveries(session, trigger)
        session.commit()
"""

import json
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from eth_utils import is_address, to_checksum_address
from sqlalchemy import func
from sqlmodel import Session, select

from gateway_indexer.core.errors import InvalidSubscriptionError
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.core.typing import col
from gateway_indexer.models.webhook import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookSubscription,
    WebhookSubscriptionRead,
)
from gateway_indexer.services.projector import WebhookTrigger
from gateway_indexer.services.signing import generate_secret

logger = get_logger(__name__)


def _validate_url(url: str) -> str:
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidSubscriptionError(f"Invalid webhook URL: {url!r}")
    return url.strip()


def register_subscription(
    session: Session,
    merchant_address: str,
    url: str,
) -> Tuple[WebhookSubscriptionRead, str]:
    """
    Register a webhook endpoint for a merchant and generate its secret.

    Args:
        session: Database session (committed here)
        merchant_address: Merchant account address
        url: http(s) endpoint receiving POSTs

    Returns:
        (subscription without secret, plaintext secret)

    Raises:
        InvalidSubscriptionError: malformed address or URL
    """
    if not is_address(merchant_address):
        raise InvalidSubscriptionError(f"Invalid merchant address: {merchant_address!r}")

    subscription = WebhookSubscription(
        merchant_address=to_checksum_address(merchant_address),
        url=_validate_url(url),
        secret=generate_secret(),
        is_active=True,
    )
    session.add(subscription)
    session.commit()
    session.refresh(subscription)

    logger.info("webhook_subscription_registered", subscription_id=subscription.id, merchant=subscription.merchant_address)
    return WebhookSubscriptionRead.model_validate(subscription, from_attributes=True), subscription.secret


def deactivate_subscription(session: Session, subscription_id: int) -> Optional[WebhookSubscriptionRead]:
    subscription = session.get(WebhookSubscription, subscription_id)
    if subscription is None:
        logger.warning("webhook_subscription_not_found", subscription_id=subscription_id)
        return None

    subscription.is_active = False
    session.add(subscription)
    session.commit()
    session.refresh(subscription)
    logger.info("webhook_subscription_deactivated", subscription_id=subscription_id)
    return WebhookSubscriptionRead.model_validate(subscription, from_attributes=True)


def list_subscriptions(session: Session, merchant_address: str) -> List[WebhookSubscriptionRead]:
    if not is_address(merchant_address):
        return []

    stmt = (
        select(WebhookSubscription)
        .where(col(WebhookSubscription.merchant_address) == to_checksum_address(merchant_address))
        .order_by(col(WebhookSubscription.id).asc())
    )
    return [WebhookSubscriptionRead.model_validate(s, from_attributes=True) for s in session.exec(stmt).all()]


def enqueue_deliveries(session: Session, trigger: WebhookTrigger) -> List[WebhookDelivery]:
    """
    Write one pending delivery per active subscription of the merchant. Does not commit.

    New deliveries have attempts=0 and next_retry_at=None (due immediately).
    """
    stmt = select(WebhookSubscription).where(
        col(WebhookSubscription.merchant_address) == trigger.merchant_address,
        col(WebhookSubscription.is_active) == True,  # noqa: E712
    )
    subscriptions = session.exec(stmt).all()

    payload = json.dumps(trigger.data, sort_keys=True, separators=(",", ":"))
    deliveries = []
    for subscription in subscriptions:
        delivery = WebhookDelivery(
            subscription_id=subscription.id,
            payment_id=trigger.payment_id,
            event_type=trigger.event_type,
            payload=payload,
            status=DeliveryStatus.PENDING,
            attempts=0,
            next_retry_at=None,
        )
        session.add(delivery)
        deliveries.append(delivery)

    if deliveries:
        logger.info(
            "webhook_deliveries_enqueued",
            event_type=trigger.event_type,
            payment_id=trigger.payment_id,
            count=len(deliveries),
        )
    return deliveries


def list_deliveries(session: Session, subscription_id: int, limit: int = 50) -> List[WebhookDelivery]:
    """Delivery history for a subscription, newest first."""
    stmt = (
        select(WebhookDelivery)
        .where(col(WebhookDelivery.subscription_id) == subscription_id)
        .order_by(col(WebhookDelivery.id).desc())
        .limit(limit)
    )
    return list(session.exec(stmt).all())


def get_delivery_stats(session: Session) -> dict[str, int]:
    """
    Returns:
        Dict with counts per status: {"pending": N, "success": N, "failed": N}
    """
    stats: dict[str, int] = {status.value: 0 for status in DeliveryStatus}

    stmt = select(WebhookDelivery.status, func.count()).group_by(WebhookDelivery.status)
    for status, count in session.exec(stmt).all():
        stats[DeliveryStatus(status).value] = count

    return stats


__all__ = [
    "register_subscription",
    "deactivate_subscription",
    "list_subscriptions",
    "enqueue_deliveries",
    "list_deliveries",
    "get_delivery_stats",
]
