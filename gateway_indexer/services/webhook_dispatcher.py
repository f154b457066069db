"""
Webhook Dispatcher

Periodic worker that sends due outbox deliveries and records the outcome.

A delivery is due when:
    status = pending AND attempts < max_attempts
    AND (next_retry_at IS NULL OR next_retry_at <= now)

Each attempt runs in its own transaction. The row is re-selected with
FOR UPDATE SKIP LOCKED (ignored by SQLite) before the HTTP call so a second
dispatcher on PostgreSQL cannot send the same delivery concurrently, and the
row is written only once the HTTP outcome is known.

Retry policy:
    attempt n fails -> next_retry_at = now + BACKOFF_SCHEDULE[min(n, 5) - 1]
    attempts reaches max_attempts -> status = failed (terminal)
"""

import json
from dataclasses import dataclass
from typing import Callable, List, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.core.typing import col, unix_now
from gateway_indexer.models.webhook import DeliveryStatus, WebhookDelivery, WebhookSubscription
from gateway_indexer.services.signing import canonical_payload, sign

logger = get_logger(__name__)

BACKOFF_SCHEDULE = (60, 300, 900, 3600, 7200)  # seconds: 1min, 5min, 15min, 1hr, 2hr
MAX_ATTEMPTS = 5
DEFAULT_TIMEOUT_SECONDS = 10.0

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"


def backoff_delay(attempts: int) -> int:
    """Delay before the next attempt after `attempts` failed attempts (>= 1)."""
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")
    return BACKOFF_SCHEDULE[min(attempts, len(BACKOFF_SCHEDULE)) - 1]


@dataclass(frozen=True)
class SendOutcome:
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class DispatchSummary:
    attempted: int = 0
    succeeded: int = 0
    retrying: int = 0
    failed: int = 0


def record_attempt(delivery: WebhookDelivery, outcome: SendOutcome, now: int, max_attempts: int = MAX_ATTEMPTS) -> None:
    """Apply an attempt outcome to a pending delivery. Does not commit."""
    if delivery.status != DeliveryStatus.PENDING:
        raise ValueError(f"Delivery {delivery.id} is {delivery.status.value}; terminal deliveries are immutable")

    delivery.attempts += 1
    delivery.last_attempt_at = now
    delivery.response_status = outcome.status_code

    if outcome.ok:
        delivery.status = DeliveryStatus.SUCCESS
        delivery.next_retry_at = None
        delivery.last_error = None
        return

    delivery.last_error = (outcome.error or "unknown error")[:1000]
    if delivery.attempts >= max_attempts:
        delivery.status = DeliveryStatus.FAILED
        delivery.next_retry_at = None
    else:
        delivery.next_retry_at = now + backoff_delay(delivery.attempts)


def _due_clause(now: int, max_attempts: int):
    return (
        col(WebhookDelivery.status) == DeliveryStatus.PENDING,
        col(WebhookDelivery.attempts) < max_attempts,
        or_(
            col(WebhookDelivery.next_retry_at).is_(None),
            col(WebhookDelivery.next_retry_at) <= now,
        ),
    )


class WebhookDispatcher:
    def __init__(
        self,
        engine: Engine,
        http_client: Optional[httpx.Client] = None,
        max_attempts: int = MAX_ATTEMPTS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        batch_size: int = 100,
        clock: Callable[[], int] = unix_now,
    ):
        self.engine = engine
        self.http_client = http_client or httpx.Client(timeout=timeout)
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.batch_size = batch_size
        self.clock = clock

    def due_delivery_ids(self, now: int) -> List[int]:
        with Session(self.engine) as session:
            stmt = (
                select(WebhookDelivery.id)
                .where(*_due_clause(now, self.max_attempts))
                .order_by(col(WebhookDelivery.id).asc())
                .limit(self.batch_size)
            )
            return list(session.exec(stmt).all())

    def dispatch_due(self) -> DispatchSummary:
        """Attempt every delivery that is due right now."""
        summary = DispatchSummary()
        for delivery_id in self.due_delivery_ids(self.clock()):
            status = self.attempt_delivery(delivery_id)
            if status is None:
                continue
            summary.attempted += 1
            if status == DeliveryStatus.SUCCESS:
                summary.succeeded += 1
            elif status == DeliveryStatus.FAILED:
                summary.failed += 1
            else:
                summary.retrying += 1

        if summary.attempted:
            logger.info(
                "webhook_dispatch_complete",
                attempted=summary.attempted,
                succeeded=summary.succeeded,
                retrying=summary.retrying,
                failed=summary.failed,
            )
        return summary

    def attempt_delivery(self, delivery_id: int) -> Optional[DeliveryStatus]:
        """
        Claim, send and record one delivery.

        Returns:
            The delivery's status after the attempt, or None if it was no
            longer due (already sent, claimed elsewhere, not yet retryable)
        """
        now = self.clock()
        with Session(self.engine) as session:
            stmt = (
                select(WebhookDelivery)
                .where(col(WebhookDelivery.id) == delivery_id, *_due_clause(now, self.max_attempts))
                .with_for_update(skip_locked=True)
            )
            delivery = session.exec(stmt).first()
            if delivery is None:
                return None

            subscription = session.get(WebhookSubscription, delivery.subscription_id)
            if subscription is None or not subscription.is_active:
                outcome = SendOutcome(ok=False, error="subscription inactive")
            else:
                outcome = self._send(delivery, subscription, now)

            record_attempt(delivery, outcome, now, self.max_attempts)
            session.add(delivery)
            session.commit()
            session.refresh(delivery)

            self._log_outcome(delivery, outcome)
            return delivery.status

    def _send(self, delivery: WebhookDelivery, subscription: WebhookSubscription, now: int) -> SendOutcome:
        body = canonical_payload(delivery.id, delivery.event_type, now, json.loads(delivery.payload))
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign(body, subscription.secret),
            TIMESTAMP_HEADER: str(now),
            EVENT_HEADER: delivery.event_type,
        }

        try:
            response = self.http_client.post(
                subscription.url,
                content=body.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            return SendOutcome(ok=False, error=f"timeout: {e}")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return SendOutcome(ok=False, error=f"{type(e).__name__}: {e}")

        if response.is_success:
            return SendOutcome(ok=True, status_code=response.status_code)
        return SendOutcome(ok=False, status_code=response.status_code, error=f"HTTP {response.status_code}")

    def _log_outcome(self, delivery: WebhookDelivery, outcome: SendOutcome) -> None:
        context = {
            "delivery_id": delivery.id,
            "event_type": delivery.event_type,
            "attempt": delivery.attempts,
            "max_attempts": self.max_attempts,
        }
        if delivery.status == DeliveryStatus.SUCCESS:
            logger.info("webhook_delivered", status_code=outcome.status_code, **context)
        elif delivery.status == DeliveryStatus.FAILED:
            logger.warning("webhook_permanently_failed", error=outcome.error, **context)
        else:
            logger.info("webhook_retry_scheduled", error=outcome.error, next_retry_at=delivery.next_retry_at, **context)

    def close(self) -> None:
        self.http_client.close()


__all__ = [
    "BACKOFF_SCHEDULE",
    "MAX_ATTEMPTS",
    "backoff_delay",
    "record_attempt",
    "SendOutcome",
    "DispatchSummary",
    "WebhookDispatcher",
]
