"""
Projects decoded ledger events onto merchant and payment intent rows.

Payment intent transitions follow a fixed table; anything outside it (unknown
payment, duplicate creation, expiry of a completed payment, ...) leaves state
untouched and is logged as a `projection_anomaly`. Only applied transitions
produce a WebhookTrigger.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session

from gateway_indexer.chain.decoder import DecodedLog
from gateway_indexer.chain.events import (
    MerchantDeactivated,
    MerchantReactivated,
    MerchantRegistered,
    PaymentCancelled,
    PaymentCompleted,
    PaymentExpired,
    PaymentIntentCreated,
    PaymentRefunded,
)
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.models.merchant import Merchant
from gateway_indexer.models.payment_intent import TERMINAL_STATUSES, PaymentIntent, PaymentStatus

logger = get_logger(__name__)

# event class -> (required current status, resulting status)
PAYMENT_TRANSITIONS: Dict[type, tuple[PaymentStatus, PaymentStatus]] = {
    PaymentCompleted: (PaymentStatus.PENDING, PaymentStatus.COMPLETED),
    PaymentExpired: (PaymentStatus.PENDING, PaymentStatus.EXPIRED),
    PaymentCancelled: (PaymentStatus.PENDING, PaymentStatus.CANCELLED),
    PaymentRefunded: (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED),
}


@dataclass(frozen=True)
class WebhookTrigger:
    """A projection change that merchants subscribed to should hear about."""

    event_type: str
    merchant_address: str
    payment_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class Projector:
    def __init__(self) -> None:
        self._handlers: Dict[type, Callable[[Session, Any, DecodedLog, int], Optional[WebhookTrigger]]] = {
            MerchantRegistered: self._merchant_registered,
            MerchantDeactivated: self._merchant_active_flag,
            MerchantReactivated: self._merchant_active_flag,
            PaymentIntentCreated: self._payment_intent_created,
            PaymentCompleted: self._payment_completed,
            PaymentRefunded: self._payment_refunded,
            PaymentExpired: self._payment_closed,
            PaymentCancelled: self._payment_closed,
        }

    def apply(self, session: Session, decoded: DecodedLog, block_timestamp: int) -> Optional[WebhookTrigger]:
        """
        Apply one event to the projections. Does not commit.

        Returns:
            The webhook to fan out, or None if the event is not trigger-worthy
            or was rejected as an anomaly
        """
        handler = self._handlers[type(decoded.event)]
        return handler(session, decoded.event, decoded, block_timestamp)

    # Merchants

    def _merchant_registered(
        self, session: Session, event: MerchantRegistered, decoded: DecodedLog, block_timestamp: int
    ) -> None:
        if session.get(Merchant, event.merchant) is not None:
            self._anomaly(decoded, "merchant already registered", merchant=event.merchant)
            return None

        session.add(
            Merchant(
                address=event.merchant,
                business_name=event.business_name,
                is_active=True,
                registered_at=event.timestamp,
                total_received="0",
            )
        )
        logger.info("merchant_registered", merchant=event.merchant, business_name=event.business_name)
        return None

    def _merchant_active_flag(self, session: Session, event: Any, decoded: DecodedLog, block_timestamp: int) -> None:
        merchant = session.get(Merchant, event.merchant)
        if merchant is None:
            self._anomaly(decoded, "unknown merchant", merchant=event.merchant)
            return None

        merchant.is_active = isinstance(event, MerchantReactivated)
        session.add(merchant)
        logger.info("merchant_active_changed", merchant=event.merchant, is_active=merchant.is_active)
        return None

    # Payment intents

    def _payment_intent_created(
        self, session: Session, event: PaymentIntentCreated, decoded: DecodedLog, block_timestamp: int
    ) -> Optional[WebhookTrigger]:
        if session.get(PaymentIntent, event.payment_id) is not None:
            self._anomaly(decoded, "payment intent already exists", payment_id=event.payment_id)
            return None

        session.add(
            PaymentIntent(
                payment_id=event.payment_id,
                merchant=event.merchant,
                token_address=event.token_address,
                amount=event.amount,
                expiry_timestamp=event.expiry_timestamp,
                status=PaymentStatus.PENDING,
                created_at=block_timestamp,
                block_number=decoded.block_number,
                transaction_hash=decoded.transaction_hash,
            )
        )
        logger.info("payment_intent_created", payment_id=event.payment_id, merchant=event.merchant)

        return WebhookTrigger(
            event_type="payment.created",
            merchant_address=event.merchant,
            payment_id=event.payment_id,
            data={
                "paymentId": event.payment_id,
                "merchant": event.merchant,
                "tokenAddress": event.token_address,
                "amount": event.amount,
                "expiryTimestamp": event.expiry_timestamp,
                "status": PaymentStatus.PENDING.value,
            },
        )

    def _payment_completed(
        self, session: Session, event: PaymentCompleted, decoded: DecodedLog, block_timestamp: int
    ) -> Optional[WebhookTrigger]:
        payment = self._transition(session, event, decoded)
        if payment is None:
            return None

        payment.payer = event.payer
        payment.paid_at = event.timestamp
        payment.platform_fee = event.platform_fee

        merchant = session.get(Merchant, event.merchant)
        if merchant is None:
            self._anomaly(decoded, "completed payment for unknown merchant", merchant=event.merchant)
        else:
            merchant.total_received = str(int(merchant.total_received) + int(event.amount))
            session.add(merchant)

        return WebhookTrigger(
            event_type="payment.completed",
            merchant_address=payment.merchant,
            payment_id=event.payment_id,
            data={
                "paymentId": event.payment_id,
                "merchant": payment.merchant,
                "payer": event.payer,
                "amount": event.amount,
                "platformFee": event.platform_fee,
                "status": PaymentStatus.COMPLETED.value,
                "timestamp": event.timestamp,
            },
        )

    def _payment_refunded(
        self, session: Session, event: PaymentRefunded, decoded: DecodedLog, block_timestamp: int
    ) -> Optional[WebhookTrigger]:
        payment = self._transition(session, event, decoded)
        if payment is None:
            return None

        return WebhookTrigger(
            event_type="payment.refunded",
            merchant_address=payment.merchant,
            payment_id=event.payment_id,
            data={
                "paymentId": event.payment_id,
                "merchant": payment.merchant,
                "payer": event.payer,
                "amount": event.amount,
                "status": PaymentStatus.REFUNDED.value,
                "timestamp": event.timestamp,
            },
        )

    def _payment_closed(self, session: Session, event: Any, decoded: DecodedLog, block_timestamp: int) -> Optional[WebhookTrigger]:
        """PaymentExpired / PaymentCancelled: Pending -> terminal."""
        payment = self._transition(session, event, decoded)
        if payment is None:
            return None

        return WebhookTrigger(
            event_type=event.webhook_event,
            merchant_address=payment.merchant,
            payment_id=event.payment_id,
            data={
                "paymentId": event.payment_id,
                "merchant": payment.merchant,
                "status": payment.status.value,
                "timestamp": event.timestamp,
            },
        )

    def _transition(self, session: Session, event: Any, decoded: DecodedLog) -> Optional[PaymentIntent]:
        required, target = PAYMENT_TRANSITIONS[type(event)]

        payment = session.get(PaymentIntent, event.payment_id)
        if payment is None:
            self._anomaly(decoded, "unknown payment intent", payment_id=event.payment_id)
            return None
        if payment.status != required:
            self._anomaly(
                decoded,
                "payment already final" if payment.status in TERMINAL_STATUSES else "illegal status transition",
                payment_id=event.payment_id,
                current_status=payment.status.value,
                attempted_status=target.value,
            )
            return None

        payment.status = target
        session.add(payment)
        logger.info("payment_status_changed", payment_id=event.payment_id, status=target.value)
        return payment

    @staticmethod
    def _anomaly(decoded: DecodedLog, reason: str, **context: Any) -> None:
        logger.warning(
            "projection_anomaly",
            reason=reason,
            event_name=decoded.event.event_name,
            block_number=decoded.block_number,
            transaction_hash=decoded.transaction_hash,
            **context,
        )


__all__ = ["Projector", "WebhookTrigger", "PAYMENT_TRANSITIONS"]
