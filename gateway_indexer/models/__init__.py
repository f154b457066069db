from .indexer_state import IndexerState
from .event_log import RawEvent
from .merchant import Merchant
from .payment_intent import PaymentIntent, PaymentStatus
from .webhook import DeliveryStatus, WebhookDelivery, WebhookSubscription, WebhookSubscriptionRead

__all__ = [
    "IndexerState",
    "RawEvent",
    "Merchant",
    "PaymentIntent",
    "PaymentStatus",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookSubscription",
    "WebhookSubscriptionRead",
]
