"""
Settlement contract event vocabulary.

Every event the contract emits is modelled as a frozen dataclass; the
decoder's output type is the `LedgerEvent` union of these classes. Each class
carries its ABI parameter list, from which the Solidity signature (and so the
topic hash) is derived.

Value conventions:
    address   -> EIP-55 checksummed str
    bytes32   -> 0x-prefixed lowercase hex str
    uint256 amounts    -> decimal str (arbitrary precision, never a float)
    uint256 timestamps -> int (unix seconds)
"""

import re
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union

from eth_utils import keccak, to_hex


@dataclass(frozen=True)
class EventParam:
    abi_name: str
    abi_type: str
    indexed: bool = False

    @property
    def field_name(self) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", self.abi_name).lower()


class _LedgerEventBase:
    event_name: ClassVar[str]
    webhook_event: ClassVar[Optional[str]] = None
    params: ClassVar[Tuple[EventParam, ...]]

    @classmethod
    def signature(cls) -> str:
        return f"{cls.event_name}({','.join(p.abi_type for p in cls.params)})"

    @classmethod
    def topic(cls) -> bytes:
        return keccak(text=cls.signature())

    @classmethod
    def topic_hex(cls) -> str:
        return to_hex(cls.topic())

    def as_args(self) -> Dict[str, Any]:
        """Arguments keyed by their contract (camelCase) names, JSON-safe."""
        by_field = {p.field_name: p.abi_name for p in self.params}
        return {by_field[f.name]: getattr(self, f.name) for f in fields(self)}  # type: ignore[arg-type]


@dataclass(frozen=True)
class MerchantRegistered(_LedgerEventBase):
    event_name: ClassVar[str] = "MerchantRegistered"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("merchant", "address", indexed=True),
        EventParam("businessName", "string"),
        EventParam("timestamp", "uint256"),
    )

    merchant: str
    business_name: str
    timestamp: int


@dataclass(frozen=True)
class MerchantDeactivated(_LedgerEventBase):
    event_name: ClassVar[str] = "MerchantDeactivated"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("merchant", "address", indexed=True),
        EventParam("timestamp", "uint256"),
    )

    merchant: str
    timestamp: int


@dataclass(frozen=True)
class MerchantReactivated(_LedgerEventBase):
    event_name: ClassVar[str] = "MerchantReactivated"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("merchant", "address", indexed=True),
        EventParam("timestamp", "uint256"),
    )

    merchant: str
    timestamp: int


@dataclass(frozen=True)
class PaymentIntentCreated(_LedgerEventBase):
    event_name: ClassVar[str] = "PaymentIntentCreated"
    webhook_event: ClassVar[Optional[str]] = "payment.created"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("paymentId", "bytes32", indexed=True),
        EventParam("merchant", "address", indexed=True),
        EventParam("tokenAddress", "address"),
        EventParam("amount", "uint256"),
        EventParam("expiryTimestamp", "uint256"),
    )

    payment_id: str
    merchant: str
    token_address: str
    amount: str
    expiry_timestamp: int


@dataclass(frozen=True)
class PaymentCompleted(_LedgerEventBase):
    event_name: ClassVar[str] = "PaymentCompleted"
    webhook_event: ClassVar[Optional[str]] = "payment.completed"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("paymentId", "bytes32", indexed=True),
        EventParam("payer", "address", indexed=True),
        EventParam("merchant", "address", indexed=True),
        EventParam("amount", "uint256"),
        EventParam("platformFee", "uint256"),
        EventParam("timestamp", "uint256"),
    )

    payment_id: str
    payer: str
    merchant: str
    amount: str
    platform_fee: str
    timestamp: int


@dataclass(frozen=True)
class PaymentRefunded(_LedgerEventBase):
    event_name: ClassVar[str] = "PaymentRefunded"
    webhook_event: ClassVar[Optional[str]] = "payment.refunded"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("paymentId", "bytes32", indexed=True),
        EventParam("merchant", "address", indexed=True),
        EventParam("payer", "address", indexed=True),
        EventParam("amount", "uint256"),
        EventParam("timestamp", "uint256"),
    )

    payment_id: str
    merchant: str
    payer: str
    amount: str
    timestamp: int


@dataclass(frozen=True)
class PaymentExpired(_LedgerEventBase):
    event_name: ClassVar[str] = "PaymentExpired"
    webhook_event: ClassVar[Optional[str]] = "payment.expired"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("paymentId", "bytes32", indexed=True),
        EventParam("timestamp", "uint256"),
    )

    payment_id: str
    timestamp: int


@dataclass(frozen=True)
class PaymentCancelled(_LedgerEventBase):
    event_name: ClassVar[str] = "PaymentCancelled"
    webhook_event: ClassVar[Optional[str]] = "payment.cancelled"
    params: ClassVar[Tuple[EventParam, ...]] = (
        EventParam("paymentId", "bytes32", indexed=True),
        EventParam("merchant", "address", indexed=True),
        EventParam("timestamp", "uint256"),
    )

    payment_id: str
    merchant: str
    timestamp: int


LedgerEvent = Union[
    MerchantRegistered,
    MerchantDeactivated,
    MerchantReactivated,
    PaymentIntentCreated,
    PaymentCompleted,
    PaymentRefunded,
    PaymentExpired,
    PaymentCancelled,
]

EVENT_TYPES: Tuple[Type[_LedgerEventBase], ...] = (
    MerchantRegistered,
    MerchantDeactivated,
    MerchantReactivated,
    PaymentIntentCreated,
    PaymentCompleted,
    PaymentRefunded,
    PaymentExpired,
    PaymentCancelled,
)

# Fields whose uint256 value is a token amount (kept as decimal strings)
AMOUNT_FIELDS = frozenset({"amount", "platform_fee"})


__all__ = [
    "EventParam",
    "LedgerEvent",
    "EVENT_TYPES",
    "AMOUNT_FIELDS",
    "MerchantRegistered",
    "MerchantDeactivated",
    "MerchantReactivated",
    "PaymentIntentCreated",
    "PaymentCompleted",
    "PaymentRefunded",
    "PaymentExpired",
    "PaymentCancelled",
]
