"""
Webhook payload signing.

Receivers verify `X-Webhook-Signature` by recomputing HMAC-SHA256 over the
raw request body with their subscription secret. The body is produced by
`canonical_payload()`, whose byte form is fixed:

    {"id":<int>,"event":<str>,"timestamp":<int>,"data":<object>}

- top-level keys always in the order id, event, timestamp, data
- keys of nested objects sorted lexicographically
- compact separators, no whitespace, non-ASCII escaped as \\uXXXX

Usage:
    body = canonical_payload(42, "payment.completed", 1700000000, {"paymentId": "0x.."})
    signature = sign(body, secret)
    assert verify(body, signature, secret)
"""

import hashlib
import hmac
import json
import secrets
from typing import Any, Mapping, Union

Payload = Union[str, bytes, Mapping[str, Any]]

SECRET_BYTES = 32


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def canonical_payload(delivery_id: int, event: str, timestamp: int, data: Mapping[str, Any]) -> str:
    """Serialize a webhook body in its canonical, signable form."""
    return (
        "{"
        f'"id":{_dumps(int(delivery_id))},'
        f'"event":{_dumps(event)},'
        f'"timestamp":{_dumps(int(timestamp))},'
        f'"data":{_dumps(dict(data))}'
        "}"
    )


def _to_bytes(payload: Payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    if {"id", "event", "timestamp", "data"} <= set(payload):
        return canonical_payload(payload["id"], payload["event"], payload["timestamp"], payload["data"]).encode("utf-8")
    return _dumps(dict(payload)).encode("utf-8")


def sign(payload: Payload, secret: str) -> str:
    """Hex HMAC-SHA256 of the payload under the subscription secret."""
    return hmac.new(secret.encode("utf-8"), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify(payload: Payload, signature: str, secret: str) -> bool:
    """Constant-time check of a signature produced by `sign()`."""
    if not isinstance(signature, str):
        return False
    expected = sign(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))


def generate_secret() -> str:
    """256-bit random secret, hex encoded."""
    return secrets.token_hex(SECRET_BYTES)


__all__ = ["canonical_payload", "sign", "verify", "generate_secret"]
