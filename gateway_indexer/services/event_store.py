"""
Append-only store of decoded ledger events.

`record_event()` is the idempotency gate for the whole ingestion pipeline: it
returns False when the event's dedup key is already present, and callers skip
projection and webhook fan-out for that event.
"""

import hashlib
import json
from typing import Any, Dict

from sqlmodel import Session, select

from gateway_indexer.chain.decoder import DecodedLog
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.core.typing import col
from gateway_indexer.models.event_log import RawEvent

logger = get_logger(__name__)


def canonical_args(args: Dict[str, Any]) -> str:
    return json.dumps(args, sort_keys=True, separators=(",", ":"))


def args_fingerprint(args: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_args(args).encode("utf-8")).hexdigest()


def record_event(session: Session, decoded: DecodedLog, block_timestamp: int) -> bool:
    """
    Insert a decoded event unless an identical one is already stored. Does not commit.

    Returns:
        True if a new row was added, False for a duplicate
    """
    args = decoded.event.as_args()
    fingerprint = args_fingerprint(args)

    stmt = select(RawEvent.id).where(
        col(RawEvent.block_number) == decoded.block_number,
        col(RawEvent.transaction_hash) == decoded.transaction_hash,
        col(RawEvent.event_name) == decoded.event.event_name,
        col(RawEvent.args_fingerprint) == fingerprint,
    )
    if session.exec(stmt).first() is not None:
        logger.debug(
            "duplicate_event_skipped",
            event_name=decoded.event.event_name,
            block_number=decoded.block_number,
            transaction_hash=decoded.transaction_hash,
        )
        return False

    session.add(
        RawEvent(
            block_number=decoded.block_number,
            transaction_hash=decoded.transaction_hash,
            log_index=decoded.log_index,
            event_name=decoded.event.event_name,
            args=canonical_args(args),
            args_fingerprint=fingerprint,
            block_timestamp=block_timestamp,
        )
    )
    # Flush so a second identical log later in the same batch sees this row
    session.flush()
    return True


__all__ = ["record_event", "args_fingerprint", "canonical_args"]
