"""
Raw log -> typed ledger event.

Usage:
    from gateway_indexer.chain.decoder import decode_logs

    for decoded in decode_logs(raw_logs):
        print(decoded.event.event_name, decoded.block_number)
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Type

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address, to_hex

from gateway_indexer.chain.events import AMOUNT_FIELDS, EVENT_TYPES, EventParam, LedgerEvent
from gateway_indexer.chain.ledger_client import RawLog
from gateway_indexer.core.errors import DecodeError
from gateway_indexer.core.logging_config import get_logger

logger = get_logger(__name__)

EVENTS_BY_TOPIC: Dict[bytes, Type[Any]] = {event_type.topic(): event_type for event_type in EVENT_TYPES}


@dataclass(frozen=True)
class DecodedLog:
    """A decoded event plus the position of its log on chain."""

    event: LedgerEvent
    block_number: int
    transaction_hash: str
    log_index: int


def _convert(param: EventParam, value: Any) -> Any:
    if param.abi_type == "address":
        return to_checksum_address(value)
    if param.abi_type == "bytes32":
        return to_hex(value)
    if param.abi_type == "uint256":
        if param.field_name in AMOUNT_FIELDS:
            return str(value)
        return int(value)
    return value


def _topic_value(param: EventParam, topic: bytes) -> Any:
    if len(topic) != 32:
        raise ValueError(f"topic for {param.abi_name} is {len(topic)} bytes, expected 32")
    if param.abi_type == "address":
        return topic[12:]
    if param.abi_type == "bytes32":
        return topic
    if param.abi_type == "uint256":
        return int.from_bytes(topic, "big")
    raise ValueError(f"unsupported indexed type {param.abi_type}")


def decode_event(raw_log: RawLog) -> Optional[LedgerEvent]:
    """
    Decode one log into its event dataclass.

    Returns:
        The event, or None when topic0 is not a known event signature

    Raises:
        DecodeError: topic0 matched but topics/data do not fit the ABI
    """
    if not raw_log.topics:
        return None

    event_type = EVENTS_BY_TOPIC.get(bytes(raw_log.topics[0]))
    if event_type is None:
        return None

    indexed = [p for p in event_type.params if p.indexed]
    non_indexed = [p for p in event_type.params if not p.indexed]
    topics = raw_log.topics[1:]

    if len(topics) != len(indexed):
        raise DecodeError(
            f"{event_type.event_name}: expected {len(indexed)} indexed topics, got {len(topics)}",
            block_number=raw_log.block_number,
            log_index=raw_log.log_index,
        )

    try:
        values: Dict[str, Any] = {}
        for param, topic in zip(indexed, topics):
            values[param.field_name] = _convert(param, _topic_value(param, bytes(topic)))

        data_values = abi_decode([p.abi_type for p in non_indexed], raw_log.data)
        for param, value in zip(non_indexed, data_values):
            values[param.field_name] = _convert(param, value)
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(
            f"{event_type.event_name}: {e}",
            block_number=raw_log.block_number,
            log_index=raw_log.log_index,
        ) from e

    return event_type(**values)


def decode_logs(raw_logs: Iterable[RawLog]) -> List[DecodedLog]:
    """
    Decode a batch of logs in chain order.

    Unknown signatures are skipped silently; malformed logs are logged and
    skipped so one bad log never blocks the rest of the batch.
    """
    decoded: List[DecodedLog] = []
    for raw_log in sorted(raw_logs, key=lambda log: (log.block_number, log.log_index)):
        try:
            event = decode_event(raw_log)
        except DecodeError as e:
            logger.warning(
                "log_decode_failed",
                block_number=raw_log.block_number,
                transaction_hash=raw_log.transaction_hash,
                log_index=raw_log.log_index,
                error=str(e),
            )
            continue

        if event is None:
            continue

        decoded.append(
            DecodedLog(
                event=event,
                block_number=raw_log.block_number,
                transaction_hash=raw_log.transaction_hash,
                log_index=raw_log.log_index,
            )
        )
    return decoded


__all__ = ["DecodedLog", "decode_event", "decode_logs", "EVENTS_BY_TOPIC"]
