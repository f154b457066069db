"""
Upstream ledger access.

The poller depends only on the `LedgerClient` protocol; `Web3LedgerClient`
implements it over JSON-RPC. Any transport or RPC failure is raised as
LedgerClientError so callers can treat it as transient.
"""

from dataclasses import dataclass
from typing import List, Protocol, Tuple

import requests
from eth_utils import to_checksum_address, to_hex
from web3 import Web3
from web3.exceptions import Web3Exception

from gateway_indexer.core.errors import LedgerClientError
from gateway_indexer.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RawLog:
    """A contract log as returned by eth_getLogs, normalized to plain Python types."""

    block_number: int
    transaction_hash: str
    log_index: int
    address: str
    topics: Tuple[bytes, ...]
    data: bytes


class LedgerClient(Protocol):
    def current_height(self) -> int: ...

    def logs(self, address: str, from_block: int, to_block: int) -> List[RawLog]: ...

    def block_timestamp(self, block_number: int) -> int: ...


class Web3LedgerClient:
    """LedgerClient backed by a web3 HTTP provider."""

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        self.rpc_url = rpc_url
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))

    def current_height(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except (Web3Exception, requests.RequestException, ValueError) as e:
            raise LedgerClientError(f"eth_blockNumber failed: {e}") from e

    def logs(self, address: str, from_block: int, to_block: int) -> List[RawLog]:
        try:
            entries = self.w3.eth.get_logs(
                {
                    "address": to_checksum_address(address),
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            )
        except (Web3Exception, requests.RequestException, ValueError) as e:
            raise LedgerClientError(f"eth_getLogs {from_block}-{to_block} failed: {e}") from e

        return [
            RawLog(
                block_number=int(entry["blockNumber"]),
                transaction_hash=to_hex(entry["transactionHash"]),
                log_index=int(entry["logIndex"]),
                address=to_checksum_address(entry["address"]),
                topics=tuple(bytes(topic) for topic in entry["topics"]),
                data=bytes(entry["data"]),
            )
            for entry in entries
        ]

    def block_timestamp(self, block_number: int) -> int:
        try:
            block = self.w3.eth.get_block(block_number)
        except (Web3Exception, requests.RequestException, ValueError) as e:
            raise LedgerClientError(f"eth_getBlockByNumber {block_number} failed: {e}") from e
        return int(block["timestamp"])


__all__ = ["RawLog", "LedgerClient", "Web3LedgerClient"]
