"""
Test fixtures for gateway-indexer tests.

Provides database fixtures, a fake ledger client and raw log builders.
"""

import os

# Keep the module-level engine off disk when gateway_indexer.db is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Any, Generator, List, Optional

import pytest
from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address
from sqlalchemy.pool import StaticPool
from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

import gateway_indexer.models  # noqa: F401  (register tables)
from gateway_indexer.chain.ledger_client import RawLog
from gateway_indexer.core.errors import LedgerClientError
from gateway_indexer.db import make_engine
from gateway_indexer.models.merchant import Merchant
from gateway_indexer.models.webhook import WebhookSubscription

CONTRACT = to_checksum_address("0x" + "c0" * 20)
MERCHANT = to_checksum_address("0x" + "11" * 20)
OTHER_MERCHANT = to_checksum_address("0x" + "22" * 20)
PAYER = to_checksum_address("0x" + "33" * 20)
TOKEN = to_checksum_address("0x" + "44" * 20)
PAYMENT_ID = "0x" + "ab" * 32
SECRET = "s" * 64
GENESIS_TIMESTAMP = 1_700_000_000


def block_time(block_number: int) -> int:
    return GENESIS_TIMESTAMP + block_number * 12


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def _topic(abi_type: str, value: Any) -> bytes:
    if abi_type == "address":
        return b"\x00" * 12 + bytes.fromhex(value[2:])
    if abi_type == "bytes32":
        return bytes.fromhex(value[2:])
    return int(value).to_bytes(32, "big")


def build_raw_log(
    event_type,
    block_number: int,
    log_index: int = 0,
    transaction_hash: Optional[str] = None,
    address: str = CONTRACT,
    **values: Any,
) -> RawLog:
    """Encode event field values (snake_case) into a RawLog as a node would return it."""
    topics = [event_type.topic()]
    data_types: List[str] = []
    data_values: List[Any] = []
    for param in event_type.params:
        value = values[param.field_name]
        if param.indexed:
            topics.append(_topic(param.abi_type, value))
        else:
            data_types.append(param.abi_type)
            data_values.append(int(value) if param.abi_type == "uint256" else value)

    return RawLog(
        block_number=block_number,
        transaction_hash=transaction_hash or tx_hash(block_number * 1000 + log_index),
        log_index=log_index,
        address=address,
        topics=tuple(topics),
        data=abi_encode(data_types, data_values),
    )


class FakeLedgerClient:
    """In-memory LedgerClient: logs are served by block range, calls are recorded."""

    def __init__(self, height: int = 0):
        self.height = height
        self.raw_logs: List[RawLog] = []
        self.log_queries: List[tuple] = []
        self.fail_logs_from: Optional[int] = None
        self.fail_height = False

    def add(self, *raw_logs: RawLog) -> None:
        self.raw_logs.extend(raw_logs)

    def current_height(self) -> int:
        if self.fail_height:
            raise LedgerClientError("node unreachable")
        return self.height

    def logs(self, address: str, from_block: int, to_block: int) -> List[RawLog]:
        self.log_queries.append((from_block, to_block))
        if self.fail_logs_from is not None and to_block >= self.fail_logs_from:
            raise LedgerClientError(f"eth_getLogs {from_block}-{to_block} failed")
        return [
            log
            for log in self.raw_logs
            if from_block <= log.block_number <= to_block and log.address == address
        ]

    def block_timestamp(self, block_number: int) -> int:
        return block_time(block_number)


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = make_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def ledger() -> FakeLedgerClient:
    return FakeLedgerClient(height=100)


@pytest.fixture
def make_merchant(test_engine):
    """Insert a registered merchant; returns its address."""

    def _make(address: str = MERCHANT, is_active: bool = True, total_received: str = "0") -> str:
        with Session(test_engine) as session:
            session.add(
                Merchant(
                    address=address,
                    business_name="Test Shop",
                    is_active=is_active,
                    registered_at=GENESIS_TIMESTAMP,
                    total_received=total_received,
                )
            )
            session.commit()
        return address

    return _make


@pytest.fixture
def make_subscription(test_engine):
    """Insert a webhook subscription; returns its id."""

    def _make(
        merchant_address: str = MERCHANT,
        url: str = "https://shop.example/hooks",
        secret: str = SECRET,
        is_active: bool = True,
    ) -> int:
        with Session(test_engine) as session:
            subscription = WebhookSubscription(
                merchant_address=merchant_address,
                url=url,
                secret=secret,
                is_active=is_active,
            )
            session.add(subscription)
            session.commit()
            session.refresh(subscription)
            return subscription.id

    return _make


def count_rows(engine, model, **filters: Any) -> int:
    with Session(engine) as session:
        stmt = select(func.count()).select_from(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        return session.exec(stmt).one()
