"""
Append-only mirror of decoded contract events.

Each row is one decoded log. The unique constraint on
(block_number, transaction_hash, event_name, args_fingerprint) is the dedup
key that makes re-polling an already processed block range a no-op.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from gateway_indexer.core.typing import utc_now


class RawEvent(SQLModel, table=True):
    __tablename__ = "event_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    block_number: int = Field(index=True)
    transaction_hash: str
    log_index: int = Field(default=0)
    event_name: str = Field(index=True)
    args: str = Field(sa_column=Column(Text, nullable=False))  # JSON, uint256 values as decimal strings
    args_fingerprint: str  # sha256 hex of the canonical args JSON
    block_timestamp: int
    indexed_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        UniqueConstraint(
            "block_number",
            "transaction_hash",
            "event_name",
            "args_fingerprint",
            name="uq_event_log_dedup",
        ),
        Index("ix_event_log_tx", "transaction_hash"),
    )


__all__ = ["RawEvent"]
