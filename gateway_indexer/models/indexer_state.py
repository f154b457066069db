"""
Indexer checkpoint model.

A single row (id=1) holding the highest block number the chain poller has
fully processed. The row does not exist until the first pass commits.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from gateway_indexer.core.typing import utc_now

CHECKPOINT_ROW_ID = 1


class IndexerState(SQLModel, table=True):
    __tablename__ = "indexer_state"

    id: Optional[int] = Field(default=CHECKPOINT_ROW_ID, primary_key=True)
    last_processed_block: int = Field(ge=0)
    updated_at: datetime = Field(default_factory=utc_now)

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_indexer_state_singleton"),
        CheckConstraint("last_processed_block >= 0", name="ck_indexer_state_block_non_negative"),
    )


__all__ = ["IndexerState", "CHECKPOINT_ROW_ID"]
