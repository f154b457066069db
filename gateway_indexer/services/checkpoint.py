"""
Durable "last fully processed block" cursor for the chain poller.

Session-level helpers (`get_checkpoint`, `set_checkpoint`) take part in the
caller's transaction; `CheckpointTracker` wraps them with its own short
transactions.
"""

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from gateway_indexer.core.errors import CheckpointError
from gateway_indexer.core.typing import utc_now
from gateway_indexer.models.indexer_state import CHECKPOINT_ROW_ID, IndexerState

logger = logging.getLogger(__name__)


def get_checkpoint(session: Session) -> Optional[int]:
    """Last processed block, or None if the indexer has never completed a pass."""
    state = session.get(IndexerState, CHECKPOINT_ROW_ID)
    return state.last_processed_block if state else None


def set_checkpoint(session: Session, block_number: int, allow_rewind: bool = False) -> IndexerState:
    """
    Upsert the checkpoint row. Does not commit.

    Raises:
        CheckpointError: negative block, or a rewind without allow_rewind
    """
    if block_number < 0:
        raise CheckpointError(f"Checkpoint must be >= 0, got {block_number}")

    state = session.get(IndexerState, CHECKPOINT_ROW_ID)
    if state is None:
        state = IndexerState(id=CHECKPOINT_ROW_ID, last_processed_block=block_number)
    else:
        if block_number < state.last_processed_block and not allow_rewind:
            raise CheckpointError(
                f"Refusing to move checkpoint back from {state.last_processed_block} to {block_number}"
            )
        state.last_processed_block = block_number
        state.updated_at = utc_now()

    session.add(state)
    return state


class CheckpointTracker:
    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self) -> Optional[int]:
        with Session(self.engine) as session:
            return get_checkpoint(session)

    def set(self, block_number: int) -> None:
        with Session(self.engine) as session:
            set_checkpoint(session, block_number)
            session.commit()
        logger.debug(f"Checkpoint advanced to block {block_number}")

    def reset(self, block_number: int) -> None:
        """Operator override: move the cursor to any block, including backwards."""
        with Session(self.engine) as session:
            set_checkpoint(session, block_number, allow_rewind=True)
            session.commit()
        logger.warning(f"Checkpoint reset to block {block_number}")


__all__ = ["get_checkpoint", "set_checkpoint", "CheckpointTracker"]
