"""
Chain Poller

One sync pass:
    1. Resolve the scan range [start, safe_head] from the checkpoint
    2. For each batch of BATCH_SIZE blocks, in a single transaction:
       fetch logs -> decode -> record raw events -> project -> enqueue webhooks
    3. Advance the checkpoint to safe_head once every batch has committed

A failed batch aborts the pass and leaves the checkpoint where it was; the
next pass re-reads the same blocks and the event store's dedup key turns the
already committed events into no-ops.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from gateway_indexer.chain.decoder import DecodedLog, decode_logs
from gateway_indexer.chain.ledger_client import LedgerClient
from gateway_indexer.core.errors import ErrorHandler
from gateway_indexer.core.logging_config import get_logger, sync_context
from gateway_indexer.services.checkpoint import CheckpointTracker
from gateway_indexer.services.event_store import record_event
from gateway_indexer.services.projector import Projector
from gateway_indexer.services.webhook_outbox import enqueue_deliveries

logger = get_logger(__name__)

DEFAULT_LOOKBACK_BLOCKS = 1000
DEFAULT_BATCH_SIZE = 1000


class PollStatus(str, Enum):
    SYNCED = "synced"  # Range processed, checkpoint advanced
    UP_TO_DATE = "up_to_date"  # Nothing new to scan
    SKIPPED = "skipped"  # Another pass was already running
    STOPPED = "stopped"  # Stop requested mid-pass
    FAILED = "failed"  # Pass aborted by an error


@dataclass
class PollResult:
    status: PollStatus
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    events_recorded: int = 0
    batches: int = 0
    error: Optional[str] = None


class ChainPoller:
    """
    Single-flight chain sync.

    Args:
        ledger: Upstream node access
        engine: Database engine shared with the webhook dispatcher
        contract_address: Settlement contract whose logs are indexed
        start_block: First block on a fresh database (0 = use lookback)
        lookback_blocks: Blocks behind the head to start from on a fresh database
        batch_size: Blocks per log query / transaction
        confirmations: Blocks (including the head) needed before a block is final
    """

    def __init__(
        self,
        ledger: LedgerClient,
        engine: Engine,
        contract_address: str,
        start_block: int = 0,
        lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        confirmations: int = 1,
        projector: Optional[Projector] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if confirmations < 1:
            raise ValueError("confirmations must be >= 1")

        self.ledger = ledger
        self.engine = engine
        self.contract_address = contract_address
        self.start_block = start_block
        self.lookback_blocks = lookback_blocks
        self.batch_size = batch_size
        self.confirmations = confirmations
        self.projector = projector or Projector()
        self.checkpoint = CheckpointTracker(engine)

        self._guard = threading.Lock()
        self._stop = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def stop(self) -> None:
        """Ask an in-flight pass to abort before its next batch."""
        self._stop.set()

    def resume(self) -> None:
        self._stop.clear()

    def scan_range(self, current_height: int) -> tuple[int, int]:
        """Inclusive [start, end] to scan; start > end means nothing to do."""
        safe_head = current_height - (self.confirmations - 1)
        last_processed = self.checkpoint.get()

        if last_processed is None:
            if self.start_block > 0:
                start = self.start_block
            else:
                start = max(0, safe_head - self.lookback_blocks)
        else:
            start = last_processed + 1

        return start, safe_head

    def poll(self) -> PollResult:
        """Run one sync pass unless one is already running."""
        if not self._guard.acquire(blocking=False):
            logger.debug("poll_skipped_already_running")
            return PollResult(status=PollStatus.SKIPPED)

        try:
            return self._run_pass()
        finally:
            self._guard.release()

    def _run_pass(self) -> PollResult:
        result = PollResult(status=PollStatus.FAILED)

        with ErrorHandler("chain_poll", context={"contract": self.contract_address}) as handler:
            current_height = self.ledger.current_height()
            start, end = self.scan_range(current_height)
            result.from_block, result.to_block = start, end

            if start > end:
                result.status = PollStatus.UP_TO_DATE
                return result

            logger.info("sync_started", from_block=start, to_block=end)

            for batch_start in range(start, end + 1, self.batch_size):
                if self._stop.is_set():
                    logger.info("sync_stopped", next_block=batch_start)
                    result.status = PollStatus.STOPPED
                    return result

                batch_end = min(batch_start + self.batch_size - 1, end)
                result.events_recorded += self.process_batch(batch_start, batch_end)
                result.batches += 1

            self.checkpoint.set(end)
            result.status = PollStatus.SYNCED
            logger.info("sync_complete", to_block=end, events_recorded=result.events_recorded)

        if handler.error is not None:
            result.error = str(handler.error)
            logger.warning("sync_aborted", from_block=result.from_block, error=result.error)
        return result

    def process_batch(self, from_block: int, to_block: int) -> int:
        """
        Ingest one block range in a single transaction.

        Returns:
            Number of newly recorded (non-duplicate) events
        """
        with sync_context(from_block=from_block, to_block=to_block):
            raw_logs = self.ledger.logs(self.contract_address, from_block, to_block)
            decoded = decode_logs(raw_logs)
            timestamps = self._block_timestamps(decoded)

            recorded = 0
            with Session(self.engine) as session:
                for item in decoded:
                    block_timestamp = timestamps[item.block_number]
                    if not record_event(session, item, block_timestamp):
                        continue
                    recorded += 1

                    trigger = self.projector.apply(session, item, block_timestamp)
                    if trigger is not None:
                        enqueue_deliveries(session, trigger)

                session.commit()

            logger.debug("batch_processed", logs=len(raw_logs), events_recorded=recorded)
        return recorded

    def _block_timestamps(self, decoded: List[DecodedLog]) -> Dict[int, int]:
        timestamps: Dict[int, int] = {}
        for item in decoded:
            if item.block_number not in timestamps:
                timestamps[item.block_number] = self.ledger.block_timestamp(item.block_number)
        return timestamps


__all__ = ["ChainPoller", "PollResult", "PollStatus"]
