"""
Periodic jobs for the indexer.

Two independent interval jobs on a BackgroundScheduler thread pool:
    - chain_poll: ChainPoller.poll() every POLL_INTERVAL_SECONDS
    - webhook_dispatch: WebhookDispatcher.dispatch_due() every WEBHOOK_RETRY_INTERVAL_SECONDS

Each job runs on its own worker thread, so a webhook POST blocked on its
timeout never delays a chain sync. max_instances=1 + coalesce=True skip
overlapping ticks instead of queueing them.
"""

from datetime import datetime, timezone
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.engine import Engine

from gateway_indexer.chain.ledger_client import Web3LedgerClient
from gateway_indexer.chain.poller import ChainPoller
from gateway_indexer.core.config import Settings, settings as default_settings
from gateway_indexer.core.errors import ErrorHandler, IndexerError
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.services.webhook_dispatcher import WebhookDispatcher

logger = get_logger(__name__)

CHAIN_POLL_JOB_ID = "chain_poll"
WEBHOOK_DISPATCH_JOB_ID = "webhook_dispatch"


def job_chain_poll(poller: ChainPoller) -> None:
    result = poller.poll()
    logger.debug("chain_poll_tick", status=result.status.value, to_block=result.to_block)


def job_webhook_dispatch(dispatcher: WebhookDispatcher) -> None:
    with ErrorHandler("webhook_dispatch"):
        dispatcher.dispatch_due()


class IndexerService:
    """
    Owns the poller/dispatcher schedule with an explicit start/shutdown boundary.

    Single use: shutdown() closes the dispatcher HTTP client and the scheduler
    thread pool, so a stopped service cannot be started again. Build a new one
    with create_indexer_service() instead.
    """

    def __init__(
        self,
        poller: ChainPoller,
        dispatcher: WebhookDispatcher,
        poll_interval: float = 5.0,
        dispatch_interval: float = 30.0,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.poller = poller
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.dispatch_interval = dispatch_interval
        self.scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=2)},
            timezone="UTC",
        )
        self._closed = False

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def register_jobs(self) -> None:
        # Job configuration:
        # - max_instances=1: a tick is skipped while the previous run is still going
        # - coalesce=True: missed runs collapse into one
        # - misfire_grace_time: late ticks within the grace window still run
        self.scheduler.add_job(
            job_chain_poll,
            IntervalTrigger(seconds=self.poll_interval),
            args=[self.poller],
            id=CHAIN_POLL_JOB_ID,
            next_run_time=datetime.now(timezone.utc),  # Initial sync on start
            max_instances=1,
            misfire_grace_time=max(1, int(self.poll_interval)),
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            job_webhook_dispatch,
            IntervalTrigger(seconds=self.dispatch_interval),
            args=[self.dispatcher],
            id=WEBHOOK_DISPATCH_JOB_ID,
            max_instances=1,
            misfire_grace_time=max(1, int(self.dispatch_interval)),
            coalesce=True,
            replace_existing=True,
        )

    def start(self) -> None:
        if self._closed:
            raise IndexerError("IndexerService was shut down and cannot be restarted")
        if self.running:
            logger.warning("indexer_service_already_running")
            return

        self.register_jobs()
        self.scheduler.start()
        logger.info(
            "indexer_service_started",
            poll_interval=self.poll_interval,
            dispatch_interval=self.dispatch_interval,
        )

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop scheduling new ticks.

        With wait=True, in-flight jobs (including an HTTP send bounded by its
        timeout) finish before this returns; deliveries are only written after
        their outcome is known either way.
        """
        if not self.running:
            return

        self.poller.stop()
        self.scheduler.shutdown(wait=wait)
        self.dispatcher.close()
        self._closed = True
        logger.info("indexer_service_stopped")


def create_indexer_service(engine: Engine, config: Settings = default_settings) -> IndexerService:
    """
    Wire the indexer from settings.

    Raises:
        IndexerError: RPC_URL or CONTRACT_ADDRESS is not configured
    """
    if not config.RPC_URL or not config.CONTRACT_ADDRESS:
        raise IndexerError("RPC_URL and CONTRACT_ADDRESS must be set")

    poller = ChainPoller(
        ledger=Web3LedgerClient(config.RPC_URL, timeout=config.RPC_TIMEOUT_SECONDS),
        engine=engine,
        contract_address=config.CONTRACT_ADDRESS,
        start_block=config.START_BLOCK,
        lookback_blocks=config.LOOKBACK_BLOCKS,
        batch_size=config.BATCH_SIZE,
        confirmations=config.CONFIRMATIONS,
    )
    dispatcher = WebhookDispatcher(
        engine=engine,
        max_attempts=config.WEBHOOK_MAX_ATTEMPTS,
        timeout=config.WEBHOOK_TIMEOUT_SECONDS,
        batch_size=config.WEBHOOK_DISPATCH_BATCH_SIZE,
    )
    return IndexerService(
        poller=poller,
        dispatcher=dispatcher,
        poll_interval=config.POLL_INTERVAL_SECONDS,
        dispatch_interval=config.WEBHOOK_RETRY_INTERVAL_SECONDS,
    )


__all__ = [
    "IndexerService",
    "create_indexer_service",
    "job_chain_poll",
    "job_webhook_dispatch",
    "CHAIN_POLL_JOB_ID",
    "WEBHOOK_DISPATCH_JOB_ID",
]
