#!/usr/bin/env python3
"""Run the chain poller and webhook dispatcher without the HTTP surface."""

import signal
import threading

from gateway_indexer.core.config import settings
from gateway_indexer.core.errors import init_sentry
from gateway_indexer.core.logging_config import get_logger
from gateway_indexer.core.scheduler import create_indexer_service
from gateway_indexer.db import create_db_and_tables, engine

logger = get_logger("run_indexer")


def main():
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)
    create_db_and_tables()

    service = create_indexer_service(engine)
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    logger.info("indexer_worker_starting", contract=settings.CONTRACT_ADDRESS)
    service.start()
    try:
        while not stop.wait(3600):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("indexer_worker_shutting_down")
        service.shutdown(wait=True)


if __name__ == "__main__":
    main()
