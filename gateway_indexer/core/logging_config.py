"""
Structured logging for the indexer, built on structlog.

Every line carries `service` and `environment`. While a sync batch is being
processed the poller binds the block range with `sync_context()`, so logs
emitted deeper in the pipeline (decoder, projector, outbox) are tagged with
the batch they belong to without threading the range through every call.

Usage:
    from gateway_indexer.core.logging_config import get_logger, sync_context

    logger = get_logger(__name__)
    with sync_context(from_block=100, to_block=199):
        logger.warning("projection_anomaly", payment_id="0xab..")

Output with ENVIRONMENT=production (JSON):
    {"event": "projection_anomaly", "payment_id": "0xab..", "from_block": 100,
     "to_block": 199, "service": "gateway-indexer", "environment": "production",
     "level": "warning", "timestamp": "2024-01-01T12:00:00Z"}

Otherwise (console):
    2024-01-01 12:00:00 [warning  ] projection_anomaly  from_block=100 payment_id=0xab.. to_block=199
"""

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from gateway_indexer.core.config import settings

SERVICE_NAME = "gateway-indexer"
IS_PRODUCTION = settings.ENVIRONMENT.lower() == "production"
IS_TEST = "pytest" in sys.modules

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "web3", "apscheduler")


def _add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def _level() -> int:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if IS_PRODUCTION:
        processors = shared_processors + [
            _add_service,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Service/environment are constant locally, keep console lines short
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=not IS_TEST),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # web3 / apscheduler / httpx log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=_level())
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def sync_context(**values: Any) -> AbstractContextManager:
    """Bind key/values (e.g. from_block, to_block) to every log line in the block."""
    return structlog.contextvars.bound_contextvars(**values)


# Configure on import
configure_logging()
