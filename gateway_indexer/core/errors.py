"""
Exception types and error capture for the indexer.

Exception hierarchy:
    IndexerError
    ├── LedgerClientError       upstream RPC/transport failure (transient)
    ├── DecodeError             a single log could not be decoded
    ├── CheckpointError         illegal checkpoint movement
    └── InvalidSubscriptionError  rejected webhook registration

Captured errors are always logged through structlog and, when a Sentry DSN
is configured and sentry-sdk is installed, forwarded to Sentry.

Usage:
    with ErrorHandler("chain_poll", context={"from_block": 100}):
        poller.poll()
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

__all__ = [
    "IndexerError",
    "LedgerClientError",
    "DecodeError",
    "CheckpointError",
    "InvalidSubscriptionError",
    "init_sentry",
    "capture_exception",
    "ErrorHandler",
    "is_sentry_enabled",
]


class IndexerError(Exception):
    """Base class for errors raised by the indexer."""


class LedgerClientError(IndexerError):
    """The upstream node could not answer a query."""


class DecodeError(IndexerError):
    """A log matched a known event signature but its payload is malformed."""

    def __init__(self, message: str, block_number: Optional[int] = None, log_index: Optional[int] = None):
        super().__init__(message)
        self.block_number = block_number
        self.log_index = log_index


class CheckpointError(IndexerError):
    """Attempt to move the checkpoint backwards outside an explicit reset."""


class InvalidSubscriptionError(IndexerError):
    """Webhook subscription rejected at registration time."""


_sentry_initialized: bool = False


def init_sentry(dsn: str, environment: str = "production") -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Returns:
        True if initialization successful, False otherwise
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    try:
        import sentry_sdk
    except ImportError:
        logger.warning("Sentry SDK not installed, error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        ignore_errors=[KeyboardInterrupt, SystemExit],
    )
    _sentry_initialized = True
    logger.info("Sentry initialized", environment=environment)
    return True


def is_sentry_enabled() -> bool:
    return _sentry_initialized


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
) -> Optional[str]:
    """
    Capture an exception with structured logging and Sentry.

    Args:
        exc: Exception to capture
        context: Additional context dict (e.g., {"from_block": 100})
        level: Severity level passed to Sentry

    Returns:
        Sentry event ID or None if not sent
    """
    enriched_context = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(exc).__name__,
        **(context or {}),
    }

    logger.error("Exception captured", exc_info=exc, **enriched_context)

    if _sentry_initialized:
        try:
            import sentry_sdk

            with sentry_sdk.push_scope() as scope:
                for key, value in enriched_context.items():
                    if value is not None:
                        scope.set_extra(key, value)
                scope.level = level
                return sentry_sdk.capture_exception(exc)
        except Exception as e:
            logger.warning("Failed to send exception to Sentry", error=str(e))

    return None


class ErrorHandler:
    """
    Context manager that captures exceptions raised by a periodic operation.

    Scheduled jobs must not die on a single bad tick, so the default is to
    capture and suppress; pass reraise=True where the caller decides.

    Args:
        operation: Name of the operation (used as log/Sentry context)
        context: Additional context dict
        reraise: Whether to re-raise after capturing (default: False)
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        reraise: bool = False,
    ):
        self.operation = operation
        self.context = context or {}
        self.reraise = reraise
        self.error: Optional[BaseException] = None
        self.event_id: Optional[str] = None

    def __enter__(self) -> "ErrorHandler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None:
            return False
        if not isinstance(exc_val, Exception):
            # KeyboardInterrupt, SystemExit and friends always propagate
            return False

        self.error = exc_val
        self.event_id = capture_exception(
            exc_val,
            context={"operation": self.operation, **self.context},
        )
        return not self.reraise
