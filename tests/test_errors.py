"""Tests for error capture helpers."""

from unittest.mock import patch

import pytest

from gateway_indexer.core.errors import (
    CheckpointError,
    DecodeError,
    ErrorHandler,
    IndexerError,
    LedgerClientError,
    capture_exception,
    init_sentry,
    is_sentry_enabled,
)


class TestHierarchy:
    @pytest.mark.parametrize("exc_type", [LedgerClientError, DecodeError, CheckpointError])
    def test_subclasses_indexer_error(self, exc_type):
        assert issubclass(exc_type, IndexerError)

    def test_decode_error_carries_position(self):
        error = DecodeError("bad", block_number=5, log_index=2)
        assert (error.block_number, error.log_index) == (5, 2)


class TestErrorHandler:
    def test_suppresses_and_records(self):
        with ErrorHandler("unit_test") as handler:
            raise LedgerClientError("down")

        assert isinstance(handler.error, LedgerClientError)

    def test_reraise(self):
        with pytest.raises(ValueError):
            with ErrorHandler("unit_test", reraise=True):
                raise ValueError("boom")

    def test_keyboard_interrupt_propagates(self):
        with pytest.raises(KeyboardInterrupt):
            with ErrorHandler("unit_test"):
                raise KeyboardInterrupt

    def test_no_error(self):
        with ErrorHandler("unit_test") as handler:
            pass
        assert handler.error is None

    def test_context_is_logged(self):
        with patch("gateway_indexer.core.errors.logger") as mock_logger:
            with ErrorHandler("chain_poll", context={"from_block": 100}):
                raise RuntimeError("boom")

        _, kwargs = mock_logger.error.call_args
        assert kwargs["operation"] == "chain_poll"
        assert kwargs["from_block"] == 100
        assert kwargs["error_type"] == "RuntimeError"


class TestSentry:
    def test_disabled_without_dsn(self):
        assert init_sentry("") is False
        assert is_sentry_enabled() is False

    def test_capture_without_sentry_returns_none(self):
        assert capture_exception(RuntimeError("x")) is None
