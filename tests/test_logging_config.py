"""Tests for structured logging helpers."""

import logging
from unittest.mock import patch

import structlog

from conftest import CONTRACT
from gateway_indexer.chain.poller import ChainPoller
from gateway_indexer.core import logging_config
from gateway_indexer.core.logging_config import SERVICE_NAME, _add_service, sync_context


class TestServiceProcessor:
    def test_adds_service_and_environment(self):
        event_dict = _add_service(None, "info", {"event": "sync_started"})

        assert event_dict["service"] == SERVICE_NAME
        assert event_dict["environment"] == logging_config.settings.ENVIRONMENT

    def test_does_not_override_explicit_values(self):
        event_dict = _add_service(None, "info", {"event": "x", "service": "other"})
        assert event_dict["service"] == "other"


class TestLevel:
    def test_invalid_level_falls_back_to_info(self):
        with patch.object(logging_config.settings, "LOG_LEVEL", "chatty"):
            assert logging_config._level() == logging.INFO

    def test_debug_level(self):
        with patch.object(logging_config.settings, "LOG_LEVEL", "debug"):
            assert logging_config._level() == logging.DEBUG


class TestSyncContext:
    def test_binds_and_unbinds(self):
        with sync_context(from_block=100, to_block=199):
            assert structlog.contextvars.get_contextvars() == {"from_block": 100, "to_block": 199}

        assert "from_block" not in structlog.contextvars.get_contextvars()

    def test_batch_range_is_bound_while_decoding(self, test_engine, ledger):
        seen = []

        def record_context(raw_logs):
            seen.append(dict(structlog.contextvars.get_contextvars()))
            return []

        poller = ChainPoller(ledger, test_engine, CONTRACT, start_block=1, batch_size=60)
        with patch("gateway_indexer.chain.poller.decode_logs", side_effect=record_context):
            poller.poll()

        assert seen == [{"from_block": 1, "to_block": 60}, {"from_block": 61, "to_block": 100}]
        assert "from_block" not in structlog.contextvars.get_contextvars()
