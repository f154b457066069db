"""Tests for the web3-backed ledger client (web3 mocked, no network)."""

from unittest.mock import MagicMock

import pytest
import requests
from hexbytes import HexBytes

from conftest import CONTRACT, PAYMENT_ID
from gateway_indexer.chain.events import PaymentExpired
from gateway_indexer.chain.ledger_client import RawLog, Web3LedgerClient
from gateway_indexer.core.errors import LedgerClientError


@pytest.fixture
def client():
    client = Web3LedgerClient("http://localhost:8545")
    client.w3 = MagicMock()
    return client


class TestWeb3LedgerClient:
    def test_current_height(self, client):
        client.w3.eth.block_number = 123
        assert client.current_height() == 123

    def test_block_timestamp(self, client):
        client.w3.eth.get_block.return_value = {"timestamp": 1_700_000_000}

        assert client.block_timestamp(5) == 1_700_000_000
        client.w3.eth.get_block.assert_called_once_with(5)

    def test_logs_are_normalized(self, client):
        client.w3.eth.get_logs.return_value = [
            {
                "blockNumber": 10,
                "transactionHash": HexBytes("0x" + "aa" * 32),
                "logIndex": 3,
                "address": CONTRACT.lower(),
                "topics": [HexBytes(PaymentExpired.topic()), HexBytes(PAYMENT_ID)],
                "data": HexBytes("0x" + "00" * 31 + "01"),
            }
        ]

        (log,) = client.logs(CONTRACT, 10, 20)

        assert log == RawLog(
            block_number=10,
            transaction_hash="0x" + "aa" * 32,
            log_index=3,
            address=CONTRACT,
            topics=(PaymentExpired.topic(), bytes.fromhex(PAYMENT_ID[2:])),
            data=b"\x00" * 31 + b"\x01",
        )
        filter_params = client.w3.eth.get_logs.call_args.args[0]
        assert filter_params == {"address": CONTRACT, "fromBlock": 10, "toBlock": 20}

    def test_transport_error_is_wrapped(self, client):
        client.w3.eth.get_logs.side_effect = requests.ConnectionError("refused")

        with pytest.raises(LedgerClientError):
            client.logs(CONTRACT, 10, 20)

    def test_rpc_error_is_wrapped(self, client):
        client.w3.eth.get_block.side_effect = ValueError({"code": -32000, "message": "header not found"})

        with pytest.raises(LedgerClientError):
            client.block_timestamp(5)
