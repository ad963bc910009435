"""
Tests for the Etherscan, JSON-RPC and EigenPhi clients, with their transports mocked.
"""

from __future__ import annotations

import dataclasses
import logging
from types import SimpleNamespace

import pytest
import requests

from contract_profit_tracker import api_clients
from contract_profit_tracker.api_clients import EigenPhiClient, EtherscanClient, Web3Client
from contract_profit_tracker.errors import EnrichmentError, EtherscanAPIError, FetchError
from contract_profit_tracker.batching import fetch_windows
from contract_profit_tracker.fetcher import TransactionFetcher, fetch_transaction_profits
from contract_profit_tracker.models import BlockRange, MevProfit

from conftest import CONTRACT, SENDER, WALLET


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


@pytest.fixture
def replies(monkeypatch):
    """Queue of responses (or exceptions) returned by successive requests.get calls."""
    queue = []
    sent = []

    def fake_get(url, params=None, timeout=None):
        sent.append(params)
        reply = queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(api_clients.requests, "get", fake_get)
    monkeypatch.setattr(api_clients.time, "sleep", lambda seconds: None)
    return queue, sent


def test_latest_block_parses_hex_and_sends_credentials(replies, config):
    queue, sent = replies
    queue.append(FakeResponse({"jsonrpc": "2.0", "id": 83, "result": "0x1312d00"}))

    assert EtherscanClient(config).get_latest_block() == 20_000_000
    assert sent[0]["apikey"] == "test-key"
    assert sent[0]["chainid"] == 1
    assert sent[0]["action"] == "eth_blockNumber"


def test_block_by_timestamp(replies, config):
    queue, sent = replies
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": "23331113"}))

    assert EtherscanClient(config).get_block_by_timestamp(1757512800, "after") == 23331113
    assert sent[0]["closest"] == "after"


def test_block_by_timestamp_error(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"status": "0", "message": "NOTOK",
                               "result": "Error! No closest block found"}))

    with pytest.raises(EtherscanAPIError):
        EtherscanClient(config).get_block_by_timestamp(1, "before")


def test_contract_transactions_parsed_to_integers(replies, config):
    queue, sent = replies
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": [{
        "blockNumber": "23331120", "timeStamp": "1757512812", "hash": "0xabc",
        "from": SENDER.upper().replace("0X", "0x"), "to": CONTRACT, "value": "0",
        "gasUsed": "21000", "gasPrice": "50000000000", "isError": "0",
    }]}))

    txs = EtherscanClient(config).get_contract_transactions(CONTRACT, 1, 2)

    assert len(txs) == 1
    assert txs[0].block_number == 23331120
    assert txs[0].from_address == SENDER
    assert txs[0].gas_used * txs[0].gas_price == 1_050_000_000_000_000
    assert sent[0]["offset"] == 10000
    assert sent[0]["sort"] == "asc"


def test_no_transactions_found_is_empty(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"status": "0", "message": "No transactions found", "result": []}))

    assert EtherscanClient(config).get_contract_transactions(CONTRACT, 1, 2) == []


def test_listing_retried_once(replies, config):
    queue, sent = replies
    queue.append(requests.ConnectionError("reset"))
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": []}))

    assert EtherscanClient(config).get_contract_transactions(CONTRACT, 1, 2) == []
    assert len(sent) == 2


def test_listing_raises_fetch_error_after_retry(replies, config):
    queue, sent = replies
    queue.append(FakeResponse({"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}))
    queue.append(FakeResponse({}, status_code=502))

    with pytest.raises(FetchError):
        EtherscanClient(config).get_event_logs(CONTRACT, "0xtopic", 1, 2)
    assert len(sent) == 2


def test_event_logs_parse_hex_fields(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": [{
        "address": CONTRACT, "topics": ["0xtopic"], "data": "0x",
        "blockNumber": "0x10", "timeStamp": "0x68c18460", "gasPrice": "0x3b9aca00",
        "gasUsed": "0x5208", "logIndex": "0x", "transactionHash": "0xdef",
    }]}))

    events = EtherscanClient(config).get_event_logs(CONTRACT, "0xtopic", 1, 20)

    assert events[0].block_number == 16
    assert events[0].timestamp == 1757512800
    assert events[0].gas_used == 21000
    assert events[0].log_index == 0


def test_internal_transactions_fill_parent_hash(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": [{
        "blockNumber": "1", "timeStamp": "2", "from": CONTRACT, "to": WALLET, "value": "5",
    }]}))

    transfers = EtherscanClient(config).get_internal_transactions("0xparent")

    assert transfers[0].hash == "0xparent"
    assert transfers[0].value == 5


def test_internal_transactions_failure_is_enrichment_error(replies, config):
    queue, _ = replies
    queue.append(requests.Timeout("slow"))

    with pytest.raises(EnrichmentError):
        EtherscanClient(config).get_internal_transactions("0xparent")


def test_transaction_destination(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"jsonrpc": "2.0", "id": 1,
                               "result": {"hash": "0x1", "to": CONTRACT.upper().replace("0X", "0x")}}))
    queue.append(FakeResponse({"jsonrpc": "2.0", "id": 1, "result": None}))

    client = EtherscanClient(config)
    assert client.get_transaction_destination("0x1") == CONTRACT
    with pytest.raises(EnrichmentError):
        client.get_transaction_destination("0x2")


def test_eth_price_falls_back_to_zero(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": {"ethusd": "4321.5"}}))
    queue.append(requests.ConnectionError("down"))

    client = EtherscanClient(config)
    assert client.get_eth_price() == 4321.5
    assert client.get_eth_price() == 0.0


def test_event_logs_warn_at_row_cap(replies, config, caplog):
    queue, _ = replies
    row = {"address": CONTRACT, "topics": ["0xtopic"], "data": "0x", "blockNumber": "0x1",
           "timeStamp": "0x1", "logIndex": "0x0", "transactionHash": "0x1"}
    queue.append(FakeResponse({"status": "1", "message": "OK", "result": [row, dict(row)]}))
    client = EtherscanClient(dataclasses.replace(config, max_logs_per_request=2))

    with caplog.at_level(logging.WARNING, logger="contract_profit_tracker.api_clients"):
        events = client.get_event_logs(CONTRACT, "0xtopic", 1, 20)

    assert len(events) == 2
    assert "getLogs returned 2 rows" in caplog.text


def test_event_logs_below_cap_do_not_warn(replies, config, caplog):
    queue, _ = replies
    queue.append(FakeResponse({"status": "0", "message": "No records found", "result": []}))

    with caplog.at_level(logging.WARNING, logger="contract_profit_tracker.api_clients"):
        assert EtherscanClient(config).get_event_logs(CONTRACT, "0xtopic", 1, 20) == []

    assert "rows for" not in caplog.text


TOPIC = "0x" + "dd" * 32


def rpc_log(block, tx_byte="ab", with_timestamp=False):
    log = {
        "transactionHash": bytes.fromhex(tx_byte * 32),
        "blockNumber": block,
        "address": "0x" + "C" * 40,
        "topics": [bytes.fromhex("dd" * 32)],
        "data": b"\x01",
        "logIndex": 3,
    }
    if with_timestamp:
        log["blockTimestamp"] = "0x68c18460"
    return log


class StubEth:
    """Scripted stand-in for web3's `eth` module."""

    def __init__(self, replies, block_timestamps=None):
        self.replies = list(replies)
        self.block_timestamps = block_timestamps or {}
        self.log_calls = []
        self.block_calls = []

    def get_logs(self, params):
        self.log_calls.append(params)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def get_block(self, number):
        self.block_calls.append(number)
        return {"timestamp": self.block_timestamps[number]}


def rpc_client(config, eth):
    client = Web3Client(config)
    client.w3 = SimpleNamespace(eth=eth)
    return client


def test_rpc_logs_retried_once_through_fetcher(config):
    eth = StubEth([ConnectionError("node busy"), [rpc_log(5)]], block_timestamps={5: 1757512800})
    fetcher = TransactionFetcher(object(), config, log_source=rpc_client(config, eth))

    events = fetcher.fetch_event_logs(CONTRACT, TOPIC, BlockRange(0, 10))

    assert len(eth.log_calls) == 2
    assert len(events) == 1
    assert events[0].transaction_hash == "0x" + "ab" * 32
    assert events[0].address == CONTRACT
    assert events[0].topics == [TOPIC]
    assert events[0].data == "0x01"
    assert events[0].log_index == 3
    assert eth.log_calls[0]["fromBlock"] == 0
    assert eth.log_calls[0]["toBlock"] == 10


def test_rpc_logs_fill_timestamp_from_block_once_per_block(config):
    eth = StubEth([[rpc_log(5, "01"), rpc_log(5, "02"), rpc_log(7, "03")]],
                  block_timestamps={5: 1757512800, 7: 1757512824})

    events = rpc_client(config, eth).get_event_logs(CONTRACT, TOPIC, 0, 10)

    assert [event.timestamp for event in events] == [1757512800, 1757512800, 1757512824]
    assert eth.block_calls == [5, 7]


def test_rpc_logs_keep_reported_block_timestamp(config):
    eth = StubEth([[rpc_log(5, with_timestamp=True)]])

    events = rpc_client(config, eth).get_event_logs(CONTRACT, TOPIC, 0, 10)

    assert events[0].timestamp == 1757512800
    assert eth.block_calls == []


def test_rpc_logs_fail_after_retry_and_window_is_skipped(config):
    eth = StubEth([TimeoutError("1"), TimeoutError("2"), [rpc_log(15)]],
                  block_timestamps={15: 1757512800})
    client = rpc_client(config, eth)

    with pytest.raises(FetchError):
        client.get_event_logs(CONTRACT, TOPIC, 0, 10)

    eth.replies = [TimeoutError("1"), TimeoutError("2"), [rpc_log(15)]]
    events = fetch_windows(lambda low, high: client.get_event_logs(CONTRACT, TOPIC, low, high),
                           0, 20, 10, description="events")
    assert [event.block_number for event in events] == [15]


def test_rpc_chain_head_failure_is_fetch_error(config):
    class DeadEth:
        @property
        def block_number(self):
            raise ConnectionError("refused")

    client = Web3Client(config)
    client.w3 = SimpleNamespace(eth=DeadEth())

    with pytest.raises(FetchError):
        client.get_latest_block_number()


EIGENPHI_REPLY = {
    "txMeta": {"gasUsed": 200000, "gasPrice": "10000000000"},
    "tokenPrices": [
        {"tokenSpec": "ERC20", "priceInUsd": "1.0"},
        {"tokenSpec": "PLATFORM", "priceInUsd": "2000"},
    ],
    "summary": {"revenue": 50.5, "profit": 30.25, "cost": 20.25},
}


def test_transaction_profit_from_eigenphi(replies, config):
    queue, _ = replies
    queue.append(FakeResponse(EIGENPHI_REPLY))

    profit = EigenPhiClient(config).get_transaction_profit("0xfeed")

    assert profit.hash == "0xfeed"
    assert profit.revenue == 50.5
    assert profit.profit == 30.25
    # 200000 gas at 10 gwei is 0.002 ETH, priced at 2000 USD
    assert profit.gas_fee == pytest.approx(4.0)
    assert profit.builder_pay == pytest.approx(16.25)


def test_transaction_profit_failure_is_enrichment_error(replies, config):
    queue, _ = replies
    queue.append(FakeResponse({}, status_code=404))
    queue.append(FakeResponse({"txMeta": {"gasUsed": 1, "gasPrice": 1}, "tokenPrices": [],
                               "summary": {"revenue": 1, "profit": 1, "cost": 1}}))

    client = EigenPhiClient(config)
    with pytest.raises(EnrichmentError):
        client.get_transaction_profit("0xmissing")
    # no PLATFORM price in the reply
    with pytest.raises(EnrichmentError):
        client.get_transaction_profit("0xunpriced")


def test_transaction_profits_drop_failed_lookups(config):
    class ScriptedProfits:
        def get_transaction_profit(self, tx_hash):
            if tx_hash == "0x2":
                raise EnrichmentError("not indexed")
            return MevProfit(hash=tx_hash, revenue=1.0, profit=0.5)

    results = fetch_transaction_profits(ScriptedProfits(), ["0x1", "0x2", "0x3"], concurrency=2)

    assert [result.hash for result in results] == ["0x1", "0x3"]
