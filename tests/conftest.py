"""
Pytest fixtures: an in-memory ledger client and a test Config.
"""

from __future__ import annotations

import pytest

from contract_profit_tracker.config import Config
from contract_profit_tracker.errors import EnrichmentError, EtherscanAPIError, FetchError
from contract_profit_tracker.models import InternalTransfer, RawTransaction

CONTRACT = "0x" + "c" * 40
WALLET = "0x" + "a" * 40
SENDER = "0x" + "5" * 40
OTHER = "0x" + "9" * 40

# 2025-09-10 14:00 UTC and 24h later
DAY_START = 1757512800
DAY_END = 1757599200


def make_tx(hash_, block, timestamp, gas_used=21000, gas_price=50_000_000_000,
            from_address=SENDER, to_address=CONTRACT, value=0):
    return RawTransaction(
        hash=hash_,
        block_number=block,
        timestamp=timestamp,
        from_address=from_address,
        to_address=to_address,
        value=value,
        gas_used=gas_used,
        gas_price=gas_price,
    )


def make_transfer(hash_, from_address, to_address, value, block=0, timestamp=0):
    return InternalTransfer(
        hash=hash_,
        block_number=block,
        timestamp=timestamp,
        from_address=from_address,
        to_address=to_address,
        value=value,
    )


class FakeLedgerClient:
    """In-memory stand-in for EtherscanClient."""

    def __init__(self):
        self.latest_block = 1_000_000
        self.blocks = {}  # (timestamp, closest) -> block
        self.transactions = []
        self.internal = {}  # tx hash -> [InternalTransfer]
        self.inflows = []
        self.events = []
        self.destinations = {}
        self.failing_windows = set()
        self.failing_hashes = set()
        self.calls = []

    def get_latest_block(self):
        self.calls.append(("latest",))
        return self.latest_block

    def get_block_by_timestamp(self, timestamp, closest="before"):
        self.calls.append(("block", timestamp, closest))
        try:
            return self.blocks[(timestamp, closest)]
        except KeyError:
            raise EtherscanAPIError(f"No block {closest} {timestamp}")

    def get_contract_transactions(self, address, start_block, end_block):
        self.calls.append(("txlist", address, start_block, end_block))
        if (start_block, end_block) in self.failing_windows:
            raise FetchError(f"window {start_block}-{end_block} failed")
        return [tx for tx in self.transactions
                if start_block <= tx.block_number <= end_block]

    def get_internal_transactions(self, tx_hash):
        self.calls.append(("internal", tx_hash))
        if tx_hash in self.failing_hashes:
            raise EnrichmentError(f"lookup failed for {tx_hash}")
        return list(self.internal.get(tx_hash, []))

    def get_internal_transactions_by_address(self, address, start_block, end_block):
        self.calls.append(("internal_by_address", address, start_block, end_block))
        return [t for t in self.inflows
                if start_block <= t.block_number <= end_block]

    def get_event_logs(self, address, topic, start_block, end_block):
        self.calls.append(("logs", address, topic, start_block, end_block))
        return [e for e in self.events
                if start_block <= e.block_number <= end_block]

    def get_transaction_destination(self, tx_hash):
        if tx_hash not in self.destinations:
            raise EnrichmentError(f"no destination for {tx_hash}")
        return self.destinations[tx_hash]

    def get_eth_price(self):
        return 2000.0


@pytest.fixture
def config():
    return Config(
        etherscan_api_key="test-key",
        main_wallet_address=WALLET,
        contract_address=CONTRACT,
        anchor_hour=14,
        retry_delay=0,
        rate_limit_delay=0,
    )


@pytest.fixture
def ledger():
    return FakeLedgerClient()
