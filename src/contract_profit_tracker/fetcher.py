"""
Retrieve transactions, inflows and event logs across a block range.
"""

import logging
from typing import List, Optional, Sequence

from .batching import fetch_windows, fan_out
from .config import Config
from .models import BlockRange, RawTransaction, InternalTransfer, EventLog, MevProfit

logger = logging.getLogger(__name__)


class TransactionFetcher:
    """Walks a block range in windows sized for the upstream per-call caps."""

    def __init__(self, client, config: Config, log_source=None):
        self.client = client
        self.config = config
        # Anything exposing get_event_logs(address, topic, start, end)
        self.log_source = log_source or client

    def fetch_transactions(self, address: str, block_range: BlockRange,
                           step: Optional[int] = None) -> List[RawTransaction]:
        """Get all transactions of an address in ascending window order."""
        transactions = fetch_windows(
            lambda low, high: self.client.get_contract_transactions(address, low, high),
            block_range.start_block,
            block_range.end_block,
            step or self.config.tx_batch_size,
            description="transactions",
        )
        if not transactions:
            logger.warning(
                f"No transactions for {address} in blocks "
                f"{block_range.start_block}-{block_range.end_block}")
        return transactions

    def fetch_wallet_inflows(self, wallet: str, block_range: BlockRange,
                             step: Optional[int] = None) -> List[InternalTransfer]:
        """Get internal transfers touching a wallet in ascending window order."""
        transfers = fetch_windows(
            lambda low, high: self.client.get_internal_transactions_by_address(wallet, low, high),
            block_range.start_block,
            block_range.end_block,
            step or self.config.tx_batch_size,
            description="internal transfers",
        )
        if not transfers:
            logger.warning(
                f"No internal transfers for {wallet} in blocks "
                f"{block_range.start_block}-{block_range.end_block}")
        return transfers

    def fetch_event_logs(self, address: str, topic: str, block_range: BlockRange,
                         step: Optional[int] = None) -> List[EventLog]:
        """Get event logs of a contract for one topic, using the finer window size."""
        return fetch_windows(
            lambda low, high: self.log_source.get_event_logs(address, topic, low, high),
            block_range.start_block,
            block_range.end_block,
            step or self.config.log_batch_size,
            description="events",
        )

    def discover_contracts(self, hashes: Sequence[str]) -> List[str]:
        """
        Look up the destination of every transaction hash concurrently.

        The result is aligned with `hashes`; failed lookups yield "".
        """
        return fan_out(
            list(hashes),
            self.client.get_transaction_destination,
            concurrency=self.config.fan_out_concurrency,
            default="",
        )


def distinct_contracts(destinations: Sequence[str]) -> List[str]:
    """Non-empty destinations without repeats, in first-seen order."""
    seen = set()
    contracts = []
    for address in destinations:
        if address and address not in seen:
            seen.add(address)
            contracts.append(address)
    return contracts


def fetch_transaction_profits(profit_client, hashes: Sequence[str],
                              concurrency: int = 100) -> List[MevProfit]:
    """
    Look up EigenPhi profit figures for every hash concurrently.

    Failed lookups come back as an empty record and are dropped, so the
    result keeps input order but may be shorter than `hashes`.
    """
    profits = fan_out(
        list(hashes),
        profit_client.get_transaction_profit,
        concurrency=concurrency,
        default=MevProfit(),
    )
    return [profit for profit in profits if profit.hash != ""]
