"""
Daily profit aggregation.
"""

import logging
from typing import Iterable, List, Optional

from .config import Config
from .fetcher import TransactionFetcher
from .models import (
    DailyAnalysis,
    ContractBreakdown,
    InternalTransfer,
    RawTransaction,
    TimeWindow,
    TransactionProfit,
)
from .profit import ProfitCalculator
from .resolver import day_window, resolve_block_range
from .utils import normalize_address, require_address

logger = logging.getLogger(__name__)


def summarize(date: str, profits: List[TransactionProfit]) -> DailyAnalysis:
    """Build a DailyAnalysis whose totals are exact integer sums over `profits`."""
    return DailyAnalysis(
        date=date,
        transactions=profits,
        total_profit=sum((tx.net_profit for tx in profits), 0),
        total_transactions=len(profits),
        total_gas_fees=sum((tx.gas_fee for tx in profits), 0),
        total_internal_value=sum((tx.total_internal_value for tx in profits), 0),
    )


def inflow_profit(transfer: InternalTransfer) -> TransactionProfit:
    """An inflow to the wallet is pure profit attributed to its sender."""
    sender = normalize_address(transfer.from_address)
    return TransactionProfit(
        hash=transfer.hash,
        block_number=transfer.block_number,
        timestamp=transfer.timestamp,
        from_address=sender,
        contract_address=sender,
        gas_fee=0,
        contract_to_wallet_value=transfer.value,
        contract_to_origin_value=0,
        total_internal_value=transfer.value,
        net_profit=transfer.value,
    )


def breakdown_by_contract(analysis: DailyAnalysis, contract_address: str) -> ContractBreakdown:
    """Profitable transactions of the day attributed to one contract."""
    contract = normalize_address(contract_address)
    matching = [tx for tx in analysis.transactions
                if tx.net_profit > 0 and tx.contract_address == contract]
    return ContractBreakdown(
        contract_address=contract,
        transactions=matching,
        total_transactions=len(matching),
        profit=sum((tx.net_profit for tx in matching), 0),
    )


class DailyAggregator:
    """Runs resolve, fetch, calculate and aggregate for one date."""

    def __init__(self, client, config: Config, fetcher: Optional[TransactionFetcher] = None):
        self.client = client
        self.config = config
        self.fetcher = fetcher or TransactionFetcher(client, config)

    def _main_wallet(self) -> str:
        return require_address(self.config.main_wallet_address, "main wallet address")

    def aggregate(self, date: str, window: TimeWindow,
                  candidates: Iterable[RawTransaction],
                  recipient_filter: bool = False) -> DailyAnalysis:
        """Keep candidates inside the window and sum their profits."""
        contract = require_address(self.config.contract_address, "contract address")
        main_wallet = self._main_wallet()
        calculator = ProfitCalculator(self.client, contract, main_wallet)

        day_transactions = [
            tx for tx in candidates
            if window.contains(tx.timestamp)
            and (not recipient_filter or normalize_address(tx.to_address) == main_wallet)
        ]
        logger.info(
            f"{len(day_transactions)} transactions match the exact date range")

        profits = []
        for index, tx in enumerate(day_transactions, 1):
            logger.info(
                f"Processing transaction {index}/{len(day_transactions)}: {tx.hash}")
            profits.append(calculator.calculate(tx))

        return summarize(date, profits)

    def analyze(self, date: str, recipient_filter: bool = False) -> DailyAnalysis:
        """Analyze the configured contract's transactions for a date."""
        window = day_window(date, self.config.anchor_hour)
        contract = require_address(self.config.contract_address, "contract address")
        self._main_wallet()

        logger.info(
            f"Time range: {window.start_timestamp} to {window.end_timestamp}")
        block_range = resolve_block_range(self.client, window)

        transactions = self.fetcher.fetch_transactions(contract, block_range)
        logger.info(f"Found {len(transactions)} transactions")

        return self.aggregate(date, window, transactions,
                              recipient_filter=recipient_filter)

    def analyze_wallet_inflows(self, date: str) -> DailyAnalysis:
        """Analyze internal transfers into the main wallet for a date."""
        window = day_window(date, self.config.anchor_hour)
        main_wallet = self._main_wallet()

        block_range = resolve_block_range(self.client, window)
        transfers = self.fetcher.fetch_wallet_inflows(main_wallet, block_range)

        profits = [
            inflow_profit(transfer) for transfer in transfers
            if window.contains(transfer.timestamp)
            and normalize_address(transfer.to_address) == main_wallet
        ]
        logger.info(f"{len(profits)} inflows match the exact date range")
        return summarize(date, profits)
