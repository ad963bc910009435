"""
Data models for daily contract profit analysis.

All monetary values are integers denominated in wei.
"""

from dataclasses import dataclass, field
from typing import List

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class TimeWindow:
    """Half-open UTC interval [start_timestamp, end_timestamp)."""
    start_timestamp: int
    end_timestamp: int

    def contains(self, timestamp: int) -> bool:
        return self.start_timestamp <= timestamp < self.end_timestamp


@dataclass(frozen=True)
class BlockRange:
    """Inclusive block interval resolved for one analysis."""
    start_block: int
    end_block: int

    def __post_init__(self):
        if self.start_block > self.end_block:
            raise ValueError(
                f"start_block {self.start_block} is after end_block {self.end_block}")


@dataclass
class RawTransaction:
    """Top-level transaction as listed by Etherscan."""
    hash: str
    block_number: int
    timestamp: int
    from_address: str
    to_address: str
    value: int
    gas_used: int
    gas_price: int
    is_error: bool = False


@dataclass
class InternalTransfer:
    """Value movement made by contract execution inside a transaction."""
    hash: str  # parent transaction
    block_number: int
    timestamp: int
    from_address: str
    to_address: str
    value: int


@dataclass
class EventLog:
    """Contract event as returned by logs/getLogs."""
    transaction_hash: str
    block_number: int
    timestamp: int
    address: str
    topics: List[str]
    data: str
    gas_price: int = 0
    gas_used: int = 0
    log_index: int = 0


@dataclass
class TransactionProfit:
    """Profit of a single transaction, net of gas."""
    hash: str
    block_number: int
    timestamp: int
    from_address: str
    contract_address: str
    gas_fee: int
    contract_to_wallet_value: int
    contract_to_origin_value: int
    total_internal_value: int
    net_profit: int


@dataclass
class DailyAnalysis:
    """Aggregated profit for one analysed day."""
    date: str
    transactions: List[TransactionProfit] = field(default_factory=list)
    total_profit: int = 0
    total_transactions: int = 0
    total_gas_fees: int = 0
    total_internal_value: int = 0

    @property
    def profitable_transactions(self) -> int:
        return sum(1 for tx in self.transactions if tx.net_profit > 0)


@dataclass
class ContractBreakdown:
    """Profitable transactions of a day attributed to one contract."""
    contract_address: str
    transactions: List[TransactionProfit]
    total_transactions: int
    profit: int


@dataclass
class MevProfit:
    """USD profit figures for one transaction as reported by EigenPhi."""
    hash: str = ""
    revenue: float = 0.0
    gas_fee: float = 0.0
    profit: float = 0.0
    builder_pay: float = 0.0
