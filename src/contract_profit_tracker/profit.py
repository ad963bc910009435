"""
Per-transaction profit from internal value flows, net of gas.
"""

import logging
from typing import List

import requests

from .errors import EnrichmentError, EtherscanAPIError
from .models import RawTransaction, InternalTransfer, TransactionProfit
from .utils import normalize_address

logger = logging.getLogger(__name__)


class ProfitCalculator:
    """
    Computes the profit of one contract transaction.

    Value the contract pays out to the main wallet, plus value it returns to
    the transaction sender (when the sender is not the main wallet), counts as
    internal value. Net profit is that internal value minus the gas fee.
    """

    def __init__(self, client, contract_address: str, main_wallet_address: str):
        self.client = client
        self.contract_address = normalize_address(contract_address)
        self.main_wallet_address = normalize_address(main_wallet_address)

    def internal_transfers(self, tx_hash: str) -> List[InternalTransfer]:
        """Internal transfers of a transaction, or [] if the lookup fails."""
        try:
            return self.client.get_internal_transactions(tx_hash)
        except (EnrichmentError, EtherscanAPIError, requests.RequestException) as e:
            logger.warning(
                f"Could not fetch internal transactions for {tx_hash}: {e}")
            return []

    def calculate(self, tx: RawTransaction) -> TransactionProfit:
        gas_fee = tx.gas_used * tx.gas_price
        origin = normalize_address(tx.from_address)

        contract_to_wallet_value = 0
        contract_to_origin_value = 0
        for transfer in self.internal_transfers(tx.hash):
            if normalize_address(transfer.from_address) != self.contract_address:
                continue
            to_address = normalize_address(transfer.to_address)
            if to_address == self.main_wallet_address:
                contract_to_wallet_value += transfer.value
            elif to_address == origin:
                contract_to_origin_value += transfer.value

        total_internal_value = contract_to_wallet_value + contract_to_origin_value

        return TransactionProfit(
            hash=tx.hash,
            block_number=tx.block_number,
            timestamp=tx.timestamp,
            from_address=origin,
            contract_address=normalize_address(tx.to_address),
            gas_fee=gas_fee,
            contract_to_wallet_value=contract_to_wallet_value,
            contract_to_origin_value=contract_to_origin_value,
            total_internal_value=total_internal_value,
            net_profit=total_internal_value - gas_fee,
        )
