"""
Utility functions for validation, parsing and formatting.
"""

from typing import List, Dict, Any, Optional
from datetime import datetime
from decimal import Decimal
import re
import logging

from .errors import ValidationError
from .models import RawTransaction, InternalTransfer, EventLog

logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal('1000000000000000000')


def is_valid_ethereum_address(address: str) -> bool:
    """Check if a string is a 0x-prefixed, 40 hex character address."""
    if not address:
        return False
    return bool(re.match(r'^0x[0-9a-fA-F]{40}$', address))


def normalize_address(address: Optional[str]) -> str:
    """Normalize an Ethereum address to lowercase with 0x prefix."""
    if not address:
        return ""

    address = address.lower()
    if not address.startswith('0x'):
        address = '0x' + address

    return address


def require_address(address: Optional[str], label: str = "address") -> str:
    """Validate and normalize an address, raising ValidationError if malformed."""
    if not address or not is_valid_ethereum_address(address):
        raise ValidationError(f"Invalid {label}: {address!r}")
    return normalize_address(address)


def validate_date(date_string: str) -> bool:
    """Check that a string is a real calendar date in YYYY-MM-DD format."""
    if not date_string or not re.match(r'^\d{4}-\d{2}-\d{2}$', date_string):
        return False
    try:
        datetime.strptime(date_string, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def to_int(value: Any, default: int = 0) -> int:
    """Parse Etherscan numeric fields, which come as decimal or 0x-hex strings."""
    if value is None or value == "":
        return default
    if isinstance(value, int):
        return value
    text = str(value)
    if text.startswith(("0x", "0X")):
        return int(text, 16) if len(text) > 2 else 0
    return int(text)


def parse_transactions(raw_transactions: List[Dict[str, Any]]) -> List[RawTransaction]:
    """Parse raw Etherscan txlist rows into RawTransaction objects."""
    transactions = []

    for tx in raw_transactions or []:
        try:
            transactions.append(RawTransaction(
                hash=tx['hash'],
                block_number=to_int(tx['blockNumber']),
                timestamp=to_int(tx['timeStamp']),
                from_address=normalize_address(tx['from']),
                to_address=normalize_address(tx.get('to')),
                value=to_int(tx.get('value')),
                gas_used=to_int(tx.get('gasUsed')),
                gas_price=to_int(tx.get('gasPrice')),
                is_error=str(tx.get('isError', '0')) == '1',
            ))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Error parsing transaction {tx.get('hash', 'unknown')}: {e}")
            continue

    return transactions


def parse_internal_transfers(raw_transfers: List[Dict[str, Any]]) -> List[InternalTransfer]:
    """Parse raw Etherscan txlistinternal rows into InternalTransfer objects."""
    transfers = []

    for itx in raw_transfers or []:
        try:
            transfers.append(InternalTransfer(
                hash=itx.get('hash', ''),
                block_number=to_int(itx.get('blockNumber')),
                timestamp=to_int(itx.get('timeStamp')),
                from_address=normalize_address(itx['from']),
                to_address=normalize_address(itx['to']),
                value=to_int(itx.get('value')),
            ))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Error parsing internal transfer {itx.get('hash', 'unknown')}: {e}")
            continue

    return transfers


def parse_event_logs(raw_logs: List[Dict[str, Any]]) -> List[EventLog]:
    """Parse raw logs/getLogs rows into EventLog objects."""
    events = []

    for log in raw_logs or []:
        try:
            events.append(EventLog(
                transaction_hash=log['transactionHash'],
                block_number=to_int(log['blockNumber']),
                timestamp=to_int(log.get('timeStamp')),
                address=normalize_address(log.get('address')),
                topics=list(log.get('topics') or []),
                data=log.get('data', '0x'),
                gas_price=to_int(log.get('gasPrice')),
                gas_used=to_int(log.get('gasUsed')),
                log_index=to_int(log.get('logIndex')),
            ))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Error parsing event log {log.get('transactionHash', 'unknown')}: {e}")
            continue

    return events


def wei_to_ether(wei: int) -> Decimal:
    """Convert Wei to Ether."""
    return Decimal(wei) / WEI_PER_ETHER


def format_ether(wei: int) -> str:
    """Format a wei amount as ETH with 18 decimals."""
    return f"{wei_to_ether(wei):.18f} ETH"


def format_usd(wei: int, eth_price_usd: float) -> str:
    """Format a wei amount in USD. Display only."""
    usd = wei_to_ether(wei) * Decimal(str(eth_price_usd))
    return f"${usd:,.2f}"
