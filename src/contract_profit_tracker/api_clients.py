import time
import logging
from typing import Optional, List, Dict, Any, Callable, Tuple, Type, TypeVar
import requests
from web3 import Web3

from .config import Config
from .errors import EtherscanAPIError, FetchError, EnrichmentError
from .models import RawTransaction, InternalTransfer, EventLog, MevProfit
from .utils import (
    parse_transactions,
    parse_internal_transfers,
    parse_event_logs,
    normalize_address,
    to_int,
    wei_to_ether,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Etherscan answers status "0" with these messages when a query simply has no rows
EMPTY_RESULT_MESSAGES = ("No transactions found", "No records found", "No logs found")

RETRYABLE_ERRORS = (requests.RequestException, EtherscanAPIError, ValueError)


def retry_once(description: str, call: Callable[[], T], retry_delay: float,
               errors: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS) -> T:
    """Run a listing call, retrying once after `retry_delay` seconds."""
    try:
        return call()
    except errors as e:
        logger.warning(f"{description} failed: {e}; retrying in {retry_delay}s")

    time.sleep(retry_delay)
    try:
        return call()
    except errors as e:
        raise FetchError(f"{description} failed after retry: {e}") from e


class EtherscanClient:
    """Client for the Etherscan v2 API."""

    def __init__(self, config: Config):
        self.config = config
        self.base_url = config.etherscan_base_url
        self.api_key = config.etherscan_api_key

    def _make_request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Make a request to Etherscan API."""
        params = dict(params)
        params["chainid"] = self.config.chain_id
        params["apikey"] = self.api_key

        response = requests.get(self.base_url, params=params,
                                timeout=self.config.request_timeout)
        response.raise_for_status()

        data = response.json()

        # Rate limiting
        time.sleep(self.config.rate_limit_delay)

        if "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise EtherscanAPIError(f"Etherscan proxy error: {message}")

        # proxy module replies are JSON-RPC envelopes without a status field
        if "status" in data and data.get("status") != "1":
            message = data.get("message", "Unknown error")
            if any(message.startswith(empty) for empty in EMPTY_RESULT_MESSAGES):
                return {"status": "1", "message": message, "result": []}
            raise EtherscanAPIError(
                f"Etherscan API error: {message} ({data.get('result')})")

        return data

    def _with_retry(self, description: str, call: Callable[[], T]) -> T:
        return retry_once(description, call, self.config.retry_delay)

    def get_latest_block(self) -> int:
        """Get the current block number."""
        params = {
            "module": "proxy",
            "action": "eth_blockNumber"
        }
        data = self._make_request(params)
        block_hex = data.get("result")
        if not isinstance(block_hex, str) or not block_hex.startswith("0x"):
            raise EtherscanAPIError(
                f"Unexpected eth_blockNumber result: {block_hex!r}")
        return int(block_hex, 16)

    def get_block_by_timestamp(self, timestamp: int, closest: str = "before") -> int:
        """Get the block closest to a unix timestamp in the given direction."""
        if closest not in ("before", "after"):
            raise ValueError(f"closest must be 'before' or 'after', got {closest!r}")

        params = {
            "module": "block",
            "action": "getblocknobytime",
            "timestamp": timestamp,
            "closest": closest
        }
        data = self._make_request(params)
        result = data.get("result")
        try:
            return int(result)
        except (TypeError, ValueError):
            raise EtherscanAPIError(
                f"No block {closest} timestamp {timestamp}: {result!r}")

    def get_contract_transactions(self, address: str, start_block: int,
                                  end_block: int) -> List[RawTransaction]:
        """Get transactions for an address within an inclusive block range."""
        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": start_block,
            "endblock": end_block,
            "page": 1,
            "offset": self.config.max_transactions_per_request,
            "sort": "asc"
        }

        data = self._with_retry(
            f"txlist {address} [{start_block}, {end_block}]",
            lambda: self._make_request(params))
        rows = data.get("result") or []
        self._warn_if_capped("txlist", rows, start_block, end_block)
        return parse_transactions(rows)

    def get_internal_transactions(self, tx_hash: str) -> List[InternalTransfer]:
        """Get internal transfers of one transaction. Empty if there are none."""
        params = {
            "module": "account",
            "action": "txlistinternal",
            "txhash": tx_hash
        }
        try:
            data = self._make_request(params)
        except (requests.RequestException, EtherscanAPIError, ValueError) as e:
            raise EnrichmentError(
                f"Could not fetch internal transactions for {tx_hash}: {e}") from e

        transfers = parse_internal_transfers(data.get("result") or [])
        # txhash queries omit the parent hash on each row
        for transfer in transfers:
            if not transfer.hash:
                transfer.hash = tx_hash
        return transfers

    def get_internal_transactions_by_address(self, address: str, start_block: int,
                                             end_block: int) -> List[InternalTransfer]:
        """Get internal transfers touching an address within a block range."""
        params = {
            "module": "account",
            "action": "txlistinternal",
            "address": address,
            "startblock": start_block,
            "endblock": end_block,
            "page": 1,
            "offset": self.config.max_transactions_per_request,
            "sort": "asc"
        }

        data = self._with_retry(
            f"txlistinternal {address} [{start_block}, {end_block}]",
            lambda: self._make_request(params))
        rows = data.get("result") or []
        self._warn_if_capped("txlistinternal", rows, start_block, end_block)
        return parse_internal_transfers(rows)

    def get_event_logs(self, address: str, topic: str, start_block: int,
                       end_block: int) -> List[EventLog]:
        """Get event logs of a contract filtered by topic0."""
        params = {
            "module": "logs",
            "action": "getLogs",
            "address": address,
            "topic0": topic,
            "fromBlock": start_block,
            "toBlock": end_block
        }

        data = self._with_retry(
            f"getLogs {address} [{start_block}, {end_block}]",
            lambda: self._make_request(params))
        rows = data.get("result") or []
        self._warn_if_capped("getLogs", rows, start_block, end_block,
                             cap=self.config.max_logs_per_request)
        return parse_event_logs(rows)

    def get_transaction_destination(self, tx_hash: str) -> str:
        """Get the lowercase `to` address of a transaction."""
        params = {
            "module": "proxy",
            "action": "eth_getTransactionByHash",
            "txhash": tx_hash
        }
        try:
            result = self._make_request(params).get("result")
        except (requests.RequestException, EtherscanAPIError, ValueError) as e:
            raise EnrichmentError(f"Transaction lookup failed for {tx_hash}: {e}") from e

        if not isinstance(result, dict) or not result.get("to"):
            raise EnrichmentError(f"No destination for transaction {tx_hash}")
        return normalize_address(result["to"])

    def get_eth_price(self) -> float:
        """Get current ETH price in USD using Etherscan stats endpoint."""
        params = {
            "module": "stats",
            "action": "ethprice"
        }
        try:
            data = self._make_request(params)
            result = data.get("result", {})
            return float(result.get("ethusd", 0))
        except (requests.RequestException, EtherscanAPIError, ValueError,
                AttributeError) as e:
            logger.warning(f"ETH price API failed via Etherscan: {e}")
            return 0.0

    def _warn_if_capped(self, action: str, rows: List[Dict[str, Any]],
                        start_block: int, end_block: int, cap: Optional[int] = None):
        if len(rows) >= (cap or self.config.max_transactions_per_request):
            logger.warning(
                f"{action} returned {len(rows)} rows for [{start_block}, {end_block}], "
                f"the per-call cap; use a smaller batch size to avoid missing records")


class Web3Client:
    """Client for JSON-RPC operations."""

    def __init__(self, config: Optional[Config] = None, provider_url: Optional[str] = None):
        if provider_url is None:
            if config and config.rpc_url:
                provider_url = config.rpc_url
            else:
                provider_url = "https://eth.llamarpc.com"

        self.retry_delay = config.retry_delay if config else 1.0
        self.w3 = Web3(Web3.HTTPProvider(provider_url))

    def get_latest_block_number(self) -> int:
        """Get the chain head from the RPC node."""
        try:
            return self.w3.eth.block_number
        except Exception as e:
            raise FetchError(f"eth_blockNumber failed: {e}") from e

    def get_event_logs(self, address: str, topic: str, start_block: int,
                       end_block: int) -> List[EventLog]:
        """Get event logs of a contract filtered by topic0."""
        logs = retry_once(
            f"eth_getLogs {address} [{start_block}, {end_block}]",
            lambda: self.w3.eth.get_logs({
                "address": Web3.to_checksum_address(address),
                "topics": [topic],
                "fromBlock": start_block,
                "toBlock": end_block,
            }),
            self.retry_delay,
            errors=(Exception,),
        )

        # Most nodes leave blockTimestamp out of eth_getLogs replies
        timestamps: Dict[int, int] = {}
        events = []
        for log in logs:
            block_number = log["blockNumber"]
            timestamp = to_int(log.get("blockTimestamp"))
            if not timestamp:
                if block_number not in timestamps:
                    timestamps[block_number] = self._block_timestamp(block_number)
                timestamp = timestamps[block_number]
            events.append(EventLog(
                transaction_hash=Web3.to_hex(log["transactionHash"]),
                block_number=block_number,
                timestamp=timestamp,
                address=normalize_address(log["address"]),
                topics=[Web3.to_hex(t) for t in log["topics"]],
                data=Web3.to_hex(log["data"]),
                log_index=log["logIndex"],
            ))
        return events

    def _block_timestamp(self, block_number: int) -> int:
        try:
            return int(self.w3.eth.get_block(block_number)["timestamp"])
        except Exception as e:
            logger.warning(f"Could not get timestamp of block {block_number}: {e}")
            return 0


class EigenPhiClient:
    """Client for EigenPhi per-transaction MEV analytics."""

    def __init__(self, config: Config):
        self.base_url = config.eigenphi_base_url.rstrip("/")
        self.timeout = config.request_timeout

    def get_transaction_profit(self, tx_hash: str) -> MevProfit:
        """
        Get revenue, gas fee, profit and builder payment of a transaction in USD.

        The gas fee is gasUsed * gasPrice converted to ETH and priced at the
        PLATFORM token rate. The builder payment is the reported cost minus
        that gas fee.
        """
        try:
            response = requests.get(f"{self.base_url}/{tx_hash}", timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            tx_meta = data["txMeta"]
            gas_cost = float(wei_to_ether(to_int(tx_meta["gasUsed"]) * to_int(tx_meta["gasPrice"])))
            platform_price = next(
                price for price in data["tokenPrices"] if price.get("tokenSpec") == "PLATFORM")
            gas_fee = gas_cost * float(platform_price["priceInUsd"])

            summary = data["summary"]
            return MevProfit(
                hash=tx_hash,
                revenue=float(summary["revenue"]),
                gas_fee=gas_fee,
                profit=float(summary["profit"]),
                builder_pay=float(summary["cost"]) - gas_fee,
            )
        except (requests.RequestException, ValueError, KeyError, TypeError,
                StopIteration) as e:
            raise EnrichmentError(f"EigenPhi lookup failed for {tx_hash}: {e}") from e
