import os
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    # API Keys
    etherscan_api_key: str

    # Addresses
    main_wallet_address: Optional[str] = None
    contract_address: Optional[str] = None

    # API URLs
    etherscan_base_url: str = "https://api.etherscan.io/v2/api"
    chain_id: int = 1
    rpc_url: Optional[str] = None
    eigenphi_base_url: str = "https://storage.googleapis.com/eigenphi-ethereum-tx"

    # Analysis settings
    anchor_hour: int = 14  # UTC hour at which the daily window opens
    tx_batch_size: int = 10000
    log_batch_size: int = 1000
    max_transactions_per_request: int = 10000
    max_logs_per_request: int = 1000
    fan_out_concurrency: int = 100

    # Request settings
    retry_delay: float = 1.0
    rate_limit_delay: float = 0.2  # seconds between API calls
    request_timeout: float = 30.0

    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        etherscan_key = os.getenv("ETHERSCAN_API_KEY")
        if not etherscan_key:
            raise ValueError(
                "ETHERSCAN_API_KEY environment variable is required")

        anchor_hour = int(os.getenv("ANCHOR_HOUR", "14"))
        if not 0 <= anchor_hour <= 23:
            raise ValueError(
                f"ANCHOR_HOUR must be between 0 and 23, got {anchor_hour}")

        log_level = os.getenv("LOG_LEVEL", "WARNING").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {log_level!r}")

        return cls(
            etherscan_api_key=etherscan_key,
            main_wallet_address=os.getenv("MAIN_WALLET_ADDRESS") or None,
            contract_address=(os.getenv("CONTRACT_ADDRESS")
                              or os.getenv("SMART_CONTRACT_ADDRESS") or None),
            etherscan_base_url=os.getenv(
                "ETHERSCAN_BASE_URL", "https://api.etherscan.io/v2/api"),
            chain_id=int(os.getenv("CHAIN_ID", "1")),
            rpc_url=os.getenv("RPC_URL") or None,
            eigenphi_base_url=os.getenv(
                "EIGENPHI_BASE_URL", "https://storage.googleapis.com/eigenphi-ethereum-tx"),
            anchor_hour=anchor_hour,
            tx_batch_size=int(os.getenv("TX_BATCH_SIZE", "10000")),
            log_batch_size=int(os.getenv("LOG_BATCH_SIZE", "1000")),
            max_transactions_per_request=int(
                os.getenv("MAX_TRANSACTIONS_PER_REQUEST", "10000")),
            max_logs_per_request=int(os.getenv("MAX_LOGS_PER_REQUEST", "1000")),
            fan_out_concurrency=int(os.getenv("FAN_OUT_CONCURRENCY", "100")),
            retry_delay=float(os.getenv("RETRY_DELAY", "1.0")),
            rate_limit_delay=float(os.getenv("RATE_LIMIT_DELAY", "0.2")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),
            log_level=log_level,
        )
