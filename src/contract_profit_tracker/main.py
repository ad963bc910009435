"""
Main CLI application for Contract Profit Tracker.
"""

from .utils import (
    require_address,
    format_ether,
    format_usd,
    wei_to_ether,
)
from .models import DailyAnalysis, ContractBreakdown, BlockRange
from .errors import ValidationError, ResolutionError, EtherscanAPIError, FetchError
import dataclasses
from typing import Optional, List, Callable
import json
from pathlib import Path

import requests
import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .config import Config
from .api_clients import EtherscanClient, Web3Client, EigenPhiClient
from .aggregator import DailyAggregator, breakdown_by_contract
from .fetcher import TransactionFetcher, distinct_contracts, fetch_transaction_profits

# Logging setup
import logging
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="profit-tracker",
    help="Measure a wallet's daily net profit from a smart contract's on-chain activity."
)

console = Console()


def load_config() -> Config:
    """Load application configuration."""
    try:
        config = Config.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        console.print(
            "\n[yellow]Please create a .env file with your API key:[/yellow]")
        console.print("ETHERSCAN_API_KEY=your_key_here")
        console.print("MAIN_WALLET_ADDRESS=0x...")
        raise typer.Exit(1)

    logging.basicConfig(level=config.log_level,
                        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return config


def load_hashes(hashes_file: str) -> List[str]:
    """Read a JSON list of transaction hashes, exiting on unreadable input."""
    try:
        with open(hashes_file) as f:
            hashes = json.load(f)
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read {hashes_file}: {e}[/red]")
        raise typer.Exit(1)

    if not isinstance(hashes, list) or not all(isinstance(h, str) for h in hashes):
        console.print(f"[red]{hashes_file} must hold a JSON list of transaction hashes[/red]")
        raise typer.Exit(1)
    return hashes


def resolve_block_bounds(latest_block: Callable[[], int], start_block: Optional[int],
                         end_block: Optional[int], lookback: int = 0) -> BlockRange:
    """Block range for the range-based commands; end defaults to the chain head."""
    try:
        if end_block is None:
            end_block = latest_block()
        if start_block is None:
            start_block = max(0, end_block - lookback)
        return BlockRange(start_block, end_block)
    except (EtherscanAPIError, FetchError, requests.RequestException, ValueError) as e:
        console.print(f"[red]Could not determine block range: {e}[/red]")
        raise typer.Exit(1)


def display_analysis(analysis: DailyAnalysis, eth_price: float,
                     breakdowns: List[ContractBreakdown]):
    """Display results in a rich table."""

    console.print(Panel(
        f"Date: [bold]{analysis.date}[/bold]\n"
        f"ETH Price: [green]{eth_price} USD[/green]",
        title="Transaction Analysis Results",
        expand=False
    ))

    if not analysis.transactions:
        console.print("[yellow]No transactions found for the specified date.[/yellow]")
    else:
        table = Table(title="\nTransactions")

        table.add_column("#", style="cyan", no_wrap=True)
        table.add_column("Transaction Hash", style="yellow", no_wrap=True)
        table.add_column("Block", style="white", justify="right")
        table.add_column("From", style="magenta", no_wrap=True)
        table.add_column("Gas Fee", style="red", justify="right")
        table.add_column("Contract → Wallet", style="green", justify="right")
        table.add_column("Contract → Origin", style="green", justify="right")
        table.add_column("Net Profit", justify="right")

        for i, tx in enumerate(analysis.transactions, 1):
            profit_style = "green" if tx.net_profit >= 0 else "red"
            table.add_row(
                str(i),
                f"{tx.hash[:10]}...",
                f"{tx.block_number:,}",
                f"{tx.from_address[:6]}...{tx.from_address[-4:]}",
                format_ether(tx.gas_fee),
                format_ether(tx.contract_to_wallet_value),
                format_ether(tx.contract_to_origin_value),
                f"[{profit_style}]{format_ether(tx.net_profit)}[/{profit_style}]",
            )

        console.print(table)

    console.print(f"\n[bold]Daily Summary:[/bold]")
    console.print(
        f"Total Transactions: [green]{analysis.total_transactions:,}[/green]")
    console.print(
        f"Total Internal Value: {format_ether(analysis.total_internal_value)} "
        f"({format_usd(analysis.total_internal_value, eth_price)})")
    console.print(
        f"Total Gas Fees: {format_ether(analysis.total_gas_fees)} "
        f"({format_usd(analysis.total_gas_fees, eth_price)})")
    profit_style = "green" if analysis.total_profit >= 0 else "red"
    console.print(
        f"Total Daily Profit: [{profit_style}]{format_ether(analysis.total_profit)}[/{profit_style}] "
        f"({format_usd(analysis.total_profit, eth_price)})")
    console.print(
        f"Profitable Transactions: {analysis.profitable_transactions}/{analysis.total_transactions}")

    for breakdown in breakdowns:
        console.print(f"\n[bold]Contract {breakdown.contract_address}[/bold]")
        console.print(
            f"\tTransactions: {breakdown.total_transactions}/{analysis.total_transactions}")
        console.print(
            f"\tProfit: {format_ether(breakdown.profit)} ({format_usd(breakdown.profit, eth_price)})")


def analysis_to_dict(analysis: DailyAnalysis, eth_price: float) -> dict:
    """Flat JSON-ready view of an analysis. Wei values are decimal strings."""
    return {
        'date': analysis.date,
        'eth_price_usd': eth_price,
        'summary': {
            'total_transactions': analysis.total_transactions,
            'profitable_transactions': analysis.profitable_transactions,
            'total_profit_wei': str(analysis.total_profit),
            'total_gas_fees_wei': str(analysis.total_gas_fees),
            'total_internal_value_wei': str(analysis.total_internal_value),
            'total_profit_eth': str(wei_to_ether(analysis.total_profit)),
        },
        'transactions': [
            {
                'hash': tx.hash,
                'block_number': tx.block_number,
                'timestamp': tx.timestamp,
                'from': tx.from_address,
                'contract': tx.contract_address,
                'gas_fee_wei': str(tx.gas_fee),
                'contract_to_wallet_value_wei': str(tx.contract_to_wallet_value),
                'contract_to_origin_value_wei': str(tx.contract_to_origin_value),
                'total_internal_value_wei': str(tx.total_internal_value),
                'net_profit_wei': str(tx.net_profit),
            }
            for tx in analysis.transactions
        ],
    }


def write_json(data, filepath: str):
    """Write a JSON document, creating parent directories."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as jsonfile:
        json.dump(data, jsonfile, indent=2)


@app.command()
def analyze(
    date: str = typer.Argument(..., help="Date to analyze (format: YYYY-MM-DD)"),
    contract: Optional[str] = typer.Option(
        None, "--contract", "-c", help="Contract address (defaults to CONTRACT_ADDRESS)"),
    wallet: Optional[str] = typer.Option(
        None, "--wallet", "-w", help="Main wallet address (defaults to MAIN_WALLET_ADDRESS)"),
    anchor_hour: Optional[int] = typer.Option(
        None, "--anchor-hour", help="UTC hour at which the daily window starts"),
    inflows: bool = typer.Option(
        False, "--inflows", help="Count internal transfers into the wallet instead of contract transactions"),
    recipient_filter: bool = typer.Option(
        False, "--to-wallet-only", help="Only keep transactions sent to the main wallet"),
    breakdown: Optional[List[str]] = typer.Option(
        None, "--breakdown", "-b", help="Contract address to break profit down by (repeatable)"),
    output_file: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write the analysis as JSON to this path"),
):
    """Analyze a day of contract transactions and report net profit."""

    config = load_config()
    overrides = {}
    if contract:
        overrides["contract_address"] = contract
    if wallet:
        overrides["main_wallet_address"] = wallet
    if anchor_hour is not None:
        overrides["anchor_hour"] = anchor_hour
    config = dataclasses.replace(config, **overrides)

    try:
        breakdown_contracts = [require_address(address, "breakdown contract address")
                               for address in breakdown or []]
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    etherscan_client = EtherscanClient(config)
    aggregator = DailyAggregator(etherscan_client, config)

    console.print("[cyan]Starting Ethereum smart contract analysis[/cyan]")
    if not inflows:
        console.print(f"Contract: [yellow]{config.contract_address}[/yellow]")
    console.print(f"Main Wallet: [yellow]{config.main_wallet_address}[/yellow]")
    console.print(f"Date: {date}")

    try:
        if inflows:
            analysis = aggregator.analyze_wallet_inflows(date)
        else:
            analysis = aggregator.analyze(date, recipient_filter=recipient_filter)
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except ResolutionError as e:
        console.print(f"[red]Error during analysis: {e}[/red]")
        raise typer.Exit(1)

    eth_price = etherscan_client.get_eth_price()
    breakdowns = [breakdown_by_contract(analysis, address)
                  for address in breakdown_contracts]
    display_analysis(analysis, eth_price, breakdowns)

    if output_file:
        write_json(analysis_to_dict(analysis, eth_price), output_file)
        console.print(f"[green]Results exported to {output_file}[/green]")


@app.command()
def transactions(
    contract: str = typer.Argument(..., help="Contract address"),
    start_block: int = typer.Option(..., "--start-block", "-s", help="First block to scan"),
    end_block: Optional[int] = typer.Option(
        None, "--end-block", "-e", help="Last block to scan (defaults to the chain head)"),
    output_file: str = typer.Option(
        "data/transactions.json", "--output", "-o", help="Output file path"),
):
    """Export the hashes of every transaction sent to a contract in a block range."""

    config = load_config()
    try:
        address = require_address(contract, "contract address")
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    etherscan_client = EtherscanClient(config)
    block_range = resolve_block_bounds(etherscan_client.get_latest_block, start_block, end_block)
    console.print(
        f"[cyan]Fetching transactions from {block_range.start_block} to {block_range.end_block}[/cyan]")

    fetcher = TransactionFetcher(etherscan_client, config)
    txs = fetcher.fetch_transactions(address, block_range)
    console.print(f"Fetched [green]{len(txs):,}[/green] transactions")

    write_json([tx.hash for tx in txs], output_file)
    console.print(f"[green]Results exported to {output_file}[/green]")


@app.command()
def logs(
    contract: str = typer.Argument(..., help="Contract address"),
    topic: str = typer.Argument(..., help="Event topic0 hash"),
    start_block: Optional[int] = typer.Option(
        None, "--start-block", "-s", help="First block to scan"),
    end_block: Optional[int] = typer.Option(
        None, "--end-block", "-e", help="Last block to scan (defaults to the chain head)"),
    lookback: int = typer.Option(
        100000, "--lookback", help="Blocks to scan back from the end when no start block is given"),
    source: str = typer.Option(
        "etherscan", "--source", help="Where to read logs from: etherscan or rpc"),
    output_file: str = typer.Option(
        "data/events.json", "--output", "-o", help="Output file path"),
):
    """Export a contract's event logs for one topic."""

    config = load_config()
    try:
        address = require_address(contract, "contract address")
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    etherscan_client = EtherscanClient(config)
    if source == "rpc":
        log_source = Web3Client(config)
    elif source == "etherscan":
        log_source = etherscan_client
    else:
        console.print(f"[yellow]Unsupported log source: {source}[/yellow]")
        raise typer.Exit(1)

    latest_block = (log_source.get_latest_block_number if source == "rpc"
                    else etherscan_client.get_latest_block)
    block_range = resolve_block_bounds(latest_block, start_block, end_block, lookback)

    fetcher = TransactionFetcher(etherscan_client, config, log_source=log_source)
    events = fetcher.fetch_event_logs(address, topic, block_range)
    console.print(f"Fetched [green]{len(events):,}[/green] events")

    write_json([dataclasses.asdict(event) for event in events], output_file)
    console.print(f"[green]Results exported to {output_file}[/green]")


@app.command()
def discover(
    hashes_file: str = typer.Argument(..., help="JSON file holding a list of transaction hashes"),
    output_file: str = typer.Option(
        "data/contracts.json", "--output", "-o", help="Output file path"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", help="Lookups in flight at once"),
):
    """Find the distinct contracts a list of transactions was sent to."""

    config = load_config()
    if concurrency is not None:
        config = dataclasses.replace(config, fan_out_concurrency=concurrency)

    hashes = load_hashes(hashes_file)

    fetcher = TransactionFetcher(EtherscanClient(config), config)
    destinations = fetcher.discover_contracts(hashes)
    failed = sum(1 for address in destinations if not address)
    contracts = distinct_contracts(destinations)

    console.print(
        f"Resolved {len(hashes) - failed}/{len(hashes)} transactions to "
        f"[green]{len(contracts)}[/green] contracts")
    write_json(contracts, output_file)
    console.print(f"[green]Results exported to {output_file}[/green]")


@app.command()
def profits(
    hashes_file: str = typer.Argument(..., help="JSON file holding a list of transaction hashes"),
    output_file: str = typer.Option(
        "data/profits.json", "--output", "-o", help="Output file path"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", help="Lookups in flight at once"),
):
    """Fetch EigenPhi MEV profit figures (USD) for a list of transactions."""

    config = load_config()
    hashes = load_hashes(hashes_file)

    results = fetch_transaction_profits(
        EigenPhiClient(config), hashes,
        concurrency=concurrency or config.fan_out_concurrency)

    console.print(
        f"Fetched profits for [green]{len(results)}[/green]/{len(hashes)} transactions")
    write_json([dataclasses.asdict(result) for result in results], output_file)
    console.print(f"[green]Results exported to {output_file}[/green]")


@app.command()
def setup():
    """Setup the application by creating a .env file template."""
    env_content = """# Contract Profit Tracker Configuration

# Required: Etherscan API Key (get from https://etherscan.io/apis)
ETHERSCAN_API_KEY=your_etherscan_api_key_here

# Addresses analysed by default
MAIN_WALLET_ADDRESS=
CONTRACT_ADDRESS=

# Optional: JSON-RPC endpoint for `logs --source rpc`
# RPC_URL=https://eth.llamarpc.com

# Optional: EigenPhi transaction analytics for `profits`
# EIGENPHI_BASE_URL=https://storage.googleapis.com/eigenphi-ethereum-tx

# Analysis Settings
ANCHOR_HOUR=14
TX_BATCH_SIZE=10000
LOG_BATCH_SIZE=1000
FAN_OUT_CONCURRENCY=100
RETRY_DELAY=1.0
RATE_LIMIT_DELAY=0.2
LOG_LEVEL=WARNING
"""

    env_path = Path(".env")
    if env_path.exists():
        console.print("[yellow].env file already exists![/yellow]")
        if not typer.confirm("Overwrite existing .env file?"):
            return

    with open(env_path, 'w') as f:
        f.write(env_content)

    console.print(f"[green]Created .env file at {env_path.absolute()}[/green]")
    console.print(
        "\n[yellow]Please edit the .env file and add your API key:[/yellow]")
    console.print("1. Get an Etherscan API key from https://etherscan.io/apis")
    console.print(
        "2. Replace 'your_etherscan_api_key_here' with your real key")
    console.print("3. Set MAIN_WALLET_ADDRESS and CONTRACT_ADDRESS")
    console.print("4. Run: profit-tracker analyze 2025-09-10")


if __name__ == "__main__":
    app()
