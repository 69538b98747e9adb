"""CLI commands for populating the price-history cache.

``index`` runs the long-lived indexer service (backfill plus live feed
until interrupted); ``backfill`` scans a recent block window once and
exits.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from pixel_market.apps.price_history.cli._helpers import configure_logging, load_indexer_config
from pixel_market.apps.price_history.config import IndexerConfig
from pixel_market.apps.price_history.indexer import PriceHistoryIndexer, run_backfill
from pixel_market.clients.pixel_grid.exceptions import PixelGridError

RpcUrlOption = Annotated[str | None, typer.Option(help="HTTP JSON-RPC endpoint of the chain node")]
ContractOption = Annotated[str | None, typer.Option("--contract", help="PixelGrid contract address")]
AbiOption = Annotated[Path | None, typer.Option(help="ABI or build-artifact JSON file")]
DbUrlOption = Annotated[str | None, typer.Option(help="SQLAlchemy async DB URL")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]


def _require_chain(config: IndexerConfig) -> None:
    if not config.chain_configured:
        typer.echo(
            "Error: set PIXEL_GRID_RPC_URL and PIXEL_GRID_ADDRESS (or --rpc-url and --contract)",
            err=True,
        )
        raise typer.Exit(code=1)


def index(
    rpc_url: RpcUrlOption = None,
    contract: ContractOption = None,
    abi_path: AbiOption = None,
    db_url: DbUrlOption = None,
    window: Annotated[
        int | None, typer.Option(help="Blocks behind the head to backfill on start")
    ] = None,
    poll_interval: Annotated[
        float | None, typer.Option(help="Seconds between checks for new blocks")
    ] = None,
    verbose: VerboseOption = False,  # noqa: FBT002
) -> None:
    """Run the price-history indexer until interrupted.

    Backfill recent listings and sales, then follow the chain head and
    store new events as they are mined. Stop with Ctrl-C.
    """
    configure_logging(verbose=verbose)
    config = load_indexer_config(
        rpc_url=rpc_url,
        contract_address=contract,
        abi_path=abi_path,
        db_url=db_url,
        backfill_window=window,
        poll_interval_seconds=poll_interval,
    )
    _require_chain(config)

    typer.echo(f"Starting price history indexer (db: {config.db_url})")
    typer.echo(f"Contract: {config.contract_address} via {config.rpc_url}")
    try:
        indexer = PriceHistoryIndexer(config)
    except (PixelGridError, ValueError, OSError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    asyncio.run(indexer.run())


def backfill(
    rpc_url: RpcUrlOption = None,
    contract: ContractOption = None,
    abi_path: AbiOption = None,
    db_url: DbUrlOption = None,
    window: Annotated[int | None, typer.Option(help="Blocks behind the head to scan")] = None,
    verbose: VerboseOption = False,  # noqa: FBT002
) -> None:
    """Load recent listing and sale events into the cache once and exit."""
    configure_logging(verbose=verbose)
    config = load_indexer_config(
        rpc_url=rpc_url,
        contract_address=contract,
        abi_path=abi_path,
        db_url=db_url,
    )
    _require_chain(config)

    try:
        result = asyncio.run(run_backfill(config, window_size=window))
    except (PixelGridError, ValueError, OSError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if not result.succeeded:
        typer.echo(f"Error: {result.message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(result.message)
