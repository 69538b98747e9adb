"""CLI commands for reading a pixel's cached price history.

Show the full history (optionally one event kind), the sale-price summary,
or the latest recorded change for a pixel. These commands only read the
local cache; run ``backfill`` or ``index`` to populate it.
"""

import asyncio
from typing import Annotated

import typer

from pixel_market.apps.price_history.cli._helpers import (
    echo_event_table,
    format_timestamp,
    load_indexer_config,
    parse_event_type,
    resolve_pixel_id,
)
from pixel_market.apps.price_history.models import EventType, PriceChangeEvent, PriceStats
from pixel_market.apps.price_history.queries import PriceHistoryQueries
from pixel_market.apps.price_history.repository import open_event_store
from pixel_market.core.units import format_ether

PixelArg = Annotated[int | None, typer.Argument(help="Pixel ID (0-20735)")]
XOption = Annotated[int | None, typer.Option("--x", help="Pixel column (0-191)")]
YOption = Annotated[int | None, typer.Option("--y", help="Pixel row (0-107)")]
DbUrlOption = Annotated[
    str | None, typer.Option(help="SQLAlchemy async DB URL (defaults to settings)")
]


def history(
    pixel_id: PixelArg = None,
    x: XOption = None,
    y: YOption = None,
    event_type: Annotated[
        str | None, typer.Option("--type", help="Only show listed, sale or removed events")
    ] = None,
    db_url: DbUrlOption = None,
) -> None:
    """Display every recorded price change for a pixel, oldest first."""
    pid = resolve_pixel_id(pixel_id, x, y)
    kind = parse_event_type(event_type)
    config = load_indexer_config(db_url=db_url)
    records = asyncio.run(_history(config.db_url, pid, kind))

    if not records:
        typer.echo(f"No history for pixel #{pid}.")
        return
    typer.echo(f"\nPrice history for pixel #{pid} ({len(records)} events)\n")
    echo_event_table(records)


def stats(
    pixel_id: PixelArg = None,
    x: XOption = None,
    y: YOption = None,
    db_url: DbUrlOption = None,
) -> None:
    """Display the lowest, highest and average sale price for a pixel."""
    pid = resolve_pixel_id(pixel_id, x, y)
    config = load_indexer_config(db_url=db_url)
    summary = asyncio.run(_stats(config.db_url, pid))

    typer.echo(f"\nSale statistics for pixel #{pid}")
    typer.echo(f"Lowest:      {format_ether(summary.min_price)} ETH")
    typer.echo(f"Highest:     {format_ether(summary.max_price)} ETH")
    typer.echo(f"Average:     {format_ether(summary.avg_price)} ETH")
    typer.echo(f"Total sales: {summary.total_sales}")


def latest(
    pixel_id: PixelArg = None,
    x: XOption = None,
    y: YOption = None,
    db_url: DbUrlOption = None,
) -> None:
    """Display the most recent price change for a pixel."""
    pid = resolve_pixel_id(pixel_id, x, y)
    config = load_indexer_config(db_url=db_url)
    event = asyncio.run(_latest(config.db_url, pid))

    if event is None:
        typer.echo(f"No history for pixel #{pid}.")
        return
    typer.echo(f"Pixel #{pid}: {event.event_type.value} at {format_ether(event.price_wei)} ETH")
    typer.echo(f"Time:  {format_timestamp(event.timestamp)} UTC")
    if event.block_number is not None:
        typer.echo(f"Block: #{event.block_number}")
    if event.tx_hash:
        typer.echo(f"Tx:    {event.tx_hash}")


async def _history(
    db_url: str, pixel_id: int, event_type: EventType | None
) -> list[PriceChangeEvent]:
    store = open_event_store(db_url)
    try:
        queries = PriceHistoryQueries(store)
        if event_type is None:
            return await queries.get_price_history(pixel_id)
        return await queries.get_price_history_by_type(pixel_id, event_type)
    finally:
        await store.close()


async def _stats(db_url: str, pixel_id: int) -> PriceStats:
    store = open_event_store(db_url)
    try:
        return await PriceHistoryQueries(store).get_price_stats(pixel_id)
    finally:
        await store.close()


async def _latest(db_url: str, pixel_id: int) -> PriceChangeEvent | None:
    store = open_event_store(db_url)
    try:
        return await PriceHistoryQueries(store).get_latest_price(pixel_id)
    finally:
        await store.close()
