"""CLI command for charting a pixel's price history."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from pixel_market.apps.price_history.charts import (
    create_price_history_chart,
    save_chart,
    show_chart,
)
from pixel_market.apps.price_history.cli._helpers import load_indexer_config, resolve_pixel_id
from pixel_market.apps.price_history.models import PriceChangeEvent
from pixel_market.apps.price_history.queries import PriceHistoryQueries
from pixel_market.apps.price_history.repository import open_event_store


def chart(
    pixel_id: Annotated[int | None, typer.Argument(help="Pixel ID (0-20735)")] = None,
    x: Annotated[int | None, typer.Option("--x", help="Pixel column (0-191)")] = None,
    y: Annotated[int | None, typer.Option("--y", help="Pixel row (0-107)")] = None,
    output: Annotated[
        Path | None, typer.Option(help="Save the chart to this .html file instead of opening it")
    ] = None,
    db_url: Annotated[
        str | None, typer.Option(help="SQLAlchemy async DB URL (defaults to settings)")
    ] = None,
) -> None:
    """Plot a pixel's price history and open or save it as HTML."""
    pid = resolve_pixel_id(pixel_id, x, y)
    config = load_indexer_config(db_url=db_url)
    records = asyncio.run(_load(config.db_url, pid))

    try:
        fig = create_price_history_chart(records, pid)
        if output is not None:
            save_chart(fig, output)
            typer.echo(f"Chart saved to {output}")
        else:
            show_chart(fig)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


async def _load(db_url: str, pixel_id: int) -> list[PriceChangeEvent]:
    store = open_event_store(db_url)
    try:
        return await PriceHistoryQueries(store).get_price_history(pixel_id)
    finally:
        await store.close()
