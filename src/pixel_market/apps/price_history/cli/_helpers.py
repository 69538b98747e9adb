"""Shared helpers for price-history CLI commands.

Centralise what every command needs at the user boundary: logging setup,
configuration loading, pixel-id validation, and table formatting.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import typer

from pixel_market.apps.price_history.config import IndexerConfig
from pixel_market.apps.price_history.models import EventType, PriceChangeEvent
from pixel_market.core.config import ConfigError, get_config
from pixel_market.core.grid import pixel_id_from_coordinates, validate_pixel_id
from pixel_market.core.units import format_ether

_TX_HASH_PREFIX = 10
_EVENT_LABELS = {
    EventType.SALE: "Sale",
    EventType.LISTED: "Listed",
    EventType.REMOVED: "Removed",
}


def configure_logging(*, verbose: bool) -> None:
    """Configure root logging; DEBUG with ``verbose``, INFO otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_indexer_config(**overrides: Any) -> IndexerConfig:
    """Load the indexer configuration, applying CLI overrides.

    Abort with exit code 1 if the settings files cannot be resolved.

    Args:
        **overrides: Field values from CLI options; ``None`` means unset.

    Returns:
        The merged configuration.

    """
    try:
        return IndexerConfig.from_loader(get_config(), **overrides)
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def resolve_pixel_id(pixel_id: int | None, x: int | None, y: int | None) -> int:
    """Turn a pixel id or an ``x``/``y`` pair into a validated pixel id.

    Abort with exit code 1 when neither or both forms are given, or when
    the pixel lies off the grid.

    Args:
        pixel_id: Explicit pixel id argument.
        x: Column option.
        y: Row option.

    Returns:
        A pixel id in ``[0, PIXEL_COUNT)``.

    """
    has_coordinates = x is not None or y is not None
    if (pixel_id is None) == (not has_coordinates):
        typer.echo("Error: specify either PIXEL_ID or both --x and --y", err=True)
        raise typer.Exit(code=1)
    try:
        if pixel_id is not None:
            return validate_pixel_id(pixel_id)
        if x is None or y is None:
            msg = "both --x and --y are required"
            raise ValueError(msg)
        return pixel_id_from_coordinates(x, y)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def parse_event_type(value: str | None) -> EventType | None:
    """Parse an ``--type`` option value, aborting on unknown kinds."""
    if value is None:
        return None
    try:
        return EventType(value.lower())
    except ValueError as exc:
        choices = ", ".join(t.value for t in EventType)
        typer.echo(f"Error: unknown event type {value!r} (choose from {choices})", err=True)
        raise typer.Exit(code=1) from exc


def format_timestamp(timestamp_ms: int) -> str:
    """Render epoch milliseconds as a UTC date-time string."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


def echo_event_table(history: list[PriceChangeEvent]) -> None:
    """Print records as a fixed-width table of type, price, time, block and tx."""
    typer.echo(f"{'Type':<8} {'Price (ETH)':>22} {'Time (UTC)':<20} {'Block':>10}  Tx")
    typer.echo("-" * 80)
    for event in history:
        block = f"#{event.block_number}" if event.block_number is not None else "-"
        tx = f"{event.tx_hash[:_TX_HASH_PREFIX]}..." if event.tx_hash else "-"
        typer.echo(
            f"{_EVENT_LABELS[event.event_type]:<8} "
            f"{format_ether(event.price_wei):>22} "
            f"{format_timestamp(event.timestamp):<20} "
            f"{block:>10}  {tx}"
        )
