# pyright: reportMissingTypeStubs=false, reportUnknownMemberType=false, reportUnknownArgumentType=false, reportUnknownVariableType=false
"""Interactive Plotly chart of a pixel's price history.

Plot every recorded change for one pixel as a price line over time, with
sales, listings and withdrawn listings marked separately. Prices are shown
in ether. Uses a dark theme and can be opened in the browser or saved to an
HTML file.
"""

from __future__ import annotations

import tempfile
import webbrowser
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import plotly.graph_objects as go

from pixel_market.apps.price_history.models import EventType
from pixel_market.core.units import wei_to_ether

if TYPE_CHECKING:
    from pathlib import Path

    from pixel_market.apps.price_history.models import PriceChangeEvent

_BG_COLOR = "#000000"
_PAPER_COLOR = "#111827"
_GRID_COLOR = "#374151"
_TEXT_COLOR = "#9ca3af"
_LINE_COLOR = "#8884d8"

_MARKER_STYLES: dict[EventType, tuple[str, str, str]] = {
    EventType.SALE: ("Sale", "#00c853", "circle"),
    EventType.LISTED: ("Listed", "#3b82f6", "diamond"),
    EventType.REMOVED: ("Removed", "#9ca3af", "x"),
}


def build_price_series(history: list[PriceChangeEvent]) -> tuple[list[datetime], list[float]]:
    """Convert records into parallel time and ether-price lists, oldest first.

    Args:
        history: Price change records for one pixel, in any order.

    Returns:
        A tuple of (UTC datetimes, prices in ether).

    """
    ordered = sorted(history, key=lambda e: e.timestamp)
    times = [datetime.fromtimestamp(e.timestamp / 1000, tz=UTC) for e in ordered]
    prices = [float(wei_to_ether(e.price_wei)) for e in ordered]
    return times, prices


def _apply_dark_theme(fig: go.Figure) -> go.Figure:
    fig.update_layout(
        template="plotly_dark",
        plot_bgcolor=_BG_COLOR,
        paper_bgcolor=_PAPER_COLOR,
        font_color=_TEXT_COLOR,
        legend={"bgcolor": "rgba(0,0,0,0)"},
        margin={"l": 60, "r": 30, "t": 50, "b": 40},
    )
    fig.update_xaxes(gridcolor=_GRID_COLOR, zeroline=False)
    fig.update_yaxes(gridcolor=_GRID_COLOR, zeroline=False)
    return fig


def create_price_history_chart(history: list[PriceChangeEvent], pixel_id: int) -> go.Figure:
    """Create a line chart of a pixel's price over time.

    Draw one line through every recorded price, then overlay a marker
    trace per event kind so sales stand out from listings.

    Args:
        history: Price change records for the pixel.
        pixel_id: Pixel the records belong to, used in the title.

    Returns:
        A Plotly ``Figure`` with the price line and event markers.

    Raises:
        ValueError: If ``history`` is empty.

    """
    if not history:
        msg = f"Cannot create price chart: no transactions for pixel {pixel_id}"
        raise ValueError(msg)

    times, prices = build_price_series(history)

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=times,
            y=prices,
            mode="lines",
            name="Price (ETH)",
            line={"color": _LINE_COLOR, "width": 2},
        )
    )
    for event_type, (label, color, symbol) in _MARKER_STYLES.items():
        subset = [e for e in history if e.event_type is event_type]
        if not subset:
            continue
        sub_times, sub_prices = build_price_series(subset)
        fig.add_trace(
            go.Scatter(
                x=sub_times,
                y=sub_prices,
                mode="markers",
                name=label,
                marker={"color": color, "symbol": symbol, "size": 9},
            )
        )
    fig.update_layout(
        title=f"Price History: Pixel #{pixel_id}",
        xaxis_title="Time",
        yaxis_title="Price (ETH)",
    )
    return _apply_dark_theme(fig)


def show_chart(fig: go.Figure) -> None:
    """Write the figure to a temporary HTML file and open it in the browser.

    The temp file is not deleted, so the browser can finish loading it.
    """
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".html", delete=False, prefix="price_history_"
    ) as tmp:
        tmp.write(fig.to_html(full_html=True, include_plotlyjs="cdn"))
        tmp_path = tmp.name

    webbrowser.open(f"file://{tmp_path}")


def save_chart(fig: go.Figure, output_path: Path) -> None:
    """Save the figure to an HTML file.

    Args:
        fig: Chart to save.
        output_path: Destination file path. Must have a ``.html`` suffix.

    Raises:
        ValueError: If the output path does not end with ``.html``.

    """
    if output_path.suffix.lower() != ".html":
        msg = f"Output path must end with .html, got: {output_path}"
        raise ValueError(msg)
    output_path.write_text(fig.to_html(full_html=True, include_plotlyjs="cdn"))
