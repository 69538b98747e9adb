"""CLI subpackage for the price-history app.

Create the Typer application and register all command modules.
"""

import typer

from pixel_market.apps.price_history.cli.chart_cmd import chart
from pixel_market.apps.price_history.cli.history_cmd import history, latest, stats
from pixel_market.apps.price_history.cli.index_cmd import backfill, index

app = typer.Typer(help="PixelGrid price-history indexer and queries")

app.command()(index)
app.command()(backfill)
app.command()(history)
app.command()(stats)
app.command()(latest)
app.command()(chart)

__all__ = ["app"]
