"""CLI entry point for the price-history app.

Expose the Typer app and the ``main`` console-script entry point. All
command logic lives in the cli subpackage.
"""

from pixel_market.apps.price_history.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the price-history CLI application."""
    app()


if __name__ == "__main__":
    main()
