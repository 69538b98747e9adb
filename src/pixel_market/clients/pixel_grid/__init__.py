"""Read-only async client for the PixelGrid marketplace contract."""

from pixel_market.clients.pixel_grid.client import PixelGridClient
from pixel_market.clients.pixel_grid.exceptions import (
    ContractNotDeployedError,
    PixelGridError,
    PixelGridRPCError,
)

__all__ = [
    "ContractNotDeployedError",
    "PixelGridClient",
    "PixelGridError",
    "PixelGridRPCError",
]
