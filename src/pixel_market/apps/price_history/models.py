"""Domain models for the price-history cache.

Define the ``PriceChangeEvent`` record produced by ingestion and stored by
the event store, the ``EventType`` tag that distinguishes listings, sales
and withdrawn listings, and the ``PriceStats`` summary served to callers.
All prices are integer wei with no unit conversion.
"""

from dataclasses import dataclass
from enum import Enum


class EventType(Enum):
    """Kind of price change recorded for a pixel."""

    LISTED = "listed"
    SALE = "sale"
    REMOVED = "removed"


@dataclass(frozen=True)
class PriceChangeEvent:
    """One normalized price change for a pixel.

    Attributes:
        pixel_id: Grid cell / token id.
        timestamp: Block time in epoch milliseconds.
        price_wei: Price in wei, verbatim from the contract event.
        event_type: Whether the pixel was listed, sold, or delisted.
        from_address: Lister (for listings) or seller (for sales).
        to_address: Buyer; only present for sales.
        block_number: Height of the block that emitted the event.
        tx_hash: ``0x``-prefixed hash of the emitting transaction.

    """

    pixel_id: int
    timestamp: int
    price_wei: int
    event_type: EventType
    from_address: str | None = None
    to_address: str | None = None
    block_number: int | None = None
    tx_hash: str | None = None

    @property
    def key(self) -> str:
        """Return the composite identity ``"{pixel_id}-{timestamp}-{block_number}"``.

        A missing block number counts as 0. Two events sharing a key are
        the same record; storing the second overwrites the first. The log
        index is not part of the key, so two changes to one pixel in the
        same block collapse into one record.
        """
        return f"{self.pixel_id}-{self.timestamp}-{self.block_number or 0}"


@dataclass(frozen=True)
class PriceStats:
    """Sale-price summary for a pixel, in wei.

    All fields are zero when the pixel has never sold.
    """

    min_price: int = 0
    max_price: int = 0
    avg_price: int = 0
    total_sales: int = 0
