"""Read-only views over the price-history event store.

Every query goes through the store's ascending per-pixel lookup and is safe
on an empty, not-yet-initialised or unavailable store.
"""

from pixel_market.apps.price_history.models import EventType, PriceChangeEvent, PriceStats
from pixel_market.apps.price_history.protocols import EventStore


class PriceHistoryQueries:
    """Per-pixel history and sale statistics.

    Args:
        store: Event store to read from.

    """

    def __init__(self, store: EventStore) -> None:
        """Initialize the query layer over ``store``."""
        self._store = store

    async def get_price_history(self, pixel_id: int) -> list[PriceChangeEvent]:
        """Return every recorded change for a pixel, oldest first."""
        return await self._store.get_by_pixel(pixel_id)

    async def get_price_history_by_type(
        self, pixel_id: int, event_type: EventType
    ) -> list[PriceChangeEvent]:
        """Return a pixel's changes of one kind, oldest first."""
        return await self._store.get_by_pixel(pixel_id, event_type)

    async def get_latest_price(self, pixel_id: int) -> PriceChangeEvent | None:
        """Return the most recent change for a pixel, or ``None`` if there is none."""
        history = await self.get_price_history(pixel_id)
        return history[-1] if history else None

    async def get_price_stats(self, pixel_id: int) -> PriceStats:
        """Summarise a pixel's sale prices.

        Only ``SALE`` records count; listings and withdrawals are ignored.
        The average is floor division of the summed prices by the number of
        sales, so it is exact integer wei.

        Args:
            pixel_id: Grid cell to summarise.

        Returns:
            Minimum, maximum and average sale price plus the sale count;
            all zero when the pixel has never sold.

        """
        sales = await self.get_price_history_by_type(pixel_id, EventType.SALE)
        if not sales:
            return PriceStats()

        prices = [sale.price_wei for sale in sales]
        return PriceStats(
            min_price=min(prices),
            max_price=max(prices),
            avg_price=sum(prices) // len(prices),
            total_sales=len(prices),
        )
