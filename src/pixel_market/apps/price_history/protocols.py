"""Structural protocol for price-history event stores.

Define the ``EventStore`` interface shared by the SQLAlchemy-backed
repository and the unavailable (no persistence) variant, so the ingestion
pipeline and the query layer depend on the shape, not a concrete class.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pixel_market.apps.price_history.models import EventType, PriceChangeEvent


@runtime_checkable
class EventStore(Protocol):
    """Durable, indexed table of ``PriceChangeEvent`` records.

    Implementors key each record by ``PriceChangeEvent.key``; writing an
    event whose key already exists replaces the stored record.
    """

    @property
    def available(self) -> bool:
        """Return whether the store persists anything at all."""
        ...

    async def init_db(self) -> None:
        """Prepare the underlying storage; idempotent."""
        ...

    async def put(self, event: PriceChangeEvent) -> None:
        """Insert or overwrite one record."""
        ...

    async def put_many(self, events: Sequence[PriceChangeEvent]) -> None:
        """Insert or overwrite several records in one transaction."""
        ...

    async def get_by_pixel(
        self, pixel_id: int, event_type: EventType | None = None
    ) -> list[PriceChangeEvent]:
        """Return a pixel's records in ascending timestamp order."""
        ...

    async def get_all(self) -> list[PriceChangeEvent]:
        """Return every stored record, in no particular order."""
        ...

    async def count(self) -> int:
        """Return the number of stored records."""
        ...

    async def close(self) -> None:
        """Release any resources held by the store."""
        ...
