"""Async event stores for the price-history cache.

``PriceHistoryRepository`` wraps a SQLAlchemy async engine and session
factory. Schema creation is deferred to the first operation and runs exactly
once: every caller that arrives while it is in flight awaits the same task
and sees the same outcome. ``UnavailableEventStore`` stands in where no
database is configured; it answers every read with nothing and drops every
write. The repository is database-agnostic, so swapping SQLite for
PostgreSQL is a connection-string change.
"""

import asyncio
import logging
from collections.abc import Sequence

from sqlalchemy import Insert, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pixel_market.apps.price_history.models import EventType, PriceChangeEvent
from pixel_market.apps.price_history.protocols import EventStore
from pixel_market.apps.price_history.schema import Base, PriceChangeRow

logger = logging.getLogger(__name__)

_NATIVE_UPSERTS = {"sqlite": sqlite_insert, "postgresql": postgresql_insert}


class PriceHistoryRepository:
    """SQLAlchemy-backed store of price change records.

    Args:
        db_url: SQLAlchemy async connection string
            (e.g. ``sqlite+aiosqlite:///price_history.db``).

    """

    def __init__(self, db_url: str) -> None:
        """Initialize the repository with an async database engine.

        No connection is opened until the first operation.

        Args:
            db_url: SQLAlchemy async connection string.

        """
        self._engine: AsyncEngine = create_async_engine(db_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        self._schema_task: asyncio.Future[None] | None = None

    @property
    def available(self) -> bool:
        """Return True; a repository always has a database behind it."""
        return True

    async def init_db(self) -> None:
        """Create the table and its indexes if they do not already exist.

        Idempotent and safe to call concurrently with any other operation.
        """
        await self._ensure_schema()

    async def _ensure_schema(self) -> None:
        """Run schema creation once and share its outcome with every caller.

        The task is shielded so a cancelled caller does not abort creation
        for the others still waiting on it.
        """
        if self._schema_task is None:
            self._schema_task = asyncio.ensure_future(self._create_schema())
        await asyncio.shield(self._schema_task)

    async def _create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Price history tables initialised")

    async def put(self, event: PriceChangeEvent) -> None:
        """Insert ``event``, replacing any stored record with the same key.

        Args:
            event: Normalized price change to persist.

        """
        await self.put_many([event])

    async def put_many(self, events: Sequence[PriceChangeEvent]) -> None:
        """Upsert a batch of records in a single transaction.

        Later events in the batch win over earlier ones with the same key.
        On SQLite and PostgreSQL the write is a single
        ``INSERT ... ON CONFLICT DO UPDATE``, so batches written
        concurrently from separate sessions may share keys.

        Args:
            events: Normalized price changes to persist.

        """
        if not events:
            return
        await self._ensure_schema()
        latest = list({event.key: event for event in events}.values())

        statement = self._upsert_statement()
        if statement is None:
            await self._merge_events(latest)
        else:
            rows = [PriceChangeRow.values_from_event(event) for event in latest]
            async with self._session_factory() as session, session.begin():
                await session.execute(statement, rows)
        logger.debug("Upserted %d price change records", len(latest))

    def _upsert_statement(self) -> Insert | None:
        """Build the native upsert for this dialect, or None if it has none."""
        insert = _NATIVE_UPSERTS.get(self._engine.dialect.name)
        if insert is None:
            return None
        table = PriceChangeRow.__table__
        stmt = insert(table)
        updates = {col.name: stmt.excluded[col.name] for col in table.columns if not col.primary_key}
        return stmt.on_conflict_do_update(index_elements=["key"], set_=updates)

    async def _merge_events(self, events: list[PriceChangeEvent]) -> None:
        """Upsert through the ORM on dialects without ON CONFLICT.

        A concurrent writer can insert a key between the merge's SELECT and
        INSERT; the batch is then merged again, now finding those rows.
        """
        try:
            await self._merge_once(events)
        except IntegrityError:
            logger.debug("Concurrent insert on merge, retrying batch of %d", len(events))
            await self._merge_once(events)

    async def _merge_once(self, events: list[PriceChangeEvent]) -> None:
        async with self._session_factory() as session, session.begin():
            for event in events:
                await session.merge(PriceChangeRow.from_event(event))

    async def get_by_pixel(
        self, pixel_id: int, event_type: EventType | None = None
    ) -> list[PriceChangeEvent]:
        """Return a pixel's records ordered by timestamp ascending.

        Records that share a timestamp are ordered by block number.

        Args:
            pixel_id: Grid cell to look up.
            event_type: Restrict the result to one kind of change.

        Returns:
            The matching records; empty if the pixel has no history.

        """
        await self._ensure_schema()
        stmt = select(PriceChangeRow).where(PriceChangeRow.pixel_id == pixel_id)
        if event_type is not None:
            stmt = stmt.where(PriceChangeRow.event_type == event_type.value)
        stmt = stmt.order_by(PriceChangeRow.timestamp, PriceChangeRow.block_number)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_event() for row in result.scalars().all()]

    async def get_all(self) -> list[PriceChangeEvent]:
        """Return every stored record, in no guaranteed order."""
        await self._ensure_schema()
        async with self._session_factory() as session:
            result = await session.execute(select(PriceChangeRow))
            return [row.to_event() for row in result.scalars().all()]

    async def count(self) -> int:
        """Return the total number of stored records."""
        await self._ensure_schema()
        stmt = select(func.count()).select_from(PriceChangeRow)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    async def close(self) -> None:
        """Dispose the async engine and release all connections."""
        await self._engine.dispose()
        logger.info("Database engine disposed")


class UnavailableEventStore:
    """Event store for environments without persistent storage.

    Every read returns an empty result and every write is silently dropped,
    so the pipeline and query layer keep working with nothing cached.
    """

    @property
    def available(self) -> bool:
        """Return False; nothing is ever persisted."""
        return False

    async def init_db(self) -> None:
        """Do nothing; there is no schema to create."""

    async def put(self, event: PriceChangeEvent) -> None:  # noqa: ARG002
        """Drop the event."""

    async def put_many(self, events: Sequence[PriceChangeEvent]) -> None:  # noqa: ARG002
        """Drop the events."""

    async def get_by_pixel(
        self,
        pixel_id: int,  # noqa: ARG002
        event_type: EventType | None = None,  # noqa: ARG002
    ) -> list[PriceChangeEvent]:
        """Return an empty history."""
        return []

    async def get_all(self) -> list[PriceChangeEvent]:
        """Return no records."""
        return []

    async def count(self) -> int:
        """Return zero."""
        return 0

    async def close(self) -> None:
        """Do nothing; no resources are held."""


def open_event_store(db_url: str | None) -> EventStore:
    """Build the event store for a connection string.

    Args:
        db_url: SQLAlchemy async URL, or ``None``/empty to run without
            persistence.

    Returns:
        A ``PriceHistoryRepository`` when a URL is given, otherwise an
        ``UnavailableEventStore``.

    """
    if not db_url:
        logger.warning("No database configured; price history will not be persisted")
        return UnavailableEventStore()
    return PriceHistoryRepository(db_url)
