"""Main orchestrator for the price-history indexer service.

Own the event store, the contract client and the ingestion pipeline for one
indexing session. On start, backfill recent history while following the
chain head; log a heartbeat at a fixed interval; on SIGINT/SIGTERM stop the
live feed and release the client and database before returning.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pixel_market.apps.price_history.ingestion import IngestionPipeline, LiveSubscription
from pixel_market.apps.price_history.repository import open_event_store
from pixel_market.clients.pixel_grid.abi import load_abi
from pixel_market.clients.pixel_grid.client import PixelGridClient

if TYPE_CHECKING:
    from pixel_market.apps.price_history.config import IndexerConfig
    from pixel_market.apps.price_history.protocols import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackfillResult:
    """Outcome of a one-shot backfill.

    Attributes:
        written: Number of events stored.
        message: Status or error message for display.
        succeeded: Whether the scan completed without error.

    """

    written: int
    message: str
    succeeded: bool


def build_client(config: IndexerConfig) -> PixelGridClient | None:
    """Create the contract client described by ``config``.

    Args:
        config: Indexer configuration.

    Returns:
        A client, or ``None`` when no RPC URL or contract address is set.

    Raises:
        PixelGridError: If the contract address is malformed.
        ValueError: If the configured ABI file is unusable.

    """
    if not config.chain_configured:
        logger.warning("No RPC URL or contract address configured; chain access disabled")
        return None
    abi = load_abi(config.abi_path) if config.abi_path is not None else None
    return PixelGridClient(
        config.rpc_url,
        config.contract_address,
        abi=abi,
        max_block_range=config.max_block_range,
    )


async def run_backfill(
    config: IndexerConfig,
    *,
    window_size: int | None = None,
    store: EventStore | None = None,
    client: PixelGridClient | None = None,
) -> BackfillResult:
    """Run a single backfill and release every resource afterwards.

    Args:
        config: Indexer configuration.
        window_size: Blocks behind the head to scan; defaults to
            ``config.backfill_window``.
        store: Event store to write to; opened from ``config`` if omitted.
        client: Contract client; built from ``config`` if omitted.

    Returns:
        How many events were written and whether the scan succeeded.

    """
    store = store if store is not None else open_event_store(config.db_url)
    client = client if client is not None else build_client(config)
    pipeline = IngestionPipeline(store, client, backfill_window=config.backfill_window)
    try:
        if client is None:
            return BackfillResult(0, "Chain access is not configured", succeeded=False)
        written = await pipeline.backfill_history(window_size)
        return BackfillResult(written, pipeline.message, succeeded=pipeline.last_error is None)
    finally:
        if client is not None:
            await client.close()
        await store.close()


class PriceHistoryIndexer:
    """Long-running service keeping the price-history cache current.

    Args:
        config: Immutable indexer configuration.
        store: Event store to use instead of opening ``config.db_url``.
        client: Contract client to use instead of building one from
            ``config``.

    """

    def __init__(
        self,
        config: IndexerConfig,
        *,
        store: EventStore | None = None,
        client: PixelGridClient | None = None,
    ) -> None:
        """Initialize the indexer; nothing is opened until ``run()``."""
        self._config = config
        self._store = store if store is not None else open_event_store(config.db_url)
        self._client = client if client is not None else build_client(config)
        self._pipeline = IngestionPipeline(
            self._store,
            self._client,
            backfill_window=config.backfill_window,
            poll_interval_seconds=config.poll_interval_seconds,
        )
        self._shutdown = asyncio.Event()
        self._ingested_at_heartbeat = 0

    @property
    def pipeline(self) -> IngestionPipeline:
        """Return the ingestion pipeline, for status display."""
        return self._pipeline

    async def run(self) -> None:
        """Index until a shutdown signal arrives.

        Steps:
            1. Create the database schema.
            2. Check the contract, start the live feed and backfill history.
            3. Log heartbeats until SIGINT/SIGTERM.
            4. Stop the feed, close the client and dispose the database.

        """
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, self.request_shutdown)
        loop.add_signal_handler(signal.SIGTERM, self.request_shutdown)

        subscription = LiveSubscription()
        heartbeat_task: asyncio.Task[None] | None = None
        try:
            await self._store.init_db()
            if not self._pipeline.enabled:
                logger.error("Chain access is not configured; nothing to index")
                return

            heartbeat_task = asyncio.create_task(self._periodic_heartbeat())
            subscription = await self._pipeline.activate()
            if not subscription.active:
                logger.error("Live event feed is not running: %s", self._pipeline.message)
                return

            logger.info("Price history indexer running (%s)", self._pipeline.message)
            await self._shutdown.wait()
        finally:
            if heartbeat_task is not None:
                heartbeat_task.cancel()
            subscription.stop()
            self._pipeline.stop()
            await subscription.wait_closed()
            if heartbeat_task is not None:
                await asyncio.gather(heartbeat_task, return_exceptions=True)
            if self._client is not None:
                await self._client.close()
            await self._store.close()
            logger.info(
                "Price history indexer shut down after %d events",
                self._pipeline.events_ingested,
            )

    def request_shutdown(self) -> None:
        """Ask ``run()`` to wind down; used as the SIGINT/SIGTERM handler."""
        logger.info("Shutdown signal received")
        self._shutdown.set()

    async def _periodic_heartbeat(self) -> None:
        """Log ingestion stats at regular intervals for monitoring."""
        while not self._shutdown.is_set():
            await asyncio.sleep(self._config.heartbeat_interval_seconds)
            try:
                total = await self._store.count()
            except Exception:
                logger.exception("Heartbeat could not count stored events")
                continue
            ingested = self._pipeline.events_ingested
            logger.info(
                "[PRICE-INDEXER] events_last_interval=%d total_stored=%d loading=%s",
                ingested - self._ingested_at_heartbeat,
                total,
                self._pipeline.is_loading,
            )
            self._ingested_at_heartbeat = ingested
