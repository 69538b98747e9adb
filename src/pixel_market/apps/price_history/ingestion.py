"""Ingestion pipeline feeding PixelGrid price events into the event store.

Two paths write into the store. ``backfill_history`` scans a bounded window
of recent blocks once per activation. ``start_live_subscription`` follows
the chain head by polling for new blocks, which is how an HTTP JSON-RPC
endpoint delivers contract events, and hands back a ``LiveSubscription``
the caller stops on teardown. Both paths decode every log at the boundary,
stamp it with its block's time, and upsert it by composite key, so
redelivered or overlapping events never duplicate.

Failures never escape: they are logged and turned into the human-readable
``message`` exposed for display, alongside ``is_loading``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from pixel_market.apps.price_history.decoder import MalformedEventError, decode_log, normalize
from pixel_market.clients.pixel_grid.abi import PRICE_EVENTS

if TYPE_CHECKING:
    from pixel_market.apps.price_history.models import PriceChangeEvent
    from pixel_market.apps.price_history.protocols import EventStore
    from pixel_market.clients.pixel_grid.client import PixelGridClient

logger = logging.getLogger(__name__)

DEFAULT_BACKFILL_WINDOW = 10_000
DEFAULT_POLL_INTERVAL_SECONDS = 4.0
_LISTENER_STARTED = "Event listener started"


def _describe(exc: BaseException) -> str:
    """Return a display message for an exception."""
    return str(exc) or type(exc).__name__


class LiveSubscription:
    """Handle on a running live-event feed.

    ``stop()`` cancels the feed immediately and may be called any number of
    times. A handle created without a task is inert: it is never active and
    stopping it does nothing. Inert handles are returned when the feed could
    not be started, so callers can always stop what they were given.

    Args:
        task: The polling task, or ``None`` for an inert handle.

    """

    def __init__(self, task: asyncio.Task[None] | None = None) -> None:
        """Initialize the handle around an optional polling task."""
        self._task = task

    @property
    def active(self) -> bool:
        """Return True while the feed is running."""
        return self._task is not None and not self._task.done()

    def stop(self) -> None:
        """Cancel the feed; no further events are handled after this returns."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Live event feed stopped")

    async def wait_closed(self) -> None:
        """Wait for a stopped feed's task to finish unwinding."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)


class IngestionPipeline:
    """Keep an event store in step with on-chain listings and sales.

    Without a client (no RPC endpoint or no contract configured) every
    operation is a no-op that returns immediately.

    Args:
        store: Destination for normalized events.
        client: Read-only contract client, or ``None`` when unavailable.
        backfill_window: Number of blocks behind the head scanned by
            ``backfill_history`` when no window is given.
        poll_interval_seconds: Delay between head checks in the live feed.

    """

    def __init__(
        self,
        store: EventStore,
        client: PixelGridClient | None,
        *,
        backfill_window: int = DEFAULT_BACKFILL_WINDOW,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        """Initialize the pipeline; nothing is fetched until it is started."""
        self._store = store
        self._client = client
        self._backfill_window = backfill_window
        self._poll_interval = poll_interval_seconds
        self._subscription: LiveSubscription | None = None
        self._running_backfills = 0
        self._message = ""
        self._events_ingested = 0
        self._last_error: Exception | None = None

    @property
    def enabled(self) -> bool:
        """Return True when a contract client is available."""
        return self._client is not None

    @property
    def message(self) -> str:
        """Return the latest human-readable status or error message."""
        return self._message

    @property
    def is_loading(self) -> bool:
        """Return True while a historical backfill is in progress."""
        return self._running_backfills > 0

    @property
    def events_ingested(self) -> int:
        """Return the number of events written since the pipeline was created."""
        return self._events_ingested

    @property
    def last_error(self) -> Exception | None:
        """Return the error that ended the most recent backfill, if it failed."""
        return self._last_error

    async def activate(self) -> LiveSubscription:
        """Start the live feed and run one backfill, as on application start.

        Check the contract is deployed first; if it is not (or the node is
        unreachable) record the error and return an inert handle without
        touching the store. The live feed keeps running in the background
        while the backfill scans history.

        Returns:
            The live subscription handle.

        """
        if self._client is None:
            return LiveSubscription()
        try:
            await self._client.ensure_deployed()
        except Exception as exc:
            logger.exception("PixelGrid contract is not usable")
            self._message = _describe(exc)
            return LiveSubscription()

        subscription = await self.start_live_subscription()
        await self.backfill_history()
        return subscription

    async def start_live_subscription(self) -> LiveSubscription:
        """Begin following the chain head for new listing and sale events.

        The feed starts from the block after the current head; anything
        earlier is the backfill's job. If a feed is already running its
        handle is returned instead of starting a second one.

        Returns:
            A handle whose ``stop()`` ends the feed. Inert if the feed could
            not be started.

        """
        if self._client is None:
            return LiveSubscription()
        if self._subscription is not None and self._subscription.active:
            return self._subscription

        try:
            head = await self._client.get_block_number()
        except Exception as exc:
            logger.exception("Event listener setup failed")
            self._message = _describe(exc)
            return LiveSubscription()

        task = asyncio.create_task(self._follow_head(head + 1), name="price-history-live-feed")
        self._subscription = LiveSubscription(task)
        self._message = _LISTENER_STARTED
        logger.info("Listening for %s from block %d", ", ".join(PRICE_EVENTS), head + 1)
        return self._subscription

    async def backfill_history(self, window_size: int | None = None) -> int:
        """Load events from the most recent ``window_size`` blocks into the store.

        Scan ``[max(0, head - window_size), head]`` for both event kinds.
        Events written before a failure stay written; the next backfill
        fills whatever was missed.

        Args:
            window_size: Blocks to scan behind the head; defaults to the
                pipeline's configured window.

        Returns:
            Number of events written, 0 on failure or when disabled.

        """
        if self._client is None:
            return 0
        window = self._backfill_window if window_size is None else window_size
        if window < 0:
            msg = f"window_size must be non-negative, got {window}"
            raise ValueError(msg)

        self._running_backfills += 1
        self._last_error = None
        try:
            head = await self._client.get_block_number()
            from_block = max(0, head - window)
            logger.info("Backfilling price history over blocks %d-%d", from_block, head)
            written = await self._ingest_range(from_block, head)
        except Exception as exc:
            logger.exception("Load historical events failed")
            self._last_error = exc
            self._message = _describe(exc)
            return 0
        finally:
            self._running_backfills -= 1

        self._message = f"Loaded {written} historical events"
        logger.info("Loaded %d historical events", written)
        return written

    def stop(self) -> None:
        """Stop the live feed, if any; safe to call when never started."""
        if self._subscription is not None:
            self._subscription.stop()
            self._subscription = None

    async def _follow_head(self, next_block: int) -> None:
        """Poll for new blocks forever, ingesting each new range once.

        A failed poll is logged and retried on the next tick from the same
        starting block, so no range is skipped. The first successful poll
        after a failure restores the listener status message.
        """
        if self._client is None:
            return
        failing = False
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                head = await self._client.get_block_number()
                written = await self._ingest_range(next_block, head) if head >= next_block else 0
            except Exception as exc:
                logger.warning("Live event poll failed: %s", exc, exc_info=True)
                self._message = _describe(exc)
                failing = True
                continue
            if failing:
                failing = False
                self._message = _LISTENER_STARTED
                logger.info("Live event feed recovered")
            if written:
                logger.info("Ingested %d live events from blocks %d-%d", written, next_block, head)
            next_block = max(next_block, head + 1)

    async def _ingest_range(self, from_block: int, to_block: int) -> int:
        """Fetch, normalize and store both event kinds over a block range.

        Each kind is written as soon as it is fetched so that a failure on
        the second kind keeps the first.

        Returns:
            Number of events written.

        """
        if self._client is None:
            return 0
        written = 0
        for event_name in PRICE_EVENTS:
            logs = await self._client.get_events(event_name, from_block, to_block)
            events: list[PriceChangeEvent] = []
            for log in logs:
                try:
                    raw = decode_log(log)
                except MalformedEventError as exc:
                    logger.warning("Skipping malformed %s log: %s", event_name, exc)
                    continue
                block_timestamp = await self._client.get_block_timestamp(raw.block_number)
                events.append(normalize(raw, block_timestamp))
            await self._store.put_many(events)
            written += len(events)
            self._events_ingested += len(events)
        return written
