"""Tests for the price-history ingestion pipeline."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from pixel_market.apps.price_history.ingestion import IngestionPipeline, LiveSubscription
from pixel_market.apps.price_history.models import EventType
from pixel_market.apps.price_history.queries import PriceHistoryQueries
from pixel_market.apps.price_history.repository import PriceHistoryRepository
from pixel_market.clients.pixel_grid.abi import LISTED_EVENT, SALE_EVENT
from pixel_market.clients.pixel_grid.exceptions import (
    ContractNotDeployedError,
    PixelGridRPCError,
)

_OWNER_A = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
_OWNER_B = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
_PIXEL_5 = 5
_HEAD = 200
_POLL_SECONDS = 0.01
_WAIT_TIMEOUT = 2.0
_EXPECTED_TWO = 2
_OVERLAP_BLOCKS = 200


def _listing_log(pixel_id: int, price: int, block: int, log_index: int = 0) -> dict[str, Any]:
    return {
        "event": LISTED_EVENT,
        "args": {"owner": _OWNER_A, "tokenId": pixel_id, "price": price},
        "blockNumber": block,
        "transactionHash": bytes([block % 256]) * 32,
        "logIndex": log_index,
    }


def _sale_log(pixel_id: int, price: int, block: int, log_index: int = 0) -> dict[str, Any]:
    return {
        "event": SALE_EVENT,
        "args": {"from": _OWNER_A, "to": _OWNER_B, "tokenId": pixel_id, "price": price},
        "blockNumber": block,
        "transactionHash": bytes([block % 256]) * 32,
        "logIndex": log_index,
    }


class FakePixelGridClient:
    """In-memory stand-in for ``PixelGridClient``.

    Serve logs from per-event lists filtered by block range. Block ``n``
    has timestamp ``n - 99`` seconds, so block 100 is at 1 s (1000 ms).
    """

    def __init__(self, head: int = _HEAD) -> None:
        """Initialize with an empty chain at ``head``."""
        self.head = head
        self.logs: dict[str, list[dict[str, Any]]] = {LISTED_EVENT: [], SALE_EVENT: []}
        self.head_error: Exception | None = None
        self.events_error: Exception | None = None
        self.deploy_error: Exception | None = None
        self.requested_ranges: list[tuple[str, int, int]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def get_block_number(self) -> int:
        """Return the current head or raise the configured error."""
        if self.head_error is not None:
            raise self.head_error
        return self.head

    async def get_block_timestamp(self, block_number: int) -> int:
        """Return a deterministic timestamp for ``block_number``."""
        return block_number - 99

    async def get_events(self, event_name: str, from_block: int, to_block: int) -> list[Any]:
        """Return logs for ``event_name`` within the inclusive range."""
        if self.gate is not None:
            await self.gate.wait()
        if self.events_error is not None:
            raise self.events_error
        self.requested_ranges.append((event_name, from_block, to_block))
        return [log for log in self.logs[event_name] if from_block <= log["blockNumber"] <= to_block]

    async def ensure_deployed(self) -> None:
        """Raise the configured deployment error, if any."""
        if self.deploy_error is not None:
            raise self.deploy_error

    async def close(self) -> None:
        """Record that the client was closed."""
        self.closed = True


async def _wait_for(predicate: Callable[[], Awaitable[bool]]) -> None:
    """Poll ``predicate`` until it holds or the timeout expires."""

    async def _poll() -> None:
        while not await predicate():
            await asyncio.sleep(_POLL_SECONDS)

    await asyncio.wait_for(_poll(), timeout=_WAIT_TIMEOUT)


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncIterator[PriceHistoryRepository]:
    """Create a file-backed SQLite repository shared with the live feed task.

    Yields:
        Initialised PriceHistoryRepository, disposed after the test.

    """
    repository = PriceHistoryRepository(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await repository.init_db()
    yield repository
    await repository.close()


@pytest.fixture
def client() -> FakePixelGridClient:
    """Return a fake client with an empty chain at block 200."""
    return FakePixelGridClient()


def _pipeline(store: PriceHistoryRepository, client: Any, **kwargs: Any) -> IngestionPipeline:
    kwargs.setdefault("poll_interval_seconds", _POLL_SECONDS)
    return IngestionPipeline(store, client, **kwargs)


class TestBackfillHistory:
    """Tests for the one-shot historical backfill."""

    @pytest.mark.asyncio
    async def test_zero_price_listing_becomes_removed(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Store a zero-price listing as a removal stamped at block time."""
        client.logs[LISTED_EVENT].append(_listing_log(_PIXEL_5, 0, block=100))

        written = await _pipeline(store, client).backfill_history()

        assert written == 1
        (record,) = await store.get_by_pixel(_PIXEL_5)
        assert record.event_type is EventType.REMOVED
        assert record.timestamp == 1000
        assert record.block_number == 100
        assert record.from_address == _OWNER_A

    @pytest.mark.asyncio
    async def test_sale_is_latest(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Make a later sale the pixel's latest price."""
        client.logs[LISTED_EVENT].append(_listing_log(_PIXEL_5, 0, block=100))
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 50, block=101))

        await _pipeline(store, client).backfill_history()

        latest = await PriceHistoryQueries(store).get_latest_price(_PIXEL_5)
        assert latest is not None
        assert latest.event_type is EventType.SALE
        assert latest.timestamp == 2000
        assert latest.to_address == _OWNER_B

    @pytest.mark.asyncio
    async def test_repeated_backfill_is_idempotent(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Leave the store unchanged when the same window is loaded twice."""
        client.logs[LISTED_EVENT].append(_listing_log(_PIXEL_5, 10, block=150))
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=160))
        pipeline = _pipeline(store, client)

        await pipeline.backfill_history()
        await pipeline.backfill_history()

        assert await store.count() == _EXPECTED_TWO

    @pytest.mark.asyncio
    async def test_scans_window_behind_head(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Request [head - window, head] for both event kinds."""
        await _pipeline(store, client, backfill_window=50).backfill_history()

        assert client.requested_ranges == [
            (LISTED_EVENT, _HEAD - 50, _HEAD),
            (SALE_EVENT, _HEAD - 50, _HEAD),
        ]

    @pytest.mark.asyncio
    async def test_window_is_clamped_at_genesis(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Start at block 0 when the window reaches past genesis."""
        await _pipeline(store, client).backfill_history(window_size=10_000)

        assert client.requested_ranges[0] == (LISTED_EVENT, 0, _HEAD)

    @pytest.mark.asyncio
    async def test_events_outside_window_are_skipped(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Ignore events older than the window."""
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=100))
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 20, block=190))

        written = await _pipeline(store, client).backfill_history(window_size=20)

        assert written == 1
        (record,) = await store.get_by_pixel(_PIXEL_5)
        assert record.block_number == 190

    @pytest.mark.asyncio
    async def test_sets_success_message(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Report how many events were loaded."""
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=150))
        pipeline = _pipeline(store, client)

        await pipeline.backfill_history()

        assert pipeline.message == "Loaded 1 historical events"
        assert pipeline.last_error is None
        assert pipeline.events_ingested == 1

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Turn a fetch failure into a message and clear the loading flag."""
        client.events_error = PixelGridRPCError("eth_getLogs failed: timeout", code=-32000)
        pipeline = _pipeline(store, client)

        written = await pipeline.backfill_history()

        assert written == 0
        assert pipeline.is_loading is False
        assert "timeout" in pipeline.message
        assert isinstance(pipeline.last_error, PixelGridRPCError)

    @pytest.mark.asyncio
    async def test_is_loading_while_running(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Report loading for exactly the duration of the backfill."""
        client.gate = asyncio.Event()
        pipeline = _pipeline(store, client)
        assert pipeline.is_loading is False

        task = asyncio.create_task(pipeline.backfill_history())
        await asyncio.sleep(0)
        assert pipeline.is_loading is True

        client.gate.set()
        await task
        assert pipeline.is_loading is False

    @pytest.mark.asyncio
    async def test_malformed_logs_are_skipped(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Drop logs that do not decode and keep the rest."""
        bad = _listing_log(_PIXEL_5, 10, block=150)
        bad["args"] = {"owner": _OWNER_A, "price": 10}
        client.logs[LISTED_EVENT].extend([bad, _listing_log(_PIXEL_5, 10, block=151)])

        written = await _pipeline(store, client).backfill_history()

        assert written == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_negative_window_raises(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Reject a negative window size."""
        with pytest.raises(ValueError, match="non-negative"):
            await _pipeline(store, client).backfill_history(window_size=-1)


class TestLiveSubscription:
    """Tests for following the chain head."""

    @pytest.mark.asyncio
    async def test_ingests_new_blocks(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Store events mined after the feed started."""
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=_HEAD))
        pipeline = _pipeline(store, client)
        subscription = await pipeline.start_live_subscription()
        assert subscription.active
        assert pipeline.message == "Event listener started"

        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 20, block=_HEAD + 1))
        client.head = _HEAD + 1

        async def _has_live_event() -> bool:
            return await store.count() == 1

        try:
            await _wait_for(_has_live_event)
        finally:
            subscription.stop()
            await subscription.wait_closed()

        (record,) = await store.get_by_pixel(_PIXEL_5)
        assert record.block_number == _HEAD + 1
        assert (SALE_EVENT, _HEAD + 1, _HEAD + 1) in client.requested_ranges

    @pytest.mark.asyncio
    async def test_recovers_from_failed_poll(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Retry a failed poll without skipping blocks and clear the error once it recovers."""
        pipeline = _pipeline(store, client)
        subscription = await pipeline.start_live_subscription()

        client.head_error = PixelGridRPCError("eth_blockNumber failed: refused")
        client.logs[LISTED_EVENT].append(_listing_log(_PIXEL_5, 10, block=_HEAD + 1))
        client.head = _HEAD + 1

        async def _reported_failure() -> bool:
            return "refused" in pipeline.message

        async def _has_event() -> bool:
            return await store.count() == 1

        async def _listener_restored() -> bool:
            return pipeline.message == "Event listener started"

        try:
            await _wait_for(_reported_failure)
            assert subscription.active
            client.head_error = None
            await _wait_for(_has_event)
            await _wait_for(_listener_restored)
        finally:
            subscription.stop()
            await subscription.wait_closed()

    @pytest.mark.asyncio
    async def test_backfill_overlapping_live_feed(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Backfill a range the live feed is also polling without errors or duplicates."""
        pipeline = _pipeline(store, client)
        subscription = await pipeline.start_live_subscription()
        new_head = _HEAD + _OVERLAP_BLOCKS
        for block in range(_HEAD + 1, new_head + 1):
            client.logs[SALE_EVENT].append(_sale_log(block - _HEAD, 10, block=block))
        client.head = new_head

        async def _all_stored() -> bool:
            return await store.count() == _OVERLAP_BLOCKS

        try:
            written = await pipeline.backfill_history(window_size=_OVERLAP_BLOCKS)
            await _wait_for(_all_stored)
        finally:
            subscription.stop()
            await subscription.wait_closed()

        assert written == _OVERLAP_BLOCKS
        assert pipeline.last_error is None
        assert pipeline.message == f"Loaded {_OVERLAP_BLOCKS} historical events"
        assert len(await store.get_all()) == _OVERLAP_BLOCKS

    @pytest.mark.asyncio
    async def test_stop_is_immediate_and_idempotent(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Cancel the feed on stop and accept repeated stops."""
        pipeline = _pipeline(store, client)
        subscription = await pipeline.start_live_subscription()

        subscription.stop()
        subscription.stop()
        await subscription.wait_closed()

        assert subscription.active is False
        pipeline.stop()

    @pytest.mark.asyncio
    async def test_second_start_returns_running_feed(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Reuse the running feed instead of starting another."""
        pipeline = _pipeline(store, client)
        first = await pipeline.start_live_subscription()
        second = await pipeline.start_live_subscription()
        try:
            assert first is second
        finally:
            pipeline.stop()
            await first.wait_closed()

    @pytest.mark.asyncio
    async def test_setup_failure_returns_inert_handle(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Return a handle that is safe to stop when the node is unreachable."""
        client.head_error = PixelGridRPCError("eth_blockNumber failed: refused")
        pipeline = _pipeline(store, client)

        subscription = await pipeline.start_live_subscription()

        assert subscription.active is False
        assert "refused" in pipeline.message
        subscription.stop()
        await subscription.wait_closed()


class TestActivate:
    """Tests for activation on application start."""

    @pytest.mark.asyncio
    async def test_starts_feed_and_backfills(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Follow the head and load history in one call."""
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=150))
        pipeline = _pipeline(store, client)

        subscription = await pipeline.activate()
        try:
            assert subscription.active
            assert await store.count() == 1
            assert pipeline.is_loading is False
            assert pipeline.message == "Loaded 1 historical events"
        finally:
            subscription.stop()
            await subscription.wait_closed()

    @pytest.mark.asyncio
    async def test_undeployed_contract_leaves_store_untouched(
        self, store: PriceHistoryRepository, client: FakePixelGridClient
    ) -> None:
        """Skip ingestion when no contract is deployed at the address."""
        client.deploy_error = ContractNotDeployedError(_ADDRESS)
        client.logs[SALE_EVENT].append(_sale_log(_PIXEL_5, 10, block=150))
        pipeline = _pipeline(store, client)

        subscription = await pipeline.activate()

        assert subscription.active is False
        assert client.requested_ranges == []
        assert await store.count() == 0
        assert "No PixelGrid contract deployed" in pipeline.message


class TestWithoutClient:
    """Tests for a pipeline with no chain access configured."""

    @pytest.mark.asyncio
    async def test_operations_are_noops(self, store: PriceHistoryRepository) -> None:
        """Return immediately and leave the store empty."""
        pipeline = _pipeline(store, None)

        assert pipeline.enabled is False
        assert await pipeline.backfill_history() == 0
        assert (await pipeline.start_live_subscription()).active is False
        assert (await pipeline.activate()).active is False
        pipeline.stop()
        assert await store.count() == 0
        assert pipeline.is_loading is False


class TestLiveSubscriptionHandle:
    """Tests for the LiveSubscription handle itself."""

    @pytest.mark.asyncio
    async def test_inert_handle(self) -> None:
        """Never report active and ignore stop for a handle without a task."""
        handle = LiveSubscription()
        assert handle.active is False
        handle.stop()
        await handle.wait_closed()
