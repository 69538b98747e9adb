"""Typed async facade over a PixelGrid contract deployment.

Wrap ``AsyncWeb3`` and the contract's event ABI behind the handful of
read-only calls the price-history indexer needs: current head, block
timestamps, decoded event logs over a block range, and a deployment check.
Provider failures are re-raised as ``PixelGridRPCError`` so callers deal
with a single exception hierarchy.
"""

import logging
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception
from web3.types import EventData

from pixel_market.clients.pixel_grid.abi import PIXEL_GRID_EVENTS_ABI
from pixel_market.clients.pixel_grid.exceptions import (
    ContractNotDeployedError,
    PixelGridError,
    PixelGridRPCError,
)

logger = logging.getLogger(__name__)

_DEFAULT_MAX_BLOCK_RANGE = 10_000
_TIMESTAMP_CACHE_LIMIT = 4096

_TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (
    Web3Exception,
    aiohttp.ClientError,
    OSError,
)


def _to_rpc_error(exc: BaseException, action: str) -> PixelGridRPCError:
    """Convert a provider exception into a ``PixelGridRPCError``.

    JSON-RPC rejections carry an ``rpc_response`` with an error code; plain
    transport failures are reported with code 0.

    Args:
        exc: The exception raised by web3 or the HTTP transport.
        action: Short description of the call that failed.

    Returns:
        The wrapped error, ready to raise ``from exc``.

    """
    code = 0
    rpc_response: Any = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error: Any = rpc_response.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), int):
            code = error["code"]
    return PixelGridRPCError(msg=f"{action} failed: {exc}", code=code)


class PixelGridClient:
    """Read-only async client for one PixelGrid contract deployment.

    Args:
        rpc_url: HTTP JSON-RPC endpoint of the chain node.
        contract_address: Deployed contract address (any checksum casing).
        abi: Contract ABI; defaults to the built-in price-event fragment.
        max_block_range: Largest block span requested in one ``eth_getLogs``
            call. Wider ranges are split into consecutive chunks.
        w3: Pre-built ``AsyncWeb3`` instance, mainly for tests.

    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        *,
        abi: list[dict[str, Any]] | None = None,
        max_block_range: int = _DEFAULT_MAX_BLOCK_RANGE,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """Initialize the client and bind the contract.

        Raises:
            PixelGridError: If ``contract_address`` is not a valid address.

        """
        if max_block_range < 1:
            msg = f"max_block_range must be positive, got {max_block_range}"
            raise ValueError(msg)
        try:
            self._address = Web3.to_checksum_address(contract_address)
        except ValueError as exc:
            msg = f"Invalid contract address: {contract_address!r}"
            raise PixelGridError(msg) from exc
        self._rpc_url = rpc_url
        self._w3 = w3 if w3 is not None else AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(
            address=self._address, abi=abi or PIXEL_GRID_EVENTS_ABI
        )
        self._max_block_range = max_block_range
        self._timestamps: dict[int, int] = {}

    @property
    def address(self) -> str:
        """Return the checksummed contract address."""
        return self._address

    async def get_block_number(self) -> int:
        """Return the current chain head.

        Raises:
            PixelGridRPCError: When the node cannot be queried.

        """
        try:
            return int(await self._w3.eth.block_number)
        except _TRANSPORT_ERRORS as exc:
            raise _to_rpc_error(exc, "eth_blockNumber") from exc

    async def get_block_timestamp(self, block_number: int) -> int:
        """Return a block's timestamp in Unix seconds.

        Block timestamps are immutable once mined, so results are cached;
        the cache is cleared wholesale once it grows past a fixed size.

        Args:
            block_number: Height of the block to resolve.

        Returns:
            The block timestamp in seconds.

        Raises:
            PixelGridRPCError: When the block cannot be fetched.

        """
        cached = self._timestamps.get(block_number)
        if cached is not None:
            return cached
        try:
            block = await self._w3.eth.get_block(block_number)
        except _TRANSPORT_ERRORS as exc:
            raise _to_rpc_error(exc, f"eth_getBlockByNumber({block_number})") from exc

        timestamp = int(block["timestamp"])
        if len(self._timestamps) >= _TIMESTAMP_CACHE_LIMIT:
            self._timestamps.clear()
        self._timestamps[block_number] = timestamp
        return timestamp

    async def get_events(self, event_name: str, from_block: int, to_block: int) -> list[EventData]:
        """Fetch decoded logs for one contract event over an inclusive block range.

        Args:
            event_name: ABI event name, e.g. ``"PixelListed"``.
            from_block: First block to scan.
            to_block: Last block to scan (inclusive).

        Returns:
            Decoded events in chain order. Empty when ``from_block`` is past
            ``to_block``.

        Raises:
            PixelGridRPCError: When any chunk of the range cannot be fetched.

        """
        event = getattr(self._contract.events, event_name)
        events: list[EventData] = []
        start = from_block
        while start <= to_block:
            end = min(start + self._max_block_range - 1, to_block)
            try:
                chunk = await event().get_logs(from_block=start, to_block=end)
            except _TRANSPORT_ERRORS as exc:
                raise _to_rpc_error(exc, f"eth_getLogs({event_name}, {start}-{end})") from exc
            events.extend(chunk)
            logger.debug("Fetched %d %s logs in blocks %d-%d", len(chunk), event_name, start, end)
            start = end + 1
        return events

    async def ensure_deployed(self) -> None:
        """Check that contract bytecode exists at the configured address.

        Raises:
            ContractNotDeployedError: If the address holds no code.
            PixelGridRPCError: When the node cannot be queried.

        """
        try:
            code = await self._w3.eth.get_code(self._address)
        except _TRANSPORT_ERRORS as exc:
            raise _to_rpc_error(exc, "eth_getCode") from exc
        if not code:
            raise ContractNotDeployedError(self._address)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        await self._w3.provider.disconnect()
        logger.debug("PixelGrid client for %s closed", self._address)

    async def __aenter__(self) -> "PixelGridClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
