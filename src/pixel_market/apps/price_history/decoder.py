"""Decode raw PixelGrid event logs into price change records.

Raw logs arrive from web3 as loosely typed mappings. They are checked once,
here, against the two shapes the indexer understands (a listing and a sale)
and rejected with ``MalformedEventError`` if anything is missing or of the
wrong type. Everything downstream works with the typed ``ListingLog`` /
``SaleLog`` union and the normalized ``PriceChangeEvent``.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pixel_market.apps.price_history.models import EventType, PriceChangeEvent
from pixel_market.clients.pixel_grid.abi import LISTED_EVENT, SALE_EVENT

_MS_PER_SECOND = 1000


class MalformedEventError(ValueError):
    """A raw log does not match the expected PixelGrid event shape."""


@dataclass(frozen=True)
class ListingLog:
    """A decoded ``PixelListed(owner, tokenId, price)`` log."""

    owner: str
    pixel_id: int
    price: int
    block_number: int
    tx_hash: str


@dataclass(frozen=True)
class SaleLog:
    """A decoded ``PixelSale(from, to, tokenId, price)`` log."""

    seller: str
    buyer: str
    pixel_id: int
    price: int
    block_number: int
    tx_hash: str


RawPriceLog = ListingLog | SaleLog


def _require_int(args: Mapping[str, Any], name: str) -> int:
    value = args.get(name)
    # bool is an int subclass but never a valid uint256 argument
    if not isinstance(value, int) or isinstance(value, bool):
        msg = f"Argument {name!r} must be an integer, got {value!r}"
        raise MalformedEventError(msg)
    if value < 0:
        msg = f"Argument {name!r} must be non-negative, got {value}"
        raise MalformedEventError(msg)
    return value


def _require_address(args: Mapping[str, Any], name: str) -> str:
    value = args.get(name)
    if not isinstance(value, str) or not value.startswith("0x"):
        msg = f"Argument {name!r} must be a 0x address, got {value!r}"
        raise MalformedEventError(msg)
    return value


def _tx_hash_hex(value: Any) -> str:
    """Render a transaction hash as a ``0x``-prefixed hex string.

    Accept both ``HexBytes``/``bytes`` (as web3 returns them) and strings.
    """
    if isinstance(value, bytes | bytearray):
        return "0x" + bytes(value).hex()
    if isinstance(value, str) and value:
        return value if value.startswith("0x") else f"0x{value}"
    msg = f"Missing or invalid transactionHash: {value!r}"
    raise MalformedEventError(msg)


def decode_log(log: Mapping[str, Any]) -> RawPriceLog:
    """Check a web3-decoded log and convert it to its typed form.

    Args:
        log: Event data as returned by ``contract.events.X().get_logs()``,
            with ``event``, ``args``, ``blockNumber`` and
            ``transactionHash`` keys.

    Returns:
        A ``ListingLog`` or ``SaleLog``.

    Raises:
        MalformedEventError: If the event name is unknown or any field is
            missing or mistyped.

    """
    name = log.get("event")
    args = log.get("args")
    if not isinstance(args, Mapping):
        msg = f"Log for event {name!r} has no argument mapping"
        raise MalformedEventError(msg)

    block_number = log.get("blockNumber")
    if not isinstance(block_number, int) or isinstance(block_number, bool):
        msg = f"Log for event {name!r} has invalid blockNumber {block_number!r}"
        raise MalformedEventError(msg)
    tx_hash = _tx_hash_hex(log.get("transactionHash"))

    if name == LISTED_EVENT:
        return ListingLog(
            owner=_require_address(args, "owner"),
            pixel_id=_require_int(args, "tokenId"),
            price=_require_int(args, "price"),
            block_number=block_number,
            tx_hash=tx_hash,
        )
    if name == SALE_EVENT:
        return SaleLog(
            seller=_require_address(args, "from"),
            buyer=_require_address(args, "to"),
            pixel_id=_require_int(args, "tokenId"),
            price=_require_int(args, "price"),
            block_number=block_number,
            tx_hash=tx_hash,
        )

    msg = f"Unexpected event {name!r}"
    raise MalformedEventError(msg)


def normalize(raw: RawPriceLog, block_timestamp: int) -> PriceChangeEvent:
    """Map a decoded log onto the canonical ``PriceChangeEvent``.

    A listing with price 0 is a withdrawn listing (``REMOVED``). Prices are
    passed through untouched.

    Args:
        raw: Decoded listing or sale log.
        block_timestamp: Emitting block's timestamp in Unix seconds.

    Returns:
        The normalized record, timestamped in epoch milliseconds.

    """
    timestamp = block_timestamp * _MS_PER_SECOND
    if isinstance(raw, ListingLog):
        return PriceChangeEvent(
            pixel_id=raw.pixel_id,
            timestamp=timestamp,
            price_wei=raw.price,
            event_type=EventType.REMOVED if raw.price == 0 else EventType.LISTED,
            from_address=raw.owner,
            block_number=raw.block_number,
            tx_hash=raw.tx_hash,
        )
    return PriceChangeEvent(
        pixel_id=raw.pixel_id,
        timestamp=timestamp,
        price_wei=raw.price,
        event_type=EventType.SALE,
        from_address=raw.seller,
        to_address=raw.buyer,
        block_number=raw.block_number,
        tx_hash=raw.tx_hash,
    )
