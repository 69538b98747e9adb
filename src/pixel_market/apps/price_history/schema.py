"""SQLAlchemy ORM models for the price-history database.

Define the ``price_history`` table holding one row per composite event key,
with single-column indexes on pixel, timestamp and event kind plus a
composite pixel/timestamp index for the per-pixel history lookup.
"""

from typing import Any

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from pixel_market.apps.price_history.models import EventType, PriceChangeEvent

# uint256 needs at most 78 decimal digits
_UINT256_DIGITS = 78


class WeiAmount(TypeDecorator[int]):
    """Store arbitrary-precision wei amounts as decimal strings.

    Integer columns top out at 64 bits on SQLite and PostgreSQL, well short
    of ``uint256``. A string column round-trips exactly on every backend.
    """

    impl = String(_UINT256_DIGITS)
    cache_ok = True

    def process_bind_param(self, value: int | None, dialect: Dialect) -> str | None:  # noqa: ARG002
        """Render the Python int as a base-10 string."""
        return None if value is None else str(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> int | None:  # noqa: ARG002
        """Parse the stored string back into a Python int."""
        return None if value is None else int(value)


class Base(DeclarativeBase):
    """Declarative base class for all price-history ORM models."""


class PriceChangeRow(Base):
    """Persisted form of a ``PriceChangeEvent``.

    Attributes:
        key: Composite identity ``pixel_id-timestamp-block_number``.
        pixel_id: Grid cell / token id (indexed).
        timestamp: Block time in epoch milliseconds (indexed).
        price_wei: Price in wei.
        event_type: ``listed``, ``sale`` or ``removed`` (indexed).
        from_address: Lister or seller address.
        to_address: Buyer address, sales only.
        block_number: Emitting block height.
        tx_hash: Emitting transaction hash.

    """

    __tablename__ = "price_history"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    pixel_id: Mapped[int] = mapped_column(Integer, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True)
    price_wei: Mapped[int] = mapped_column(WeiAmount)
    event_type: Mapped[str] = mapped_column(String(16), index=True)
    from_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    to_address: Mapped[str | None] = mapped_column(String(42), nullable=True)
    block_number: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    __table_args__ = (Index("ix_price_history_pixel_timestamp", "pixel_id", "timestamp"),)

    @staticmethod
    def values_from_event(event: PriceChangeEvent) -> dict[str, Any]:
        """Return the column values for ``event`` keyed by its composite identity."""
        return {
            "key": event.key,
            "pixel_id": event.pixel_id,
            "timestamp": event.timestamp,
            "price_wei": event.price_wei,
            "event_type": event.event_type.value,
            "from_address": event.from_address,
            "to_address": event.to_address,
            "block_number": event.block_number,
            "tx_hash": event.tx_hash,
        }

    @classmethod
    def from_event(cls, event: PriceChangeEvent) -> "PriceChangeRow":
        """Build a row for ``event`` keyed by its composite identity."""
        return cls(**cls.values_from_event(event))

    def to_event(self) -> PriceChangeEvent:
        """Convert the row back into the immutable domain record."""
        return PriceChangeEvent(
            pixel_id=self.pixel_id,
            timestamp=self.timestamp,
            price_wei=self.price_wei,
            event_type=EventType(self.event_type),
            from_address=self.from_address,
            to_address=self.to_address,
            block_number=self.block_number,
            tx_hash=self.tx_hash,
        )
