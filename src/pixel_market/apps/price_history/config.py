"""Configuration dataclass for the price-history indexer.

Hold every tuneable parameter of an indexing session: where the cache
lives, which node and contract to read, how far back to backfill, and how
often to poll. Immutable after construction so a long-running session
cannot drift from what it was started with.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pixel_market.core.config import ConfigError, ConfigLoader

_DEFAULT_DB_URL = "sqlite+aiosqlite:///price_history.db"
_DEFAULT_BACKFILL_WINDOW = 10_000
_DEFAULT_POLL_INTERVAL = 4.0
_DEFAULT_MAX_BLOCK_RANGE = 10_000
_DEFAULT_HEARTBEAT_INTERVAL = 60


@dataclass(frozen=True)
class IndexerConfig:
    """Immutable configuration for a price-history indexing session.

    Attributes:
        db_url: SQLAlchemy async connection string; empty to run without
            persistence.
        rpc_url: HTTP JSON-RPC endpoint of the chain node; empty when no
            chain access is available.
        contract_address: PixelGrid contract address; empty when the
            contract is not deployed on the target chain.
        abi_path: Optional ABI or build-artifact JSON file overriding the
            built-in event ABI.
        backfill_window: Blocks behind the head scanned on activation.
        poll_interval_seconds: Delay between head checks in the live feed.
        max_block_range: Largest block span per ``eth_getLogs`` request.
        heartbeat_interval_seconds: Interval between status log lines.

    """

    db_url: str = _DEFAULT_DB_URL
    rpc_url: str = ""
    contract_address: str = ""
    abi_path: Path | None = None
    backfill_window: int = _DEFAULT_BACKFILL_WINDOW
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL
    max_block_range: int = _DEFAULT_MAX_BLOCK_RANGE
    heartbeat_interval_seconds: int = _DEFAULT_HEARTBEAT_INTERVAL

    @property
    def chain_configured(self) -> bool:
        """Return True when both an RPC endpoint and a contract address are set."""
        return bool(self.rpc_url and self.contract_address)

    @classmethod
    def from_loader(cls, loader: ConfigLoader, **overrides: Any) -> "IndexerConfig":
        """Build a config from the ``chain`` and ``price_history`` YAML sections.

        Keyword overrides whose value is ``None`` are ignored, so CLI options
        left unset fall through to the file.

        Args:
            loader: Loaded settings.
            **overrides: Field values that take precedence over the file.

        Returns:
            The merged configuration.

        Raises:
            ConfigError: If a numeric setting cannot be parsed.

        """
        chain = loader.get_chain_config()
        history = loader.get_price_history_config()
        abi_path = chain.get("abi_path") or None
        try:
            values: dict[str, Any] = {
                "db_url": str(history.get("db_url", _DEFAULT_DB_URL) or ""),
                "rpc_url": str(chain.get("rpc_url") or ""),
                "contract_address": str(chain.get("contract_address") or ""),
                "abi_path": Path(abi_path) if abi_path else None,
                "backfill_window": int(history.get("backfill_window", _DEFAULT_BACKFILL_WINDOW)),
                "poll_interval_seconds": float(
                    history.get("poll_interval_seconds", _DEFAULT_POLL_INTERVAL)
                ),
                "max_block_range": int(chain.get("max_block_range", _DEFAULT_MAX_BLOCK_RANGE)),
                "heartbeat_interval_seconds": int(
                    history.get("heartbeat_interval_seconds", _DEFAULT_HEARTBEAT_INTERVAL)
                ),
            }
        except (TypeError, ValueError) as exc:
            msg = f"Invalid price history settings: {exc}"
            raise ConfigError(msg) from exc

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
