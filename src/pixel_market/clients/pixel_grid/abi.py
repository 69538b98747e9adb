"""Event ABI for the PixelGrid marketplace contract.

Only the two price-bearing events are needed to index price history, so the
built-in ABI is the minimum fragment describing them. A full ABI can be
supplied instead, either as a raw JSON array or as a Hardhat/Foundry build
artifact with an ``abi`` field.
"""

import json
from pathlib import Path
from typing import Any, cast

LISTED_EVENT = "PixelListed"
SALE_EVENT = "PixelSale"
PRICE_EVENTS: tuple[str, ...] = (LISTED_EVENT, SALE_EVENT)

# PixelListed(owner, tokenId, price): price == 0 means the listing was withdrawn
PIXEL_GRID_EVENTS_ABI: list[dict[str, Any]] = [
    {
        "name": LISTED_EVENT,
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "price", "type": "uint256", "indexed": False},
        ],
    },
    {
        "name": SALE_EVENT,
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "tokenId", "type": "uint256", "indexed": True},
            {"name": "price", "type": "uint256", "indexed": False},
        ],
    },
]


def load_abi(path: Path) -> list[dict[str, Any]]:
    """Load a contract ABI from a JSON file.

    Args:
        path: Raw ABI array file or a build artifact containing ``abi``.

    Returns:
        The ABI as a list of entry dictionaries.

    Raises:
        ValueError: If the file holds neither shape, or lacks one of the
            price events.

    """
    data: Any = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict) and "abi" in data:
        data = cast("dict[str, Any]", data)["abi"]
    if not isinstance(data, list):
        msg = f"{path} is neither an ABI array nor an artifact with an 'abi' field"
        raise ValueError(msg)

    abi = cast("list[dict[str, Any]]", data)
    event_names = {entry.get("name") for entry in abi if entry.get("type") == "event"}
    missing = [name for name in PRICE_EVENTS if name not in event_names]
    if missing:
        msg = f"ABI at {path} is missing events: {', '.join(missing)}"
        raise ValueError(msg)
    return abi
