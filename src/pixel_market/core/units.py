"""Conversions between wei and ether for display.

Prices are stored and aggregated as integer wei. These helpers only run at
the presentation edge (CLI tables, chart axes) and never feed back into the
stored values.
"""

from decimal import Decimal

from web3 import Web3


def wei_to_ether(wei: int) -> Decimal:
    """Convert an integer wei amount to an exact ``Decimal`` ether amount."""
    return Decimal(Web3.from_wei(wei, "ether"))


def format_ether(wei: int, places: int | None = None) -> str:
    """Format a wei amount as an ether string.

    Trailing zeros are stripped so whole amounts print as ``"1"`` rather
    than ``"1.000000000000000000"``, matching what wallet UIs display.

    Args:
        wei: Amount in wei.
        places: Optional number of decimal places to round to.

    Returns:
        The ether amount as a plain (non-scientific) decimal string.

    """
    ether = wei_to_ether(wei)
    if places is not None:
        ether = ether.quantize(Decimal(1).scaleb(-places))
        return f"{ether:f}"
    if ether == ether.to_integral_value():
        return f"{ether.to_integral_value():f}"
    return f"{ether.normalize():f}"
