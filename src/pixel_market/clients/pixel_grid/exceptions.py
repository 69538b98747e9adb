"""Exception hierarchy for PixelGrid chain-access errors.

A base exception class with a specialised RPC error that carries the
provider's error code and message, plus a distinct error for a contract
address with no deployed bytecode.
"""


class PixelGridError(Exception):
    """Base exception for all PixelGrid client errors."""


class PixelGridRPCError(PixelGridError):
    """Error returned by a JSON-RPC call against the chain node.

    Carry a human-readable message and the provider's error code so callers
    can tell a transport failure (code 0) from a node-side rejection.

    Args:
        msg: Human-readable description of the error.
        code: JSON-RPC error code, or 0 when the node was unreachable.

    """

    def __init__(self, msg: str, code: int = 0) -> None:
        """Initialize the RPC error.

        Args:
            msg: Human-readable description of the error.
            code: JSON-RPC error code, or 0 when the node was unreachable.

        """
        super().__init__(f"[{code}] {msg}")
        self.msg = msg
        self.code = code


class ContractNotDeployedError(PixelGridError):
    """No contract bytecode exists at the configured address on this chain."""

    def __init__(self, address: str) -> None:
        """Initialize with the address that has no code."""
        super().__init__(f"No PixelGrid contract deployed at {address}")
        self.address = address
