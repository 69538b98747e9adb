"""Tests for the PixelGrid client exception hierarchy."""

from pixel_market.clients.pixel_grid.exceptions import (
    ContractNotDeployedError,
    PixelGridError,
    PixelGridRPCError,
)

_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
_RPC_CODE = -32005


class TestPixelGridRPCError:
    """Tests for PixelGridRPCError."""

    def test_message_includes_code(self) -> None:
        """Prefix the message with the JSON-RPC error code."""
        err = PixelGridRPCError("limit exceeded", code=_RPC_CODE)
        assert str(err) == f"[{_RPC_CODE}] limit exceeded"
        assert err.msg == "limit exceeded"
        assert err.code == _RPC_CODE

    def test_default_code_is_zero(self) -> None:
        """Use code 0 for transport failures."""
        assert PixelGridRPCError("connection refused").code == 0

    def test_is_pixel_grid_error(self) -> None:
        """Inherit from the package base exception."""
        assert isinstance(PixelGridRPCError("x"), PixelGridError)


class TestContractNotDeployedError:
    """Tests for ContractNotDeployedError."""

    def test_message_names_address(self) -> None:
        """Report the address that holds no code."""
        err = ContractNotDeployedError(_ADDRESS)
        assert str(err) == f"No PixelGrid contract deployed at {_ADDRESS}"
        assert err.address == _ADDRESS
        assert isinstance(err, PixelGridError)
