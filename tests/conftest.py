"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

import pixel_market.core.config as config_module

_ISOLATED_ENV_VARS = {
    "PIXEL_GRID_RPC_URL": "",
    "PIXEL_GRID_ADDRESS": "",
    "PIXEL_GRID_ABI_PATH": "",
    "PRICE_HISTORY_DB_URL": "",
}


@pytest.fixture(autouse=True)
def _isolate_settings() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Keep tests away from any real node or database.

    The default ``settings.yaml`` reads the chain endpoint, contract address
    and database URL from the environment (or a developer's ``.env``). Pin
    them to empty values so no test reaches a live RPC endpoint or writes a
    ``price_history.db`` file, and reset the ``get_config()`` singleton so
    each test sees these values.
    """
    config_module._config = None
    with patch.dict(os.environ, _ISOLATED_ENV_VARS):
        yield
    config_module._config = None
