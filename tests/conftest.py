# tests/conftest.py

"""Shared pytest fixtures for the monitor tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def mock_sleep() -> Generator[None, None, None]:
    """Patch time.sleep so webhook batch pauses run instantly."""
    with patch("time.sleep"):
        yield


@pytest.fixture(autouse=True)
def no_env_webhooks() -> Generator[None, None, None]:
    """Keep a developer's .env webhook URLs out of the tests."""
    with patch.multiple(
        "src.config.settings.Settings",
        WEBHOOK_NEW="",
        WEBHOOK_PRICE="",
        WEBHOOK_RESTOCK="",
        PRIORITY_KEYWORDS=[],
    ):
        yield
