"""
Shared fixtures for harness tests.
"""

from typing import Callable

import pytest

from kit_e2e.browsers import select_browser
from kit_e2e.config import HarnessConfig
from tests.mock_helpers import MockPage

MakeConfig = Callable[..., HarnessConfig]


@pytest.fixture
def make_config() -> MakeConfig:
    """Build a HarnessConfig with overrides, without touching the environment."""

    def _make(browser: str = "chromium", **overrides: object) -> HarnessConfig:
        return HarnessConfig(browser=select_browser(browser), **overrides)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def mock_page() -> MockPage:
    """Page whose start marker and dev message appear immediately."""
    return MockPage()
