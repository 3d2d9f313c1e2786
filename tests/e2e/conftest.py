"""Browser tests against the demo application on an ephemeral server."""

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from kit_e2e.server import EphemeralServer
from tests.e2e import demo_app


def check_playwright_installation() -> bool:
    """Check if Playwright browsers are installed."""
    cache_dir = Path.home() / ".cache" / "ms-playwright"
    return cache_dir.exists() and any(cache_dir.iterdir())


@pytest.fixture(autouse=True)
def require_browsers() -> None:
    if not check_playwright_installation():
        pytest.skip("Playwright browsers not installed; run `playwright install`")


@pytest_asyncio.fixture
async def base_url() -> AsyncGenerator[str, None]:
    """Serve the demo application instead of launching the project's server."""
    async with EphemeralServer(demo_app.handle, start=5000) as server:
        yield server.url
