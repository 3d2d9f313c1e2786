"""
Fixtures available to every e2e test.

``page`` wraps the runner's page in a ``ReadyPage`` and is exposed under the
same name, so ``app``, ``clicknav`` and ``in_view`` all receive the wrapped
page without knowing it was wrapped.
"""

from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Final,
    Mapping,
    Optional,
    Tuple,
    TypedDict,
    cast,
)

from playwright.async_api import Page

from kit_e2e.app_control import AppControl
from kit_e2e.config import HarnessConfig
from kit_e2e.error_table import ErrorTable
from kit_e2e.readiness import STARTED_INIT_SCRIPT, ReadinessPolicy, ReadyPage
from kit_e2e.registry import FixtureRegistry

# Values the pytest plugin provides to every scope
BASE_FIXTURES: Final[Tuple[str, ...]] = (
    "page",
    "javascript_enabled",
    "harness_config",
    "error_table",
)

ClickNav = Callable[..., Awaitable[None]]
InView = Callable[[str], Awaitable[bool]]
ReadErrors = Callable[[str], Optional[object]]


class Box(TypedDict):
    x: float
    y: float
    width: float
    height: float


class Viewport(TypedDict):
    width: int
    height: int


def is_box_in_view(box: Optional[Box], viewport: Optional[Viewport]) -> bool:
    """True when the box overlaps the viewport vertically."""
    if not box or not viewport:
        return False
    return box["y"] < viewport["height"] and box["y"] + box["height"] > 0


kit_fixtures = FixtureRegistry()


@kit_fixtures.fixture(
    "page", requires=("page", "javascript_enabled", "harness_config")
)
async def ready_page(deps: Mapping[str, object]) -> AsyncIterator[ReadyPage]:
    page = cast(Page, deps["page"])
    javascript_enabled = bool(deps["javascript_enabled"])
    config = deps["harness_config"]
    assert isinstance(config, HarnessConfig)

    if javascript_enabled:
        await page.add_init_script(script=STARTED_INIT_SCRIPT)

    yield ReadyPage(page, ReadinessPolicy.from_config(config, javascript_enabled))


@kit_fixtures.fixture("app", requires=("page",))
async def app(deps: Mapping[str, object]) -> AsyncIterator[AppControl]:
    yield AppControl(cast(Page, deps["page"]))


@kit_fixtures.fixture("clicknav", requires=("page", "javascript_enabled"))
async def clicknav(deps: Mapping[str, object]) -> AsyncIterator[ClickNav]:
    page = cast(Page, deps["page"])
    javascript_enabled = bool(deps["javascript_enabled"])

    async def _clicknav(selector: str, timeout: Optional[float] = None) -> None:
        """Click and, with JavaScript on, wait for the navigation it triggers."""
        if javascript_enabled:
            async with page.expect_navigation(timeout=timeout):
                await page.click(selector)
        else:
            await page.click(selector)

    yield _clicknav


@kit_fixtures.fixture("in_view", requires=("page",))
async def in_view(deps: Mapping[str, object]) -> AsyncIterator[InView]:
    page = cast(Page, deps["page"])

    async def _in_view(selector: str) -> bool:
        box = await page.locator(selector).bounding_box()
        return is_box_in_view(
            cast(Optional[Box], box), cast(Optional[Viewport], page.viewport_size)
        )

    yield _in_view


@kit_fixtures.fixture("read_errors", requires=("error_table",))
async def read_errors(deps: Mapping[str, object]) -> AsyncIterator[ReadErrors]:
    table = deps["error_table"]
    assert isinstance(table, ErrorTable)
    yield table.lookup
