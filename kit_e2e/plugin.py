"""
pytest plugin exposing the harness fixtures.

Registered through the ``pytest11`` entry point, so installing the package is
enough for tests to request ``page``, ``app``, ``clicknav``, ``in_view``,
``read_errors`` and ``start_server`` by name.
"""

import logging
import re
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable, Generator, List, cast

import pytest
import pytest_asyncio
from _pytest.fixtures import FixtureRequest
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from kit_e2e.app_control import AppControl
from kit_e2e.config import HarnessConfig, TraceMode
from kit_e2e.error_table import ErrorTable
from kit_e2e.errors import ConfigurationError
from kit_e2e.fixtures import BASE_FIXTURES, ClickNav, InView, ReadErrors, kit_fixtures
from kit_e2e.ports import DEFAULT_START_PORT
from kit_e2e.readiness import ReadyPage
from kit_e2e.registry import FixtureScope
from kit_e2e.server import EphemeralServer, Handler
from kit_e2e.web_server import WebServerProcess

logger = logging.getLogger(__name__)

HARNESS_CONFIG_KEY = pytest.StashKey[HarnessConfig]()
ERROR_TABLE_KEY = pytest.StashKey[ErrorTable]()

BROWSER_FIXTURE = "base_page"

StartServer = Callable[..., Awaitable[EphemeralServer]]


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "e2e: test drives a real browser")

    try:
        harness = HarnessConfig.from_environment()
        kit_fixtures.validate(BASE_FIXTURES)
        error_table = ErrorTable.load(harness.errors_file)
    except ConfigurationError as e:
        raise pytest.UsageError(e.message) from e

    config.stash[HARNESS_CONFIG_KEY] = harness
    config.stash[ERROR_TABLE_KEY] = error_table


def pytest_report_header(config: pytest.Config) -> List[str]:
    harness = config.stash.get(HARNESS_CONFIG_KEY, None)
    if harness is None:
        return []
    projects = ", ".join(harness.project_name(js) for js in (True, False))
    return [
        f"kit-e2e projects: {projects}",
        f"kit-e2e web server: {harness.web_server_command}",
        f"kit-e2e trace: {harness.trace_mode.value} (attempt {harness.attempt})",
    ]


def pytest_collection_modifyitems(
    config: pytest.Config, items: List[pytest.Item]
) -> None:
    """Browser tests get the per-test timeout unless they set their own."""
    harness = config.stash[HARNESS_CONFIG_KEY]
    for item in items:
        fixturenames = getattr(item, "fixturenames", ())
        if BROWSER_FIXTURE not in fixturenames:
            continue
        item.add_marker(pytest.mark.e2e)
        if item.get_closest_marker("timeout") is None:
            item.add_marker(pytest.mark.timeout(harness.timeout_ms / 1000))


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None, None, None]:
    outcome = yield
    report = outcome.get_result()  # type: ignore[attr-defined]
    setattr(item, f"rep_{report.when}", report)


def _failed(node: pytest.Item) -> bool:
    return any(
        getattr(node, f"rep_{when}", None) is not None
        and getattr(node, f"rep_{when}").failed
        for when in ("setup", "call")
    )


def _artifact_dir(harness: HarnessConfig, node: pytest.Item) -> Path:
    slug = re.sub(r"[^\w.-]+", "-", node.nodeid).strip("-")
    path = harness.artifacts_dir / slug
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture(scope="session")
def harness_config(pytestconfig: pytest.Config) -> HarnessConfig:
    return pytestconfig.stash[HARNESS_CONFIG_KEY]


@pytest.fixture(scope="session")
def error_table(pytestconfig: pytest.Config) -> ErrorTable:
    return pytestconfig.stash[ERROR_TABLE_KEY]


@pytest.fixture(scope="session")
def base_url(harness_config: HarnessConfig) -> Generator[str, None, None]:
    """Application URL; launches the dev or preview server for the session."""
    with WebServerProcess(
        harness_config.web_server_command,
        harness_config.port,
        reuse_existing=harness_config.reuse_existing_server,
    ):
        yield harness_config.base_url


@pytest.fixture(params=[True, False], ids=["+js", "-js"])
def javascript_enabled(request: FixtureRequest) -> bool:
    """Every browser test runs with and without JavaScript."""
    return bool(request.param)


@pytest_asyncio.fixture
async def playwright() -> AsyncGenerator[Playwright, None]:
    async with async_playwright() as p:
        yield p


@pytest_asyncio.fixture
async def browser(
    playwright: Playwright, harness_config: HarnessConfig
) -> AsyncGenerator[Browser, None]:
    launcher = getattr(playwright, harness_config.browser.device.browser_type)
    browser = await launcher.launch(headless=harness_config.headless)
    yield browser
    await browser.close()


@pytest_asyncio.fixture
async def context(
    request: FixtureRequest,
    playwright: Playwright,
    browser: Browser,
    harness_config: HarnessConfig,
    base_url: str,
    javascript_enabled: bool,
) -> AsyncGenerator[BrowserContext, None]:
    """Device-emulating context with tracing per the configured policy."""
    options = harness_config.browser.device.context_options(playwright.devices)
    context = await browser.new_context(
        **options,  # type: ignore[arg-type]
        base_url=base_url,
        java_script_enabled=javascript_enabled,
    )

    tracing = harness_config.records_trace
    if tracing:
        await context.tracing.start(screenshots=True, snapshots=True, sources=True)

    yield context

    if tracing:
        keep = (
            harness_config.trace_mode == TraceMode.ON_FIRST_RETRY
            or _failed(request.node)
        )
        if keep:
            trace_path = _artifact_dir(harness_config, request.node) / "trace.zip"
            await context.tracing.stop(path=trace_path)
            logger.info(f"Trace saved to {trace_path}")
        else:
            await context.tracing.stop()
    await context.close()


@pytest_asyncio.fixture
async def base_page(
    request: FixtureRequest, context: BrowserContext, harness_config: HarnessConfig
) -> AsyncGenerator[Page, None]:
    """The runner's own page, before readiness instrumentation."""
    page = await context.new_page()
    page.set_default_timeout(harness_config.timeout_ms)
    page.set_default_navigation_timeout(harness_config.timeout_ms)

    yield page

    if _failed(request.node) and not page.is_closed():
        screenshot = _artifact_dir(harness_config, request.node) / "test-failed.png"
        await page.screenshot(path=screenshot)
        logger.info(f"Failure screenshot saved to {screenshot}")
    await page.close()


@pytest_asyncio.fixture
async def kit(
    base_page: Page,
    javascript_enabled: bool,
    harness_config: HarnessConfig,
    error_table: ErrorTable,
) -> AsyncGenerator[FixtureScope, None]:
    """Per-test scope resolving the harness fixtures."""
    base = {
        "page": base_page,
        "javascript_enabled": javascript_enabled,
        "harness_config": harness_config,
        "error_table": error_table,
    }
    async with kit_fixtures.scope(base) as scope:
        yield scope


@pytest_asyncio.fixture
async def page(kit: FixtureScope) -> ReadyPage:
    return cast(ReadyPage, await kit.get("page"))


@pytest_asyncio.fixture
async def app(kit: FixtureScope) -> AppControl:
    return cast(AppControl, await kit.get("app"))


@pytest_asyncio.fixture
async def clicknav(kit: FixtureScope) -> ClickNav:
    return cast(ClickNav, await kit.get("clicknav"))


@pytest_asyncio.fixture
async def in_view(kit: FixtureScope) -> InView:
    return cast(InView, await kit.get("in_view"))


@pytest_asyncio.fixture
async def read_errors(error_table: ErrorTable) -> AsyncGenerator[ReadErrors, None]:
    # Own scope: looking up expected errors must not launch a browser.
    async with kit_fixtures.scope({"error_table": error_table}) as scope:
        yield cast(ReadErrors, await scope.get("read_errors"))


@pytest_asyncio.fixture
async def start_server() -> AsyncGenerator[StartServer, None]:
    """
    Factory for ephemeral servers.

    Servers the test did not close itself are closed at teardown, including
    ones that crashed while serving; a failing close fails the test. A
    failed start is raised to the test directly and is not tracked.
    """
    servers: List[EphemeralServer] = []

    async def _start(handler: Handler, start: int = DEFAULT_START_PORT) -> EphemeralServer:
        server = await EphemeralServer(handler, start=start).start()
        servers.append(server)
        return server

    yield _start

    errors: List[Exception] = []
    for server in reversed(servers):
        if server.closed:
            continue
        try:
            await server.close()
        except Exception as e:
            errors.append(e)
    if errors:
        raise errors[0]
