"""
Drive the application's client-side router from test code.

The application under test publishes its navigation API on ``window`` (see
``APP_CONTROL_GLOBALS``), usually from its root layout when running under
test. ``AppControl`` calls into those globals through ``page.evaluate``; if a
global is missing the evaluation error reaches the test unchanged.
"""

from typing import Final, List, Optional, Sequence, Tuple, TypedDict

from playwright.async_api import Page

from kit_e2e.errors import AppContractError

APP_CONTROL_GLOBALS: Final[Tuple[str, ...]] = (
    "goto",
    "invalidate",
    "beforeNavigate",
    "afterNavigate",
    "prefetch",
    "prefetchRoutes",
)


class GotoOptions(TypedDict, total=False):
    """Options forwarded verbatim to the application's ``goto``."""

    replaceState: bool
    noScroll: bool
    keepFocus: bool


class AppControl:
    """Calls the application's published navigation globals."""

    def __init__(self, page: Page) -> None:
        self.page = page

    async def goto(self, url: str, options: Optional[GotoOptions] = None) -> None:
        await self.page.evaluate(
            "({ url, opts }) => goto(url, opts)",
            {"url": url, "opts": dict(options or {})},
        )

    async def invalidate(self, url: str) -> None:
        await self.page.evaluate("(url) => invalidate(url)", url)

    async def before_navigate(self, predicate: str) -> None:
        """
        Register a navigation guard.

        ``predicate`` is JavaScript source for a function receiving the target
        ``URL``; returning ``false`` cancels the navigation.
        """
        await self.page.evaluate(f"() => beforeNavigate({predicate})")

    async def after_navigate(self) -> None:
        await self.page.evaluate("() => afterNavigate(() => {})")

    async def prefetch(self, url: str) -> None:
        await self.page.evaluate("(url) => prefetch(url)", url)

    async def prefetch_routes(self, urls: Optional[Sequence[str]] = None) -> None:
        await self.page.evaluate(
            "(urls) => prefetchRoutes(urls ?? undefined)",
            list(urls) if urls is not None else None,
        )

    async def missing_globals(self) -> List[str]:
        """Names from ``APP_CONTROL_GLOBALS`` the page has not published."""
        missing = await self.page.evaluate(
            "(names) => names.filter((name) => typeof globalThis[name] !== 'function')",
            list(APP_CONTROL_GLOBALS),
        )
        return [str(name) for name in missing]

    async def ensure_contract(self) -> None:
        """Raise AppContractError unless every control global is published."""
        missing = await self.missing_globals()
        if missing:
            raise AppContractError(missing)
