"""
Navigation readiness for client-hydrated pages.

After a navigation finishes loading, the application still has to boot its
client-side runtime before the page reacts to input. ``ReadyPage`` wraps a
Playwright page so that ``goto``, ``go_back`` and ``reload`` only resolve once
the application signals that it has started.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Final, List, Tuple

from playwright.async_api import ConsoleMessage, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from kit_e2e.config import READINESS_TIMEOUT_MS, HarnessConfig
from kit_e2e.errors import NavigationContractError, ReadinessTimeoutError

logger = logging.getLogger(__name__)

STARTED_SELECTOR: Final[str] = "body.started"
DEV_CONNECTED_MESSAGE: Final[str] = "[vite] connected."
START_EVENT: Final[str] = "sveltekit:start"

# Installed before any page script runs; marks <body> once the app has booted.
STARTED_INIT_SCRIPT: Final[str] = f"""
addEventListener('{START_EVENT}', () => {{
    document.body.classList.add('started');
}});
"""

# Firefox does not reliably deliver the console event after navigation.
FIREFOX_DEV_SETTLE_SECONDS: Final[float] = 0.1


class NavigationKind(Enum):
    """Page operations that trigger a navigation."""

    GOTO = "goto"
    GO_BACK = "go_back"
    RELOAD = "reload"


class ReadinessCondition(Enum):
    """Signals that a navigated page is ready."""

    DOM_MARKER = STARTED_SELECTOR
    DEV_RECONNECT = DEV_CONNECTED_MESSAGE


@dataclass(frozen=True)
class ReadinessPolicy:
    """Which conditions to await after each kind of navigation."""

    javascript_enabled: bool
    dev: bool = False
    timeout_ms: int = READINESS_TIMEOUT_MS
    firefox: bool = False

    @classmethod
    def from_config(
        cls, config: HarnessConfig, javascript_enabled: bool
    ) -> "ReadinessPolicy":
        return cls(
            javascript_enabled=javascript_enabled,
            dev=config.dev,
            timeout_ms=config.readiness_timeout_ms,
            firefox=config.browser.is_firefox,
        )

    def conditions_for(self, kind: NavigationKind) -> Tuple[ReadinessCondition, ...]:
        """
        Conditions for a navigation of the given kind.

        Without JavaScript nothing boots, so there is nothing to wait for.
        A history pop in dev mode may restore the page from memory without a
        new dev-server connection, so ``go_back`` only waits for the marker.
        """
        if not self.javascript_enabled:
            return ()
        if self.dev and kind != NavigationKind.GO_BACK:
            return (ReadinessCondition.DOM_MARKER, ReadinessCondition.DEV_RECONNECT)
        return (ReadinessCondition.DOM_MARKER,)


class ReadyPage:
    """
    A page whose navigation operations wait for the application to start.

    Only ``goto``, ``go_back`` and ``reload`` are intercepted; every other
    attribute is read from the wrapped page. The wrapped page is not modified.
    """

    NAVIGATION_OPERATIONS: Final[Tuple[str, ...]] = tuple(
        kind.value for kind in NavigationKind
    )

    def __init__(self, page: Page, policy: ReadinessPolicy) -> None:
        for name in self.NAVIGATION_OPERATIONS:
            if not callable(getattr(page, name, None)):
                raise NavigationContractError(name)
        self._page = page
        self.policy = policy

    @property
    def raw(self) -> Page:
        """The underlying page, without readiness waits."""
        return self._page

    def __getattr__(self, name: str) -> Any:
        return getattr(self._page, name)

    def __repr__(self) -> str:
        return f"ReadyPage({self._page!r}, {self.policy!r})"

    async def goto(self, url: str, **kwargs: object) -> object:
        return await self._navigate(NavigationKind.GOTO, self._page.goto, url, **kwargs)

    async def go_back(self, **kwargs: object) -> object:
        return await self._navigate(NavigationKind.GO_BACK, self._page.go_back, **kwargs)

    async def reload(self, **kwargs: object) -> object:
        return await self._navigate(NavigationKind.RELOAD, self._page.reload, **kwargs)

    async def _navigate(
        self,
        kind: NavigationKind,
        operation: Callable[..., Awaitable[object]],
        *args: object,
        **kwargs: object,
    ) -> object:
        conditions = self.policy.conditions_for(kind)
        if not conditions:
            return await operation(*args, **kwargs)

        # Armed before delegating; the message can arrive mid-navigation.
        waits: List["asyncio.Future[None]"] = [
            asyncio.ensure_future(self._wait_for(condition))
            for condition in conditions
            if self._armed_early(condition)
        ]
        try:
            result = await operation(*args, **kwargs)
            waits.extend(
                asyncio.ensure_future(self._wait_for(condition))
                for condition in conditions
                if not self._armed_early(condition)
            )
            await asyncio.gather(*waits)
        finally:
            # A failed join must not leave the other waits running.
            for pending in waits:
                if not pending.done():
                    pending.cancel()

        logger.debug(f"{kind.value} ready ({', '.join(c.name for c in conditions)})")
        return result

    def _armed_early(self, condition: ReadinessCondition) -> bool:
        return condition == ReadinessCondition.DEV_RECONNECT and not self.policy.firefox

    async def _wait_for(self, condition: ReadinessCondition) -> None:
        timeout = self.policy.timeout_ms
        try:
            if condition == ReadinessCondition.DOM_MARKER:
                await self._page.wait_for_selector(STARTED_SELECTOR, timeout=timeout)
            elif self.policy.firefox:
                await asyncio.sleep(FIREFOX_DEV_SETTLE_SECONDS)
            else:
                await self._page.wait_for_event(
                    "console", predicate=_is_dev_connected, timeout=timeout
                )
        except PlaywrightTimeoutError as e:
            raise ReadinessTimeoutError(condition.value, timeout, e) from e


def _is_dev_connected(message: ConsoleMessage) -> bool:
    return DEV_CONNECTED_MESSAGE in (message.text or "")
