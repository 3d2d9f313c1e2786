"""Tests for the e2e fixture set, against a browser-free page."""

from typing import Optional

import pytest

from kit_e2e.app_control import AppControl
from kit_e2e.error_table import ErrorTable
from kit_e2e.fixtures import BASE_FIXTURES, Box, Viewport, is_box_in_view, kit_fixtures
from kit_e2e.readiness import STARTED_INIT_SCRIPT, ReadyPage
from tests.mock_helpers import MockPage

VIEWPORT: Viewport = {"width": 1280, "height": 720}


def box(y: float, height: float = 20) -> Box:
    return {"x": 0, "y": y, "width": 100, "height": height}


class TestIsBoxInView:
    """Vertical overlap between an element and the viewport."""

    @pytest.mark.parametrize(
        "element,expected",
        [
            (box(0), True),
            (box(700), True),
            (box(719.5), True),
            (box(720), False),
            (box(3000), False),
            (box(-20), False),
            (box(-19), True),
            (box(-100, height=1000), True),
        ],
    )
    def test_overlap(self, element: Box, expected: bool) -> None:
        assert is_box_in_view(element, VIEWPORT) is expected

    def test_missing_box(self) -> None:
        assert is_box_in_view(None, VIEWPORT) is False

    def test_missing_viewport(self) -> None:
        assert is_box_in_view(box(0), None) is False

    def test_horizontal_position_is_ignored(self) -> None:
        element: Box = {"x": 5000, "y": 10, "width": 10, "height": 10}

        assert is_box_in_view(element, VIEWPORT)


class TestRegistry:
    def test_kit_fixtures_validate_against_base_fixtures(self) -> None:
        order = kit_fixtures.validate(BASE_FIXTURES)

        assert order[0] == "page"
        assert set(order) == {"page", "app", "clicknav", "in_view", "read_errors"}


@pytest.mark.asyncio
class TestKitFixtures:
    """Fixtures resolved through a scope over a mock page."""

    @staticmethod
    def base(
        page: MockPage,
        javascript_enabled: bool,
        config: object,
        table: Optional[ErrorTable] = None,
    ) -> dict:
        return {
            "page": page,
            "javascript_enabled": javascript_enabled,
            "harness_config": config,
            "error_table": table or ErrorTable(),
        }

    async def test_page_is_wrapped_and_script_installed(self, make_config) -> None:  # type: ignore[no-untyped-def]
        mock_page = MockPage()

        async with kit_fixtures.scope(self.base(mock_page, True, make_config())) as scope:
            page = await scope.get("page")

        assert isinstance(page, ReadyPage)
        assert page.raw is mock_page
        assert page.policy.javascript_enabled
        assert mock_page.init_scripts == [STARTED_INIT_SCRIPT]

    async def test_no_init_script_without_javascript(self, make_config) -> None:  # type: ignore[no-untyped-def]
        mock_page = MockPage(marker_delay=None)

        async with kit_fixtures.scope(self.base(mock_page, False, make_config())) as scope:
            page = await scope.get("page")
            await page.goto("/")  # type: ignore[attr-defined]

        assert mock_page.init_scripts == []
        assert mock_page.events == ["goto", "goto:done"]

    async def test_policy_follows_config(self, make_config) -> None:  # type: ignore[no-untyped-def]
        config = make_config("firefox", dev=True)

        async with kit_fixtures.scope(self.base(MockPage(), True, config)) as scope:
            page = await scope.get("page")

        assert isinstance(page, ReadyPage)
        assert page.policy.dev
        assert page.policy.firefox

    async def test_app_uses_wrapped_page(self, make_config) -> None:  # type: ignore[no-untyped-def]
        async with kit_fixtures.scope(self.base(MockPage(), True, make_config())) as scope:
            app = await scope.get("app")
            page = await scope.get("page")

        assert isinstance(app, AppControl)
        assert app.page is page

    async def test_clicknav_waits_for_navigation_with_javascript(self, make_config) -> None:  # type: ignore[no-untyped-def]
        mock_page = MockPage()

        async with kit_fixtures.scope(self.base(mock_page, True, make_config())) as scope:
            clicknav = await scope.get("clicknav")
            await clicknav("a[href='/about']")  # type: ignore[operator]

        assert mock_page.events == [
            "expect_navigation",
            "click:a[href='/about']",
            "expect_navigation:done",
        ]

    async def test_clicknav_plain_click_without_javascript(self, make_config) -> None:  # type: ignore[no-untyped-def]
        mock_page = MockPage()

        async with kit_fixtures.scope(self.base(mock_page, False, make_config())) as scope:
            clicknav = await scope.get("clicknav")
            await clicknav("a[href='/about']")  # type: ignore[operator]

        assert mock_page.events == ["click:a[href='/about']"]

    async def test_in_view(self, make_config) -> None:  # type: ignore[no-untyped-def]
        mock_page = MockPage(boxes={"#top": dict(box(10)), "#bottom": dict(box(3000))})

        async with kit_fixtures.scope(self.base(mock_page, True, make_config())) as scope:
            in_view = await scope.get("in_view")

            assert await in_view("#top")  # type: ignore[operator]
            assert not await in_view("#bottom")  # type: ignore[operator]
            assert not await in_view("#hidden")  # type: ignore[operator]

    async def test_read_errors(self, make_config) -> None:  # type: ignore[no-untyped-def]
        table = ErrorTable({"errors/load": {"message": "Not found", "status": 404}})

        async with kit_fixtures.scope(
            self.base(MockPage(), True, make_config(), table)
        ) as scope:
            read_errors = await scope.get("read_errors")

        assert read_errors("errors/load") == {"message": "Not found", "status": 404}  # type: ignore[operator]
        assert read_errors("errors/missing") is None  # type: ignore[operator]

    async def test_read_errors_needs_no_page(self) -> None:
        async with kit_fixtures.scope({"error_table": ErrorTable({"a": 1})}) as scope:
            read_errors = await scope.get("read_errors")

        assert read_errors("a") == 1  # type: ignore[operator]
        assert scope.constructed == ["read_errors"]
