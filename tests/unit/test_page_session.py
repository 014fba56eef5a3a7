"""Unit tests for page session."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from pagecapt.capture.page_session import PageSession, build_init_script
from pagecapt.errors import ExportFailed
from pagecapt.models.capture import CaptureStatus, FeatureToggles, FireTrigger


class MockPage:
    """Page double that records listeners and fires them from goto()."""

    def __init__(self, events=("domcontentloaded", "load"), goto_error=None):
        self.handlers = {}
        self.events = events
        self.goto_error = goto_error
        self.main_frame = MagicMock(name="main_frame")
        self.add_init_script = AsyncMock()
        self.route = AsyncMock()
        self.remove_listener = MagicMock(side_effect=self._remove)

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def _remove(self, event, handler):
        self.handlers[event].remove(handler)

    def emit(self, event):
        for handler in list(self.handlers.get(event, [])):
            handler(self)

    async def goto(self, url, **kwargs):
        self.goto_kwargs = kwargs
        if self.goto_error is not None:
            raise self.goto_error
        loop = asyncio.get_running_loop()
        for event in self.events:
            loop.call_soon(self.emit, event)
        return None


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    mock.export = AsyncMock(return_value={'width': 800, 'height': 600})
    return mock


class TestBuildInitScript:
    """Tests for the document start script."""

    def test_default_script_hides_scrollbars(self, make_request):
        script = build_init_script(make_request())

        assert "scrollbar-width: none" in script
        assert "stylesheet" not in script
        assert "window.open" not in script

    def test_user_styles_and_window_open(self, make_request):
        request = make_request(
            user_styles="file:///tmp/print.css",
            toggles=FeatureToggles(js_can_open_windows=False),
        )

        script = build_init_script(request)

        assert '"file:///tmp/print.css"' in script
        assert "window.open = () => null;" in script


class TestPageSessionCapture:
    """Tests for the capture workflow."""

    @pytest.mark.asyncio
    async def test_successful_capture(self, make_request, dispatcher):
        page = MockPage()
        session = PageSession(page, make_request(), dispatcher)

        result = await session.capture()

        assert result.status == CaptureStatus.SUCCESS
        assert result.trigger == FireTrigger.READY
        assert result.load_ok is True
        assert result.error is None
        assert result.duration_ms is not None
        assert result.capture_time.tzinfo is not None
        assert page.goto_kwargs == {'wait_until': "commit", 'timeout': 0}
        page.add_init_script.assert_awaited_once()
        page.route.assert_not_awaited()
        dispatcher.export.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_listeners_removed_after_capture(self, make_request, dispatcher):
        page = MockPage()

        await PageSession(page, make_request(), dispatcher).capture()

        assert page.handlers == {"domcontentloaded": [], "load": []}
        assert page.remove_listener.call_count == 2

    @pytest.mark.asyncio
    async def test_failed_navigation_waits_for_timeout(self, make_request, dispatcher):
        page = MockPage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        session = PageSession(page, make_request(max_wait_ms=50), dispatcher)

        result = await session.capture()

        assert result.status == CaptureStatus.TIMEOUT
        assert result.trigger == FireTrigger.TIMEOUT
        assert result.load_ok is False
        dispatcher.export.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_without_layout_times_out(self, make_request, dispatcher):
        page = MockPage(events=("load",))

        result = await PageSession(page, make_request(max_wait_ms=50), dispatcher).capture()

        assert result.status == CaptureStatus.TIMEOUT
        assert result.load_ok is True

    @pytest.mark.asyncio
    async def test_export_failure(self, make_request, dispatcher):
        dispatcher.export.side_effect = ExportFailed("out.png", "png", "disk full")
        page = MockPage()

        result = await PageSession(page, make_request(), dispatcher).capture()

        assert result.status == CaptureStatus.FAILED
        assert result.trigger == FireTrigger.READY
        assert "disk full" in result.error
        assert not result.is_successful

    @pytest.mark.asyncio
    async def test_delay_applies(self, make_request, dispatcher):
        page = MockPage()

        result = await PageSession(page, make_request(delay_ms=30), dispatcher).capture()

        assert result.trigger == FireTrigger.DELAY
        assert result.duration_ms >= 29


class TestRequestRouting:
    """Tests for request interception."""

    def _route(self, page, resource_type="document", navigation=True, method="GET", headers=None):
        route = MagicMock()
        route.continue_ = AsyncMock()
        route.abort = AsyncMock()
        route.request.resource_type = resource_type
        route.request.is_navigation_request.return_value = navigation
        route.request.frame = page.main_frame
        route.request.method = method
        route.request.headers = headers or {'accept': "text/html"}
        route.request.url = "http://example.test/"
        return route

    def test_plain_get_needs_no_routing(self, make_request):
        assert PageSession(MockPage(), make_request()).needs_routing is False

    @pytest.mark.asyncio
    async def test_routing_installed_for_headers(self, make_request, dispatcher):
        page = MockPage()
        request = make_request(headers=(("X-Token", "abc"),))

        await PageSession(page, request, dispatcher).capture()

        page.route.assert_awaited_once()
        assert page.route.await_args.args[0] == "**/*"

    @pytest.mark.asyncio
    async def test_main_request_rewritten_once(self, make_request):
        page = MockPage()
        request = make_request(
            method="post",
            body=b"a=1",
            headers=(("X-Token", "abc"), ("X-Token", "def")),
        )
        session = PageSession(page, request)

        first = self._route(page)
        await session._handle_route(first)
        first.continue_.assert_awaited_once_with(
            headers={'accept': "text/html", 'X-Token': "abc, def"},
            method="POST",
            post_data=b"a=1",
        )

        second = self._route(page)
        await session._handle_route(second)
        second.continue_.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_default_headers_replaced_case_insensitively(self, make_request):
        page = MockPage()
        request = make_request(headers=(("Accept", "application/json"), ("User-Agent", "Custom/1.0")))
        session = PageSession(page, request)

        route = self._route(page, headers={'accept': "text/html", 'user-agent': "Chrome", 'referer': "x"})
        await session._handle_route(route)

        headers = route.continue_.await_args.kwargs['headers']
        assert headers == {'referer': "x", 'Accept': "application/json", 'User-Agent': "Custom/1.0"}
        assert len({name.lower() for name in headers}) == len(headers)

    @pytest.mark.asyncio
    async def test_subresources_pass_through(self, make_request):
        page = MockPage()
        session = PageSession(page, make_request(headers=(("X-Token", "abc"),)))

        route = self._route(page, resource_type="script", navigation=False)
        await session._handle_route(route)

        route.continue_.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_images_blocked(self, make_request):
        page = MockPage()
        session = PageSession(page, make_request(toggles=FeatureToggles(auto_load_images=False)))
        assert session.needs_routing is True

        route = self._route(page, resource_type="image", navigation=False)
        await session._handle_route(route)

        route.abort.assert_awaited_once()
        route.continue_.assert_not_awaited()
