"""Page session for a single capture.

This module provides the PageSession class that prepares a Playwright page
for a CaptureRequest (user stylesheet, feature toggles, request method,
body and headers), connects the page's load events to the
CompletionOrchestrator, starts the navigation and waits for the snapshot.

Engine events map onto the orchestrator's readiness signals as follows:
``domcontentloaded`` reports the initial layout, ``load`` reports load
completion, and a failed navigation reports an unsuccessful load.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError, Page, Route

from ..errors import ExportFailed
from ..models.capture import CaptureRequest, CaptureResult, CaptureStatus, FireTrigger
from .dispatcher import SerializationDispatcher
from .orchestrator import CompletionOrchestrator

logger = logging.getLogger(__name__)


# Scrollbars never take layout space in captures
HIDE_SCROLLBARS_CSS = "html { scrollbar-width: none; } ::-webkit-scrollbar { display: none; }"

# Toggles without a Playwright counterpart
UNSUPPORTED_TOGGLES = ('java', 'plugins', 'links_in_focus_chain')


def build_init_script(request: CaptureRequest) -> str:
    """JavaScript run in every document before page scripts."""
    parts: List[str] = [
        "(() => {",
        "  const addToHead = (el) => (document.head || document.documentElement).appendChild(el);",
        "  const onReady = (fn) => {",
        "    if (document.readyState === 'loading') document.addEventListener('DOMContentLoaded', fn);",
        "    else fn();",
        "  };",
        "  onReady(() => {",
        "    const style = document.createElement('style');",
        f"    style.textContent = {json.dumps(HIDE_SCROLLBARS_CSS)};",
        "    addToHead(style);",
    ]

    if request.user_styles:
        parts += [
            "    const link = document.createElement('link');",
            "    link.rel = 'stylesheet';",
            f"    link.href = {json.dumps(request.user_styles)};",
            "    addToHead(link);",
        ]

    parts.append("  });")

    if request.toggles.js_can_open_windows is False:
        parts.append("  window.open = () => null;")

    parts.append("})();")
    return "\n".join(parts)


class PageSession:
    """Runs one capture on a prepared page."""

    def __init__(
        self,
        page: Page,
        request: CaptureRequest,
        dispatcher: Optional[SerializationDispatcher] = None,
    ):
        """Initialize page session.

        Args:
            page: Playwright page for capture
            request: Capture request
            dispatcher: Export dispatcher (defaults to one using the request's min width)
        """
        self.page = page
        self.request = request
        self.orchestrator = CompletionOrchestrator(page, request, dispatcher)
        self.result: Optional[CaptureResult] = None

        self._navigation_task: Optional[asyncio.Task] = None
        self._listening = False
        self._main_request_routed = False
        self._block_images = request.toggles.auto_load_images is False

    @property
    def needs_routing(self) -> bool:
        """Whether requests must be intercepted to honour the request settings."""
        return bool(
            self.request.headers
            or self.request.method != "GET"
            or self.request.body is not None
            or self._block_images
        )

    async def capture(self) -> CaptureResult:
        """Load the page and write the snapshot.

        Returns:
            CaptureResult describing the outcome
        """
        self.result = CaptureResult(
            url=self.request.url,
            output_path=self.request.output_path,
            output_format=str(self.request.output_format),
            status=CaptureStatus.FAILED,
            capture_time=datetime.now(timezone.utc),
        )

        try:
            await self._prepare_page()
            self._attach_listeners()

            self.orchestrator.start()
            self._navigation_task = asyncio.create_task(self._navigate())

            trigger = await self.orchestrator.wait()
            self.result.trigger = trigger
            if trigger == FireTrigger.TIMEOUT:
                self.result.status = CaptureStatus.TIMEOUT
            else:
                self.result.status = CaptureStatus.SUCCESS

            logger.info(f"Capture of {self.request.url} completed ({self.result.status.value})")

        except ExportFailed as e:
            logger.error(f"Capture failed: {e}")
            self.result.trigger = self.orchestrator.session.trigger
            self.result.error = str(e)

        finally:
            await self._teardown()

        self.result.load_ok = self.orchestrator.session.load_ok
        self.result.duration_ms = self.orchestrator.elapsed_ms()
        return self.result

    async def _prepare_page(self) -> None:
        """Apply stylesheet, toggles and request interception."""
        await self.page.add_init_script(build_init_script(self.request))

        for name in UNSUPPORTED_TOGGLES:
            if getattr(self.request.toggles, name) is not None:
                logger.warning(f"Feature toggle '{name}' has no effect with this engine")

        if self.request.toggles.private_browsing is False:
            logger.warning("Browser contexts are always private; --private-browsing=off is ignored")

        if self.needs_routing:
            await self.page.route("**/*", self._handle_route)
            logger.debug("Request interception enabled")

    def _attach_listeners(self) -> None:
        self.page.on("domcontentloaded", self._on_dom_content_loaded)
        self.page.on("load", self._on_load)
        self._listening = True

    def _detach_listeners(self) -> None:
        if not self._listening:
            return
        self._listening = False
        self.page.remove_listener("domcontentloaded", self._on_dom_content_loaded)
        self.page.remove_listener("load", self._on_load)

    def _on_dom_content_loaded(self, _page: Any = None) -> None:
        self.orchestrator.on_layout_ready()

    def _on_load(self, _page: Any = None) -> None:
        self.orchestrator.on_load_complete(True)

    async def _handle_route(self, route: Route) -> None:
        """Rewrite the main navigation request and drop images if disabled."""
        request = route.request

        if self._block_images and request.resource_type == "image":
            await route.abort()
            return

        if (
            not self._main_request_routed
            and request.is_navigation_request()
            and request.frame == self.page.main_frame
        ):
            self._main_request_routed = True
            overrides: Dict[str, Any] = {}

            if self.request.headers:
                extra = self.request.header_map()
                replaced = {name.lower() for name in extra}
                headers = {
                    name: value for name, value in request.headers.items()
                    if name.lower() not in replaced
                }
                headers.update(extra)
                overrides['headers'] = headers
            if self.request.method != request.method:
                overrides['method'] = self.request.method
            if self.request.body is not None:
                overrides['post_data'] = self.request.body

            logger.debug(f"Sending {self.request.method} {request.url} with {len(self.request.headers)} extra headers")
            await route.continue_(**overrides)
            return

        await route.continue_()

    async def _navigate(self) -> None:
        """Issue the load; completion is reported through page events."""
        try:
            response = await self.page.goto(self.request.url, wait_until="commit", timeout=0)
            if response is not None:
                logger.debug(f"Response {response.status} for {response.url}")
        except PlaywrightError as e:
            if not self.orchestrator.fired:
                logger.warning(f"Navigation to {self.request.url} failed: {e}")
                self.orchestrator.on_load_complete(False)

    async def _teardown(self) -> None:
        self.orchestrator.cancel()
        self._detach_listeners()

        if self._navigation_task is not None and not self._navigation_task.done():
            self._navigation_task.cancel()
            try:
                await self._navigation_task
            except asyncio.CancelledError:
                pass

    def __repr__(self) -> str:
        status = self.result.status.value if self.result else 'not_started'
        return f"PageSession(url={self.request.url}, status={status})"
