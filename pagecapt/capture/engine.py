"""Capture engine that owns the browser for a single capture.

This module provides the CaptureEngine class that starts the browser,
builds a browser context matching a CaptureRequest, runs a PageSession on
it and shuts everything down again. One engine performs one capture per
process run.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from .browser_factory import BrowserConfig, BrowserEngineType, BrowserFactory
from .dispatcher import SerializationDispatcher
from .page_session import PageSession
from ..models.capture import CaptureRequest, CaptureResult

logger = logging.getLogger(__name__)


CLIPBOARD_PERMISSIONS = ['clipboard-read', 'clipboard-write']


class CaptureEngineConfig:
    """Configuration for the capture engine."""

    def __init__(self, browser_config: Optional[BrowserConfig] = None):
        """Initialize capture engine configuration.

        Args:
            browser_config: Browser factory configuration
        """
        self.browser_config = browser_config or BrowserConfig()


class CaptureEngine:
    """Runs a capture request against a freshly launched browser."""

    def __init__(self, config: Optional[CaptureEngineConfig] = None):
        """Initialize capture engine.

        Args:
            config: Engine configuration (uses defaults if None)
        """
        self.config = config or CaptureEngineConfig()
        self.browser_factory: Optional[BrowserFactory] = None
        self._is_running = False

    async def start(self) -> None:
        """Start the capture engine and initialize browser."""
        if self._is_running:
            logger.warning("Capture engine already running")
            return

        try:
            self.browser_factory = BrowserFactory(self.config.browser_config)
            await self.browser_factory.start()
            self._is_running = True
            logger.debug("Capture engine started")

        except Exception as e:
            logger.error(f"Failed to start capture engine: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the capture engine and cleanup resources."""
        try:
            if self.browser_factory:
                await self.browser_factory.stop()
                self.browser_factory = None

            self._is_running = False
            logger.debug("Capture engine stopped")

        except Exception as e:
            logger.error(f"Error stopping capture engine: {e}")

    async def capture(self, request: CaptureRequest) -> CaptureResult:
        """Capture a single page.

        Args:
            request: What to load and where to write it

        Returns:
            CaptureResult for the capture
        """
        if not self._is_running:
            raise RuntimeError("Capture engine not started. Call start() first.")

        context_options = await self._context_options(request)
        dispatcher = SerializationDispatcher(min_width=request.min_width)

        logger.info(f"Capturing {request.url} to {request.output_path} ({request.output_format})")

        async with self.browser_factory.page(**context_options) as page:
            return await PageSession(page, request, dispatcher).capture()

    async def _context_options(self, request: CaptureRequest) -> Dict[str, Any]:
        """Browser context options derived from the request."""
        base = self.config.browser_config
        changes: Dict[str, Any] = {'viewport': request.initial_viewport}
        toggles = request.toggles

        if toggles.javascript is not None:
            changes['java_script_enabled'] = toggles.javascript

        if toggles.js_can_access_clipboard:
            if base.engine == BrowserEngineType.CHROMIUM:
                changes['permissions'] = CLIPBOARD_PERMISSIONS
            else:
                logger.warning("Clipboard access can only be granted with chromium")

        if request.user_agent:
            changes['user_agent'] = request.user_agent
        elif request.app_name:
            default_user_agent = await self.browser_factory.default_user_agent()
            changes['user_agent'] = request.user_agent_for(default_user_agent)

        return base.derive(**changes).to_context_options()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator['CaptureEngine', None]:
        """Context manager for engine lifecycle.

        Yields:
            Started capture engine that will be automatically stopped
        """
        try:
            await self.start()
            yield self
        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        """Check if engine is running."""
        return self._is_running

    def __repr__(self) -> str:
        return (
            f"CaptureEngine(running={self._is_running}, "
            f"engine={self.config.browser_config.engine})"
        )


def create_capture_engine(
    engine: str = BrowserEngineType.CHROMIUM,
    headless: bool = True,
    request: Optional[CaptureRequest] = None,
    **kwargs
) -> CaptureEngine:
    """Create capture engine with common configuration.

    Args:
        engine: Browser engine to use
        headless: Run browser in headless mode
        request: Capture request whose launch-time toggles apply to the browser
        **kwargs: Additional BrowserConfig options

    Returns:
        Configured CaptureEngine instance
    """
    if request is not None and request.toggles.developer_extras:
        kwargs.setdefault('devtools', True)

    browser_config = BrowserConfig(engine=engine, headless=headless, **kwargs)
    return CaptureEngine(CaptureEngineConfig(browser_config=browser_config))
