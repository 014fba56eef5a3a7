"""Browser factory for creating and managing Playwright browser contexts.

This module provides the BrowserFactory class that handles browser lifecycle
management, context creation with configuration, and cleanup. It supports
the three Playwright engines, per-capture context settings derived from the
launch configuration, and headful debugging.
"""

import copy
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

logger = logging.getLogger(__name__)


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.CHROMIUM, cls.FIREFOX, cls.WEBKIT]


class BrowserConfig:
    """Configuration for browser creation and context setup."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        devtools: bool = False,
        slow_mo: int = 0,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        ignore_https_errors: bool = False,
        java_script_enabled: bool = True,
        permissions: Optional[List[str]] = None,
        **kwargs
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser in headless mode
            devtools: Open DevTools automatically (headful Chromium only)
            slow_mo: Slow down operations by specified milliseconds
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            ignore_https_errors: Ignore SSL/TLS certificate errors
            java_script_enabled: Enable JavaScript execution
            permissions: List of permissions to grant
        """
        self.engine = engine
        self.headless = headless
        self.devtools = devtools
        self.slow_mo = slow_mo
        self.viewport = viewport or {'width': 800, 'height': 600}
        self.user_agent = user_agent
        self.ignore_https_errors = ignore_https_errors
        self.java_script_enabled = java_script_enabled
        self.permissions = permissions or []
        self.extra_options = kwargs

    def derive(self, **changes) -> 'BrowserConfig':
        """Copy of this configuration with the given attributes replaced."""
        derived = copy.copy(self)
        for name, value in changes.items():
            setattr(derived, name, value)
        return derived

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options = {
            'headless': self.headless,
            'slow_mo': self.slow_mo,
        }

        if self.devtools and not self.headless and self.engine == BrowserEngineType.CHROMIUM:
            options['devtools'] = True

        options.update(self.extra_options)

        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options = {}

        if self.viewport:
            options['viewport'] = self.viewport

        if self.user_agent:
            options['user_agent'] = self.user_agent

        if self.ignore_https_errors:
            options['ignore_https_errors'] = self.ignore_https_errors

        if not self.java_script_enabled:
            options['java_script_enabled'] = False

        if self.permissions:
            options['permissions'] = self.permissions

        return options


class BrowserFactory:
    """Factory for creating and managing a Playwright browser instance."""

    def __init__(self, config: BrowserConfig):
        """Initialize browser factory with configuration.

        Args:
            config: Browser configuration object
        """
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._context_count = 0
        self._default_user_agent: Optional[str] = None

    async def start(self) -> None:
        """Start Playwright and launch browser."""
        if self.playwright is not None:
            logger.warning("Browser factory already started")
            return

        logger.info(f"Starting browser factory with engine: {self.config.engine}")

        try:
            self.playwright = await async_playwright().start()

            if self.config.engine == BrowserEngineType.FIREFOX:
                browser_type = self.playwright.firefox
            elif self.config.engine == BrowserEngineType.WEBKIT:
                browser_type = self.playwright.webkit
            else:
                browser_type = self.playwright.chromium

            browser_options = self.config.to_browser_options()
            self.browser = await browser_type.launch(**browser_options)

            logger.info(f"Browser launched successfully (headless={self.config.headless})")

        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop browser and cleanup resources."""
        logger.debug("Stopping browser factory")

        try:
            if self.browser:
                await self.browser.close()
                self.browser = None

            if self.playwright:
                await self.playwright.stop()
                self.playwright = None

            self._context_count = 0
            logger.debug("Browser factory stopped successfully")

        except Exception as e:
            logger.error(f"Error stopping browser factory: {e}")

    async def create_context(self, **context_overrides) -> BrowserContext:
        """Create a new browser context.

        Args:
            **context_overrides: Override default context options

        Returns:
            New browser context

        Raises:
            RuntimeError: If browser factory not started
        """
        if not self.browser:
            raise RuntimeError("Browser factory not started. Call start() first.")

        try:
            context_options = self.config.to_context_options()
            context_options.update(context_overrides)

            context = await self.browser.new_context(**context_options)
            self._context_count += 1

            logger.debug(f"Created browser context #{self._context_count}")
            return context

        except Exception as e:
            logger.error(f"Failed to create browser context: {e}")
            raise

    @asynccontextmanager
    async def context(self, **context_overrides) -> AsyncGenerator[BrowserContext, None]:
        """Context manager for browser context lifecycle.

        Args:
            **context_overrides: Override default context options

        Yields:
            Browser context that will be automatically closed
        """
        context = await self.create_context(**context_overrides)
        try:
            yield context
        finally:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context_count -= 1

    @asynccontextmanager
    async def page(self, **context_overrides) -> AsyncGenerator[Page, None]:
        """Context manager for a single page.

        Args:
            **context_overrides: Override default context options

        Yields:
            Page instance that will be automatically closed
        """
        async with self.context(**context_overrides) as context:
            page = await context.new_page()
            try:
                yield page
            finally:
                await page.close()

    async def default_user_agent(self) -> str:
        """User-Agent the engine sends when none is configured."""
        if self._default_user_agent is None:
            async with self.page() as page:
                self._default_user_agent = await page.evaluate("() => navigator.userAgent")
        return self._default_user_agent

    @property
    def is_running(self) -> bool:
        """Check if browser factory is running."""
        if self.browser is None:
            return False
        return self.browser.is_connected()

    @property
    def context_count(self) -> int:
        """Get current number of active contexts."""
        return self._context_count

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(engine={self.config.engine}, "
            f"headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"contexts={self.context_count})"
        )
