"""Unit tests for browser factory."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagecapt.capture.browser_factory import BrowserConfig, BrowserEngineType, BrowserFactory


class TestBrowserConfig:
    """Tests for BrowserConfig class."""

    def test_default_config(self):
        config = BrowserConfig()

        assert config.engine == BrowserEngineType.CHROMIUM
        assert config.headless is True
        assert config.devtools is False
        assert config.viewport == {'width': 800, 'height': 600}
        assert config.user_agent is None
        assert config.java_script_enabled is True
        assert config.permissions == []

    def test_browser_options_conversion(self):
        config = BrowserConfig(headless=False, devtools=True, slow_mo=500, custom_arg="value")

        options = config.to_browser_options()

        assert options['headless'] is False
        assert options['devtools'] is True
        assert options['slow_mo'] == 500
        assert options['custom_arg'] == "value"

    def test_devtools_requires_headful_chromium(self):
        assert 'devtools' not in BrowserConfig(devtools=True).to_browser_options()
        assert 'devtools' not in BrowserConfig(
            engine=BrowserEngineType.FIREFOX, headless=False, devtools=True
        ).to_browser_options()

    def test_context_options_conversion(self):
        config = BrowserConfig(
            viewport={'width': 1280, 'height': 720},
            user_agent="Custom UA",
            ignore_https_errors=True,
            java_script_enabled=False,
            permissions=['clipboard-read'],
        )

        options = config.to_context_options()

        assert options == {
            'viewport': {'width': 1280, 'height': 720},
            'user_agent': "Custom UA",
            'ignore_https_errors': True,
            'java_script_enabled': False,
            'permissions': ['clipboard-read'],
        }

    def test_minimal_context_options(self):
        assert BrowserConfig().to_context_options() == {'viewport': {'width': 800, 'height': 600}}

    def test_derive_leaves_original_untouched(self):
        config = BrowserConfig(ignore_https_errors=True)

        derived = config.derive(viewport={'width': 1024, 'height': 700}, user_agent="Bot/1.0")

        assert derived.to_context_options() == {
            'viewport': {'width': 1024, 'height': 700},
            'user_agent': "Bot/1.0",
            'ignore_https_errors': True,
        }
        assert config.viewport == {'width': 800, 'height': 600}
        assert config.user_agent is None


class TestBrowserFactory:
    """Tests for BrowserFactory class."""

    @pytest.fixture
    def playwright_mock(self):
        browser = MagicMock()
        browser.close = AsyncMock()
        browser.is_connected.return_value = True
        browser.version = "120.0"

        context = MagicMock()
        context.close = AsyncMock()
        page = MagicMock()
        page.close = AsyncMock()
        page.evaluate = AsyncMock(return_value="Mozilla/5.0 Headless")
        context.new_page = AsyncMock(return_value=page)
        browser.new_context = AsyncMock(return_value=context)

        playwright = MagicMock()
        playwright.stop = AsyncMock()
        for name in BrowserEngineType.all():
            getattr(playwright, name).launch = AsyncMock(return_value=browser)
        return playwright

    @pytest.fixture
    def patched_playwright(self, playwright_mock):
        with patch('pagecapt.capture.browser_factory.async_playwright') as async_playwright:
            async_playwright.return_value.start = AsyncMock(return_value=playwright_mock)
            yield playwright_mock

    @pytest.mark.asyncio
    async def test_start_stop(self, patched_playwright):
        factory = BrowserFactory(BrowserConfig(slow_mo=10))

        await factory.start()

        assert factory.is_running
        patched_playwright.chromium.launch.assert_awaited_once_with(headless=True, slow_mo=10)

        await factory.stop()

        assert factory.browser is None
        assert not factory.is_running
        patched_playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_engine_selection(self, patched_playwright):
        factory = BrowserFactory(BrowserConfig(engine=BrowserEngineType.WEBKIT))

        await factory.start()

        patched_playwright.webkit.launch.assert_awaited_once()
        patched_playwright.chromium.launch.assert_not_awaited()
        await factory.stop()

    @pytest.mark.asyncio
    async def test_create_context_not_started(self):
        factory = BrowserFactory(BrowserConfig())

        with pytest.raises(RuntimeError, match="not started"):
            await factory.create_context()

    @pytest.mark.asyncio
    async def test_page_context_manager(self, patched_playwright):
        factory = BrowserFactory(BrowserConfig())
        await factory.start()
        browser = factory.browser

        async with factory.page(viewport={'width': 1024, 'height': 768}) as page:
            assert factory.context_count == 1
            browser.new_context.assert_awaited_once_with(viewport={'width': 1024, 'height': 768})

        page.close.assert_awaited_once()
        assert factory.context_count == 0
        await factory.stop()

    @pytest.mark.asyncio
    async def test_default_user_agent_cached(self, patched_playwright):
        factory = BrowserFactory(BrowserConfig())
        await factory.start()

        assert await factory.default_user_agent() == "Mozilla/5.0 Headless"
        assert await factory.default_user_agent() == "Mozilla/5.0 Headless"

        factory.browser.new_context.assert_awaited_once()
        await factory.stop()

    def test_repr(self):
        factory = BrowserFactory(BrowserConfig())
        assert "running=False" in repr(factory)
