from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from gherkin_engine.core import ConfigurationError, StepExecutionError
from gherkin_engine.executor import ExecutorConfig, ScenarioContext
from gherkin_engine.executor.builtin_steps import BUILTIN_STEPS
from gherkin_engine.executor.playwright_steps import (
    PlaywrightSession,
    build_playwright_handlers,
    create_playwright_executor,
)


class TestPlaywrightHandlers:
    """Test the Playwright handler set with a mocked page"""

    @pytest.fixture
    def handlers(self, tmp_path):
        return build_playwright_handlers(str(tmp_path / "shots"))

    @pytest.fixture
    def context(self):
        page = AsyncMock()
        page.url = "https://example.com/dashboard"
        page.keyboard = AsyncMock()
        return ScenarioContext(page=page, base_url="https://example.com")

    def test_every_builtin_step_has_handler(self, handlers):
        """Test all built-in identifiers can be executed"""
        missing = [step.id for step in BUILTIN_STEPS if not handlers.has_handler(step.id)]
        assert missing == []

    @pytest.mark.asyncio
    async def test_navigate_resolves_base_url(self, handlers, context):
        """Test relative paths are resolved against the base URL"""
        output = await handlers.execute("navigate_to", ["/login"], context)

        context.page.goto.assert_awaited_once_with("https://example.com/login")
        assert output == "Navigated to https://example.com/login"

    @pytest.mark.asyncio
    async def test_press_key(self, handlers, context):
        """Test key presses go to the keyboard"""
        await handlers.execute("press_key", ["Enter"], context)
        context.page.keyboard.press.assert_awaited_once_with("Enter")

    @pytest.mark.asyncio
    async def test_title_should_contain(self, handlers, context):
        """Test title assertions"""
        context.page.title.return_value = "Dashboard - Example"

        await handlers.execute("title_should_contain", ["Dashboard"], context)
        with pytest.raises(StepExecutionError):
            await handlers.execute("title_should_contain", ["Settings"], context)

    @pytest.mark.asyncio
    async def test_url_should_contain(self, handlers, context):
        """Test URL assertions"""
        await handlers.execute("url_should_contain", ["/dashboard"], context)
        with pytest.raises(StepExecutionError):
            await handlers.execute("url_should_contain", ["/settings"], context)

    @pytest.mark.asyncio
    async def test_store_text(self, handlers, context):
        """Test element text is stored for later steps"""
        locator = MagicMock()
        locator.first.inner_text = AsyncMock(return_value="Order #42")
        context.page.locator = MagicMock(return_value=locator)

        await handlers.execute("store_text", ["h1", "order"], context)
        assert context.get_value("order") == "Order #42"

    @pytest.mark.asyncio
    async def test_screenshot_path(self, handlers, context, tmp_path):
        """Test named screenshots are written under the screenshot directory"""
        output = await handlers.execute("screenshot", ["home"], context)

        assert output == str(tmp_path / "shots" / "home.png")
        context.page.screenshot.assert_awaited_once_with(path=output)


class TestPlaywrightSession:
    """Test PlaywrightSession configuration"""

    def test_unsupported_browser(self):
        """Test unknown browsers are rejected"""
        with pytest.raises(ConfigurationError):
            PlaywrightSession(ExecutorConfig(browser="netscape"))

    def test_create_executor(self):
        """Test the executor is wired to the Playwright session"""
        executor = create_playwright_executor(ExecutorConfig(headless=True))
        assert executor.session_factory is PlaywrightSession
        assert executor.handlers.has_handler("navigate_to")

    @pytest.fixture
    def driver(self):
        playwright = MagicMock()
        playwright.stop = AsyncMock()
        starter = MagicMock()
        starter.return_value.start = AsyncMock(return_value=playwright)
        with patch('gherkin_engine.executor.playwright_steps.async_playwright', starter):
            yield playwright

    @pytest.mark.asyncio
    async def test_launch_failure_is_configuration_error(self, driver):
        """Test a browser that cannot launch stops the driver and raises ConfigurationError"""
        driver.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        session = PlaywrightSession(ExecutorConfig(browser="chromium"))

        with pytest.raises(ConfigurationError, match="Could not launch chromium"):
            await session.start()

        driver.stop.assert_awaited_once()
        assert session._playwright is None

    @pytest.mark.asyncio
    async def test_unexpected_launch_error_stops_driver(self, driver):
        """Test other launch errors propagate after the driver is stopped"""
        driver.firefox.launch = AsyncMock(side_effect=RuntimeError("boom"))
        session = PlaywrightSession(ExecutorConfig(browser="firefox"))

        with pytest.raises(RuntimeError):
            async with session:
                pass

        driver.stop.assert_awaited_once()
