"""
Playwright automation backend for the built-in steps.

Only imported when a run actually needs a browser.
"""
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError, async_playwright, expect

from .executor import AutomationSession, ExecutorConfig, FeatureExecutor
from .scenario_context import ScenarioContext
from .step_definitions import StepHandlerRegistry
from ..core.exceptions import ConfigurationError, StepExecutionError

logger = logging.getLogger(__name__)

SUPPORTED_BROWSERS = ('chromium', 'firefox', 'webkit')


class PlaywrightSession(AutomationSession):
    """One browser per feature run, one browser context per scenario"""

    def __init__(self, config: ExecutorConfig):
        super().__init__(config)
        if config.browser not in SUPPORTED_BROWSERS:
            raise ConfigurationError(f"Unsupported browser: {config.browser}")
        self._playwright = None
        self._browser = None
        self._context = None

    async def start(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            browser_type = getattr(self._playwright, self.config.browser)
            self._browser = await browser_type.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_mo,
            )
        except PlaywrightError as e:
            await self.close()
            raise ConfigurationError(f"Could not launch {self.config.browser}: {e}") from e
        except Exception:
            await self.close()
            raise
        logger.info(f"Launched {self.config.browser} (headless={self.config.headless})")

    async def new_context(self) -> ScenarioContext:
        if self._context is not None:
            await self._context.close()

        self._context = await self._browser.new_context(viewport=self.config.viewport)
        page = await self._context.new_page()
        page.set_default_timeout(self.config.timeout)
        return ScenarioContext(
            page=page,
            base_url=self.config.base_url or "",
            timeout=self.config.timeout,
        )

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = self._browser = self._playwright = None


def build_playwright_handlers(screenshot_dir: str = "screenshots") -> StepHandlerRegistry:
    """Handlers for the built-in step identifiers backed by a Playwright page"""
    handlers = StepHandlerRegistry()

    # Navigation
    @handlers.handler('navigate_to')
    async def navigate_to(context: ScenarioContext, url: str):
        url = context.resolve_url(url)
        await context.page.goto(url)
        return f"Navigated to {url}"

    @handlers.handler('go_back')
    async def go_back(context: ScenarioContext):
        await context.page.go_back()

    @handlers.handler('go_forward')
    async def go_forward(context: ScenarioContext):
        await context.page.go_forward()

    @handlers.handler('refresh')
    async def refresh(context: ScenarioContext):
        await context.page.reload()

    # Waiting
    @handlers.handler('wait_load')
    async def wait_load(context: ScenarioContext):
        await context.page.wait_for_load_state('load')

    @handlers.handler('wait_seconds')
    async def wait_seconds(context: ScenarioContext, seconds: str):
        await asyncio.sleep(int(seconds))

    @handlers.handler('wait_ms')
    async def wait_ms(context: ScenarioContext, milliseconds: str):
        await context.page.wait_for_timeout(int(milliseconds))

    @handlers.handler('wait_for_text')
    async def wait_for_text(context: ScenarioContext, text: str):
        await context.page.get_by_text(text).first.wait_for(state='visible')

    @handlers.handler('wait_visible')
    async def wait_visible(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.wait_for(state='visible')

    @handlers.handler('wait_hidden')
    async def wait_hidden(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.wait_for(state='hidden')

    # Interaction
    @handlers.handler('press_key')
    async def press_key(context: ScenarioContext, key: str):
        await context.page.keyboard.press(key)

    @handlers.handler('double_click')
    async def double_click(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.dblclick()

    @handlers.handler('click_button_or_link')
    async def click_button_or_link(context: ScenarioContext, text: str, kind: str):
        await context.page.get_by_role(kind.lower(), name=text).first.click()

    @handlers.handler('click')
    async def click(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.click()

    @handlers.handler('hover')
    async def hover(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.hover()

    # Input
    @handlers.handler('type_text')
    async def type_text(context: ScenarioContext, text: str, selector: str):
        await context.page.locator(selector).first.fill(text)

    @handlers.handler('fill_field')
    async def fill_field(context: ScenarioContext, selector: str, text: str):
        await context.page.locator(selector).first.fill(text)

    @handlers.handler('clear_text')
    async def clear_text(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.fill("")

    @handlers.handler('select_option')
    async def select_option(context: ScenarioContext, option: str, selector: str):
        await context.page.locator(selector).first.select_option(label=option)

    @handlers.handler('check')
    async def check(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.check()

    @handlers.handler('uncheck')
    async def uncheck(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.uncheck()

    @handlers.handler('store_text')
    async def store_text(context: ScenarioContext, selector: str, name: str):
        text = await context.page.locator(selector).first.inner_text()
        context.store_value(name, text)
        return text

    # Scrolling
    @handlers.handler('scroll_bottom')
    async def scroll_bottom(context: ScenarioContext):
        await context.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

    @handlers.handler('scroll_top')
    async def scroll_top(context: ScenarioContext):
        await context.page.evaluate("window.scrollTo(0, 0)")

    @handlers.handler('scroll_to_element')
    async def scroll_to_element(context: ScenarioContext, selector: str):
        await context.page.locator(selector).first.scroll_into_view_if_needed()

    @handlers.handler('scroll_by')
    async def scroll_by(context: ScenarioContext, pixels: str, direction: str):
        delta = int(pixels) if direction.lower() == 'down' else -int(pixels)
        await context.page.mouse.wheel(0, delta)

    # Verification
    @handlers.handler('should_be_visible')
    async def should_be_visible(context: ScenarioContext, selector: str):
        await expect(context.page.locator(selector).first).to_be_visible()

    @handlers.handler('should_not_be_visible')
    async def should_not_be_visible(context: ScenarioContext, selector: str):
        await expect(context.page.locator(selector).first).to_be_hidden()

    @handlers.handler('should_see')
    async def should_see(context: ScenarioContext, text: str):
        await expect(context.page.get_by_text(text).first).to_be_visible()

    @handlers.handler('should_not_see')
    async def should_not_see(context: ScenarioContext, text: str):
        await expect(context.page.get_by_text(text)).to_have_count(0)

    @handlers.handler('should_see_text')
    async def should_see_text(context: ScenarioContext, text: str):
        await expect(context.page.locator('body')).to_contain_text(text)

    @handlers.handler('element_count')
    async def element_count(context: ScenarioContext, count: str, selector: str):
        await expect(context.page.locator(selector)).to_have_count(int(count))

    @handlers.handler('element_should_contain')
    async def element_should_contain(context: ScenarioContext, selector: str, text: str):
        await expect(context.page.locator(selector).first).to_contain_text(text)

    @handlers.handler('title_should_be')
    async def title_should_be(context: ScenarioContext, title: str):
        await expect(context.page).to_have_title(title)

    @handlers.handler('title_should_contain')
    async def title_should_contain(context: ScenarioContext, text: str):
        title = await context.page.title()
        if text not in title:
            raise StepExecutionError(f"Page title '{title}' does not contain '{text}'")

    @handlers.handler('url_should_contain')
    async def url_should_contain(context: ScenarioContext, text: str):
        if text not in context.page.url:
            raise StepExecutionError(f"URL '{context.page.url}' does not contain '{text}'")

    @handlers.handler('attribute_should_be')
    async def attribute_should_be(context: ScenarioContext, attribute: str, selector: str, value: str):
        await expect(context.page.locator(selector).first).to_have_attribute(attribute, value)

    # Other
    @handlers.handler('screenshot')
    async def screenshot(context: ScenarioContext, name: Optional[str] = None):
        name = name or f"screenshot_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        path = Path(screenshot_dir) / f"{name}.png"
        path.parent.mkdir(parents=True, exist_ok=True)
        await context.page.screenshot(path=str(path))
        return str(path)

    return handlers


def create_playwright_executor(config: Optional[ExecutorConfig] = None) -> FeatureExecutor:
    """Feature executor wired to a Playwright browser"""
    config = config or ExecutorConfig()
    return FeatureExecutor(
        config=config,
        handlers=build_playwright_handlers(config.screenshot_dir),
        session_factory=PlaywrightSession,
    )
