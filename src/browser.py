"""Browser orchestration module with stealth capabilities.

This module provides the page session controller on top of Playwright:
- One browser process per run, owned by BrowserManager
- One isolated browsing context and page per target, owned by PageSession
- Stealth init script, randomized viewport and user-agent rotation per context
- Scoped acquisition: contexts and the browser are released on every exit path

Design Rationale:
    Targets never share a context, so no cookies, storage or in-page state
    leaks from one projection page into the next. BaseSession is the narrow
    surface the rest of the pipeline drives (open, reload, evaluate, content,
    close), which lets the fetch-only mode plug in without a browser.
"""

import random
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from src.exceptions import BrowserInitializationError, NavigationError
from src.logger import get_logger
from src.models import Target

log = get_logger(__name__)

STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});

Object.defineProperty(navigator, 'plugins', {
    get: () => [1, 2, 3, 4, 5],
});

Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});

window.chrome = {
    runtime: {},
};
"""


class BaseSession(ABC):
    """Narrow interface over one loaded target page.

    Attributes:
        target: The target this session was opened for.
    """

    #: Whether evaluate() can run scripts inside the page.
    supports_scripts: bool = True

    def __init__(self, target: Target) -> None:
        self.target = target

    @abstractmethod
    async def open(self) -> None:
        """Load the target URL.

        Raises:
            NavigationError: If the page cannot be reached in time.
        """
        ...

    @abstractmethod
    async def reload(self) -> None:
        """Re-issue the navigation within the same session."""
        ...

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a read-only script in the page and return its result."""
        ...

    @abstractmethod
    async def content(self) -> str:
        """Return the current document markup."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release every resource held by the session. Safe to call twice."""
        ...


class PageSession(BaseSession):
    """A Playwright context and page dedicated to one target."""

    def __init__(
        self,
        target: Target,
        context: BrowserContext,
        page: Page,
        config: GlobalConfig,
    ) -> None:
        super().__init__(target)
        self.config = config
        self._context: BrowserContext | None = context
        self._page = page
        self._loaded = False

    async def open(self) -> None:
        await self._navigate(reload=False)

    async def reload(self) -> None:
        # A page whose first navigation never committed has nothing to reload.
        await self._navigate(reload=self._loaded)

    async def _navigate(self, reload: bool) -> None:
        url = self.target.url
        action = "reload" if reload else "goto"
        log.debug(
            "Navigating to URL",
            url=url,
            label=self.target.label,
            action=action,
            wait_until=self.config.wait_until,
        )

        try:
            if reload:
                response = await self._page.reload(wait_until=self.config.wait_until)
            else:
                response = await self._page.goto(url, wait_until=self.config.wait_until)

            if response is None:
                raise NavigationError(url=url, reason="No response received", label=self.target.label)

            status_code = response.status

            if status_code >= 400:
                raise NavigationError(
                    url=url,
                    reason=f"HTTP {status_code}",
                    label=self.target.label,
                    status_code=status_code,
                )

            self._loaded = True
            log.info(
                "Navigation successful",
                url=url,
                label=self.target.label,
                action=action,
                status_code=status_code,
            )

        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                url=url,
                reason=f"Navigation timeout after {self.config.navigation_timeout_ms}ms",
                label=self.target.label,
            ) from exc
        except NavigationError:
            raise
        except Exception as exc:
            raise NavigationError(url=url, reason=str(exc), label=self.target.label) from exc

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def content(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        if self._context is None:
            return
        try:
            await self._context.close()
        except Exception as exc:
            log.warning("Error closing context", label=self.target.label, error=str(exc))
        self._context = None
        log.debug("Page session closed", label=self.target.label)


class BrowserManager:
    """Manages the Playwright browser lifecycle and hands out page sessions.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        _playwright: Playwright instance (initialized on context entry).
        _browser: Browser instance (Chromium).

    Example:
        async with BrowserManager.create(config) as browser:
            async with browser.open_session(target) as session:
                await session.open()
    """

    def __init__(self, config: GlobalConfig) -> None:
        """Use the `create()` factory rather than instantiating directly."""
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._current_user_agent: str = self._select_user_agent()

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Launch the browser and guarantee its shutdown on exit.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.

        Yields:
            Initialized BrowserManager instance.

        Raises:
            BrowserInitializationError: If browser launch fails.
        """
        if config is None:
            config = get_config()

        instance = cls(config)
        try:
            await instance._initialize()
            yield instance
        finally:
            await instance._cleanup()

    def _select_user_agent(self) -> str:
        return random.choice(self.config.user_agents)

    def rotate_user_agent(self) -> str:
        """Rotate to a new user-agent for the next browsing context.

        Returns:
            The newly selected user-agent string.
        """
        previous = self._current_user_agent
        self._current_user_agent = self._select_user_agent()
        log.debug(
            "User-agent rotated",
            previous=previous[:50] + "...",
            current=self._current_user_agent[:50] + "...",
        )
        return self._current_user_agent

    async def _initialize(self) -> None:
        """Start Playwright and launch Chromium.

        Raises:
            BrowserInitializationError: If any initialization step fails.
        """
        log.info("Initializing browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()

            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-infobars",
                ],
            )

            log.info("Browser initialized successfully")

        except Exception as exc:
            await self._cleanup()
            raise BrowserInitializationError(
                reason=str(exc), browser_type="chromium"
            ) from exc

    async def _create_stealth_context(self) -> BrowserContext:
        """Create an isolated browsing context with stealth settings applied."""
        if self._browser is None:
            raise BrowserInitializationError(
                reason="Browser not initialized", browser_type="chromium"
            )

        viewport_width = random.randint(1280, 1920)
        viewport_height = random.randint(720, 1080)

        context = await self._browser.new_context(
            viewport={"width": viewport_width, "height": viewport_height},
            user_agent=self._current_user_agent,
            locale="en-US",
            timezone_id="UTC",
            java_script_enabled=True,
        )

        try:
            await context.add_init_script(STEALTH_JS)
        except Exception:
            await context.close()
            raise

        log.debug("Stealth context created", viewport=f"{viewport_width}x{viewport_height}")
        return context

    @asynccontextmanager
    async def open_session(self, target: Target) -> AsyncGenerator[PageSession, None]:
        """Open a fresh context and page for one target.

        The context is closed when the block exits, whether it returns
        normally or raises.

        Raises:
            BrowserInitializationError: If the context or page cannot be created.
        """
        self.rotate_user_agent()

        try:
            context = await self._create_stealth_context()
        except BrowserInitializationError:
            raise
        except Exception as exc:
            raise BrowserInitializationError(
                reason=f"Context creation failed: {exc}", browser_type="chromium"
            ) from exc

        try:
            page = await context.new_page()
            page.set_default_timeout(self.config.navigation_timeout_ms)
            page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
        except Exception as exc:
            await context.close()
            raise BrowserInitializationError(
                reason=f"Page creation failed: {exc}", browser_type="chromium"
            ) from exc

        session = PageSession(target, context, page, self.config)
        log.debug("Page session opened", label=target.label, url=target.url)
        try:
            yield session
        finally:
            await session.close()

    async def _cleanup(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                log.warning("Error closing browser", error=str(exc))
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log.warning("Error stopping playwright", error=str(exc))
            self._playwright = None

        log.info("Browser resources cleaned up")

    @property
    def is_initialized(self) -> bool:
        """Check if browser is fully initialized and ready."""
        return self._playwright is not None and self._browser is not None
