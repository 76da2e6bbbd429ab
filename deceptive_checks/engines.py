"""Rendering engines and the Playwright-backed browser capability."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = structlog.get_logger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


@dataclass(frozen=True)
class EngineProfile:
    label: str
    user_agent: str
    launch_args: tuple[str, ...] = field(default_factory=tuple)


class RenderEngine(str, Enum):
    CHROMIUM = "chromium"
    WEBKIT = "webkit"

    @property
    def profile(self) -> EngineProfile:
        return _PROFILES[self]


_PROFILES: dict[RenderEngine, EngineProfile] = {
    RenderEngine.CHROMIUM: EngineProfile(
        label="Chrome",
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        launch_args=("--disable-dev-shm-usage",),
    ),
    RenderEngine.WEBKIT: EngineProfile(
        label="Safari/WebKit",
        user_agent=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
        ),
    ),
}


class PageSession(Protocol):
    async def navigate(self, url: str, *, timeout_ms: int, wait_until: str = "domcontentloaded") -> None: ...

    async def query_element_text(self, selector: str) -> str | None: ...

    async def full_text(self) -> str: ...

    async def raw_markup(self) -> str: ...

    async def close(self) -> None: ...


class EngineHandle(Protocol):
    async def new_isolated_context(self, *, user_agent: str, viewport: dict[str, int]) -> PageSession: ...


class EngineProvider(Protocol):
    async def launch_engine(self, engine: RenderEngine) -> EngineHandle: ...


class PlaywrightPageSession:
    """One isolated browser context with a single page."""

    def __init__(self, context: BrowserContext, page: Page):
        self._context = context
        self._page = page

    async def navigate(self, url: str, *, timeout_ms: int, wait_until: str = "domcontentloaded") -> None:
        self._page.set_default_timeout(timeout_ms)
        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def query_element_text(self, selector: str) -> str | None:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        return await element.inner_text()

    async def full_text(self) -> str:
        return await self._page.evaluate("() => document.body?.innerText || ''")

    async def raw_markup(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        try:
            await self._page.close()
        finally:
            await self._context.close()


class PlaywrightEngineHandle:
    def __init__(self, engine: RenderEngine, browser: Browser):
        self.engine = engine
        self.browser = browser

    async def new_isolated_context(self, *, user_agent: str, viewport: dict[str, int]) -> PageSession:
        context = await self.browser.new_context(
            user_agent=user_agent,
            viewport=viewport,
            ignore_https_errors=True,
        )
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise
        return PlaywrightPageSession(context, page)

    def is_connected(self) -> bool:
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False


class BrowserPool:
    """
    Lazily launches one browser per engine and reuses it across checks and runs.
    A browser that lost its connection is relaunched on the next acquire.
    """

    def __init__(self, playwright: Playwright, *, headless: bool = True):
        self._playwright = playwright
        self._headless = headless
        self._handles: dict[RenderEngine, PlaywrightEngineHandle] = {}
        self._lock = asyncio.Lock()

    async def launch_engine(self, engine: RenderEngine) -> EngineHandle:
        async with self._lock:
            handle = self._handles.get(engine)
            if handle is not None and handle.is_connected():
                return handle

            logger.info("Launching browser", engine=engine.value, headless=self._headless)
            browser_type = getattr(self._playwright, engine.value)
            launch_kwargs: dict[str, Any] = {"headless": self._headless}
            if engine.profile.launch_args:
                launch_kwargs["args"] = list(engine.profile.launch_args)
            browser = await browser_type.launch(**launch_kwargs)
            handle = PlaywrightEngineHandle(engine, browser)
            self._handles[engine] = handle
            return handle

    async def close(self) -> None:
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            try:
                await handle.browser.close()
            except Exception as e:
                logger.warning("Failed to close browser", engine=handle.engine.value, error=str(e))
