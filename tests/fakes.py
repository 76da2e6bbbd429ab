from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from deceptive_checks.engines import RenderEngine

CLEAN_MARKUP = "<html><body><h1>Welcome</h1><p>Fresh deals every day.</p></body></html>"


@dataclass
class FakePage:
    text: str = "Welcome Fresh deals every day."
    markup: str = CLEAN_MARKUP
    elements: dict[str, str] = field(default_factory=dict)
    failing_selectors: set[str] = field(default_factory=set)
    navigate_error: Exception | None = None
    navigate_delay: float = 0.01


class InFlightTracker:
    """Records which URLs have an open, navigated browsing context at any instant."""

    def __init__(self) -> None:
        self.open_urls: list[str] = []
        self.max_domains_in_flight = 0
        self.opened = 0
        self.closed = 0

    def navigated(self, url: str) -> None:
        self.open_urls.append(url)
        self.max_domains_in_flight = max(self.max_domains_in_flight, len(set(self.open_urls)))

    def released(self, url: str | None) -> None:
        self.closed += 1
        if url is not None and url in self.open_urls:
            self.open_urls.remove(url)


class FakeSession:
    def __init__(self, handle: "FakeHandle", user_agent: str, viewport: dict[str, int]):
        self.handle = handle
        self.user_agent = user_agent
        self.viewport = viewport
        self.url: str | None = None
        self.page = FakePage()
        self.closed = False

    async def navigate(self, url: str, *, timeout_ms: int, wait_until: str = "domcontentloaded") -> None:
        self.url = url
        self.handle.tracker.navigated(url)
        self.handle.navigations.append((url, timeout_ms, wait_until))
        self.page = self.handle.pages.get(url, FakePage())
        await asyncio.sleep(self.page.navigate_delay)
        if self.page.navigate_error is not None:
            raise self.page.navigate_error

    async def query_element_text(self, selector: str) -> str | None:
        if selector in self.page.failing_selectors:
            raise RuntimeError(f"selector probe failed: {selector}")
        return self.page.elements.get(selector)

    async def full_text(self) -> str:
        return self.page.text

    async def raw_markup(self) -> str:
        return self.page.markup

    async def close(self) -> None:
        self.closed = True
        self.handle.tracker.released(self.url)
        if self.handle.close_error is not None:
            raise self.handle.close_error


class FakeHandle:
    def __init__(
        self,
        engine: RenderEngine,
        pages: dict[str, FakePage] | None = None,
        *,
        tracker: InFlightTracker | None = None,
        context_error: Exception | None = None,
        close_error: Exception | None = None,
    ):
        self.engine = engine
        self.pages = pages or {}
        self.tracker = tracker or InFlightTracker()
        self.context_error = context_error
        self.close_error = close_error
        self.sessions: list[FakeSession] = []
        self.navigations: list[tuple[str, int, str]] = []

    async def new_isolated_context(self, *, user_agent: str, viewport: dict[str, int]) -> FakeSession:
        if self.context_error is not None:
            raise self.context_error
        self.tracker.opened += 1
        session = FakeSession(self, user_agent, viewport)
        self.sessions.append(session)
        return session


class FakePool:
    def __init__(self, handles: dict[RenderEngine, FakeHandle]):
        self.handles = handles
        self.launches: list[RenderEngine] = []

    async def launch_engine(self, engine: RenderEngine) -> FakeHandle:
        self.launches.append(engine)
        return self.handles[engine]


def make_pool(
    chromium_pages: dict[str, FakePage] | None = None,
    webkit_pages: dict[str, FakePage] | None = None,
    *,
    tracker: InFlightTracker | None = None,
) -> FakePool:
    tracker = tracker or InFlightTracker()
    return FakePool(
        {
            RenderEngine.CHROMIUM: FakeHandle(RenderEngine.CHROMIUM, chromium_pages, tracker=tracker),
            RenderEngine.WEBKIT: FakeHandle(RenderEngine.WEBKIT, webkit_pages, tracker=tracker),
        }
    )


def safari_interstitial() -> FakePage:
    text = (
        "Deceptive Website Warning. This website may be impersonating a trusted site "
        "to trick you into sharing personal or financial information."
    )
    return FakePage(
        text=text,
        markup=f'<html><body class="deceptive_warning"><div id="main-message">{text}</div></body></html>',
        elements={"body.deceptive_warning": text, "#main-message": text},
    )


class FakeSource:
    def __init__(
        self,
        domains: list[str] | None = None,
        *,
        error: Exception | None = None,
        connected: bool = True,
        gate: asyncio.Event | None = None,
    ):
        self.domains = list(domains or [])
        self.error = error
        self.connected = connected
        self.gate = gate
        self.fetches = 0

    async def fetch_active_domains(self) -> list[str]:
        self.fetches += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.domains)

    async def test_connection(self) -> bool:
        return self.connected


class FakeNotifier:
    def __init__(self, *, connected: bool = True, send_ok: bool = True):
        self.connected = connected
        self.send_ok = send_ok
        self.messages: list[str] = []

    async def send_message(self, text: str, parse_mode: str | None = "HTML") -> bool:
        self.messages.append(text)
        return self.send_ok

    async def test_connection(self) -> bool:
        return self.connected

    def of_kind(self, marker: str) -> list[str]:
        return [m for m in self.messages if marker in m]
