from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import structlog

from deceptive_checks.detector import Detection, detect
from deceptive_checks.engines import DEFAULT_VIEWPORT, EngineHandle, PageSession, RenderEngine
from deceptive_checks.patterns import DEFAULT_WARNING_PATTERNS, WarningPattern, all_selectors

logger = structlog.get_logger(__name__)

DEFAULT_SETTLE_SECONDS = 2.0
MAX_ERROR_LEN = 500


class CheckOutcome(str, Enum):
    WARNING = "warning"
    CLEAN = "clean"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckResult:
    domain: str
    engine: RenderEngine
    has_warning: bool
    checked_at: datetime
    elapsed_ms: int
    warning_kind: str | None = None
    error_kind: str | None = None

    def __post_init__(self) -> None:
        if self.has_warning and not self.warning_kind:
            raise ValueError("warning results need a warning_kind")
        if self.has_warning and self.error_kind:
            raise ValueError("a result cannot carry both a warning and an error")
        if not self.has_warning and self.warning_kind:
            raise ValueError("warning_kind set on a result without a warning")

    @property
    def outcome(self) -> CheckOutcome:
        if self.error_kind:
            return CheckOutcome.FAILED
        if self.has_warning:
            return CheckOutcome.WARNING
        return CheckOutcome.CLEAN


@dataclass(frozen=True)
class PageSnapshot:
    """Immutable view of a rendered page that the detector can probe synchronously."""

    rendered_text: str
    raw_markup: str
    element_texts: dict[str, str | None]

    def probe(self, selector: str) -> str | None:
        return self.element_texts.get(selector)


def normalize_domain_url(domain: str) -> str:
    s = (domain or "").strip()
    if not s:
        raise ValueError("domain is empty")
    if "://" in s:
        return s
    return f"https://{s}"


def _describe_error(stage: str, exc: BaseException) -> str:
    return f"{stage}: {type(exc).__name__}: {exc}"[:MAX_ERROR_LEN]


async def snapshot_page(session: PageSession, selectors: tuple[str, ...]) -> PageSnapshot:
    element_texts: dict[str, str | None] = {}
    for selector in selectors:
        try:
            element_texts[selector] = await session.query_element_text(selector)
        except Exception:
            element_texts[selector] = None

    try:
        rendered_text = await session.full_text()
    except Exception:
        rendered_text = ""
    raw_markup = await session.raw_markup()
    return PageSnapshot(
        rendered_text=rendered_text or "",
        raw_markup=raw_markup or "",
        element_texts=element_texts,
    )


async def _release(session: PageSession, *, domain: str, engine: RenderEngine) -> None:
    try:
        await session.close()
    except Exception as e:
        logger.warning("Failed to release browsing context", domain=domain, engine=engine.value, error=str(e))


async def check_domain(
    domain: str,
    engine: RenderEngine,
    handle: EngineHandle,
    *,
    timeout_seconds: float,
    settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    patterns: tuple[WarningPattern, ...] = DEFAULT_WARNING_PATTERNS,
) -> CheckResult:
    """
    Render one domain on one engine and look for a deceptive-site interstitial.

    Always returns a result; every failure ends up in ``error_kind``.
    """
    started = time.perf_counter()
    checked_at = datetime.now(timezone.utc)
    timeout_ms = int(timeout_seconds * 1000)

    def _elapsed_ms() -> int:
        return int(round((time.perf_counter() - started) * 1000.0))

    def _failed(stage: str, exc: Exception) -> CheckResult:
        error = _describe_error(stage, exc)
        logger.error("Check failed", domain=domain, engine=engine.value, error=error)
        return CheckResult(
            domain=domain,
            engine=engine,
            has_warning=False,
            error_kind=error,
            checked_at=checked_at,
            elapsed_ms=_elapsed_ms(),
        )

    try:
        url = normalize_domain_url(domain)
    except ValueError as e:
        return _failed("url_error", e)

    session: PageSession | None = None
    try:
        try:
            session = await handle.new_isolated_context(
                user_agent=engine.profile.user_agent,
                viewport=dict(DEFAULT_VIEWPORT),
            )
        except Exception as e:
            return _failed("context_error", e)

        logger.debug("Checking domain", url=url, engine=engine.value)
        try:
            await session.navigate(url, timeout_ms=timeout_ms, wait_until="domcontentloaded")
        except Exception as e:
            return _failed("goto_error", e)

        # Client-side redirects to an interstitial need a moment to render.
        if settle_seconds > 0:
            await asyncio.sleep(settle_seconds)

        try:
            snapshot = await snapshot_page(session, all_selectors(patterns))
            detection: Detection = detect(
                snapshot.rendered_text, snapshot.raw_markup, snapshot.probe, patterns
            )
        except Exception as e:
            return _failed("detect_error", e)

        if detection.has_warning:
            logger.warning(
                "Warning detected", domain=domain, engine=engine.value, warning_kind=detection.warning_kind
            )
        return CheckResult(
            domain=domain,
            engine=engine,
            has_warning=detection.has_warning,
            warning_kind=detection.warning_kind,
            checked_at=checked_at,
            elapsed_ms=_elapsed_ms(),
        )
    finally:
        if session is not None:
            await _release(session, domain=domain, engine=engine)
