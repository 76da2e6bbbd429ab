"""Concurrency-bounded fan-out of domain checks across both rendering engines."""

from __future__ import annotations

import asyncio
import time
from typing import Sequence, TypeVar

import structlog

from deceptive_checks.checker import DEFAULT_SETTLE_SECONDS, CheckResult, check_domain
from deceptive_checks.engines import EngineHandle, EngineProvider, RenderEngine
from deceptive_checks.patterns import DEFAULT_WARNING_PATTERNS, WarningPattern

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_PAUSE_SECONDS = 1.0


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchRunner:
    """
    Runs every domain on every engine.

    Domains are processed in consecutive batches of ``concurrency``; all domains
    of a batch run at once, and the next batch only starts once the previous one
    has fully completed (plus a short pause).
    """

    def __init__(
        self,
        engines: EngineProvider,
        *,
        concurrency: int,
        timeout_seconds: float,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        batch_pause_seconds: float = DEFAULT_BATCH_PAUSE_SECONDS,
        patterns: tuple[WarningPattern, ...] = DEFAULT_WARNING_PATTERNS,
        render_engines: tuple[RenderEngine, ...] = tuple(RenderEngine),
    ):
        if int(concurrency) < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.engines = engines
        self.concurrency = int(concurrency)
        self.timeout_seconds = float(timeout_seconds)
        self.settle_seconds = float(settle_seconds)
        self.batch_pause_seconds = float(batch_pause_seconds)
        self.patterns = patterns
        self.render_engines = render_engines

    async def _acquire_handles(self) -> dict[RenderEngine, EngineHandle]:
        return {engine: await self.engines.launch_engine(engine) for engine in self.render_engines}

    async def _check_on_all_engines(
        self, domain: str, handles: dict[RenderEngine, EngineHandle]
    ) -> list[CheckResult]:
        # check_domain never raises, so one engine's failure cannot cancel the other.
        results = await asyncio.gather(
            *(
                check_domain(
                    domain,
                    engine,
                    handle,
                    timeout_seconds=self.timeout_seconds,
                    settle_seconds=self.settle_seconds,
                    patterns=self.patterns,
                )
                for engine, handle in handles.items()
            )
        )
        return list(results)

    async def check_domain(self, domain: str) -> list[CheckResult]:
        handles = await self._acquire_handles()
        return await self._check_on_all_engines(domain, handles)

    async def run(self, domains: Sequence[str]) -> list[CheckResult]:
        if not domains:
            return []

        started = time.perf_counter()
        logger.info("Starting checks", domains=len(domains), concurrency=self.concurrency)
        handles = await self._acquire_handles()

        results: list[CheckResult] = []
        batches = chunked(domains, self.concurrency)
        for idx, batch in enumerate(batches, start=1):
            logger.info("Processing batch", batch=idx, batches=len(batches), size=len(batch))
            batch_results = await asyncio.gather(
                *(self._check_on_all_engines(domain, handles) for domain in batch)
            )
            for domain_results in batch_results:
                results.extend(domain_results)

            if idx < len(batches) and self.batch_pause_seconds > 0:
                await asyncio.sleep(self.batch_pause_seconds)

        logger.info(
            "Completed checks",
            results=len(results),
            elapsed_seconds=round(time.perf_counter() - started, 3),
        )
        return results
