"""Run coordination: exclusivity gate, fetch → check → notify sequencing."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import structlog

from deceptive_checks.checker import CheckOutcome, CheckResult
from deceptive_checks.messages import (
    format_error_report,
    format_run_summary,
    format_startup_message,
    format_warning_alert,
)

logger = structlog.get_logger(__name__)


class DomainSource(Protocol):
    async def fetch_active_domains(self) -> list[str]: ...

    async def test_connection(self) -> bool: ...


class NotificationSink(Protocol):
    async def send_message(self, text: str, parse_mode: str | None = "HTML") -> bool: ...

    async def test_connection(self) -> bool: ...


class CheckRunner(Protocol):
    async def run(self, domains: Sequence[str]) -> list[CheckResult]: ...


@dataclass
class RunState:
    is_running: bool = False
    last_run_at: datetime | None = None
    completed_run_count: int = 0


@dataclass(frozen=True)
class RunReport:
    total_domains: int
    results: list[CheckResult]
    warnings: list[CheckResult]
    failures: list[CheckResult]
    duration_ms: int

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


class RunCoordinator:
    """
    Owns the Idle/Running state. Runs are started only through ``run_check``
    (scheduled) or ``trigger_manual``; a trigger while a run is active is a
    logged no-op.
    """

    def __init__(
        self,
        source: DomainSource,
        runner: CheckRunner,
        notifier: NotificationSink,
        *,
        interval_minutes: int = 30,
    ):
        self.source = source
        self.runner = runner
        self.notifier = notifier
        self.interval_minutes = int(interval_minutes)
        self._state = RunState()

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    def try_start(self) -> bool:
        # No await between the check and the set: atomic on the event loop.
        if self._state.is_running:
            return False
        self._state.is_running = True
        return True

    def finish(self) -> None:
        self._state.is_running = False
        self._state.last_run_at = datetime.now(timezone.utc)
        self._state.completed_run_count += 1

    def status(self) -> dict[str, Any]:
        last = self._state.last_run_at
        return {
            "is_running": self._state.is_running,
            "last_run_at": last.isoformat() if last else None,
            "completed_run_count": self._state.completed_run_count,
            "interval_minutes": self.interval_minutes,
        }

    async def test_connections(self) -> bool:
        """Startup diagnostic; never raises and never blocks scheduling."""
        logger.info("Testing external connections")
        try:
            source_ok = await self.source.test_connection()
            sink_ok = await self.notifier.test_connection()
        except Exception as e:
            logger.error("Connection test error", error=f"{type(e).__name__}: {e}")
            return False

        if source_ok and sink_ok:
            logger.info("All connections successful")
            await self.notifier.send_message(format_startup_message(self.interval_minutes))
            return True

        logger.error("Some connections failed", domain_source_ok=source_ok, notifier_ok=sink_ok)
        return False

    async def trigger_manual(self) -> RunReport | None:
        logger.info("Manual check triggered")
        return await self.run_check()

    async def run_check(self) -> RunReport | None:
        if not self.try_start():
            logger.warning("Check already in progress, skipping")
            return None

        run_number = self._state.completed_run_count + 1
        started = time.perf_counter()
        log = logger.bind(run=run_number)
        log.info("Starting domain check")
        try:
            return await self._execute(log, started)
        except Exception as e:
            log.error("Error during domain check", error=f"{type(e).__name__}: {e}")
            await self._notify_error(str(e) or type(e).__name__)
            return None
        finally:
            self.finish()

    async def _execute(self, log, started: float) -> RunReport | None:
        try:
            domains = await self.source.fetch_active_domains()
        except Exception as e:
            log.error("Failed to fetch domains", error=f"{type(e).__name__}: {e}")
            await self._notify_error(str(e) or type(e).__name__)
            return None

        if not domains:
            log.warning("No active domains found")
            return None

        log.info("Found active domains", count=len(domains))
        results = await self.runner.run(domains)

        warnings = [r for r in results if r.outcome is CheckOutcome.WARNING]
        failures = [r for r in results if r.outcome is CheckOutcome.FAILED]
        duration_ms = int(round((time.perf_counter() - started) * 1000.0))

        if warnings:
            log.warning("Warnings found", count=len(warnings))
            await self.notifier.send_message(format_warning_alert(warnings))
        else:
            log.info("No warnings detected")

        await self.notifier.send_message(
            format_run_summary(
                len(domains),
                len(warnings),
                duration_ms,
                failed_count=len(failures),
            )
        )

        log.info(
            "Check completed",
            domains=len(domains),
            warnings=len(warnings),
            failed=len(failures),
            duration_seconds=round(duration_ms / 1000.0, 2),
        )
        return RunReport(
            total_domains=len(domains),
            results=list(results),
            warnings=warnings,
            failures=failures,
            duration_ms=duration_ms,
        )

    async def _notify_error(self, error: str) -> None:
        try:
            await self.notifier.send_message(format_error_report(error))
        except Exception as e:
            logger.error("Failed to send error notification", error=f"{type(e).__name__}: {e}")
