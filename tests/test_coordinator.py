from __future__ import annotations

import asyncio

import pytest

from deceptive_checks.batch import BatchRunner
from deceptive_checks.coordinator import RunCoordinator
from deceptive_checks.engines import RenderEngine
from deceptive_checks.keitaro import DomainSourceError
from fakes import FakeNotifier, FakePage, FakeSource, make_pool, safari_interstitial

ALERT = "Deceptive Warning Alert"
SUMMARY = "Check Completed"
ERROR = "Error in Domain Check"
STARTED = "System Started"


class RecordingRunner:
    def __init__(self, inner: BatchRunner | None = None, *, error: Exception | None = None):
        self.inner = inner
        self.error = error
        self.calls: list[list[str]] = []

    async def run(self, domains):
        self.calls.append(list(domains))
        if self.error is not None:
            raise self.error
        return await self.inner.run(domains)


def _batch(pool) -> BatchRunner:
    return BatchRunner(pool, concurrency=5, timeout_seconds=5, settle_seconds=0, batch_pause_seconds=0)


@pytest.mark.asyncio
async def test_scenario_a_one_warning_on_one_engine() -> None:
    source = FakeSource(["good.com", "bad.com"])
    notifier = FakeNotifier()
    pool = make_pool(chromium_pages={"https://bad.com": safari_interstitial()})
    coordinator = RunCoordinator(source, _batch(pool), notifier)

    report = await coordinator.run_check()

    assert report is not None
    assert report.total_domains == 2
    assert report.warning_count == 1
    assert len(report.results) == 4
    assert [(r.domain, r.engine) for r in report.warnings] == [("bad.com", RenderEngine.CHROMIUM)]

    alerts = notifier.of_kind(ALERT)
    assert len(alerts) == 1
    assert "bad.com" in alerts[0]
    assert "good.com" not in alerts[0]
    assert "<b>Chrome:</b>" in alerts[0]
    assert "Safari/WebKit:" not in alerts[0]
    assert "Safari Deceptive Site Warning" in alerts[0]

    summaries = notifier.of_kind(SUMMARY)
    assert len(summaries) == 1
    assert "Total Domains:</b> 2" in summaries[0]
    assert "Warnings Found:</b> 1" in summaries[0]
    assert len(notifier.messages) == 2
    assert coordinator.is_running is False


@pytest.mark.asyncio
async def test_clean_run_sends_summary_only() -> None:
    source = FakeSource(["good.com"])
    notifier = FakeNotifier()
    coordinator = RunCoordinator(source, _batch(make_pool()), notifier)

    report = await coordinator.run_check()

    assert report is not None and report.warning_count == 0
    assert notifier.of_kind(ALERT) == []
    assert len(notifier.of_kind(SUMMARY)) == 1
    assert "Warnings Found:</b> 0" in notifier.messages[0]


@pytest.mark.asyncio
async def test_scenario_b_empty_domain_list() -> None:
    source = FakeSource([])
    notifier = FakeNotifier()
    runner = RecordingRunner(_batch(make_pool()))
    coordinator = RunCoordinator(source, runner, notifier)

    report = await coordinator.run_check()

    assert report is None
    assert runner.calls == []
    assert notifier.messages == []
    status = coordinator.status()
    assert status["is_running"] is False
    assert status["completed_run_count"] == 1
    assert status["last_run_at"] is not None


@pytest.mark.asyncio
async def test_scenario_c_fetch_error_sends_single_error_notification() -> None:
    source = FakeSource(error=DomainSourceError("Keitaro API error: HTTP 401"))
    notifier = FakeNotifier()
    runner = RecordingRunner(_batch(make_pool()))
    coordinator = RunCoordinator(source, runner, notifier)

    report = await coordinator.run_check()

    assert report is None
    assert runner.calls == []
    assert len(notifier.messages) == 1
    assert ERROR in notifier.messages[0]
    assert "Keitaro API error: HTTP 401" in notifier.messages[0]
    assert notifier.of_kind(SUMMARY) == []
    assert coordinator.is_running is False
    assert coordinator.status()["completed_run_count"] == 1


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_and_state_resets() -> None:
    source = FakeSource(["a.com"])
    notifier = FakeNotifier()
    runner = RecordingRunner(error=RuntimeError("playwright driver crashed"))
    coordinator = RunCoordinator(source, runner, notifier)

    report = await coordinator.run_check()

    assert report is None
    assert len(notifier.messages) == 1
    assert "playwright driver crashed" in notifier.messages[0]
    assert coordinator.is_running is False
    assert coordinator.status()["completed_run_count"] == 1

    # The gate is open again for the next trigger.
    runner.error = None
    runner.inner = _batch(make_pool())
    assert await coordinator.run_check() is not None
    assert coordinator.status()["completed_run_count"] == 2


@pytest.mark.asyncio
async def test_trigger_while_running_is_a_noop() -> None:
    gate = asyncio.Event()
    source = FakeSource(["good.com"], gate=gate)
    notifier = FakeNotifier()
    coordinator = RunCoordinator(source, _batch(make_pool()), notifier)

    first = asyncio.create_task(coordinator.run_check())
    await asyncio.sleep(0)
    assert coordinator.is_running is True

    assert await coordinator.run_check() is None
    assert await coordinator.trigger_manual() is None
    assert source.fetches == 1
    assert notifier.messages == []

    gate.set()
    report = await first

    assert report is not None
    assert source.fetches == 1
    assert len(notifier.messages) == 1
    assert coordinator.status()["completed_run_count"] == 1


@pytest.mark.asyncio
async def test_rendering_failures_are_counted_separately() -> None:
    source = FakeSource(["down.com", "good.com"])
    notifier = FakeNotifier()
    pool = make_pool(
        chromium_pages={"https://down.com": FakePage(navigate_error=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))},
        webkit_pages={"https://down.com": FakePage(navigate_error=RuntimeError("Could not resolve host"))},
    )
    coordinator = RunCoordinator(source, _batch(pool), notifier)

    report = await coordinator.run_check()

    assert report is not None
    assert report.warning_count == 0
    assert len(report.failures) == 2
    assert notifier.of_kind(ALERT) == []
    assert "Failed Checks:</b> 2" in notifier.messages[0]


@pytest.mark.asyncio
async def test_notifier_failure_does_not_break_the_run() -> None:
    source = FakeSource(["bad.com"])
    notifier = FakeNotifier(send_ok=False)
    pool = make_pool(chromium_pages={"https://bad.com": safari_interstitial()})
    coordinator = RunCoordinator(source, _batch(pool), notifier)

    report = await coordinator.run_check()

    assert report is not None
    assert len(notifier.messages) == 2
    assert coordinator.is_running is False


@pytest.mark.asyncio
async def test_startup_probe_sends_started_message_when_all_connected() -> None:
    notifier = FakeNotifier()
    coordinator = RunCoordinator(FakeSource(), _batch(make_pool()), notifier, interval_minutes=15)

    assert await coordinator.test_connections() is True
    assert len(notifier.of_kind(STARTED)) == 1
    assert "Check interval: 15 minutes" in notifier.messages[0]


@pytest.mark.asyncio
async def test_startup_probe_failure_is_not_fatal() -> None:
    notifier = FakeNotifier()
    coordinator = RunCoordinator(FakeSource(connected=False), _batch(make_pool()), notifier)

    assert await coordinator.test_connections() is False
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_startup_probe_swallows_exceptions() -> None:
    class ExplodingSource(FakeSource):
        async def test_connection(self) -> bool:
            raise OSError("network unreachable")

    coordinator = RunCoordinator(ExplodingSource(), _batch(make_pool()), FakeNotifier())
    assert await coordinator.test_connections() is False
