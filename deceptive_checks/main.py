from __future__ import annotations

import argparse
import asyncio
import os
import signal

import httpx
import structlog
from playwright.async_api import async_playwright

from deceptive_checks.batch import BatchRunner
from deceptive_checks.config import MonitorConfig, load_config
from deceptive_checks.coordinator import RunCoordinator
from deceptive_checks.engines import BrowserPool
from deceptive_checks.keitaro import KeitaroConfig, KeitaroDomainSource
from deceptive_checks.logging_setup import configure_logging
from deceptive_checks.patterns import load_warning_patterns
from deceptive_checks.scheduler import JobScheduler
from deceptive_checks.telegram import TelegramConfig, TelegramNotifier

logger = structlog.get_logger(__name__)

CHECK_JOB_ID = "domain-check"


def build_coordinator(config: MonitorConfig, http_client: httpx.AsyncClient, pool: BrowserPool) -> RunCoordinator:
    source = KeitaroDomainSource(
        http_client,
        KeitaroConfig(
            api_url=config.keitaro.api_url,
            api_key=config.keitaro.api_key,
            request_timeout_seconds=config.keitaro.request_timeout_ms / 1000.0,
        ),
    )
    notifier = TelegramNotifier(
        http_client,
        TelegramConfig(bot_token=config.telegram.bot_token, chat_id=config.telegram.chat_id),
    )
    runner = BatchRunner(
        pool,
        concurrency=config.check.max_concurrent_checks,
        timeout_seconds=config.check.browser_timeout_ms / 1000.0,
        settle_seconds=config.check.settle_ms / 1000.0,
        batch_pause_seconds=config.check.batch_pause_ms / 1000.0,
        patterns=load_warning_patterns(config.warning_patterns),
    )
    return RunCoordinator(source, runner, notifier, interval_minutes=config.schedule.interval_minutes)


def _install_signal_handlers(stop: asyncio.Event, coordinator: RunCoordinator) -> None:
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task] = set()

    def _manual_trigger() -> None:
        task = loop.create_task(coordinator.trigger_manual())
        pending.add(task)
        task.add_done_callback(pending.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass
    if hasattr(signal, "SIGUSR1"):
        try:
            loop.add_signal_handler(signal.SIGUSR1, _manual_trigger)
        except (NotImplementedError, RuntimeError):
            pass


async def run_service(config: MonitorConfig, *, once: bool) -> int:
    async with async_playwright() as playwright, httpx.AsyncClient() as http_client:
        pool = BrowserPool(playwright, headless=config.check.headless)
        coordinator = build_coordinator(config, http_client, pool)
        scheduler = JobScheduler()
        try:
            await coordinator.test_connections()

            if once:
                await coordinator.run_check()
                return 0

            scheduler.add_interval_job(
                CHECK_JOB_ID,
                coordinator.run_check,
                minutes=config.schedule.interval_minutes,
                first_run_delay_seconds=config.schedule.startup_delay_seconds,
                description="Deceptive warning check",
            )
            scheduler.start()
            logger.info(
                "Scheduler initialized",
                interval_minutes=config.schedule.interval_minutes,
                max_concurrent_checks=config.check.max_concurrent_checks,
            )

            stop = asyncio.Event()
            _install_signal_handlers(stop, coordinator)
            await stop.wait()
            logger.info("Shutting down", status=coordinator.status())
            return 0
        finally:
            scheduler.stop()
            await pool.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Deceptive site warning monitor")
    parser.add_argument(
        "--config",
        default=os.getenv("DECEPTIVE_CHECKS_CONFIG", "config.yaml"),
        help="Path to YAML config",
    )
    parser.add_argument("--once", action="store_true", help="Run one check cycle and exit")
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)

    return asyncio.run(run_service(config, once=bool(args.once)))


if __name__ == "__main__":
    raise SystemExit(main())
