"""Telegram (HTML parse mode) message builders for alerts, summaries and errors."""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape

from deceptive_checks.checker import CheckResult
from deceptive_checks.engines import RenderEngine

SEPARATOR = "━━━━━━━━━━━━━━━━━━━━"

_ENGINE_EMOJI = {
    RenderEngine.CHROMIUM: "🌐",
    RenderEngine.WEBKIT: "🧭",
}


def _now_iso(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat(timespec="seconds")


def _format_duration(duration_ms: float) -> str:
    return f"{max(0.0, float(duration_ms)) / 1000.0:.2f}s"


def group_by_domain(results: list[CheckResult]) -> dict[str, list[CheckResult]]:
    grouped: dict[str, list[CheckResult]] = {}
    for result in results:
        grouped.setdefault(result.domain, []).append(result)
    return grouped


def format_warning_alert(results: list[CheckResult], *, now: datetime | None = None) -> str:
    grouped = group_by_domain([r for r in results if r.has_warning])

    lines = [
        "🚨 <b>Deceptive Warning Alert</b> 🚨",
        "",
        f"⏰ <b>Time:</b> {_now_iso(now)}",
        f"📊 <b>Affected Domains:</b> {len(grouped)}",
        "",
        SEPARATOR,
        "",
    ]
    total = 0
    for domain, domain_results in grouped.items():
        lines.append(f"🌐 <b>Domain:</b> {escape(domain)}")
        for result in domain_results:
            total += 1
            emoji = _ENGINE_EMOJI.get(result.engine, "•")
            lines.append(f"{emoji} <b>{escape(result.engine.profile.label)}:</b>")
            lines.append(f"   ⚠️ Warning: {escape(result.warning_kind or 'Unknown')}")
            lines.append(f"   ⏱️ Response time: {int(result.elapsed_ms)}ms")
        lines.append("")

    lines.append(SEPARATOR)
    lines.append(f"Total warnings detected: {total}")
    return "\n".join(lines)


def format_run_summary(
    total_domains: int,
    warning_count: int,
    duration_ms: float,
    *,
    failed_count: int = 0,
    now: datetime | None = None,
) -> str:
    status = "⚠️" if warning_count > 0 else "✅"
    lines = [
        f"{status} <b>Check Completed</b>",
        "",
        f"📊 <b>Total Domains:</b> {int(total_domains)}",
        f"⚠️ <b>Warnings Found:</b> {int(warning_count)}",
    ]
    if failed_count:
        lines.append(f"❗ <b>Failed Checks:</b> {int(failed_count)}")
    lines.append(f"⏱️ <b>Duration:</b> {_format_duration(duration_ms)}")
    lines.append(f"🕐 <b>Time:</b> {_now_iso(now)}")
    return "\n".join(lines)


def format_error_report(error: str, *, now: datetime | None = None) -> str:
    return "\n".join(
        [
            "❌ <b>Error in Domain Check</b>",
            "",
            f"<code>{escape((error or 'Unknown error').strip()[:1000])}</code>",
            "",
            f"🕐 <b>Time:</b> {_now_iso(now)}",
        ]
    )


def format_startup_message(interval_minutes: int) -> str:
    return "\n".join(
        [
            "✅ <b>System Started</b>",
            "",
            "Deceptive Domain Checker is now running.",
            f"Check interval: {int(interval_minutes)} minutes",
        ]
    )
