from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True)
class WarningPattern:
    kind: str
    dom_selectors: tuple[str, ...]
    text_signatures: tuple[re.Pattern[str], ...]


def compile_pattern(kind: str, selectors: Iterable[str], text_patterns: Iterable[str]) -> WarningPattern:
    kind = str(kind or "").strip()
    if not kind:
        raise ValueError("Warning pattern kind is required")
    return WarningPattern(
        kind=kind,
        dom_selectors=tuple(str(s) for s in selectors if str(s or "").strip()),
        text_signatures=tuple(re.compile(str(p), re.IGNORECASE) for p in text_patterns),
    )


SAFARI_DECEPTIVE_SITE = compile_pattern(
    "Safari Deceptive Site Warning",
    selectors=["body.deceptive_warning", "#main-message", ".error-page"],
    text_patterns=[
        r"deceptive site",
        r"this website may be impersonating",
        r"fraudulent website",
        r"phishing",
        r"may be harmful",
        r"contains harmful programs",
    ],
)

CHROME_SAFE_BROWSING = compile_pattern(
    "Chrome Safe Browsing Warning",
    selectors=[".error-code", ".main-frame-error", "#main-frame-error"],
    text_patterns=[
        r"deceptive site ahead",
        r"the site ahead contains malware",
        r"suspicious site",
        r"unsafe website",
    ],
)

GENERIC_WARNING = compile_pattern(
    "Generic Warning",
    selectors=['[class*="warning"]', '[class*="error"]', '[id*="warning"]'],
    text_patterns=[r"blocked", r"restricted", r"not safe", r"security warning"],
)

# Priority order: earlier patterns win when several match.
DEFAULT_WARNING_PATTERNS: tuple[WarningPattern, ...] = (
    SAFARI_DECEPTIVE_SITE,
    CHROME_SAFE_BROWSING,
    GENERIC_WARNING,
)


def load_warning_patterns(items: list[Any] | None) -> tuple[WarningPattern, ...]:
    """
    Build the pattern table from config entries of the form
    {kind, selectors, text_patterns}. Falls back to the defaults when empty.
    """
    if not items:
        return DEFAULT_WARNING_PATTERNS

    patterns: list[WarningPattern] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"warning_patterns[{idx}] must be a mapping, got {type(item).__name__}")
        selectors = item.get("selectors") or []
        text_patterns = item.get("text_patterns") or []
        if not isinstance(selectors, list) or not isinstance(text_patterns, list):
            raise ValueError(f"warning_patterns[{idx}] selectors/text_patterns must be lists")
        if not text_patterns:
            raise ValueError(f"warning_patterns[{idx}] needs at least one text pattern")
        try:
            patterns.append(compile_pattern(item.get("kind"), selectors, text_patterns))
        except re.error as exc:
            raise ValueError(f"warning_patterns[{idx}] has an invalid regex: {exc}") from exc
    return tuple(patterns)


def all_selectors(patterns: Iterable[WarningPattern]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for pattern in patterns:
        for selector in pattern.dom_selectors:
            seen.setdefault(selector, None)
    return tuple(seen)
