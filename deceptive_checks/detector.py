"""Pattern-based detection of browser deceptive-site interstitials."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from deceptive_checks.patterns import DEFAULT_WARNING_PATTERNS, WarningPattern

SelectorProbe = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class Detection:
    has_warning: bool
    warning_kind: str | None = None


NO_WARNING = Detection(has_warning=False)


def _probe_text(selector_probe: SelectorProbe, selector: str) -> str | None:
    try:
        text = selector_probe(selector)
    except Exception:
        return None
    if text is None:
        return None
    return str(text)


def _matches_any(pattern: WarningPattern, *texts: str) -> bool:
    for signature in pattern.text_signatures:
        for text in texts:
            if text and signature.search(text):
                return True
    return False


def detect(
    rendered_text: str,
    raw_markup: str,
    selector_probe: SelectorProbe,
    patterns: tuple[WarningPattern, ...] = DEFAULT_WARNING_PATTERNS,
) -> Detection:
    """
    First match wins, in pattern order. For each pattern the declared selectors
    are probed first; only when none of them matches are the signatures tested
    against the rendered text and then the raw markup.

    Never raises: a failing probe counts as "selector absent".
    """
    rendered_text = rendered_text or ""
    raw_markup = raw_markup or ""

    for pattern in patterns:
        for selector in pattern.dom_selectors:
            element_text = _probe_text(selector_probe, selector)
            if element_text is None:
                continue
            if _matches_any(pattern, element_text):
                return Detection(has_warning=True, warning_kind=pattern.kind)

        for signature in pattern.text_signatures:
            if signature.search(rendered_text) or signature.search(raw_markup):
                return Detection(has_warning=True, warning_kind=pattern.kind)

    return NO_WARNING
