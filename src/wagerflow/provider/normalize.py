"""Venue status code / free text -> canonical Outcome.

Precedence, first match wins:

1. the explicit status field as an exact code (``WON``, ``HALF_LOSS``, ``OPEN``...)
2. whole words in the status field, then whole words in the free text
3. substrings in the status field, then substrings in the free text

Labels that merely contain an outcome word ("Match Winner", "to win 15.00",
"WINNERODD") are stripped before any scan.
"""

from __future__ import annotations

import re

from wagerflow.models.status import Outcome, canonical_code

_CODE_ALIASES: dict[str, Outcome] = {
    "WON": Outcome.WON,
    "WIN": Outcome.WON,
    "LOST": Outcome.LOST,
    "LOSS": Outcome.LOST,
    "LOSE": Outcome.LOST,
    "VOID": Outcome.VOID,
    "VOIDED": Outcome.VOID,
    "CANCELLED": Outcome.VOID,
    "CANCELED": Outcome.VOID,
    "HALF_WIN": Outcome.HALF_WIN,
    "HALF_WON": Outcome.HALF_WIN,
    "HALF_LOSS": Outcome.HALF_LOSS,
    "HALF_LOST": Outcome.HALF_LOSS,
    "ACCEPTED": Outcome.ACCEPTED,
    "OPEN": Outcome.ACCEPTED,
    "PENDING_ACCEPTANCE": Outcome.PENDING_ACCEPTANCE,
    "PENDING": Outcome.PENDING_ACCEPTANCE,
    "REJECTED": Outcome.REJECTED,
    "DECLINED": Outcome.REJECTED,
    "TIMEOUT": Outcome.TIMEOUT,
}

_NOISE_RE = re.compile(
    r"\b(?:match\s+winner|winner\w*|winnings?|(?:to|potential|possible|max)\s+win)\b"
)

_HALF_WORDS = (
    (Outcome.HALF_WIN, ("half win", "half won")),
    (Outcome.HALF_LOSS, ("half loss", "half lost")),
)
_SETTLEMENT_WORDS = (
    (Outcome.WON, ("won", "win")),
    (Outcome.LOST, ("lost", "loss", "lose")),
    (Outcome.VOID, ("void", "voided", "cancelled", "canceled", "refunded")),
)
_LIFECYCLE_WORDS = (
    (Outcome.REJECTED, ("rejected", "declined", "refused")),
    (Outcome.ACCEPTED, ("accepted", "confirmed", "open", "unsettled")),
    (Outcome.PENDING_ACCEPTANCE, ("pending", "waiting", "processing", "in progress")),
)
_SUBSTRINGS = (
    (Outcome.WON, ("win",)),
    (Outcome.LOST, ("lost", "loss", "lose")),
    (Outcome.VOID, ("void", "cancel")),
)


def normalize_text(value: str | None) -> str:
    """Lowercase, drop punctuation and bullets, collapse whitespace, strip noise labels."""
    if not value:
        return ""
    lowered = value.lower()
    lowered = re.sub("[•●○‣]", " ", lowered)
    lowered = re.sub(r"[^a-z0-9 ]+", " ", lowered)
    lowered = re.sub(r"\s+", " ", lowered).strip()
    lowered = _NOISE_RE.sub(" ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def contains_word(haystack: str, word: str) -> bool:
    if not haystack or not word:
        return False
    return re.search(rf"\b{re.escape(word)}\b", haystack) is not None


def _scan_words(text: str, groups: tuple[tuple[Outcome, tuple[str, ...]], ...]) -> Outcome | None:
    for outcome, words in groups:
        if any(contains_word(text, w) for w in words):
            return outcome
    return None


def _scan_substrings(text: str) -> Outcome | None:
    for outcome, parts in _SUBSTRINGS:
        if any(p in text for p in parts):
            return outcome
    return None


def normalize_status(
    status: str | None = None,
    text: str | None = None,
    tab: str | None = None,
) -> Outcome:
    """Normalize a venue status into an Outcome; UNKNOWN when nothing matches."""
    code = canonical_code(status)
    if code in _CODE_ALIASES:
        return _CODE_ALIASES[code]

    tab_lower = (tab or "").lower()
    if "unsettled" in tab_lower:
        return Outcome.ACCEPTED
    settled_tab = "settled" in tab_lower

    candidates = [c for c in (normalize_text(status), normalize_text(text)) if c]
    for candidate in candidates:
        found = _scan_words(candidate, _HALF_WORDS)
        if found is None and settled_tab:
            found = _scan_words(candidate, _SETTLEMENT_WORDS) or _scan_words(
                candidate, _LIFECYCLE_WORDS
            )
        elif found is None:
            found = _scan_words(candidate, _LIFECYCLE_WORDS) or _scan_words(
                candidate, _SETTLEMENT_WORDS
            )
        if found is not None:
            return found

    for candidate in candidates:
        found = _scan_substrings(candidate)
        if found is not None:
            return found
    return Outcome.UNKNOWN
