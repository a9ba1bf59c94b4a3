"""Canonical status vocabularies and placement response classification."""

from __future__ import annotations

import re
from enum import Enum


class PlacementStatus(str, Enum):
    """Status codes a placement provider returns for a place call."""

    ACCEPTED = "ACCEPTED"
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    PRICE_ABOVE_MARKET = "PRICE_ABOVE_MARKET"
    STAKE_ABOVE_MAX = "STAKE_ABOVE_MAX"
    STAKE_BELOW_MIN = "STAKE_BELOW_MIN"
    PUSH = "PUSH"
    REJECTED = "REJECTED"
    VERIFICATION_REQUIRED = "VERIFICATION_REQUIRED"
    MARKET_SUSPENDED = "MARKET_SUSPENDED"
    RESTRICTED = "RESTRICTED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    EXCEPTION = "EXCEPTION"


class ResponseKind(str, Enum):
    """What the state machine does with a placement response."""

    ACCEPTED = "ACCEPTED"
    PENDING = "PENDING"
    ADJUST = "ADJUST"  # price/stake out of bounds, retry with adjusted intent
    REJECTED = "REJECTED"
    DROP = "DROP"  # structurally unplaceable
    CRITICAL = "CRITICAL"
    TRANSIENT = "TRANSIENT"
    UNKNOWN = "UNKNOWN"


class PlacementState(str, Enum):
    """Per-intent placement lifecycle."""

    INIT = "INIT"
    PLACED_PENDING = "PLACED_PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED_RETRY = "REJECTED_RETRY"
    REJECTED_FINAL = "REJECTED_FINAL"
    CRITICAL_ABORT = "CRITICAL_ABORT"


class Outcome(str, Enum):
    """Normalized wager status as reported during settlement."""

    WON = "WON"
    LOST = "LOST"
    VOID = "VOID"
    HALF_WIN = "HALF_WIN"
    HALF_LOSS = "HALF_LOSS"
    TIMEOUT = "TIMEOUT"
    ACCEPTED = "ACCEPTED"
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    REJECTED = "REJECTED"
    UNKNOWN = "UNKNOWN"


CRITICAL_STATUSES = frozenset(
    {
        PlacementStatus.VERIFICATION_REQUIRED.value,
        PlacementStatus.MARKET_SUSPENDED.value,
        PlacementStatus.RESTRICTED.value,
        PlacementStatus.INSUFFICIENT_FUNDS.value,
        PlacementStatus.INTERNAL_SERVER_ERROR.value,
    }
)

# Outcomes that end settlement polling and move money (or explicitly do not).
SETTLED_OUTCOMES = frozenset(
    {Outcome.WON, Outcome.LOST, Outcome.VOID, Outcome.HALF_WIN, Outcome.HALF_LOSS}
)

# Audit record statuses that are never overwritten once written.
TERMINAL_RECORD_STATUSES = frozenset(
    {
        Outcome.WON.value,
        Outcome.LOST.value,
        Outcome.VOID.value,
        Outcome.REJECTED.value,
        Outcome.HALF_WIN.value,
        Outcome.HALF_LOSS.value,
        Outcome.TIMEOUT.value,
    }
)

_HTTP_ERROR_RE = re.compile(r"^(?:ERROR_)?HTTP_(?:[45]\d\d|[45]XX|[A-Z_]+)$")

_KIND_BY_STATUS = {
    PlacementStatus.ACCEPTED.value: ResponseKind.ACCEPTED,
    "OPEN": ResponseKind.ACCEPTED,
    PlacementStatus.PENDING_ACCEPTANCE.value: ResponseKind.PENDING,
    PlacementStatus.PRICE_ABOVE_MARKET.value: ResponseKind.ADJUST,
    PlacementStatus.STAKE_ABOVE_MAX.value: ResponseKind.ADJUST,
    PlacementStatus.REJECTED.value: ResponseKind.REJECTED,
    PlacementStatus.STAKE_BELOW_MIN.value: ResponseKind.DROP,
    PlacementStatus.PUSH.value: ResponseKind.DROP,
    PlacementStatus.EXCEPTION.value: ResponseKind.TRANSIENT,
}


def canonical_code(status: str | None) -> str:
    """Upper-case, trimmed, space/dash separated words joined by underscores."""
    return re.sub(r"[\s\-]+", "_", (status or "").strip()).upper()


def is_critical(status: str | None) -> bool:
    """True for account/session level failures (including HTTP 4xx/5xx class errors)."""
    code = canonical_code(status)
    return code in CRITICAL_STATUSES or bool(_HTTP_ERROR_RE.match(code))


def classify_placement(status: str | None) -> ResponseKind:
    """Map a provider placement status code to the action the state machine takes."""
    code = canonical_code(status)
    if is_critical(code):
        return ResponseKind.CRITICAL
    return _KIND_BY_STATUS.get(code, ResponseKind.UNKNOWN)
