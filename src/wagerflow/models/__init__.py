"""Canonical schema (Pydantic) - wagers and status vocabularies."""

from wagerflow.models.status import (
    Outcome,
    PlacementState,
    PlacementStatus,
    ResponseKind,
    classify_placement,
    is_critical,
)
from wagerflow.models.wager import Side, WagerIntent, WagerRecord

__all__ = [
    "Side",
    "WagerIntent",
    "WagerRecord",
    "Outcome",
    "PlacementState",
    "PlacementStatus",
    "ResponseKind",
    "classify_placement",
    "is_critical",
]
