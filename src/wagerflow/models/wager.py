"""WagerIntent, WagerRecord - canonical wager entities."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


def _new_ref() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    """Chosen side of a two-way event (SIDE_A = home, SIDE_B = away)."""

    SIDE_A = "SIDE_A"
    SIDE_B = "SIDE_B"

    @property
    def venue_name(self) -> str:
        return "home" if self is Side.SIDE_A else "away"

    @classmethod
    def parse(cls, value: str | int | Side) -> Side:
        """Accept enum names, home/away labels and predictor indexes (0 = home, 1 = away)."""
        if isinstance(value, Side):
            return value
        text = str(value).strip().lower()
        if text in ("0", "home", "side_a", "a"):
            return cls.SIDE_A
        if text in ("1", "away", "side_b", "b"):
            return cls.SIDE_B
        raise ValueError(f"Unknown side: {value!r}")


class WagerIntent(BaseModel):
    """One candidate wager awaiting placement."""

    event_id: str
    side: Side
    price: Decimal = Field(..., gt=1, description="Decimal odds of the chosen side")
    stake: Decimal = Field(..., gt=0)
    currency: str = "USD"
    idempotency_ref: str = Field(default_factory=_new_ref)
    adjust_retries: int = 0
    rejection_retries: int = 0
    remote_ref: str | None = None
    home_name: str | None = None
    away_name: str | None = None

    @property
    def label(self) -> str:
        if self.home_name or self.away_name:
            return f"{self.event_id}: {self.home_name or '?'} vs {self.away_name or '?'}"
        return self.event_id

    @property
    def status_ref(self) -> str:
        """Reference to query settlement with: remote once known, else our own."""
        return self.remote_ref or self.idempotency_ref


class WagerRecord(BaseModel):
    """Persisted audit counterpart of a wager placement attempt."""

    local_ref: str = Field(default_factory=_new_ref)
    remote_ref: str | None = None
    idempotency_ref: str
    event_id: str
    side: Side
    stake: Decimal
    price: Decimal | None = None
    currency: str = "USD"
    status: str = "PENDING"
    last_response: str | None = None
    attempts: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @classmethod
    def from_intent(cls, intent: WagerIntent) -> WagerRecord:
        return cls(
            idempotency_ref=intent.idempotency_ref,
            remote_ref=intent.remote_ref,
            event_id=intent.event_id,
            side=intent.side,
            stake=intent.stake,
            price=intent.price,
            currency=intent.currency,
        )

    def matches(self, reference: str) -> bool:
        return reference in (self.idempotency_ref, self.remote_ref, self.local_ref)
