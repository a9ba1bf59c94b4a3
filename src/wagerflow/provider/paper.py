"""Paper venue: in-memory dry-run provider with stake bounds and seeded settlement."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog

from wagerflow.models.wager import Side
from wagerflow.provider.base import PlacementProvider, PlaceResponse, StatusResponse

log = structlog.get_logger(__name__)


@dataclass
class PaperWager:
    """A wager held by the paper venue."""

    remote_ref: str
    idempotency_ref: str
    event_id: str
    side: Side
    price: Decimal
    stake: Decimal
    polls: int = 0
    result: str | None = None


class PaperProvider(PlacementProvider):
    """Accepts wagers within [min_stake, max_stake]; settles after N polls, win probability 1/price."""

    venue_id = "paper"

    def __init__(
        self,
        balance: Decimal = Decimal("1000"),
        *,
        min_stake: Decimal = Decimal("0.1"),
        max_stake: Decimal = Decimal("50"),
        settle_after_polls: int = 1,
        seed: int | None = None,
    ) -> None:
        self.balance = balance
        self.min_stake = min_stake
        self.max_stake = max_stake
        self.settle_after_polls = settle_after_polls
        self._rng = random.Random(seed)
        self._wagers: dict[str, PaperWager] = {}  # by idempotency_ref
        self._by_remote: dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: Any) -> PaperProvider:
        return cls(
            balance=settings.default_balance,
            min_stake=settings.paper_min_stake,
            max_stake=settings.paper_max_stake,
            settle_after_polls=settings.paper_settle_after_polls,
            seed=settings.paper_seed,
        )

    def _lookup(self, reference: str) -> PaperWager | None:
        key = self._by_remote.get(reference, reference)
        return self._wagers.get(key)

    async def place_wager(
        self,
        event_id: str,
        side: Side,
        price: Decimal,
        stake: Decimal,
        currency: str,
        idempotency_ref: str,
    ) -> PlaceResponse:
        existing = self._wagers.get(idempotency_ref)
        if existing is not None:
            return PlaceResponse(remote_ref=existing.remote_ref, status="ACCEPTED", raw="duplicate")
        if stake < self.min_stake:
            return PlaceResponse(status="STAKE_BELOW_MIN")
        if stake > self.max_stake:
            return PlaceResponse(status="STAKE_ABOVE_MAX")
        if stake > self.balance:
            return PlaceResponse(status="INSUFFICIENT_FUNDS")
        wager = PaperWager(
            remote_ref=f"paper-{uuid.uuid4().hex[:12]}",
            idempotency_ref=idempotency_ref,
            event_id=event_id,
            side=side,
            price=price,
            stake=stake,
        )
        self._wagers[idempotency_ref] = wager
        self._by_remote[wager.remote_ref] = idempotency_ref
        self.balance -= stake
        log.debug("paper_wager_placed", event_id=event_id, remote_ref=wager.remote_ref, stake=str(stake))
        return PlaceResponse(remote_ref=wager.remote_ref, status="ACCEPTED", price=price)

    async def get_wager_status(self, reference: str) -> StatusResponse:
        wager = self._lookup(reference)
        if wager is None:
            return StatusResponse(reference=reference, status="UNKNOWN", raw="not found")
        if wager.result is None:
            wager.polls += 1
            if wager.polls < self.settle_after_polls:
                return StatusResponse(reference=wager.remote_ref, status="ACCEPTED", tab="unsettled")
            won = self._rng.random() < float(1 / wager.price)
            wager.result = "WON" if won else "LOST"
            if won:
                self.balance += wager.stake * wager.price
        return StatusResponse(reference=wager.remote_ref, status=wager.result, tab="settled")

    async def get_balance(self, currency: str = "USD") -> Decimal:
        return self.balance
