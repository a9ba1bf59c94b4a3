"""Shared fixtures: scripted placement provider and temp-dir backed stores."""

from __future__ import annotations

from decimal import Decimal

import pytest

from wagerflow.engine.admission import ProviderGate
from wagerflow.ledger.balance import BalanceLedger
from wagerflow.models.wager import Side, WagerIntent
from wagerflow.provider.base import PlacementProvider, PlaceResponse, StatusResponse
from wagerflow.storage.audit_log import AuditLog


class ScriptedProvider(PlacementProvider):
    """Replays scripted responses per event id. An Exception instance in a script is raised."""

    venue_id = "scripted"

    def __init__(self, place=None, status=None, default_place="ACCEPTED", default_status="ACCEPTED"):
        self.place_script = {k: list(v) for k, v in (place or {}).items()}
        self.status_script = {k: list(v) for k, v in (status or {}).items()}
        self.default_place = default_place
        self.default_status = default_status
        self.place_calls: list[dict] = []
        self.status_calls: list[str] = []
        self.balance = Decimal("100")

    async def place_wager(self, event_id, side, price, stake, currency, idempotency_ref):
        self.place_calls.append(
            {"event_id": event_id, "price": price, "stake": stake, "ref": idempotency_ref}
        )
        script = self.place_script.get(event_id)
        item = script.pop(0) if script else self.default_place
        if isinstance(item, Exception):
            raise item
        if isinstance(item, PlaceResponse):
            return item
        remote = f"r-{event_id}" if item in ("ACCEPTED", "PENDING_ACCEPTANCE") else None
        return PlaceResponse(remote_ref=remote, status=item)

    async def get_wager_status(self, reference):
        self.status_calls.append(reference)
        script = self.status_script.get(reference)
        item = script.pop(0) if script else self.default_status
        if isinstance(item, Exception):
            raise item
        if isinstance(item, StatusResponse):
            return item
        return StatusResponse(reference=reference, status=item)

    async def get_balance(self, currency="USD"):
        return self.balance

    def calls_for(self, event_id: str) -> list[dict]:
        return [c for c in self.place_calls if c["event_id"] == event_id]


def make_intent(event_id: str, stake: str = "10", price: str = "2.0", side: Side = Side.SIDE_A) -> WagerIntent:
    return WagerIntent(event_id=event_id, side=side, price=Decimal(price), stake=Decimal(stake))


@pytest.fixture
def audit(tmp_path):
    return AuditLog(tmp_path / "placed_bets.json")


@pytest.fixture
def ledger(tmp_path):
    return BalanceLedger(
        tmp_path / "balance.txt",
        tmp_path / "balance_stats.txt",
        default_balance=Decimal("100"),
    )


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def gate(provider):
    return ProviderGate(provider)
