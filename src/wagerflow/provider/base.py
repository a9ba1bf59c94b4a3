"""Abstract placement provider for pluggable venues (paper, HTTP trading API, ...)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from pydantic import BaseModel

from wagerflow.models.wager import Side


class PlaceResponse(BaseModel):
    """Result of one place call."""

    remote_ref: str | None = None
    status: str = ""
    price: Decimal | None = None  # venue-quoted price, when it differs from the request
    raw: str = ""


class StatusResponse(BaseModel):
    """Result of one status query.

    ``status`` is the venue's explicit status field (a code), ``status_text``
    any free text the venue showed alongside it, and ``tab`` a hint about
    where the wager was found (e.g. "settled" / "unsettled").
    """

    reference: str
    status: str | None = None
    status_text: str | None = None
    tab: str | None = None
    raw: str = ""


class PlacementProvider(ABC):
    """Abstract venue: place a wager, query its status, read the account balance."""

    venue_id: str = ""

    @abstractmethod
    async def place_wager(
        self,
        event_id: str,
        side: Side,
        price: Decimal,
        stake: Decimal,
        currency: str,
        idempotency_ref: str,
    ) -> PlaceResponse:
        """Submit a wager. Must treat a repeated idempotency_ref as the same logical wager."""
        ...

    @abstractmethod
    async def get_wager_status(self, reference: str) -> StatusResponse:
        """Return the latest known status of a placed wager."""
        ...

    @abstractmethod
    async def get_balance(self, currency: str = "USD") -> Decimal:
        """Return the venue-side account balance."""
        ...

    async def close(self) -> None:
        """Release network resources. Optional."""
        pass
