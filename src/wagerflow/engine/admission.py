"""Cycle admission control and the single-permit provider gate."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from threading import Lock
from typing import AsyncIterator

import structlog

from wagerflow.models.status import PlacementStatus
from wagerflow.models.wager import Side
from wagerflow.provider.base import PlacementProvider, PlaceResponse, StatusResponse

log = structlog.get_logger(__name__)


class CycleAdmissionController:
    """Bounded count of active admissions. Waiters poll; there is no queue and no fairness.

    Every successful acquire holds its own slot, so two admissions under one
    cycle id take two slots and need two releases.
    """

    def __init__(self, capacity: int = 2, poll_interval_sec: float = 30.0) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.poll_interval_sec = poll_interval_sec
        self._active: dict[str, int] = {}
        self._held = 0
        self._lock = Lock()

    @property
    def active_cycles(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._active)

    @property
    def held(self) -> int:
        """Slots in use, duplicate ids counted separately."""
        with self._lock:
            return self._held

    def try_acquire(self, cycle_id: str) -> bool:
        """Take one slot for cycle_id if one is free."""
        with self._lock:
            if self._held >= self.capacity:
                return False
            self._active[cycle_id] = self._active.get(cycle_id, 0) + 1
            self._held += 1
            held = self._held
        log.info("cycle_admitted", cycle_id=cycle_id, active=held, capacity=self.capacity)
        return True

    async def acquire(self, cycle_id: str) -> None:
        """Wait until cycle_id is admitted. Never fails, only delays."""
        while not self.try_acquire(cycle_id):
            log.info(
                "admission_wait",
                cycle_id=cycle_id,
                active=sorted(self.active_cycles),
                retry_in_sec=self.poll_interval_sec,
            )
            await asyncio.sleep(self.poll_interval_sec)

    def release(self, cycle_id: str) -> None:
        """Give back one slot held by cycle_id. Unknown ids are ignored."""
        with self._lock:
            count = self._active.get(cycle_id, 0)
            if count == 0:
                return
            if count == 1:
                del self._active[cycle_id]
            else:
                self._active[cycle_id] = count - 1
            self._held -= 1
            held = self._held
        log.info("cycle_released", cycle_id=cycle_id, active=held)

    @asynccontextmanager
    async def admit(self, cycle_id: str) -> AsyncIterator[str]:
        """Hold an admission slot for the body; released on every exit path."""
        await self.acquire(cycle_id)
        try:
            yield cycle_id
        finally:
            self.release(cycle_id)


class ProviderGate:
    """Serializes every provider call behind one permit and turns exceptions into results.

    The permit covers exactly one provider round trip. Callers sleep outside it.
    """

    def __init__(self, provider: PlacementProvider) -> None:
        self.provider = provider
        self._permit = asyncio.Semaphore(1)

    async def place(
        self,
        event_id: str,
        side: Side,
        price: Decimal,
        stake: Decimal,
        currency: str,
        idempotency_ref: str,
    ) -> PlaceResponse:
        async with self._permit:
            try:
                return await self.provider.place_wager(
                    event_id, side, price, stake, currency, idempotency_ref
                )
            except Exception as e:
                log.warning("place_call_failed", event_id=event_id, ref=idempotency_ref, error=str(e))
                return PlaceResponse(status=PlacementStatus.EXCEPTION.value, raw=str(e))

    async def status(self, reference: str) -> StatusResponse | None:
        """Latest status, or None when the provider call raised."""
        async with self._permit:
            try:
                return await self.provider.get_wager_status(reference)
            except Exception as e:
                log.warning("status_call_failed", reference=reference, error=str(e))
                return None

    async def get_balance(self, currency: str = "USD") -> Decimal:
        async with self._permit:
            return await self.provider.get_balance(currency)
