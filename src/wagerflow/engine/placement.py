"""Bet placement state machine: drives each wager intent from INIT to a terminal state.

One batch runs in two passes. The first pass places every intent in order;
price/stake adjustments are retried inline, rejections and provider
exceptions are deferred. The second pass retries the deferred intents once
as a consolidated batch. A critical status anywhere aborts the whole batch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from typing import Iterable

import structlog

from wagerflow.engine.admission import ProviderGate
from wagerflow.models.status import (
    TERMINAL_RECORD_STATUSES,
    Outcome,
    PlacementState,
    PlacementStatus,
    ResponseKind,
    canonical_code,
    classify_placement,
)
from wagerflow.models.wager import WagerIntent
from wagerflow.provider.base import PlaceResponse
from wagerflow.storage.audit_log import AuditLog

log = structlog.get_logger(__name__)

STAKE_QUANTUM = Decimal("0.00000001")


@dataclass(frozen=True)
class CriticalAbort:
    """Names the intent whose response aborted the batch."""

    event_id: str
    status: str
    idempotency_ref: str = ""


@dataclass
class PlaceBatchResult:
    accepted: list[WagerIntent] = field(default_factory=list)
    aborted: bool = False
    abort: CriticalAbort | None = None
    dropped: list[WagerIntent] = field(default_factory=list)
    skipped: list[WagerIntent] = field(default_factory=list)
    states: dict[str, PlacementState] = field(default_factory=dict)


def shrink_stake(stake: Decimal, factor: Decimal) -> Decimal:
    """stake * factor rounded down to 8 places; always strictly below stake."""
    shrunk = (stake * factor).quantize(STAKE_QUANTUM, rounding=ROUND_DOWN)
    if shrunk >= stake:
        shrunk = stake - STAKE_QUANTUM
    return shrunk


class PlacementStateMachine:
    """Places batches of intents through the provider gate, recording every step in the audit log."""

    def __init__(
        self,
        gate: ProviderGate,
        audit: AuditLog,
        *,
        max_adjust_retries: int = 2,
        max_rejection_retries: int = 2,
        stake_shrink_factor: Decimal = Decimal("0.9"),
        retry_pace_sec: float = 0.5,
    ) -> None:
        self.gate = gate
        self.audit = audit
        self.max_adjust_retries = max_adjust_retries
        self.max_rejection_retries = max_rejection_retries
        self.stake_shrink_factor = Decimal(stake_shrink_factor)
        self.retry_pace_sec = retry_pace_sec
        # idempotency refs some running batch is placing
        self._claimed: set[str] = set()

    def _transition(self, result: PlaceBatchResult, intent: WagerIntent, state: PlacementState, code: str = "") -> None:
        before = result.states.get(intent.idempotency_ref, PlacementState.INIT)
        result.states[intent.idempotency_ref] = state
        log.info(
            "placement_transition",
            event_id=intent.event_id,
            ref=intent.idempotency_ref,
            before=before.value,
            after=state.value,
            code=code,
            stake=str(intent.stake),
            price=str(intent.price),
        )

    def _replayed(self, intent: WagerIntent, result: PlaceBatchResult) -> bool:
        """Suppress a duplicate placement of an intent the audit log already knows. True when handled."""
        rec = self.audit.find(intent.idempotency_ref)
        if rec is None:
            return False
        if rec.status in TERMINAL_RECORD_STATUSES:
            log.info("duplicate_intent_skipped", event_id=intent.event_id, ref=intent.idempotency_ref, status=rec.status)
            result.skipped.append(intent)
            return True
        if rec.remote_ref and rec.status in (Outcome.ACCEPTED.value, Outcome.PENDING_ACCEPTANCE.value):
            intent.remote_ref = rec.remote_ref
            log.info("duplicate_intent_recovered", event_id=intent.event_id, ref=intent.idempotency_ref, remote_ref=rec.remote_ref)
            self._transition(result, intent, PlacementState.ACCEPTED, rec.status)
            result.accepted.append(intent)
            return True
        return False

    async def _call(self, intent: WagerIntent) -> tuple[PlaceResponse, str]:
        self.audit.begin_attempt(intent)
        resp = await self.gate.place(
            intent.event_id,
            intent.side,
            intent.price,
            intent.stake,
            intent.currency,
            intent.idempotency_ref,
        )
        if resp.remote_ref:
            intent.remote_ref = resp.remote_ref
        return resp, canonical_code(resp.status)

    def _adjust(self, intent: WagerIntent, code: str, resp: PlaceResponse) -> bool:
        """Apply the adjustment a price/stake response asks for. False when no valid intent remains."""
        if code == PlacementStatus.STAKE_ABOVE_MAX.value:
            before = intent.stake
            intent.stake = shrink_stake(intent.stake, self.stake_shrink_factor)
            log.info("stake_shrunk", event_id=intent.event_id, before=str(before), after=str(intent.stake))
            return intent.stake > 0
        if resp.price is not None and resp.price > 1 and resp.price != intent.price:
            log.info("price_updated", event_id=intent.event_id, before=str(intent.price), after=str(resp.price))
            intent.price = resp.price
        return True

    async def _drive(self, intent: WagerIntent, *, retry_pass: bool) -> tuple[PlacementState, str]:
        """Place one intent until it is accepted, deferred, dropped or critical."""
        while True:
            resp, code = await self._call(intent)
            kind = classify_placement(code)
            ref = intent.idempotency_ref

            if kind is ResponseKind.CRITICAL:
                self.audit.record_response(ref, code, remote_ref=intent.remote_ref, raw=code)
                return PlacementState.CRITICAL_ABORT, code

            if kind in (ResponseKind.ACCEPTED, ResponseKind.PENDING, ResponseKind.UNKNOWN):
                if kind is ResponseKind.UNKNOWN:
                    log.warning("unknown_placement_status", event_id=intent.event_id, ref=ref, code=code)
                status = Outcome.ACCEPTED if kind is ResponseKind.ACCEPTED else Outcome.PENDING_ACCEPTANCE
                self.audit.record_response(ref, status.value, remote_ref=intent.remote_ref, raw=code)
                return PlacementState.ACCEPTED, code

            if kind is ResponseKind.DROP:
                self.audit.record_response(ref, Outcome.REJECTED.value, raw=code)
                return PlacementState.REJECTED_FINAL, code

            if kind is ResponseKind.ADJUST:
                if intent.adjust_retries >= self.max_adjust_retries:
                    self.audit.record_response(ref, Outcome.REJECTED.value, raw=code)
                    return PlacementState.REJECTED_FINAL, code
                intent.adjust_retries += 1
                if not self._adjust(intent, code, resp):
                    self.audit.record_response(ref, Outcome.REJECTED.value, raw=code)
                    return PlacementState.REJECTED_FINAL, code
                self.audit.record_response(ref, "PENDING", raw=code)
                await asyncio.sleep(self.retry_pace_sec)
                continue

            if kind is ResponseKind.REJECTED:
                if intent.rejection_retries >= self.max_rejection_retries:
                    self.audit.record_response(ref, Outcome.REJECTED.value, raw=code)
                    return PlacementState.REJECTED_FINAL, code
                intent.rejection_retries += 1
                self.audit.record_response(ref, "PENDING", raw=code)
                if not retry_pass:
                    return PlacementState.REJECTED_RETRY, code
                await asyncio.sleep(self.retry_pace_sec)
                continue

            # TRANSIENT: the wager may or may not exist at the venue
            self.audit.record_response(ref, "PENDING", raw=code)
            if not retry_pass:
                return PlacementState.REJECTED_RETRY, code
            log.warning("transient_kept_pending", event_id=intent.event_id, ref=ref)
            return PlacementState.ACCEPTED, code

    def _abort(self, result: PlaceBatchResult, intent: WagerIntent, code: str) -> PlaceBatchResult:
        log.error(
            "batch_aborted",
            event_id=intent.event_id,
            ref=intent.idempotency_ref,
            status=code,
            discarded_accepted=len(result.accepted),
        )
        result.accepted = []
        result.aborted = True
        result.abort = CriticalAbort(event_id=intent.event_id, status=code, idempotency_ref=intent.idempotency_ref)
        return result

    async def place_batch(self, intents: Iterable[WagerIntent]) -> PlaceBatchResult:
        """Place a batch. Returns accepted intents, or an aborted result naming the critical intent.

        An idempotency reference is handled by one batch at a time. Repeats inside
        the batch, and references another running batch is still placing, are skipped.
        """
        claimed: set[str] = set()
        try:
            return await self._place_claimed(intents, claimed)
        finally:
            self._claimed.difference_update(claimed)

    async def _place_claimed(self, intents: Iterable[WagerIntent], claimed: set[str]) -> PlaceBatchResult:
        result = PlaceBatchResult()
        deferred: list[WagerIntent] = []

        for intent in intents:
            if intent.idempotency_ref in self._claimed:
                log.info("duplicate_intent_in_flight", event_id=intent.event_id, ref=intent.idempotency_ref)
                result.skipped.append(intent)
                continue
            self._claimed.add(intent.idempotency_ref)
            claimed.add(intent.idempotency_ref)
            if self._replayed(intent, result):
                continue
            self._transition(result, intent, PlacementState.PLACED_PENDING)
            state, code = await self._drive(intent, retry_pass=False)
            self._transition(result, intent, state, code)
            if state is PlacementState.CRITICAL_ABORT:
                return self._abort(result, intent, code)
            if state is PlacementState.ACCEPTED:
                result.accepted.append(intent)
            elif state is PlacementState.REJECTED_RETRY:
                deferred.append(intent)
            else:
                result.dropped.append(intent)

        if deferred:
            log.info("retry_pass_started", deferred=len(deferred))
        for intent in deferred:
            await asyncio.sleep(self.retry_pace_sec)
            self._transition(result, intent, PlacementState.PLACED_PENDING)
            state, code = await self._drive(intent, retry_pass=True)
            self._transition(result, intent, state, code)
            if state is PlacementState.CRITICAL_ABORT:
                return self._abort(result, intent, code)
            if state is PlacementState.ACCEPTED:
                result.accepted.append(intent)
            else:
                result.dropped.append(intent)

        log.info(
            "batch_placed",
            intents=len(result.states) + len(result.skipped),
            accepted=len(result.accepted),
            dropped=len(result.dropped),
            skipped=len(result.skipped),
        )
        return result
