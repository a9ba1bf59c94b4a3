"""Settlement poller: one independent polling loop per accepted wager."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

import structlog

from wagerflow.engine.admission import ProviderGate
from wagerflow.ledger.balance import BalanceLedger
from wagerflow.models.status import SETTLED_OUTCOMES, Outcome
from wagerflow.models.wager import WagerIntent
from wagerflow.provider.normalize import normalize_status
from wagerflow.storage.audit_log import AuditLog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    intent: WagerIntent
    outcome: Outcome
    delta: Decimal
    polls: int


class SettlementPoller:
    """Waits, polls the venue through the gate and applies terminal outcomes to the ledger."""

    def __init__(
        self,
        gate: ProviderGate,
        ledger: BalanceLedger,
        audit: AuditLog,
        *,
        first_wait_sec: float = 300.0,
        poll_interval_sec: float = 1800.0,
        max_wait_sec: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gate = gate
        self.ledger = ledger
        self.audit = audit
        self.first_wait_sec = first_wait_sec
        self.poll_interval_sec = poll_interval_sec
        self.max_wait_sec = max_wait_sec
        self._clock = clock

    async def poll_once(self, intent: WagerIntent) -> Outcome:
        resp = await self.gate.status(intent.status_ref)
        if resp is None:
            return Outcome.UNKNOWN
        outcome = normalize_status(resp.status, resp.status_text, resp.tab)
        log.debug(
            "settlement_polled",
            event_id=intent.event_id,
            reference=intent.status_ref,
            status=resp.status,
            tab=resp.tab,
            outcome=outcome.value,
        )
        return outcome

    def _apply(self, intent: WagerIntent, outcome: Outcome, polls: int) -> SettlementResult:
        delta = Decimal("0")
        # The audit record is the claim on the outcome: only the finalizing call moves money.
        if not self.audit.finalize(intent.idempotency_ref, outcome.value, event_id=intent.event_id):
            log.warning(
                "settlement_already_applied",
                event_id=intent.event_id,
                ref=intent.idempotency_ref,
                outcome=outcome.value,
            )
            return SettlementResult(intent=intent, outcome=outcome, delta=delta, polls=polls)
        if outcome is not Outcome.REJECTED:
            delta = self.ledger.process_outcome(outcome, intent.stake, intent.price, reason=intent.label)
        log.info(
            "wager_settled",
            event_id=intent.event_id,
            ref=intent.idempotency_ref,
            outcome=outcome.value,
            stake=str(intent.stake),
            price=str(intent.price),
            delta=str(delta),
            polls=polls,
        )
        return SettlementResult(intent=intent, outcome=outcome, delta=delta, polls=polls)

    async def poll_until_settled(self, intent: WagerIntent) -> SettlementResult:
        """Poll one wager until a terminal outcome (or the optional wait bound) is reached."""
        started = self._clock()
        await asyncio.sleep(self.first_wait_sec)
        polls = 0
        while True:
            outcome = await self.poll_once(intent)
            polls += 1
            if outcome in SETTLED_OUTCOMES or outcome in (Outcome.TIMEOUT, Outcome.REJECTED):
                return self._apply(intent, outcome, polls)
            if self.max_wait_sec is not None and self._clock() - started >= self.max_wait_sec:
                log.warning("settlement_timeout", event_id=intent.event_id, ref=intent.idempotency_ref, polls=polls)
                return self._apply(intent, Outcome.TIMEOUT, polls)
            log.info(
                "settlement_pending",
                event_id=intent.event_id,
                outcome=outcome.value,
                retry_in_sec=self.poll_interval_sec,
            )
            await asyncio.sleep(self.poll_interval_sec)

    async def settle(self, accepted: Iterable[WagerIntent]) -> dict[str, SettlementResult]:
        """Settle all wagers concurrently. Returns results keyed by idempotency reference."""
        intents = list(accepted)
        if not intents:
            return {}
        log.info("settlement_started", wagers=len(intents), first_wait_sec=self.first_wait_sec)
        outcomes = await asyncio.gather(
            *(self.poll_until_settled(i) for i in intents), return_exceptions=True
        )
        results: dict[str, SettlementResult] = {}
        for intent, outcome in zip(intents, outcomes):
            if isinstance(outcome, BaseException):
                log.error("settlement_failed", event_id=intent.event_id, ref=intent.idempotency_ref, error=repr(outcome))
                continue
            results[intent.idempotency_ref] = outcome
        return results
