"""Cycle orchestration - admission, budget, placement, settlement, cycle history."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

import duckdb
import structlog

from wagerflow.engine.admission import CycleAdmissionController, ProviderGate
from wagerflow.engine.placement import CriticalAbort, PlacementStateMachine
from wagerflow.engine.settlement import SettlementPoller, SettlementResult
from wagerflow.ledger.balance import BalanceLedger
from wagerflow.models.wager import WagerIntent
from wagerflow.provider import PlacementProvider, create_provider
from wagerflow.storage.audit_log import AuditLog
from wagerflow.storage.cycles import finish_cycle, start_cycle
from wagerflow.storage.journal import LedgerJournal

if TYPE_CHECKING:
    from wagerflow.config import Settings

log = structlog.get_logger(__name__)


def new_cycle_id() -> str:
    return f"cycle-{datetime.now(timezone.utc):%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"


@dataclass
class CycleReport:
    """What one cycle did."""

    cycle_id: str
    intents: int
    status: str = "failed"
    accepted: int = 0
    dropped: int = 0
    skipped: int = 0
    over_budget: int = 0
    aborted: bool = False
    abort: CriticalAbort | None = None
    settled: dict[str, SettlementResult] = field(default_factory=dict)

    @property
    def profit_loss(self) -> Decimal:
        return sum((r.delta for r in self.settled.values()), Decimal("0"))


class CycleRunner:
    """Runs batches of intents as admitted cycles and records each cycle in DuckDB."""

    def __init__(
        self,
        admission: CycleAdmissionController,
        placement: PlacementStateMachine,
        settlement: SettlementPoller,
        ledger: BalanceLedger,
        *,
        percent_per_cycle: Decimal = Decimal("1"),
        journal: LedgerJournal | None = None,
    ) -> None:
        self.admission = admission
        self.placement = placement
        self.settlement = settlement
        self.ledger = ledger
        self.percent_per_cycle = Decimal(percent_per_cycle)
        self.journal = journal

    def _record_start(self, cycle_id: str, intents: int) -> None:
        if self.journal is None:
            return
        try:
            start_cycle(self.journal.connection(), cycle_id, intents)
        except duckdb.Error as e:
            log.error("cycle_store_failed", cycle_id=cycle_id, error=str(e))

    def _record_finish(self, report: CycleReport) -> None:
        if self.journal is None:
            return
        try:
            finish_cycle(
                self.journal.connection(),
                report.cycle_id,
                status=report.status,
                accepted=report.accepted,
                dropped=report.dropped,
                settled=len(report.settled),
                aborted=report.aborted,
                abort_event_id=report.abort.event_id if report.abort else None,
                abort_status=report.abort.status if report.abort else None,
            )
        except duckdb.Error as e:
            log.error("cycle_store_failed", cycle_id=report.cycle_id, error=str(e))

    def apply_budget(self, intents: list[WagerIntent]) -> tuple[list[WagerIntent], int]:
        """Keep intents while their cumulative stake fits the cycle allocation. Returns (kept, trimmed)."""
        allocation = self.ledger.cycle_allocation(self.percent_per_cycle)
        kept: list[WagerIntent] = []
        total = Decimal("0")
        for intent in intents:
            if total + intent.stake > allocation:
                log.info("intent_over_budget", event_id=intent.event_id, stake=str(intent.stake), allocation=str(allocation))
                continue
            kept.append(intent)
            total += intent.stake
        if kept and not self.ledger.has_sufficient_balance(total):
            return [], len(intents)
        return kept, len(intents) - len(kept)

    async def _run_admitted(self, report: CycleReport, intents: list[WagerIntent]) -> None:
        kept, report.over_budget = self.apply_budget(intents)
        if intents and not kept:
            log.warning("cycle_refused", cycle_id=report.cycle_id, reason="insufficient balance for any intent")
            report.status = "refused"
            return

        placed = await self.placement.place_batch(kept)
        report.dropped = len(placed.dropped)
        report.skipped = len(placed.skipped)
        if placed.aborted:
            report.aborted = True
            report.abort = placed.abort
            report.status = "aborted"
            return
        report.accepted = len(placed.accepted)
        report.settled = await self.settlement.settle(placed.accepted)
        report.status = "completed"

    async def run_cycle(self, intents: Iterable[WagerIntent], cycle_id: str | None = None) -> CycleReport:
        """Admit, place, settle. The admission slot is released on every exit path."""
        cycle_id = cycle_id or new_cycle_id()
        batch = list(intents)
        report = CycleReport(cycle_id=cycle_id, intents=len(batch))
        async with self.admission.admit(cycle_id):
            self._record_start(cycle_id, len(batch))
            try:
                await self._run_admitted(report, batch)
            finally:
                self._record_finish(report)
        log.info(
            "cycle_finished",
            cycle_id=cycle_id,
            status=report.status,
            accepted=report.accepted,
            dropped=report.dropped,
            settled=len(report.settled),
            profit_loss=str(report.profit_loss),
        )
        return report


@dataclass
class Engine:
    """Every long-lived collaborator of a wagering process, constructed once."""

    provider: PlacementProvider
    gate: ProviderGate
    admission: CycleAdmissionController
    ledger: BalanceLedger
    audit: AuditLog
    journal: LedgerJournal
    placement: PlacementStateMachine
    settlement: SettlementPoller
    runner: CycleRunner

    async def close(self) -> None:
        await self.provider.close()
        self.journal.close()


def build_engine(settings: Settings, provider: PlacementProvider | None = None) -> Engine:
    """Wire the engine from settings. provider overrides settings.provider_kind."""
    provider = provider or create_provider(settings)
    gate = ProviderGate(provider)
    journal = LedgerJournal(settings.db_path)
    ledger = BalanceLedger.from_settings(settings, journal=journal)
    audit = AuditLog(settings.audit_path, keep_backups=settings.audit_keep_backups)
    admission = CycleAdmissionController(
        capacity=settings.max_active_cycles,
        poll_interval_sec=settings.admission_poll_sec,
    )
    placement = PlacementStateMachine(
        gate,
        audit,
        max_adjust_retries=settings.max_adjust_retries,
        max_rejection_retries=settings.max_rejection_retries,
        stake_shrink_factor=settings.stake_shrink_factor,
        retry_pace_sec=settings.retry_pace_sec,
    )
    settlement = SettlementPoller(
        gate,
        ledger,
        audit,
        first_wait_sec=settings.settlement_first_wait_sec,
        poll_interval_sec=settings.settlement_poll_interval_sec,
        max_wait_sec=settings.settlement_max_wait_sec,
    )
    runner = CycleRunner(
        admission,
        placement,
        settlement,
        ledger,
        percent_per_cycle=settings.percent_wager_per_cycle,
        journal=journal,
    )
    return Engine(
        provider=provider,
        gate=gate,
        admission=admission,
        ledger=ledger,
        audit=audit,
        journal=journal,
        placement=placement,
        settlement=settlement,
        runner=runner,
    )
