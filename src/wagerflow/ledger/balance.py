"""Balance ledger - running balance, win/loss statistics and their persistence.

The ledger owns one mutex. ``add_profit`` and ``deduct_loss`` are the only
primitives that move money; ``set_balance`` exists for explicit reconciliation
with the venue. Balance and stats files are rewritten after every mutation;
a write failure is logged and the in-memory state stays authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any

import structlog

from wagerflow.models.status import Outcome

if TYPE_CHECKING:
    from wagerflow.storage.journal import LedgerJournal

log = structlog.get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

_OUTCOME_ALIASES = {"CANCELLED": Outcome.VOID, "CANCELED": Outcome.VOID, "WIN": Outcome.WON, "LOSS": Outcome.LOST}


@dataclass(frozen=True)
class BalanceStats:
    """Snapshot of the ledger."""

    current: Decimal
    starting: Decimal
    wins: int
    losses: int
    timeouts: int
    total_profit: Decimal
    total_loss: Decimal

    @property
    def total_pl(self) -> Decimal:
        return self.current - self.starting

    @property
    def total_bets(self) -> int:
        return self.wins + self.losses + self.timeouts

    @property
    def win_rate(self) -> float:
        return self.wins / self.total_bets * 100 if self.total_bets else 0.0

    @property
    def roi(self) -> float:
        return float(self.total_pl / self.starting * 100) if self.starting > 0 else 0.0


@dataclass(frozen=True)
class BalanceComparison:
    """Tracked balance vs the venue's view of the account."""

    tracked: Decimal
    site: Decimal

    @property
    def difference(self) -> Decimal:
        return self.tracked - self.site

    @property
    def matches(self) -> bool:
        return abs(self.difference) <= CENT


def _fmt(value: Decimal) -> str:
    return f"{value.quantize(CENT)}"


def _parse_outcome(outcome: Outcome | str) -> Outcome | None:
    if isinstance(outcome, Outcome):
        return outcome
    code = str(outcome).strip().upper()
    if code in _OUTCOME_ALIASES:
        return _OUTCOME_ALIASES[code]
    try:
        return Outcome(code)
    except ValueError:
        return None


class BalanceLedger:
    """Durable running balance with win/loss/timeout statistics."""

    def __init__(
        self,
        balance_path: str | Path = "data/balance.txt",
        stats_path: str | Path = "data/balance_stats.txt",
        default_balance: Decimal = Decimal("100"),
        journal: LedgerJournal | None = None,
    ) -> None:
        self.balance_path = Path(balance_path)
        self.stats_path = Path(stats_path)
        self.default_balance = Decimal(default_balance)
        self.journal = journal
        self._lock = Lock()
        self._initialized = False
        self._current = ZERO
        self._starting = self.default_balance
        self._wins = 0
        self._losses = 0
        self._timeouts = 0
        self._total_profit = ZERO
        self._total_loss = ZERO

    @classmethod
    def from_settings(cls, settings: Any, journal: LedgerJournal | None = None) -> BalanceLedger:
        return cls(
            balance_path=settings.balance_path,
            stats_path=settings.stats_path,
            default_balance=settings.default_balance,
            journal=journal,
        )

    # Initialization and persistence (callers hold the lock)

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        if self.balance_path.exists():
            try:
                self._current = Decimal(self.balance_path.read_text(encoding="utf-8").strip())
                if not self._current.is_finite():
                    raise InvalidOperation(str(self._current))
            except (InvalidOperation, OSError, UnicodeDecodeError) as e:
                log.warning("balance_file_invalid", path=str(self.balance_path), default=_fmt(self.default_balance), error=str(e))
                self._current = self.default_balance
                self._save_balance()
        else:
            self._current = self.default_balance
            self._starting = self.default_balance
            log.info("balance_file_missing", path=str(self.balance_path), default=_fmt(self.default_balance))
            self._save_balance()
        self._load_stats()
        self._initialized = True

    def _save_balance(self) -> None:
        try:
            self.balance_path.parent.mkdir(parents=True, exist_ok=True)
            self.balance_path.write_text(_fmt(self._current), encoding="utf-8")
        except OSError as e:
            log.error("balance_save_failed", path=str(self.balance_path), error=str(e))

    def _save_stats(self) -> None:
        lines = [
            f"StartingBalance={_fmt(self._starting)}",
            f"TotalWins={self._wins}",
            f"TotalLosses={self._losses}",
            f"TotalTimeouts={self._timeouts}",
            f"TotalProfit={_fmt(self._total_profit)}",
            f"TotalLoss={_fmt(self._total_loss)}",
        ]
        try:
            self.stats_path.parent.mkdir(parents=True, exist_ok=True)
            self.stats_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as e:
            log.error("stats_save_failed", path=str(self.stats_path), error=str(e))

    def _load_stats(self) -> None:
        if not self.stats_path.exists():
            self._starting = self._current
            self._save_stats()
            return
        try:
            lines = self.stats_path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            log.error("stats_load_failed", path=str(self.stats_path), error=str(e))
            return
        for line in lines:
            key, sep, value = line.partition("=")
            if not sep:
                continue
            key, value = key.strip(), value.strip()
            try:
                if key == "StartingBalance":
                    self._starting = Decimal(value)
                elif key == "TotalWins":
                    self._wins = int(value)
                elif key == "TotalLosses":
                    self._losses = int(value)
                elif key == "TotalTimeouts":
                    self._timeouts = int(value)
                elif key == "TotalProfit":
                    self._total_profit = Decimal(value)
                elif key == "TotalLoss":
                    self._total_loss = Decimal(value)
            except (InvalidOperation, ValueError):
                log.warning("stats_value_invalid", key=key, value=value)

    def _journal(self, kind: str, amount: Decimal, before: Decimal, reason: str) -> None:
        if self.journal is not None:
            self.journal.record(kind, amount, before, self._current, reason)

    # Primitives

    def add_profit(self, amount: Decimal, reason: str = "") -> Decimal:
        """Credit a win. Returns the new balance."""
        amount = Decimal(amount)
        with self._lock:
            self._ensure_initialized()
            before = self._current
            self._current += amount
            self._wins += 1
            self._total_profit += amount
            self._save_balance()
            self._save_stats()
            self._journal("profit", amount, before, reason)
            log.info("profit_added", amount=_fmt(amount), before=_fmt(before), after=_fmt(self._current), reason=reason)
            return self._current

    def deduct_loss(self, amount: Decimal, reason: str = "", timeout: bool = False) -> Decimal:
        """Debit a loss; counted as a timeout instead when timeout is set. Returns the new balance."""
        amount = Decimal(amount)
        with self._lock:
            self._ensure_initialized()
            before = self._current
            self._current -= amount
            if timeout:
                self._timeouts += 1
            else:
                self._losses += 1
            self._total_loss += amount
            self._save_balance()
            self._save_stats()
            self._journal("timeout" if timeout else "loss", amount, before, reason)
            log.info("loss_deducted", amount=_fmt(amount), before=_fmt(before), after=_fmt(self._current), reason=reason)
            return self._current

    def process_outcome(
        self,
        outcome: Outcome | str,
        stake: Decimal,
        odds: Decimal,
        reason: str = "",
    ) -> Decimal:
        """Apply a settled outcome. Returns the signed balance change (0 for VOID/unknown)."""
        stake = Decimal(stake)
        odds = Decimal(odds)
        parsed = _parse_outcome(outcome)
        label = f"{reason} - {parsed.value}" if reason and parsed else reason
        if parsed is Outcome.WON:
            profit = stake * (odds - 1)
            self.add_profit(profit, label)
            return profit
        if parsed is Outcome.LOST:
            self.deduct_loss(stake, label)
            return -stake
        if parsed is Outcome.HALF_WIN:
            profit = stake * (odds - 1) / 2
            self.add_profit(profit, label)
            return profit
        if parsed is Outcome.HALF_LOSS:
            loss = stake / 2
            self.deduct_loss(loss, label)
            return -loss
        if parsed is Outcome.TIMEOUT:
            self.deduct_loss(stake, label or "TIMEOUT", timeout=True)
            return -stake
        if parsed is Outcome.VOID:
            log.info("no_balance_change", outcome=parsed.value, reason=reason)
            return ZERO
        log.warning("unknown_outcome", outcome=str(outcome), reason=reason)
        return ZERO

    # Reconciliation and reads

    def set_balance(self, new_balance: Decimal, reason: str = "reconciliation") -> None:
        """Overwrite the balance (explicit reconciliation only)."""
        new_balance = Decimal(new_balance)
        with self._lock:
            self._ensure_initialized()
            before = self._current
            self._current = new_balance
            self._save_balance()
            self._journal("set", new_balance - before, before, reason)
            log.info("balance_set", before=_fmt(before), after=_fmt(new_balance), reason=reason)

    def reset_stats(self) -> None:
        """Zero the statistics; the current balance becomes the new starting balance."""
        with self._lock:
            self._ensure_initialized()
            self._starting = self._current
            self._wins = self._losses = self._timeouts = 0
            self._total_profit = ZERO
            self._total_loss = ZERO
            self._save_stats()
            log.info("stats_reset", starting=_fmt(self._starting))

    def get_balance(self) -> Decimal:
        with self._lock:
            self._ensure_initialized()
            return self._current

    def snapshot(self) -> BalanceStats:
        with self._lock:
            self._ensure_initialized()
            return BalanceStats(
                current=self._current,
                starting=self._starting,
                wins=self._wins,
                losses=self._losses,
                timeouts=self._timeouts,
                total_profit=self._total_profit,
                total_loss=self._total_loss,
            )

    def has_sufficient_balance(self, required: Decimal) -> bool:
        current = self.get_balance()
        if current < required:
            log.warning("insufficient_balance", required=_fmt(Decimal(required)), available=_fmt(current))
            return False
        return True

    def cycle_allocation(self, percent_per_cycle: Decimal) -> Decimal:
        """Share of the current balance one cycle may stake."""
        balance = self.get_balance()
        allocation = balance * Decimal(percent_per_cycle)
        log.info("cycle_allocation", allocation=_fmt(allocation), percent=str(percent_per_cycle), balance=_fmt(balance))
        return allocation

    async def compare_with_provider(self, provider: Any, currency: str = "USD") -> BalanceComparison:
        """Fetch the venue balance and compare it with the tracked one."""
        site = Decimal(await provider.get_balance(currency))
        comparison = BalanceComparison(tracked=self.get_balance(), site=site)
        if comparison.matches:
            log.info("balances_match", tracked=_fmt(comparison.tracked), site=_fmt(site))
        else:
            log.warning("balance_mismatch", tracked=_fmt(comparison.tracked), site=_fmt(site), difference=_fmt(comparison.difference))
        return comparison

    async def sync_with_provider(self, provider: Any, currency: str = "USD") -> bool:
        """Reconcile the tracked balance to the venue balance. False when the venue reports nothing usable."""
        site = Decimal(await provider.get_balance(currency))
        if site <= 0:
            log.warning("site_balance_invalid", site=_fmt(site))
            return False
        self.set_balance(site, reason="sync with provider")
        return True
