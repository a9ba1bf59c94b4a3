"""Balance ledger tests: outcome arithmetic, counters, persistence."""

from decimal import Decimal

import pytest

from conftest import ScriptedProvider
from wagerflow.ledger.balance import BalanceLedger
from wagerflow.models.status import Outcome
from wagerflow.storage.journal import LedgerJournal


def _ledger(tmp_path, **kwargs):
    return BalanceLedger(tmp_path / "balance.txt", tmp_path / "balance_stats.txt", **kwargs)


def test_won_adds_profit(ledger):
    delta = ledger.process_outcome(Outcome.WON, Decimal("10"), Decimal("2.5"))
    assert delta == Decimal("15.00")
    stats = ledger.snapshot()
    assert stats.current == Decimal("115.00")
    assert stats.wins == 1
    assert stats.losses == 0


def test_half_loss_deducts_half_stake(ledger):
    delta = ledger.process_outcome("HALF_LOSS", Decimal("20"), Decimal("1.9"))
    assert delta == Decimal("-10.00")
    assert ledger.get_balance() == Decimal("90")
    assert ledger.snapshot().losses == 1


def test_half_win_and_lost(ledger):
    assert ledger.process_outcome("HALF_WIN", Decimal("10"), Decimal("3")) == Decimal("10")
    assert ledger.process_outcome("LOST", Decimal("7"), Decimal("3")) == Decimal("-7")
    stats = ledger.snapshot()
    assert stats.current == Decimal("103")
    assert stats.total_profit == Decimal("10")
    assert stats.total_loss == Decimal("7")


def test_void_and_unknown_do_not_move_money(ledger):
    assert ledger.process_outcome("VOID", Decimal("10"), Decimal("2")) == 0
    assert ledger.process_outcome("cancelled", Decimal("10"), Decimal("2")) == 0
    assert ledger.process_outcome("MYSTERY", Decimal("10"), Decimal("2")) == 0
    stats = ledger.snapshot()
    assert stats.current == Decimal("100")
    assert stats.total_bets == 0


def test_timeout_counts_as_timeout_not_loss(ledger):
    ledger.deduct_loss(Decimal("5"), reason="event 42", timeout=True)
    ledger.process_outcome(Outcome.TIMEOUT, Decimal("5"), Decimal("2"))
    stats = ledger.snapshot()
    assert stats.timeouts == 2
    assert stats.losses == 0
    assert stats.current == Decimal("90")


def test_timeout_in_label_does_not_make_a_loss_a_timeout(ledger):
    ledger.process_outcome(Outcome.LOST, Decimal("5"), Decimal("2"), reason="timeout-kings vs overtime")
    ledger.deduct_loss(Decimal("5"), reason="TIMEOUT fc")
    stats = ledger.snapshot()
    assert stats.losses == 2
    assert stats.timeouts == 0
    assert stats.current == Decimal("90")


def test_balance_and_stats_persist(tmp_path):
    first = _ledger(tmp_path, default_balance=Decimal("50"))
    first.add_profit(Decimal("12.5"), "win")
    first.deduct_loss(Decimal("2.5"), "loss")

    assert (tmp_path / "balance.txt").read_text() == "60.00"
    stats_text = (tmp_path / "balance_stats.txt").read_text()
    assert "StartingBalance=50.00" in stats_text
    assert "TotalWins=1" in stats_text
    assert "TotalLosses=1" in stats_text

    second = _ledger(tmp_path)
    stats = second.snapshot()
    assert stats.current == Decimal("60.00")
    assert stats.starting == Decimal("50.00")
    assert stats.wins == 1
    assert stats.total_pl == Decimal("10.00")
    assert stats.roi == pytest.approx(20.0)
    assert stats.win_rate == pytest.approx(50.0)


def test_corrupt_balance_file_falls_back_to_default(tmp_path):
    (tmp_path / "balance.txt").write_text("not a number")
    ledger = _ledger(tmp_path, default_balance=Decimal("100"))
    assert ledger.get_balance() == Decimal("100")
    assert (tmp_path / "balance.txt").read_text() == "100.00"


def test_missing_stats_file_starts_from_current(tmp_path):
    (tmp_path / "balance.txt").write_text("42.50")
    ledger = _ledger(tmp_path)
    assert ledger.snapshot().starting == Decimal("42.50")


def test_set_balance_and_reset_stats(ledger):
    ledger.process_outcome("WON", Decimal("10"), Decimal("2"))
    ledger.set_balance(Decimal("250"))
    assert ledger.snapshot().wins == 1
    ledger.reset_stats()
    stats = ledger.snapshot()
    assert stats.current == Decimal("250")
    assert stats.starting == Decimal("250")
    assert stats.wins == 0
    assert stats.total_profit == 0


def test_budget_helpers(ledger):
    assert ledger.cycle_allocation(Decimal("0.25")) == Decimal("25")
    assert ledger.has_sufficient_balance(Decimal("100"))
    assert not ledger.has_sufficient_balance(Decimal("100.01"))


@pytest.mark.asyncio
async def test_compare_and_sync_with_provider(ledger):
    provider = ScriptedProvider()
    provider.balance = Decimal("100.005")
    assert (await ledger.compare_with_provider(provider)).matches

    provider.balance = Decimal("120")
    comparison = await ledger.compare_with_provider(provider)
    assert not comparison.matches
    assert comparison.difference == Decimal("-20")

    assert await ledger.sync_with_provider(provider)
    assert ledger.get_balance() == Decimal("120")

    provider.balance = Decimal("0")
    assert not await ledger.sync_with_provider(provider)
    assert ledger.get_balance() == Decimal("120")


def test_mutations_are_journaled(tmp_path):
    journal = LedgerJournal(tmp_path / "ledger.duckdb")
    ledger = _ledger(tmp_path, journal=journal)
    ledger.process_outcome("WON", Decimal("10"), Decimal("2"), reason="e1")
    ledger.process_outcome("TIMEOUT", Decimal("4"), Decimal("2"), reason="e2")
    rows = journal.history()
    journal.close()
    assert [r["kind"] for r in rows] == ["timeout", "profit"]
    assert rows[0]["balance_before"] == Decimal("110")
    assert rows[0]["balance_after"] == Decimal("106")
