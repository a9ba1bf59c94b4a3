"""Balance subcommand: show, set, reset-stats, check, sync, history."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

import typer

from wagerflow.errors import ConfigError, ProviderError
from wagerflow.ledger.balance import BalanceLedger, BalanceStats
from wagerflow.provider import create_provider
from wagerflow.storage.journal import LedgerJournal

app = typer.Typer(help="Tracked balance, statistics and reconciliation with the venue")


def render_dashboard(stats: BalanceStats, currency: str = "USD") -> str:
    """Plain-text balance dashboard."""
    rule = "=" * 44
    lines = [
        rule,
        "BALANCE DASHBOARD",
        rule,
        f"Current balance:   {stats.current:>12.2f} {currency}",
        f"Starting balance:  {stats.starting:>12.2f} {currency}",
        f"Total P/L:         {stats.total_pl:>+12.2f} {currency}",
        f"ROI:               {stats.roi:>+11.2f}%",
        "-" * 44,
        f"Wins:     {stats.wins:>5}   Total profit: {stats.total_profit:.2f}",
        f"Losses:   {stats.losses:>5}   Total loss:   {stats.total_loss:.2f}",
        f"Timeouts: {stats.timeouts:>5}",
        f"Win rate: {stats.win_rate:.1f}% of {stats.total_bets} settled",
        rule,
    ]
    return "\n".join(lines)


def _ledger(settings) -> BalanceLedger:
    return BalanceLedger.from_settings(settings, journal=LedgerJournal(settings.db_path))


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Show the balance dashboard."""
    settings = ctx.obj["settings"]
    ledger = _ledger(settings)
    try:
        typer.echo(render_dashboard(ledger.snapshot(), settings.currency))
    finally:
        ledger.journal.close()


@app.command("set")
def set_balance(
    ctx: typer.Context,
    amount: str = typer.Argument(..., help="New balance"),
    reason: str = typer.Option("manual", "--reason", help="Reason recorded in the journal"),
) -> None:
    """Overwrite the tracked balance (statistics are kept)."""
    settings = ctx.obj["settings"]
    try:
        value = Decimal(amount)
    except InvalidOperation:
        typer.echo(f"Not a number: {amount}")
        raise typer.Exit(1)
    ledger = _ledger(settings)
    try:
        ledger.set_balance(value, reason=reason)
        typer.echo(f"Balance set to {value:.2f} {settings.currency}")
    finally:
        ledger.journal.close()


@app.command("reset-stats")
def reset_stats(ctx: typer.Context) -> None:
    """Reset statistics; the current balance becomes the starting balance."""
    settings = ctx.obj["settings"]
    ledger = _ledger(settings)
    try:
        ledger.reset_stats()
        typer.echo(f"Statistics reset. Starting balance: {ledger.get_balance():.2f} {settings.currency}")
    finally:
        ledger.journal.close()


async def _with_provider(settings, kind: str | None, sync: bool):
    provider = create_provider(settings, kind)
    ledger = _ledger(settings)
    try:
        if sync:
            return await ledger.sync_with_provider(provider, settings.currency)
        return await ledger.compare_with_provider(provider, settings.currency)
    finally:
        await provider.close()
        ledger.journal.close()


@app.command("check")
def check(
    ctx: typer.Context,
    provider: str | None = typer.Option(None, "--provider", help="paper or http (overrides config)"),
) -> None:
    """Compare the tracked balance with the venue balance."""
    settings = ctx.obj["settings"]
    try:
        comparison = asyncio.run(_with_provider(settings, provider, sync=False))
    except (ConfigError, ProviderError) as e:
        typer.echo(f"Balance check failed: {e}")
        raise typer.Exit(1)
    typer.echo(f"Tracked: {comparison.tracked:.2f}  Site: {comparison.site:.2f}  Difference: {comparison.difference:+.2f}")
    if not comparison.matches:
        typer.echo("Balances differ. Run 'wagerflow balance sync' to reconcile.")
        raise typer.Exit(2)


@app.command("sync")
def sync(
    ctx: typer.Context,
    provider: str | None = typer.Option(None, "--provider", help="paper or http (overrides config)"),
) -> None:
    """Set the tracked balance to the venue balance."""
    settings = ctx.obj["settings"]
    try:
        ok = asyncio.run(_with_provider(settings, provider, sync=True))
    except (ConfigError, ProviderError) as e:
        typer.echo(f"Balance sync failed: {e}")
        raise typer.Exit(1)
    if not ok:
        typer.echo("Venue reported no usable balance; nothing changed.")
        raise typer.Exit(1)
    typer.echo("Balance synchronized with venue.")


@app.command("history")
def history(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
) -> None:
    """Show recent balance mutations from the journal."""
    settings = ctx.obj["settings"]
    journal = LedgerJournal(settings.db_path)
    try:
        rows = journal.history(limit)
        totals = journal.totals()
    finally:
        journal.close()
    if not rows:
        typer.echo("No ledger entries.")
        return
    for r in rows:
        ts = datetime.fromtimestamp(r["created_at"] / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        typer.echo(
            f"{ts}  {r['kind']:<8} {r['amount']:>10.2f}  {r['balance_before']:>10.2f} -> {r['balance_after']:>10.2f}  {r['reason'] or ''}"
        )
    typer.echo("\nTotals:")
    for kind, t in totals.items():
        typer.echo(f"  {kind:<8} {t['count']:>5} entries  {t['amount']:>10.2f}")
