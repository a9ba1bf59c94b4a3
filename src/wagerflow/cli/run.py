"""Run command: place and settle one or more cycles of wager intents."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from pathlib import Path

import typer

from wagerflow.engine.cycle import CycleReport, Engine, build_engine
from wagerflow.engine.intents import load_intents
from wagerflow.errors import ConfigError, IntentFileError
from wagerflow.models.wager import WagerIntent
from wagerflow.provider import create_provider


async def _run_cycles(
    engine: Engine,
    batches: list[tuple[str | None, list[WagerIntent]]],
    stop_event: asyncio.Event,
) -> list[CycleReport] | None:
    """Run all cycles concurrently (admission bounds them). None when stopped early."""
    work = asyncio.ensure_future(
        asyncio.gather(*(engine.runner.run_cycle(intents, cycle_id) for cycle_id, intents in batches))
    )
    stopper = asyncio.ensure_future(stop_event.wait())
    try:
        done, _ = await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if work in done:
            return list(work.result())
        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        return None
    finally:
        stopper.cancel()
        await engine.close()


def _print_report(report: CycleReport, currency: str) -> None:
    typer.echo(f"Cycle {report.cycle_id}: {report.status}")
    typer.echo(
        f"  Intents: {report.intents}  Accepted: {report.accepted}  Dropped: {report.dropped}"
        f"  Skipped: {report.skipped}  Over budget: {report.over_budget}"
    )
    if report.abort is not None:
        typer.echo(f"  Aborted on event {report.abort.event_id}: {report.abort.status}")
    for result in report.settled.values():
        typer.echo(
            f"  {result.intent.label}  {result.outcome.value}  {result.delta:+.2f} {currency}"
        )
    if report.settled:
        typer.echo(f"  Cycle P/L: {report.profit_loss:+.2f} {currency}")


def run(
    ctx: typer.Context,
    intents: list[Path] = typer.Option(..., "--intents", "-i", help="JSON intent file (repeat for concurrent cycles)"),
    cycle_id: str | None = typer.Option(None, "--cycle-id", help="Cycle id (suffixed per file when several)"),
    provider: str | None = typer.Option(None, "--provider", help="paper or http (overrides config)"),
) -> None:
    """Place a batch of wager intents per file, poll settlement and update the balance."""
    settings = ctx.obj["settings"]
    try:
        batches = []
        for n, path in enumerate(intents, start=1):
            cid = cycle_id if cycle_id and len(intents) == 1 else (f"{cycle_id}-{n}" if cycle_id else None)
            batches.append((cid, load_intents(path, currency=settings.currency)))
        engine = build_engine(settings, create_provider(settings, provider))
    except (IntentFileError, ConfigError) as e:
        typer.echo(str(e))
        raise typer.Exit(1)

    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    reports: list[CycleReport] | None = None
    try:
        typer.echo(f"Running {len(batches)} cycle(s) (Ctrl+C to stop)...")
        reports = loop.run_until_complete(_run_cycles(engine, batches, stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()
    if reports is None:
        typer.echo("Stopped.")
        raise typer.Exit(1)
    for report in reports:
        _print_report(report, settings.currency)
    typer.echo(f"Balance: {engine.ledger.get_balance():.2f} {settings.currency}")
    if any(r.aborted for r in reports):
        raise typer.Exit(2)
