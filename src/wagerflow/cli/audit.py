"""Audit subcommand: list, show."""

from __future__ import annotations

import typer

from wagerflow.storage.audit_log import AuditLog

app = typer.Typer(help="Placed wager audit log")


@app.command("list")
def list_records(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status (e.g. PENDING, WON)"),
    limit: int = typer.Option(50, "--limit", "-n", help="Most recent N records"),
) -> None:
    """List audit records, oldest first."""
    settings = ctx.obj["settings"]
    audit_log = AuditLog(settings.audit_path, keep_backups=settings.audit_keep_backups)
    records = audit_log.records(status)[-limit:]
    for rec in records:
        typer.echo(
            f"{rec.created_at:%Y-%m-%d %H:%M}  {rec.event_id:<12} {rec.side.value:<6} "
            f"{rec.stake:>10.2f} @ {rec.price or 0:<6.2f} {rec.status:<18} {rec.remote_ref or '-'}"
        )
    counts = ", ".join(f"{k}={v}" for k, v in sorted(audit_log.stats().items()))
    typer.echo(f"Total: {len(audit_log)} records ({counts or 'empty'})")


@app.command("show")
def show(
    ctx: typer.Context,
    reference: str = typer.Argument(..., help="Idempotency, remote or local reference"),
    event_id: str | None = typer.Option(None, "--event", "-e", help="Fall back to the latest record for this event"),
) -> None:
    """Show one audit record as JSON."""
    settings = ctx.obj["settings"]
    rec = AuditLog(settings.audit_path).find(reference, event_id=event_id)
    if rec is None:
        typer.echo(f"Record not found: {reference}")
        raise typer.Exit(1)
    typer.echo(rec.model_dump_json(indent=2))
