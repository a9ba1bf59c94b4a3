"""Cycles subcommand: list."""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from wagerflow.storage.cycles import list_cycles
from wagerflow.storage.db import get_connection, init_schema

app = typer.Typer(help="Wagering cycle history")


def _fmt_ts(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Number of cycles"),
) -> None:
    """List recent cycles."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = list_cycles(conn, limit)
    finally:
        conn.close()
    if not rows:
        typer.echo("No cycles recorded.")
        return
    for r in rows:
        line = (
            f"{r['cycle_id']}  {_fmt_ts(r['started_at'])} -> {_fmt_ts(r['ended_at'])}  {r['status']:<9} "
            f"intents={r['intents']} accepted={r['accepted']} dropped={r['dropped']} settled={r['settled']}"
        )
        if r["aborted"]:
            line += f"  abort={r['abort_event_id']}:{r['abort_status']}"
        typer.echo(line)
