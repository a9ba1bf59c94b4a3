"""Cycle history persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _now_ms() -> int:
    return int(time.time() * 1000)


def start_cycle(conn: DuckDBPyConnection, cycle_id: str, intents: int) -> None:
    """Insert (or restart) a cycle row in 'running' state."""
    conn.execute(
        """
        INSERT INTO cycles (cycle_id, started_at, intents, status)
        VALUES (?, ?, ?, 'running')
        ON CONFLICT (cycle_id) DO UPDATE SET
            started_at = excluded.started_at,
            ended_at = NULL,
            intents = excluded.intents,
            status = excluded.status
        """,
        [cycle_id, _now_ms(), intents],
    )


def finish_cycle(
    conn: DuckDBPyConnection,
    cycle_id: str,
    *,
    status: str,
    accepted: int = 0,
    dropped: int = 0,
    settled: int = 0,
    aborted: bool = False,
    abort_event_id: str | None = None,
    abort_status: str | None = None,
) -> None:
    """Record the end state of a cycle."""
    conn.execute(
        """
        UPDATE cycles SET ended_at = ?, accepted = ?, dropped = ?, settled = ?,
            aborted = ?, abort_event_id = ?, abort_status = ?, status = ?
        WHERE cycle_id = ?
        """,
        [_now_ms(), accepted, dropped, settled, aborted, abort_event_id, abort_status, status, cycle_id],
    )


def list_cycles(conn: DuckDBPyConnection, limit: int = 20) -> list[dict[str, Any]]:
    """Most recent cycles first."""
    rows = conn.execute(
        """
        SELECT cycle_id, started_at, ended_at, intents, accepted, dropped, settled,
               aborted, abort_event_id, abort_status, status
        FROM cycles ORDER BY started_at DESC LIMIT ?
        """,
        [limit],
    ).fetchall()
    keys = (
        "cycle_id",
        "started_at",
        "ended_at",
        "intents",
        "accepted",
        "dropped",
        "settled",
        "aborted",
        "abort_event_id",
        "abort_status",
        "status",
    )
    return [dict(zip(keys, r)) for r in rows]
