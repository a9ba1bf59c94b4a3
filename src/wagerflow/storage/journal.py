"""Ledger journal - append-only history of balance mutations in DuckDB."""

from __future__ import annotations

import time
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any

import duckdb
import structlog

from wagerflow.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def append_ledger_entry(
    conn: DuckDBPyConnection,
    kind: str,
    amount: Decimal,
    balance_before: Decimal,
    balance_after: Decimal,
    reason: str = "",
    created_at: int | None = None,
) -> None:
    """Append one mutation row. created_at is ms epoch (default now)."""
    conn.execute(
        """
        INSERT INTO ledger_entries (kind, amount, balance_before, balance_after, reason, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [kind, amount, balance_before, balance_after, reason, created_at or int(time.time() * 1000)],
    )


def list_ledger_entries(conn: DuckDBPyConnection, limit: int = 50) -> list[dict[str, Any]]:
    """Most recent entries first."""
    rows = conn.execute(
        """
        SELECT id, kind, amount, balance_before, balance_after, reason, created_at
        FROM ledger_entries ORDER BY id DESC LIMIT ?
        """,
        [limit],
    ).fetchall()
    return [
        {
            "id": r[0],
            "kind": r[1],
            "amount": r[2],
            "balance_before": r[3],
            "balance_after": r[4],
            "reason": r[5],
            "created_at": r[6],
        }
        for r in rows
    ]


def ledger_totals(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Count and summed amount per mutation kind."""
    rows = conn.execute(
        "SELECT kind, COUNT(*), SUM(amount) FROM ledger_entries GROUP BY kind ORDER BY kind"
    ).fetchall()
    return {r[0]: {"count": r[1], "amount": r[2]} for r in rows}


class LedgerJournal:
    """Owns a DuckDB connection and records ledger mutations. Calls are serialized by the ledger lock."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._conn: DuckDBPyConnection | None = None

    def connection(self) -> DuckDBPyConnection:
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_schema(self._conn)
        return self._conn

    def record(
        self,
        kind: str,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        reason: str = "",
    ) -> None:
        """Append a journal row. Failures are logged; the in-memory ledger stays authoritative."""
        try:
            append_ledger_entry(self.connection(), kind, amount, balance_before, balance_after, reason)
        except duckdb.Error as e:
            log.error("ledger_journal_failed", kind=kind, amount=str(amount), error=str(e))

    def history(self, limit: int = 50) -> list[dict[str, Any]]:
        return list_ledger_entries(self.connection(), limit)

    def totals(self) -> dict[str, Any]:
        return ledger_totals(self.connection())

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
