"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS ledger_seq START 1;

-- Journal of balance mutations (one row per add_profit / deduct_loss / reconciliation)
CREATE TABLE IF NOT EXISTS ledger_entries (
    id              BIGINT PRIMARY KEY DEFAULT nextval('ledger_seq'),
    kind            VARCHAR NOT NULL,
    amount          DECIMAL(18, 8) NOT NULL,
    balance_before  DECIMAL(18, 8) NOT NULL,
    balance_after   DECIMAL(18, 8) NOT NULL,
    reason          VARCHAR,
    created_at      BIGINT NOT NULL
);

-- Wagering cycles (one batch of intents under admission control)
CREATE TABLE IF NOT EXISTS cycles (
    cycle_id        VARCHAR PRIMARY KEY,
    started_at      BIGINT NOT NULL,
    ended_at        BIGINT,
    intents         INTEGER NOT NULL,
    accepted        INTEGER DEFAULT 0,
    dropped         INTEGER DEFAULT 0,
    settled         INTEGER DEFAULT 0,
    aborted         BOOLEAN DEFAULT FALSE,
    abort_event_id  VARCHAR,
    abort_status    VARCHAR,
    status          VARCHAR NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True when another process may be writing (e.g. wagerflow run)."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
