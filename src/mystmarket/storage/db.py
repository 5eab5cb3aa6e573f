"""DuckDB connection, schema init and transaction boundary."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS ledger_seq START 1;
CREATE SEQUENCE IF NOT EXISTS bet_seq START 1;

-- Markets. status + version form the compare-and-swap guard for stake and resolution writes
CREATE TABLE IF NOT EXISTS markets (
    market_id       VARCHAR PRIMARY KEY,
    title           VARCHAR,
    outcomes        JSON NOT NULL,
    status          VARCHAR NOT NULL,
    winning_outcome VARCHAR,
    version         BIGINT NOT NULL DEFAULT 0,
    created_at      BIGINT NOT NULL,
    resolved_at     BIGINT
);

-- Per-outcome stake totals in MYST minor units (monotonic while OPEN)
CREATE TABLE IF NOT EXISTS market_pools (
    market_id       VARCHAR NOT NULL,
    outcome         VARCHAR NOT NULL,
    amount          BIGINT NOT NULL DEFAULT 0,
    PRIMARY KEY (market_id, outcome)
);

-- Bets (append-only log, pools can be rebuilt from it)
CREATE TABLE IF NOT EXISTS bets (
    seq             BIGINT NOT NULL DEFAULT nextval('bet_seq'),
    bet_id          VARCHAR PRIMARY KEY,
    market_id       VARCHAR NOT NULL,
    bettor_id       VARCHAR NOT NULL,
    outcome         VARCHAR NOT NULL,
    amount          BIGINT NOT NULL,
    created_at      BIGINT NOT NULL
);

-- One settlement per market, stored as canonical JSON for idempotent replays
CREATE TABLE IF NOT EXISTS settlements (
    market_id       VARCHAR PRIMARY KEY,
    kind            VARCHAR NOT NULL,
    winning_outcome VARCHAR,
    result          JSON NOT NULL,
    created_at      BIGINT NOT NULL
);

-- Audit ledger: one row per debit/credit, user balance = SUM(amount)
CREATE TABLE IF NOT EXISTS ledger_entries (
    id              BIGINT PRIMARY KEY DEFAULT nextval('ledger_seq'),
    account_id      VARCHAR NOT NULL,
    account_kind    VARCHAR NOT NULL,
    entry_type      VARCHAR NOT NULL,
    amount          BIGINT NOT NULL,
    market_id       VARCHAR,
    bet_id          VARCHAR,
    meta            JSON,
    created_at      BIGINT NOT NULL
);

-- Economy simulation runs (aggregate per run)
CREATE TABLE IF NOT EXISTS sim_runs (
    run_id          VARCHAR PRIMARY KEY,
    params          JSON,
    markets         INTEGER,
    total_volume    BIGINT,
    total_fees      BIGINT,
    total_dust      BIGINT,
    total_unclaimed BIGINT,
    conserved       BOOLEAN,
    created_at      BIGINT
);

-- Fee sub-pool balances (leaderboard, referral, wheel, treasury, ...)
CREATE TABLE IF NOT EXISTS pool_balances (
    pool_id         VARCHAR PRIMARY KEY,
    balance         BIGINT NOT NULL,
    updated_at      BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    ":memory:" opens an in-memory database."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
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


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """BEGIN/COMMIT around the block; any exception rolls everything back and re-raises."""
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
