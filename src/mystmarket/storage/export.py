"""Export the audit ledger to Parquet."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def export_ledger_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    market_id: str | None = None,
) -> int:
    """Export ledger_entries to a Parquet file. Optional filter by market_id. Returns row count."""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    # COPY takes no bound parameters
    where = f"WHERE market_id = {_quote(market_id)}" if market_id else ""
    conn.execute(
        f"COPY (SELECT * FROM ledger_entries {where} ORDER BY id) TO {_quote(str(path))} (FORMAT PARQUET)"
    )
    return conn.execute(f"SELECT COUNT(*) FROM ledger_entries {where}").fetchone()[0]
