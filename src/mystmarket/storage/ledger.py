"""Audit ledger and fee sub-pool balances."""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, Any

import structlog

from mystmarket.models.settlement import SettlementResult

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

USER = "user"
POOL = "pool"

SPEND_BET = "spend_bet"
PREDICTION_WIN = "prediction_win"
PREDICTION_REFUND = "prediction_refund"
ROUNDING_DUST = "rounding_dust"
UNCLAIMED_POOL = "unclaimed_pool"

_COLUMNS = ["id", "account_id", "account_kind", "entry_type", "amount", "market_id", "bet_id", "meta", "created_at"]


def pool_entry_type(pool_id: str) -> str:
    return f"pool_{pool_id}"


def append_entry(
    conn: DuckDBPyConnection,
    account_id: str,
    account_kind: str,
    entry_type: str,
    amount: int,
    market_id: str | None = None,
    bet_id: str | None = None,
    meta: dict[str, Any] | None = None,
    now_ms: int | None = None,
) -> None:
    """Append one ledger row. Positive amounts credit the account, negative debit it."""
    conn.execute(
        """
        INSERT INTO ledger_entries (account_id, account_kind, entry_type, amount, market_id, bet_id, meta, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            account_id,
            account_kind,
            entry_type,
            amount,
            market_id,
            bet_id,
            json.dumps(meta) if meta else None,
            now_ms if now_ms is not None else int(time.time() * 1000),
        ],
    )


def _add_to_pool_balance(conn: DuckDBPyConnection, pool_id: str, amount: int, now_ms: int) -> None:
    conn.execute(
        """
        INSERT INTO pool_balances (pool_id, balance, updated_at) VALUES (?, ?, ?)
        ON CONFLICT (pool_id) DO UPDATE SET
            balance = pool_balances.balance + excluded.balance,
            updated_at = excluded.updated_at
        """,
        [pool_id, amount, now_ms],
    )


def apply_settlement(conn: DuckDBPyConnection, result: SettlementResult, treasury_pool: str) -> int:
    """Write every credit of a settlement. Caller owns the transaction. Returns rows written."""
    rows = 0
    payout_type = PREDICTION_WIN if result.kind == "resolved" else PREDICTION_REFUND
    for p in result.payouts:
        if p.payout <= 0:
            continue
        append_entry(
            conn, p.bettor_id, USER, payout_type, p.payout,
            market_id=result.market_id, bet_id=p.bet_id,
            meta={"stake": p.stake, "winning_outcome": result.winning_outcome},
        )
        rows += 1
    pool_credits = [
        (pool_id, pool_entry_type(pool_id), amount) for pool_id, amount in result.fee_split.items()
    ]
    pool_credits.append((treasury_pool, ROUNDING_DUST, result.rounding_dust))
    pool_credits.append((treasury_pool, UNCLAIMED_POOL, result.unclaimed_pool))
    now_ms = int(time.time() * 1000)
    # one balance upsert per pool, one ledger row per credit
    per_pool: dict[str, int] = {}
    for pool_id, entry_type, amount in pool_credits:
        if amount <= 0:
            continue
        append_entry(
            conn, pool_id, POOL, entry_type, amount,
            market_id=result.market_id, meta={"platform_fee": result.platform_fee}, now_ms=now_ms,
        )
        per_pool[pool_id] = per_pool.get(pool_id, 0) + amount
        rows += 1
    for pool_id, amount in per_pool.items():
        _add_to_pool_balance(conn, pool_id, amount, now_ms)
    log.info(
        "settlement_applied",
        market_id=result.market_id,
        kind=result.kind,
        entries=rows,
        paid=result.total_paid,
        fee=result.platform_fee,
        dust=result.rounding_dust,
        unclaimed=result.unclaimed_pool,
    )
    return rows


def user_balance(conn: DuckDBPyConnection, user_id: str) -> int:
    """Balance = SUM(amount) over the user's ledger rows."""
    row = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM ledger_entries WHERE account_kind = ? AND account_id = ?",
        [USER, user_id],
    ).fetchone()
    return int(row[0])


def pool_balances(conn: DuckDBPyConnection) -> dict[str, int]:
    rows = conn.execute("SELECT pool_id, balance FROM pool_balances ORDER BY pool_id").fetchall()
    return {r[0]: int(r[1]) for r in rows}


def market_ledger_net(conn: DuckDBPyConnection, market_id: str) -> int:
    """Net ledger movement for a market. Zero once settled, minus the escrowed pool while OPEN."""
    row = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM ledger_entries WHERE market_id = ?", [market_id]
    ).fetchone()
    return int(row[0])


def list_entries(
    conn: DuckDBPyConnection,
    market_id: str | None = None,
    account_id: str | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    conditions = []
    params: list[Any] = []
    if market_id:
        conditions.append("market_id = ?")
        params.append(market_id)
    if account_id:
        conditions.append("account_id = ?")
        params.append(account_id)
    where = " AND ".join(conditions) if conditions else "1=1"
    rows = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM ledger_entries WHERE {where} ORDER BY id ASC LIMIT ?",
        params + [limit],
    ).fetchall()
    return [dict(zip(_COLUMNS, r)) for r in rows]
