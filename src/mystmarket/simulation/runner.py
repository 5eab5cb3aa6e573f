"""Simulation runner: run the economy, persist a summary to sim_runs."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from mystmarket.economics.currency import MYST_PER_USD
from mystmarket.economics.engine import EconomicsConfig
from mystmarket.simulation.economy import SimulationRun, run_economy

log = structlog.get_logger(__name__)


@dataclass
class RunResult:
    """Aggregate of one economy simulation."""

    run_id: str
    markets: int
    total_volume: int
    total_fees: int
    total_dust: int
    total_unclaimed: int
    conserved: bool
    params: dict = field(default_factory=dict)
    runs: list[SimulationRun] = field(default_factory=list)


def run_simulation(
    config: EconomicsConfig,
    total_pool: int,
    runs: int = 5,
    seed: int | None = None,
    myst_per_usd: int = MYST_PER_USD,
) -> RunResult:
    sims = run_economy(config, total_pool, runs=runs, seed=seed, myst_per_usd=myst_per_usd)
    result = RunResult(
        run_id=str(uuid.uuid4())[:8],
        markets=len(sims),
        total_volume=sum(s.result.total_pool for s in sims),
        total_fees=sum(s.result.platform_fee for s in sims),
        total_dust=sum(s.result.rounding_dust for s in sims),
        total_unclaimed=sum(s.result.unclaimed_pool for s in sims),
        conserved=all(s.conserved for s in sims),
        params={"total_pool": total_pool, "runs": runs, "seed": seed, "fee_rate": str(config.fee_rate)},
        runs=sims,
    )
    if not result.conserved:
        log.error("simulation_not_conserved", run_id=result.run_id)
    return result


def save_run_result(conn: Any, result: RunResult) -> None:
    """Persist RunResult to sim_runs table."""
    conn.execute(
        """
        INSERT INTO sim_runs (run_id, params, markets, total_volume, total_fees, total_dust, total_unclaimed, conserved, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            result.run_id,
            json.dumps(result.params),
            result.markets,
            result.total_volume,
            result.total_fees,
            result.total_dust,
            result.total_unclaimed,
            result.conserved,
            int(time.time() * 1000),
        ],
    )


def get_run_result(conn: Any, run_id: str) -> RunResult | None:
    """Load RunResult summary by run_id (per-market detail is not persisted)."""
    row = conn.execute(
        "SELECT run_id, params, markets, total_volume, total_fees, total_dust, total_unclaimed, conserved FROM sim_runs WHERE run_id = ?",
        [run_id],
    ).fetchone()
    if not row:
        return None
    return RunResult(
        run_id=row[0],
        params=json.loads(row[1]) if row[1] else {},
        markets=row[2],
        total_volume=row[3],
        total_fees=row[4],
        total_dust=row[5],
        total_unclaimed=row[6],
        conserved=row[7],
    )
