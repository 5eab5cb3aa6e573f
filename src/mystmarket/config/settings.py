"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import sys
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog

from mystmarket.economics.currency import MYST_PER_USD, to_minor_units
from mystmarket.economics.engine import EconomicsConfig, NoWinnersPolicy
from mystmarket.economics.errors import InvalidFee, InvalidSplitConfig
from mystmarket.economics.fees import DEFAULT_FEE_SPLIT, FeeSplitConfig, parse_share

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        economics: dict[str, Any] | None = None,
        currency: dict[str, Any] | None = None,
        withdrawal: dict[str, Any] | None = None,
        simulation: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.economics_section = economics or {}
        self.currency = currency or {}
        self.withdrawal = withdrawal or {}
        self.simulation = simulation or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            economics=raw.get("economics"),
            currency=raw.get("currency"),
            withdrawal=raw.get("withdrawal"),
            simulation=raw.get("simulation"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/myst.duckdb")

    @property
    def fee_rate(self) -> Decimal:
        raw = self.economics_section.get("fee_rate", "0.10")
        try:
            return parse_share(raw)
        except InvalidSplitConfig:
            raise InvalidFee(f"fee_rate is not a number: {raw!r}") from None

    @property
    def fee_split(self) -> FeeSplitConfig:
        raw = self.economics_section.get("fee_split")
        if raw is None:
            return DEFAULT_FEE_SPLIT
        if not isinstance(raw, dict):
            raise InvalidSplitConfig("[economics.fee_split] must be a table of name = share")
        return FeeSplitConfig.from_mapping(raw)

    @property
    def minimum_bet(self) -> int:
        """Minimum stake in minor units."""
        return to_minor_units(self.economics_section.get("minimum_bet", "2"))

    @property
    def no_winners_policy(self) -> NoWinnersPolicy:
        value = str(self.economics_section.get("no_winners_policy", "treasury")).lower()
        try:
            return NoWinnersPolicy(value)
        except ValueError:
            raise InvalidSplitConfig(
                f"no_winners_policy must be one of {[p.value for p in NoWinnersPolicy]}, got {value!r}"
            ) from None

    @property
    def treasury_pool(self) -> str:
        return self.economics_section.get("treasury_pool", "treasury")

    def economics(self) -> EconomicsConfig:
        """Validated economics config. Raises InvalidSplitConfig / InvalidFee on bad values."""
        return EconomicsConfig(
            fee_rate=self.fee_rate,
            fee_split=self.fee_split,
            minimum_bet=self.minimum_bet,
            no_winners_policy=self.no_winners_policy,
            treasury_pool=self.treasury_pool,
        )

    @property
    def myst_per_usd(self) -> int:
        return int(self.currency.get("myst_per_usd", MYST_PER_USD))

    @property
    def withdrawal_fee_rate(self) -> Decimal:
        return parse_share(self.withdrawal.get("fee_rate", "0.05"))

    @property
    def withdrawal_min_usd(self) -> Decimal:
        return parse_share(self.withdrawal.get("min_usd", "50"))

    @property
    def sim_pool_size_usd(self) -> int:
        return int(self.simulation.get("pool_size_usd", 10000))

    @property
    def sim_runs(self) -> int:
        return int(self.simulation.get("runs", 5))

    @property
    def sim_seed(self) -> int | None:
        seed = self.simulation.get("seed")
        return int(seed) if seed is not None else None

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog once at entry. Logs go to stderr, command output stays on stdout."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )
