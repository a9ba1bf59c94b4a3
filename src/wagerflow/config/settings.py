"""TOML config loading, profiles and logging setup."""

from __future__ import annotations

import logging
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

from wagerflow.errors import ConfigError

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


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
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
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
        engine: dict[str, Any] | None = None,
        settlement: dict[str, Any] | None = None,
        ledger: dict[str, Any] | None = None,
        audit: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        provider: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.engine = engine or {}
        self.settlement = settlement or {}
        self.ledger = ledger or {}
        self.audit = audit or {}
        self.storage = storage or {}
        self.provider = provider or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            engine=raw.get("engine"),
            settlement=raw.get("settlement"),
            ledger=raw.get("ledger"),
            audit=raw.get("audit"),
            storage=raw.get("storage"),
            provider=raw.get("provider"),
            logging=raw.get("logging"),
        )

    # Engine
    @property
    def max_active_cycles(self) -> int:
        return int(self.engine.get("max_active_cycles", 2))

    @property
    def admission_poll_sec(self) -> float:
        return float(self.engine.get("admission_poll_sec", 30.0))

    @property
    def max_adjust_retries(self) -> int:
        return int(self.engine.get("max_adjust_retries", 2))

    @property
    def max_rejection_retries(self) -> int:
        return int(self.engine.get("max_rejection_retries", 2))

    @property
    def stake_shrink_factor(self) -> Decimal:
        return Decimal(str(self.engine.get("stake_shrink_factor", "0.9")))

    @property
    def retry_pace_sec(self) -> float:
        return float(self.engine.get("retry_pace_sec", 0.5))

    @property
    def percent_wager_per_cycle(self) -> Decimal:
        return Decimal(str(self.engine.get("percent_wager_per_cycle", "1.0")))

    # Settlement
    @property
    def settlement_first_wait_sec(self) -> float:
        return float(self.settlement.get("first_wait_sec", 300.0))

    @property
    def settlement_poll_interval_sec(self) -> float:
        return float(self.settlement.get("poll_interval_sec", 1800.0))

    @property
    def settlement_max_wait_sec(self) -> float | None:
        """Upper bound on settlement polling; None when unbounded (max_wait_hours = 0)."""
        hours = float(self.settlement.get("max_wait_hours", 0) or 0)
        return hours * 3600 if hours > 0 else None

    # Ledger
    @property
    def balance_path(self) -> str:
        return self.ledger.get("balance_path", "data/balance.txt")

    @property
    def stats_path(self) -> str:
        return self.ledger.get("stats_path", "data/balance_stats.txt")

    @property
    def default_balance(self) -> Decimal:
        return Decimal(str(self.ledger.get("default_balance", "100")))

    @property
    def currency(self) -> str:
        return self.ledger.get("currency", "USD")

    # Audit log
    @property
    def audit_path(self) -> str:
        return self.audit.get("path", "data/placed_bets.json")

    @property
    def audit_keep_backups(self) -> int:
        return int(self.audit.get("keep_backups", 10))

    # Storage
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/wagerflow.duckdb")

    # Provider
    @property
    def provider_kind(self) -> str:
        return self.provider.get("kind", "paper")

    @property
    def provider_base_url(self) -> str:
        return self.provider.get("base_url", "https://sports-api.cloudbet.com/pub")

    @property
    def provider_api_key_env(self) -> str:
        return self.provider.get("api_key_env", "WAGERFLOW_API_KEY")

    @property
    def provider_timeout_sec(self) -> float:
        return float(self.provider.get("timeout_sec", 30.0))

    @property
    def provider_rate_per_sec(self) -> float:
        return float(self.provider.get("rate_per_sec", 2.0))

    @property
    def market_url_template(self) -> str:
        return self.provider.get("market_url_template", "tennis.winner/{side}")

    @property
    def paper_min_stake(self) -> Decimal:
        return Decimal(str(self.provider.get("paper_min_stake", "0.1")))

    @property
    def paper_max_stake(self) -> Decimal:
        return Decimal(str(self.provider.get("paper_max_stake", "50")))

    @property
    def paper_settle_after_polls(self) -> int:
        return int(self.provider.get("paper_settle_after_polls", 1))

    @property
    def paper_seed(self) -> int | None:
        seed = self.provider.get("paper_seed")
        return int(seed) if seed is not None else None

    # Logging
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
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
