"""Configuration loader with ENV:VAR_NAME resolution."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import CategoryCommissionSchedule, SettlementOptions

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""


def _resolve(value: Any) -> Any:
    """Recursively resolve ENV:VAR_NAME references."""
    if isinstance(value, str) and value.startswith("ENV:"):
        var = value[4:]
        resolved = os.environ.get(var)
        if resolved is None:
            logger.debug("Environment variable %s not set (value stays None)", var)
        return resolved
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve(v) for v in value]
    return value


def _number(section: dict, key: str, default: float, *, low: float = 0.0, high: float | None = None) -> float:
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < low or (high is not None and value > high):
        bounds = f"[{low}, {high}]" if high is not None else f">= {low}"
        raise ConfigError(f"{key} out of range {bounds}: {value}")
    return value


@dataclass
class CalculatorConfig:
    tax_rate: float = 6.0
    advertising_percent: float = 3.0
    other_expenses: float = 0.0
    storage_days: int = 30

    def to_options(self) -> SettlementOptions:
        return SettlementOptions(
            tax_rate=self.tax_rate,
            advertising_percent=self.advertising_percent,
            other_expenses=self.other_expenses,
            storage_days=self.storage_days,
        )


@dataclass
class CommissionDefaults:
    fbw: float = 15.0
    fbs: float = 15.0
    dbs: float = 15.0
    cc: float = 10.0
    edbs: float = 20.0

    def to_schedule(self) -> CategoryCommissionSchedule:
        return CategoryCommissionSchedule(
            fbw=self.fbw, fbs=self.fbs, dbs=self.dbs, cc=self.cc, edbs=self.edbs,
        )


@dataclass
class MarketplaceConfig:
    api_base_url: str = "https://common-api.wildberries.ru"
    api_token: str | None = None
    use_marketplace_ktr: bool = False


@dataclass
class StorageConfig:
    reports_dir: str = "reports"


@dataclass
class RuntimeConfig:
    timezone: str = "Europe/Moscow"
    log_level: str = "INFO"


@dataclass
class AppConfig:
    calculator: CalculatorConfig = field(default_factory=CalculatorConfig)
    default_commissions: CommissionDefaults = field(default_factory=CommissionDefaults)
    marketplace: MarketplaceConfig = field(default_factory=MarketplaceConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)


def load_config(path: str | Path) -> AppConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw: dict = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")

    raw = _resolve(raw)
    cfg = AppConfig()

    calc = raw.get("calculator") or {}
    days = _number(calc, "storage_days", 30)
    if not days.is_integer():
        raise ConfigError(f"storage_days must be a whole number of days, got {days}")
    cfg.calculator = CalculatorConfig(
        tax_rate=_number(calc, "tax_rate", 6.0, high=100.0),
        advertising_percent=_number(calc, "advertising_percent", 3.0, high=100.0),
        other_expenses=_number(calc, "other_expenses", 0.0),
        storage_days=int(days),
    )

    com = raw.get("default_commissions") or {}
    cfg.default_commissions = CommissionDefaults(
        fbw=_number(com, "fbw", 15.0, high=100.0),
        fbs=_number(com, "fbs", 15.0, high=100.0),
        dbs=_number(com, "dbs", 15.0, high=100.0),
        cc=_number(com, "cc", 10.0, high=100.0),
        edbs=_number(com, "edbs", 20.0, high=100.0),
    )

    mp = raw.get("marketplace") or {}
    cfg.marketplace = MarketplaceConfig(
        api_base_url=mp.get("api_base_url") or "https://common-api.wildberries.ru",
        api_token=mp.get("api_token"),
        use_marketplace_ktr=bool(mp.get("use_marketplace_ktr", False)),
    )

    sto = raw.get("storage") or {}
    cfg.storage = StorageConfig(reports_dir=sto.get("reports_dir", "reports"))

    rt = raw.get("runtime") or {}
    timezone = rt.get("timezone") or "Europe/Moscow"
    log_level = rt.get("log_level") or "INFO"
    if not isinstance(timezone, str) or not isinstance(log_level, str):
        raise ConfigError(f"runtime.timezone and runtime.log_level must be strings: {rt!r}")
    cfg.runtime = RuntimeConfig(timezone=timezone, log_level=log_level)

    logging.getLogger().setLevel(getattr(logging, cfg.runtime.log_level.upper(), logging.INFO))
    return cfg
