"""
Configuration Loader (``budget_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses of
``budget_config.schema``.  The single public entry point for runtime config
is ``budget_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (unknown hash algorithm, bad level, bad amount)
  -> ``ValueError``.

``compute_checksum`` produces a deterministic SHA-256 of the parsed data so a
running process can be traced back to the exact configuration it loaded.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from budget_config.schema import (
    BudgetConfig,
    DatabaseSettings,
    HashingSettings,
    LedgerSettings,
    LoggingSettings,
)
from budget_kernel.domain.hash_engine import HashAlgorithm
from budget_kernel.utils.hashing import hash_payload

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    # YAML hands back floats for unquoted decimals; go through str so
    # 50000.10 stays 50000.10
    if isinstance(value, bool):
        raise ValueError(f"{field}: expected a decimal amount, got {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field}: expected a decimal amount, got {value!r}") from None
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"{field}: must be a positive amount, got {value!r}")
    return amount


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data["url"]
    if not isinstance(url, str) or not url.strip():
        raise ValueError("database.url must be a non-empty string")
    lock_timeout = float(data.get("lock_timeout_seconds", 10.0))
    if lock_timeout <= 0:
        raise ValueError("database.lock_timeout_seconds must be positive")
    return DatabaseSettings(
        url=url.strip(),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        pool_recycle=int(data.get("pool_recycle", 1800)),
        lock_timeout_seconds=lock_timeout,
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    limit = data.get("default_daily_withdrawal_limit")
    return LedgerSettings(
        default_daily_withdrawal_limit=(
            parse_decimal(limit, "ledger.default_daily_withdrawal_limit")
            if limit is not None
            else None
        ),
    )


def parse_hashing(data: dict[str, Any]) -> HashingSettings:
    algorithm = data.get("algorithm", HashAlgorithm.SHA256_V1.value)
    try:
        HashAlgorithm(algorithm)
    except ValueError:
        allowed = ", ".join(a.value for a in HashAlgorithm)
        raise ValueError(
            f"hashing.algorithm {algorithm!r} is not supported (expected one of: {allowed})"
        ) from None
    return HashingSettings(algorithm=algorithm)


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level {level!r} is not a valid level")
    return LoggingSettings(level=level)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the raw configuration."""
    return hash_payload(_decimals_for_floats(data))


def _decimals_for_floats(data: Any) -> Any:
    if isinstance(data, float):
        return Decimal(str(data))
    if isinstance(data, dict):
        return {k: _decimals_for_floats(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_decimals_for_floats(v) for v in data]
    return data


def parse_config(data: dict[str, Any]) -> BudgetConfig:
    """
    Parse a full configuration set.

    Raises:
        KeyError: ``config_id``, ``version`` or ``database.url`` missing.
        ValueError: a value failed validation.
    """
    return BudgetConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        database=parse_database(data["database"]),
        ledger=parse_ledger(data.get("ledger") or {}),
        hashing=parse_hashing(data.get("hashing") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> BudgetConfig:
    return parse_config(load_yaml_file(path))


def log_level(settings: LoggingSettings) -> int:
    return getattr(logging, settings.level)
