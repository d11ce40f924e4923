"""
Configuration schema (``budget_config.schema``).

Frozen dataclasses for one configuration set.  Parsing lives in
``loader.py``; validation of values happens there too, so an instance of
``BudgetConfig`` is always usable as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class LedgerSettings:
    """Defaults applied when wallets are opened."""

    default_daily_withdrawal_limit: Decimal | None = None


@dataclass(frozen=True)
class HashingSettings:
    algorithm: str = "sha256-v1"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class BudgetConfig:
    """One complete, validated configuration set."""

    config_id: str
    version: int
    database: DatabaseSettings
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    hashing: HashingSettings = field(default_factory=HashingSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
