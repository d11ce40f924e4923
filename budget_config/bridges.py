"""
Bridges from configuration to kernel objects.

The kernel never reads configuration.  These helpers take a loaded
``BudgetConfig`` and call the kernel's own constructors with the values.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from budget_config.loader import log_level
from budget_config.schema import BudgetConfig
from budget_kernel.db.engine import get_session_factory, init_engine_from_url
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.domain.clock import Clock
from budget_kernel.domain.notifications import NotificationPort
from budget_kernel.logging_config import configure_logging
from budget_kernel.services.budget_operations import BudgetOperations


def configure_logging_from(config: BudgetConfig) -> None:
    configure_logging(level=log_level(config.logging))


def init_engine_from_config(config: BudgetConfig, database_url: str | None = None) -> Engine:
    """Initialize the kernel engine.  ``database_url`` overrides the config."""
    db = config.database
    engine = init_engine_from_url(
        database_url or db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
        lock_timeout_seconds=db.lock_timeout_seconds,
    )
    register_immutability_listeners()
    return engine


def build_operations(
    config: BudgetConfig,
    notifier: NotificationPort | None = None,
    clock: Clock | None = None,
) -> BudgetOperations:
    """BudgetOperations bound to the initialized engine and this config."""
    return BudgetOperations(
        get_session_factory(),
        notifier=notifier,
        clock=clock,
        hash_algorithm=config.hashing.algorithm,
        default_daily_withdrawal_limit=config.ledger.default_daily_withdrawal_limit,
    )
