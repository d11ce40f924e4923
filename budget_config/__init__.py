"""
budget_config -- single public entrypoint for budget ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration -- sits above ``budget_kernel``.  The kernel MUST NEVER
    import from ``budget_config``; ``bridges`` translates a loaded
    configuration into kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- schema or value validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BUDGET_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from budget_config.loader import load_config
from budget_config.schema import (
    BudgetConfig,
    DatabaseSettings,
    HashingSettings,
    LedgerSettings,
    LoggingSettings,
)
from budget_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> BudgetConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Path to a YAML configuration set.  Defaults to
            budget_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        KeyError: If a required key is missing.
        ValueError: If a value fails validation.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "BUDGET_CONFIG_TRACE",
        extra={
            "trace_type": "BUDGET_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "hash_algorithm": config.hashing.algorithm,
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "BudgetConfig",
    "DatabaseSettings",
    "HashingSettings",
    "LedgerSettings",
    "LoggingSettings",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
]
