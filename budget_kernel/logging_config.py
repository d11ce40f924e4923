"""
Structured JSON logging for the budget kernel.

Every kernel module logs through ``get_logger(name)`` with a snake_case
event name as the message and structured data in ``extra``.  The formatter
folds three sources into one JSON object per line:

    envelope   ts, level, logger, message
    context    LogContext fields bound for the current request / thread
    extra      whatever the call site passed, plus exception details

Kernel exceptions contribute their ``code`` and every public attribute as
``exc_<name>`` so a failed withdrawal logs ``exc_bucket``,
``exc_shortfall`` and so on without the call site repeating them.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "budget_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "request_id",
    "vendor_id",
    "record_id",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"budget_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _context_var(name: str) -> ContextVar[str | None]:
    try:
        return _CONTEXT_VARS[name]
    except KeyError:
        raise TypeError(f"unknown log context field: {name!r}") from None


class LogContext:
    """
    Request-scoped log fields held in ContextVars.

    Each thread and each asyncio task sees its own values, so concurrent
    operations never leak vendor or request ids into each other's lines.
    Values are stored as strings; UUIDs may be passed directly.
    """

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields.  ``None`` values are ignored."""
        for name, value in fields.items():
            var = _context_var(name)
            if value is not None:
                var.set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in _CONTEXT_VARS.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a block, then restore the previous
        values.  ``None`` leaves a field untouched.
        """
        tokens = [
            (var, var.set(str(value)))
            for var, value in ((_context_var(n), v) for n, v in fields.items())
            if value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    # Money stays exact: Decimal is written as its string form
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (UUID, Exception)):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return repr(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and initialization
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger under the budget_kernel namespace, e.g. ``budget_kernel.services.wallet_ledger``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``budget_kernel`` logger.

    Idempotent: only the first call in a process has any effect, so library
    code and scripts may both call it.  The kernel logger does not
    propagate to the root logger.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
