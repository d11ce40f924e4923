"""
NotificationPort -- outbound lifecycle events.

Services never talk to a notification transport.  They append
``DomainEvent``s to an ``EventBuffer`` owned by the caller, and the caller
(``BudgetOperations``) hands the buffer to a ``NotificationPort`` only after
the transaction commits.  A rolled-back operation therefore never notifies,
and a failing notifier never undoes a committed mutation.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from budget_kernel.logging_config import get_logger

logger = get_logger("domain.notifications")


class LifecycleEventType(str, Enum):
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    REQUEST_CANCELLED = "request_cancelled"
    FUNDS_ALLOCATED = "funds_allocated"
    REQUEST_IN_PROGRESS = "request_in_progress"
    REQUEST_COMPLETED = "request_completed"
    FUNDS_RELEASED = "funds_released"
    FUNDS_WITHDRAWN = "funds_withdrawn"
    FUNDS_FROZEN = "funds_frozen"
    FUNDS_UNFROZEN = "funds_unfrozen"
    RECORD_TAMPERED = "record_tampered"


@dataclass(frozen=True)
class DomainEvent:
    event_type: LifecycleEventType
    payload: dict[str, Any]
    occurred_at: datetime


@runtime_checkable
class NotificationPort(Protocol):
    """Anything with ``notify(event_type, payload)``."""

    def notify(self, event_type: LifecycleEventType, payload: dict[str, Any]) -> None:
        ...


class EventBuffer:
    """Events raised inside one transaction, in order."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []

    def record(
        self,
        event_type: LifecycleEventType,
        payload: dict[str, Any],
        occurred_at: datetime,
    ) -> None:
        self._events.append(DomainEvent(event_type, dict(payload), occurred_at))

    @property
    def events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._events)

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)

    def dispatch(self, notifier: NotificationPort) -> int:
        """
        Deliver buffered events and empty the buffer.

        A notifier exception is logged and delivery continues with the
        next event.

        Returns:
            Number of events delivered without error.
        """
        delivered = 0
        events, self._events = self._events, []
        for event in events:
            try:
                notifier.notify(event.event_type, event.payload)
                delivered += 1
            except Exception:
                logger.error(
                    "notification_delivery_failed",
                    extra={"event_type": event.event_type.value},
                    exc_info=True,
                )
        return delivered


class NullNotifier:
    def notify(self, event_type: LifecycleEventType, payload: dict[str, Any]) -> None:
        return None


class LoggingNotifier:
    """Writes each event to the structured log."""

    def notify(self, event_type: LifecycleEventType, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_sent",
            extra={"event_type": event_type.value, "payload": payload},
        )


@dataclass
class RecordingNotifier:
    """Keeps every delivered event.  Used by tests."""

    sent: list[tuple[LifecycleEventType, dict[str, Any]]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def notify(self, event_type: LifecycleEventType, payload: dict[str, Any]) -> None:
        with self._lock:
            self.sent.append((event_type, payload))

    def of_type(self, event_type: LifecycleEventType) -> list[dict[str, Any]]:
        with self._lock:
            return [p for t, p in self.sent if t == event_type]

    @property
    def event_types(self) -> list[LifecycleEventType]:
        with self._lock:
            return [t for t, _ in self.sent]
