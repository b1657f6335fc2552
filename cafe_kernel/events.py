"""
Domain events (``cafe_kernel.events``).

Responsibility
--------------
Typed notifications emitted by the lifecycle and payroll services after a
state change has been committed.  Each event is a frozen dataclass with a
fixed ``kind`` tag; ``DomainEvent`` is the closed union of all of them.
Delivery (push, email, in-app) is the sink's concern, not the emitter's.

Architecture position
---------------------
**Kernel** -- pure value objects plus the ``EventSink`` protocol.  Module
services receive a sink through their constructor.

Invariants enforced
-------------------
* Events are published only after the owning transaction commits, so a
  rolled-back transition never produces a notification.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import ClassVar, Protocol, Union, runtime_checkable
from uuid import UUID

from cafe_kernel.logging_config import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class TradeOffered:
    kind: ClassVar[str] = "trade_offered"
    trade_id: UUID
    shift_id: UUID
    from_employee_id: UUID
    to_employee_id: UUID | None


@dataclass(frozen=True)
class TradeClaimed:
    kind: ClassVar[str] = "trade_claimed"
    trade_id: UUID
    shift_id: UUID
    from_employee_id: UUID
    to_employee_id: UUID


@dataclass(frozen=True)
class TradeClosed:
    """A trade ended without a claim (rejected or withdrawn)."""

    kind: ClassVar[str] = "trade_closed"
    trade_id: UUID
    shift_id: UUID
    status: str
    closed_by_id: UUID


@dataclass(frozen=True)
class DropRequested:
    kind: ClassVar[str] = "drop_requested"
    drop_id: UUID
    shift_id: UUID
    employee_id: UUID
    urgency: str


@dataclass(frozen=True)
class DropResolved:
    kind: ClassVar[str] = "drop_resolved"
    drop_id: UUID
    shift_id: UUID
    employee_id: UUID
    status: str
    resolved_by_id: UUID


@dataclass(frozen=True)
class ShiftPickedUp:
    kind: ClassVar[str] = "shift_picked_up"
    drop_id: UUID
    shift_id: UUID
    original_employee_id: UUID
    new_employee_id: UUID
    assigned_by_id: UUID | None


@dataclass(frozen=True)
class TimeOffRequested:
    kind: ClassVar[str] = "time_off_requested"
    request_id: UUID
    employee_id: UUID
    start_date: date
    end_date: date


@dataclass(frozen=True)
class TimeOffResolved:
    kind: ClassVar[str] = "time_off_resolved"
    request_id: UUID
    employee_id: UUID
    status: str
    resolved_by_id: UUID


@dataclass(frozen=True)
class PayrollEntryComputed:
    kind: ClassVar[str] = "payroll_entry_computed"
    entry_id: UUID
    employee_id: UUID
    period_id: UUID
    gross_pay: Decimal
    net_pay: Decimal


DomainEvent = Union[
    TradeOffered,
    TradeClaimed,
    TradeClosed,
    DropRequested,
    DropResolved,
    ShiftPickedUp,
    TimeOffRequested,
    TimeOffResolved,
    PayrollEntryComputed,
]


@runtime_checkable
class EventSink(Protocol):
    """Receiver of committed domain events."""

    def publish(self, event: DomainEvent) -> None: ...


class InMemoryEventSink:
    """Collects events in memory; the default sink and the one tests inspect."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.debug("domain_event_published", extra={"kind": event.kind})

    @property
    def events(self) -> tuple[DomainEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def of_kind(self, kind: str) -> list[DomainEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
