"""
Scheduling domain models (``cafe_modules.scheduling.models``).

Responsibility:
    Frozen dataclass DTOs and status enums for shifts, breaks, clock events,
    trade/drop requests and time-off requests.

Architecture position:
    **Modules layer** -- pure data.  ORM companions live in ``orm.py`` and
    convert to these via ``to_dto()``.

Invariants enforced:
    - All DTOs are frozen.
    - Datetimes are branch-local wall-clock values (naive).
    - A shift's breaks are carried inside its ``ShiftInfo``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class ShiftStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BreakType(str, Enum):
    COFFEE = "coffee"
    LUNCH = "lunch"
    MEAL = "meal"
    REST = "rest"
    OTHER = "other"


class TimeEntryType(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"


class Urgency(str, Enum):
    URGENT = "urgent"
    NORMAL = "normal"
    LOW = "low"


class TradeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class DropStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PICKED_UP = "picked_up"
    CANCELLED = "cancelled"


class DropDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class TimeOffStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TimeOffType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"


@dataclass(frozen=True)
class BreakInfo:
    id: UUID
    shift_id: UUID
    break_type: BreakType
    scheduled_start: datetime | None
    scheduled_end: datetime | None
    actual_start: datetime | None
    actual_end: datetime | None
    paid: bool
    required: bool

    @property
    def effective_interval(self) -> tuple[datetime, datetime] | None:
        """Actual times when both are recorded, else scheduled times."""
        if self.actual_start is not None and self.actual_end is not None:
            return self.actual_start, self.actual_end
        if self.scheduled_start is not None and self.scheduled_end is not None:
            return self.scheduled_start, self.scheduled_end
        return None


@dataclass(frozen=True)
class ShiftInfo:
    id: UUID
    employee_id: UUID
    branch_id: UUID
    scheduled_start: datetime
    scheduled_end: datetime
    actual_start: datetime | None
    actual_end: datetime | None
    position: str | None
    status: ShiftStatus
    breaks: tuple[BreakInfo, ...] = ()

    @property
    def scheduled_minutes(self) -> int:
        return int((self.scheduled_end - self.scheduled_start).total_seconds() // 60)


@dataclass(frozen=True)
class TimeEntryInfo:
    id: UUID
    employee_id: UUID
    shift_id: UUID | None
    break_id: UUID | None
    entry_type: TimeEntryType
    occurred_at: datetime


@dataclass(frozen=True)
class ShiftTradeInfo:
    id: UUID
    shift_id: UUID
    from_employee_id: UUID
    to_employee_id: UUID | None
    reason: str
    urgency: Urgency
    status: TradeStatus
    resolved_by_id: UUID | None
    resolved_at: datetime | None


@dataclass(frozen=True)
class ShiftDropInfo:
    id: UUID
    shift_id: UUID
    employee_id: UUID
    reason: str
    urgency: Urgency
    status: DropStatus
    resolved_by_id: UUID | None
    resolved_at: datetime | None
    manager_notes: str | None
    picked_up_by_id: UUID | None
    picked_up_at: datetime | None


@dataclass(frozen=True)
class TimeOffInfo:
    id: UUID
    employee_id: UUID
    start_date: date
    end_date: date
    time_off_type: TimeOffType
    reason: str
    status: TimeOffStatus
    resolved_by_id: UUID | None
    resolved_at: datetime | None

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def overlaps(self, start_date: date, end_date: date) -> bool:
        return self.start_date <= end_date and start_date <= self.end_date


@dataclass(frozen=True)
class TimeOffBalance:
    employee_id: UUID
    year: int
    time_off_type: TimeOffType
    allowance_days: int
    used_days: int
    pending_days: int

    @property
    def remaining_days(self) -> int:
        return self.allowance_days - self.used_days
