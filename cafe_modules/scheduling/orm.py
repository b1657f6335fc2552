"""
Scheduling ORM persistence models (``cafe_modules.scheduling.orm``).

Responsibility:
    SQLAlchemy models for shifts, breaks, clock events, shift trades, shift
    drops and time-off requests.  Each converts to its frozen DTO from
    ``cafe_modules.scheduling.models`` via ``to_dto()``.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs.  Inherits from
    ``TrackedBase`` (UUID id plus audit columns).

Invariants enforced:
    - Enum fields stored as String(50) containing the enum ``.value``.
    - At most one pending trade per shift: ``active_shift_id`` is set to the
      shift id while the trade is pending and cleared on resolution; a
      UNIQUE constraint on it rejects a second active trade.
    - At most one active drop per shift: same mechanism, set while the drop
      is pending or approved-not-picked-up.
    - Breaks are owned by exactly one shift (FK ``shift_id``) and are
      deleted with it.
    - Time entries are append-only.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafe_kernel.db.base import TrackedBase

# ---------------------------------------------------------------------------
# ShiftModel / BreakModel
# ---------------------------------------------------------------------------


class ShiftModel(TrackedBase):
    """
    ORM model for a scheduled shift.

    Guarantees:
        - ``status`` is one of scheduled / completed / cancelled.
        - ``actual_start`` / ``actual_end`` are NULL until clock events.
    """

    __tablename__ = "shifts"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    branch_id: Mapped[UUID] = mapped_column(ForeignKey("branches.id"), nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(nullable=False)
    actual_start: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_end: Mapped[datetime | None] = mapped_column(nullable=True)
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="scheduled")

    breaks: Mapped[list["BreakModel"]] = relationship(
        back_populates="shift",
        cascade="all, delete-orphan",
        order_by="BreakModel.scheduled_start",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_shift_employee_start", "employee_id", "scheduled_start"),
        Index("idx_shift_branch_start", "branch_id", "scheduled_start"),
        Index("idx_shift_status", "status"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import ShiftInfo, ShiftStatus
        return ShiftInfo(
            id=self.id,
            employee_id=self.employee_id,
            branch_id=self.branch_id,
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            actual_start=self.actual_start,
            actual_end=self.actual_end,
            position=self.position,
            status=ShiftStatus(self.status),
            breaks=tuple(b.to_dto() for b in self.breaks),
        )

    def __repr__(self) -> str:
        return f"<ShiftModel {self.id} {self.scheduled_start}-{self.scheduled_end} ({self.status})>"


class BreakModel(TrackedBase):
    """ORM model for a break inside a shift."""

    __tablename__ = "shift_breaks"

    shift_id: Mapped[UUID] = mapped_column(
        ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False,
    )
    break_type: Mapped[str] = mapped_column(String(50), nullable=False)
    scheduled_start: Mapped[datetime | None] = mapped_column(nullable=True)
    scheduled_end: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_start: Mapped[datetime | None] = mapped_column(nullable=True)
    actual_end: Mapped[datetime | None] = mapped_column(nullable=True)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    shift: Mapped[ShiftModel] = relationship(back_populates="breaks")

    __table_args__ = (
        Index("idx_break_shift", "shift_id"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import BreakInfo, BreakType
        return BreakInfo(
            id=self.id,
            shift_id=self.shift_id,
            break_type=BreakType(self.break_type),
            scheduled_start=self.scheduled_start,
            scheduled_end=self.scheduled_end,
            actual_start=self.actual_start,
            actual_end=self.actual_end,
            paid=self.paid,
            required=self.required,
        )

    def __repr__(self) -> str:
        return f"<BreakModel {self.break_type} shift={self.shift_id} paid={self.paid}>"


# ---------------------------------------------------------------------------
# TimeEntryModel
# ---------------------------------------------------------------------------


class TimeEntryModel(TrackedBase):
    """Append-only clock event."""

    __tablename__ = "time_entries"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    shift_id: Mapped[UUID | None] = mapped_column(ForeignKey("shifts.id"), nullable=True)
    break_id: Mapped[UUID | None] = mapped_column(ForeignKey("shift_breaks.id"), nullable=True)
    entry_type: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_time_entry_employee_at", "employee_id", "occurred_at"),
        Index("idx_time_entry_shift", "shift_id"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import TimeEntryInfo, TimeEntryType
        return TimeEntryInfo(
            id=self.id,
            employee_id=self.employee_id,
            shift_id=self.shift_id,
            break_id=self.break_id,
            entry_type=TimeEntryType(self.entry_type),
            occurred_at=self.occurred_at,
        )

    def __repr__(self) -> str:
        return f"<TimeEntryModel {self.entry_type} {self.occurred_at}>"


# ---------------------------------------------------------------------------
# ShiftTradeModel
# ---------------------------------------------------------------------------


class ShiftTradeModel(TrackedBase):
    """
    ORM model for a shift trade offer.

    Guarantees:
        - ``active_shift_id`` is non-NULL only while the trade is pending
          (uq_shift_trade_active).
    """

    __tablename__ = "shift_trades"

    shift_id: Mapped[UUID] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    from_employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    to_employee_id: Mapped[UUID | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    urgency: Mapped[str] = mapped_column(String(50), nullable=False, default="normal")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    active_shift_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("active_shift_id", name="uq_shift_trade_active"),
        Index("idx_shift_trade_shift", "shift_id"),
        Index("idx_shift_trade_status", "status"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import ShiftTradeInfo, TradeStatus, Urgency
        return ShiftTradeInfo(
            id=self.id,
            shift_id=self.shift_id,
            from_employee_id=self.from_employee_id,
            to_employee_id=self.to_employee_id,
            reason=self.reason,
            urgency=Urgency(self.urgency),
            status=TradeStatus(self.status),
            resolved_by_id=self.resolved_by_id,
            resolved_at=self.resolved_at,
        )

    def __repr__(self) -> str:
        return f"<ShiftTradeModel {self.id} shift={self.shift_id} ({self.status})>"


# ---------------------------------------------------------------------------
# ShiftDropModel
# ---------------------------------------------------------------------------


class ShiftDropModel(TrackedBase):
    """
    ORM model for a shift drop request.

    Guarantees:
        - ``active_shift_id`` is non-NULL only while the drop is pending or
          approved and not yet picked up (uq_shift_drop_active).
    """

    __tablename__ = "shift_drop_requests"

    shift_id: Mapped[UUID] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    urgency: Mapped[str] = mapped_column(String(50), nullable=False, default="normal")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    active_shift_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    manager_notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    picked_up_by_id: Mapped[UUID | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    picked_up_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("active_shift_id", name="uq_shift_drop_active"),
        Index("idx_shift_drop_shift", "shift_id"),
        Index("idx_shift_drop_status", "status"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import DropStatus, ShiftDropInfo, Urgency
        return ShiftDropInfo(
            id=self.id,
            shift_id=self.shift_id,
            employee_id=self.employee_id,
            reason=self.reason,
            urgency=Urgency(self.urgency),
            status=DropStatus(self.status),
            resolved_by_id=self.resolved_by_id,
            resolved_at=self.resolved_at,
            manager_notes=self.manager_notes,
            picked_up_by_id=self.picked_up_by_id,
            picked_up_at=self.picked_up_at,
        )

    def __repr__(self) -> str:
        return f"<ShiftDropModel {self.id} shift={self.shift_id} ({self.status})>"


# ---------------------------------------------------------------------------
# TimeOffRequestModel
# ---------------------------------------------------------------------------


class TimeOffRequestModel(TrackedBase):
    """ORM model for a time-off request (inclusive date range)."""

    __tablename__ = "time_off_requests"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_off_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_time_off_employee_dates", "employee_id", "start_date", "end_date"),
        Index("idx_time_off_status", "status"),
    )

    def to_dto(self):
        from cafe_modules.scheduling.models import TimeOffInfo, TimeOffStatus, TimeOffType
        return TimeOffInfo(
            id=self.id,
            employee_id=self.employee_id,
            start_date=self.start_date,
            end_date=self.end_date,
            time_off_type=TimeOffType(self.time_off_type),
            reason=self.reason,
            status=TimeOffStatus(self.status),
            resolved_by_id=self.resolved_by_id,
            resolved_at=self.resolved_at,
        )

    def __repr__(self) -> str:
        return (
            f"<TimeOffRequestModel {self.employee_id} "
            f"{self.start_date}..{self.end_date} ({self.status})>"
        )
