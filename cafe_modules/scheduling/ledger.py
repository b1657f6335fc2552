"""
Time ledger (``cafe_modules.scheduling.ledger``).

Responsibility
--------------
Source of truth for shifts, their breaks and clock events: scheduling a
shift (with policy-derived breaks), clock-in / clock-out, break start / end,
cancellation, and reassignment of a shift to another employee.  Payroll
reads completed shifts from here.

Architecture position
---------------------
**Modules layer** -- flush-only service (``BaseService``).  It never commits;
the lifecycle service shares its transaction so that a request transition
and the dependent shift mutation succeed or fail together.

Invariants enforced
-------------------
* ``scheduled_end`` > ``scheduled_start`` and a shift lasts at most
  ``max_shift_minutes`` (24 h); the same holds for actual times.
* Clock-in only on a scheduled shift without ``actual_start``; clock-out
  only after clock-in, and it completes the shift.
* At most one open (started, not ended) break per shift.
* Every clock event appends a ``TimeEntry``; entries are never updated.
* Reassignment is a conditional UPDATE on (owner, scheduled, not clocked
  in) so a shift changed by a concurrent request or already being worked
  is never moved.
* Cancelling a shift withdraws its pending trade and cancels its active
  drop in the same flush.

Failure modes
-------------
* ``ShiftNotFoundError`` / ``BreakNotFoundError`` for unknown ids.
* ``InvalidShiftTimesError`` for inconsistent times.
* ``InvalidTransitionError`` for clock events in the wrong shift state.
* ``StaleStateError`` when a reassignment lost a race.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select, update

from cafe_config.schema import CafeConfiguration
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.exceptions import (
    BreakNotFoundError,
    DropNotFoundError,
    InvalidShiftTimesError,
    InvalidTransitionError,
    ShiftNotFoundError,
    StaleStateError,
    TradeNotFoundError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.services.base import BaseService
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition
from cafe_modules.scheduling.breaks import BreakPolicyResolver
from cafe_modules.scheduling.models import (
    BreakInfo,
    BreakType,
    ShiftInfo,
    ShiftStatus,
    TimeEntryInfo,
    TimeEntryType,
)
from cafe_modules.scheduling.orm import (
    BreakModel,
    ShiftDropModel,
    ShiftModel,
    ShiftTradeModel,
    TimeEntryModel,
)
from cafe_modules.scheduling.workflows import SHIFT_DROP_WORKFLOW, SHIFT_TRADE_WORKFLOW

logger = get_logger("modules.scheduling.ledger")


class TimeLedgerService(BaseService):
    """
    Shifts, breaks and clock events.

    Guarantees
    ----------
    * Flush-only; the caller owns commit/rollback.
    * Returned values are frozen DTOs.
    """

    def __init__(
        self,
        session,
        config: CafeConfiguration,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._config = config
        self._clock = clock or SystemClock(config.timezone)
        self._employees = EmployeeService(session)
        self._breaks = BreakPolicyResolver(config.break_policies)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_shift(
        self,
        employee_id: UUID,
        scheduled_start: datetime,
        scheduled_end: datetime,
        actor_id: UUID,
        position: str | None = None,
        apply_break_policy: bool = True,
    ) -> ShiftInfo:
        """Create a shift; with ``apply_break_policy`` its entitled breaks are placed mid-shift."""
        self._check_interval(scheduled_start, scheduled_end)
        employee = self._employees.get_employee(employee_id)

        shift = ShiftModel(
            employee_id=employee_id,
            branch_id=employee.branch_id,
            scheduled_start=scheduled_start,
            scheduled_end=scheduled_end,
            position=position or employee.position,
            status=ShiftStatus.SCHEDULED.value,
            created_by_id=actor_id,
        )
        self.session.add(shift)

        if apply_break_policy:
            length = _minutes_between(scheduled_start, scheduled_end)
            specs = self._breaks.resolve(length)
            total = sum(spec.duration_minutes for spec in specs)
            cursor = scheduled_start + timedelta(minutes=max(length - total, 0) // 2)
            for spec in specs:
                end = cursor + timedelta(minutes=spec.duration_minutes)
                shift.breaks.append(
                    BreakModel(
                        break_type=spec.break_type,
                        scheduled_start=cursor,
                        scheduled_end=end,
                        paid=spec.paid,
                        required=spec.required,
                        created_by_id=actor_id,
                    )
                )
                cursor = end

        self.session.flush()
        logger.info(
            "shift_scheduled",
            extra={
                "shift_id": str(shift.id),
                "employee_id": str(employee_id),
                "scheduled_start": scheduled_start,
                "scheduled_end": scheduled_end,
                "break_count": len(shift.breaks),
            },
        )
        return shift.to_dto()

    def add_break(
        self,
        shift_id: UUID,
        break_type: BreakType,
        start: datetime,
        end: datetime,
        actor_id: UUID,
        paid: bool = False,
        required: bool = False,
    ) -> BreakInfo:
        """Schedule an additional break on a shift."""
        if end <= start:
            raise InvalidShiftTimesError(start, end, "break must end after it starts")
        shift = self._get_shift_model(shift_id)
        model = BreakModel(
            break_type=BreakType(break_type).value,
            scheduled_start=start,
            scheduled_end=end,
            paid=paid,
            required=required,
            created_by_id=actor_id,
        )
        shift.breaks.append(model)
        self.session.flush()
        logger.info(
            "break_added",
            extra={"shift_id": str(shift_id), "break_type": model.break_type, "paid": paid},
        )
        return model.to_dto()

    def cancel_shift(self, shift_id: UUID, actor_id: UUID) -> ShiftInfo:
        """Cancel a shift that has not started; its pending trade or active drop is closed with it."""
        shift = self._get_shift_model(shift_id)
        if shift.status != ShiftStatus.SCHEDULED.value or shift.actual_start is not None:
            raise InvalidTransitionError("shift", shift.status, "cancel")
        closed = self._close_active_requests(shift_id, actor_id)
        shift.status = ShiftStatus.CANCELLED.value
        shift.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "shift_cancelled",
            extra={"shift_id": str(shift_id), "closed_requests": closed},
        )
        return shift.to_dto()

    def require_unstarted(self, shift: ShiftInfo, action: str) -> None:
        """Raise ``InvalidTransitionError`` once the shift is clocked in or its start has passed."""
        if shift.status is not ShiftStatus.SCHEDULED:
            raise InvalidTransitionError("shift", shift.status.value, action)
        if shift.actual_start is not None:
            raise InvalidTransitionError("shift", "clocked_in", action)
        if shift.scheduled_start <= self._clock.now():
            raise InvalidTransitionError("shift", "started", action)

    def reassign_shift(
        self,
        shift_id: UUID,
        from_employee_id: UUID,
        to_employee_id: UUID,
        actor_id: UUID,
    ) -> ShiftInfo:
        """
        Move a shift to another employee if it still belongs to
        ``from_employee_id`` and nobody has clocked in on it.
        """
        result = self.session.execute(
            update(ShiftModel)
            .where(
                ShiftModel.id == shift_id,
                ShiftModel.employee_id == from_employee_id,
                ShiftModel.status == ShiftStatus.SCHEDULED.value,
                ShiftModel.actual_start.is_(None),
            )
            .values(employee_id=to_employee_id, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.get(ShiftModel, shift_id, populate_existing=True)
            if current is None:
                raise ShiftNotFoundError(shift_id)
            raise StaleStateError("shift", shift_id, ("not_clocked_in",), _clock_state(current))

        shift = self.session.get(ShiftModel, shift_id, populate_existing=True)
        logger.info(
            "shift_reassigned",
            extra={
                "shift_id": str(shift_id),
                "from_employee_id": str(from_employee_id),
                "to_employee_id": str(to_employee_id),
            },
        )
        return shift.to_dto()

    # =========================================================================
    # Clock events
    # =========================================================================

    def clock_in(self, shift_id: UUID, actor_id: UUID, at: datetime | None = None) -> ShiftInfo:
        shift = self._get_shift_model(shift_id)
        if shift.status != ShiftStatus.SCHEDULED.value or shift.actual_start is not None:
            raise InvalidTransitionError("shift", _clock_state(shift), "clock_in")
        occurred = at or self._clock.now()
        shift.actual_start = occurred
        shift.updated_by_id = actor_id
        self._append_entry(shift, TimeEntryType.CLOCK_IN, occurred, actor_id)
        self.session.flush()
        logger.info("clock_in_recorded", extra={"shift_id": str(shift_id), "at": occurred})
        return shift.to_dto()

    def clock_out(self, shift_id: UUID, actor_id: UUID, at: datetime | None = None) -> ShiftInfo:
        """Record clock-out and complete the shift.  An open break is closed at the same instant."""
        shift = self._get_shift_model(shift_id)
        if shift.status != ShiftStatus.SCHEDULED.value or shift.actual_start is None:
            raise InvalidTransitionError("shift", _clock_state(shift), "clock_out")
        occurred = at or self._clock.now()
        self._check_interval(shift.actual_start, occurred)

        open_break = _open_break(shift)
        if open_break is not None:
            open_break.actual_end = max(occurred, open_break.actual_start)
            self._append_entry(shift, TimeEntryType.BREAK_END, occurred, actor_id, open_break)

        shift.actual_end = occurred
        shift.status = ShiftStatus.COMPLETED.value
        shift.updated_by_id = actor_id
        self._append_entry(shift, TimeEntryType.CLOCK_OUT, occurred, actor_id)
        self.session.flush()
        logger.info(
            "clock_out_recorded",
            extra={
                "shift_id": str(shift_id),
                "at": occurred,
                "worked_minutes": _minutes_between(shift.actual_start, occurred),
            },
        )
        return shift.to_dto()

    def start_break(
        self,
        shift_id: UUID,
        actor_id: UUID,
        break_type: BreakType = BreakType.REST,
        at: datetime | None = None,
    ) -> BreakInfo:
        """Start a break: the first unstarted scheduled break of this type, else an unscheduled unpaid one."""
        shift = self._get_shift_model(shift_id)
        if shift.actual_start is None or shift.actual_end is not None:
            raise InvalidTransitionError("shift", _clock_state(shift), "start_break")
        if _open_break(shift) is not None:
            raise InvalidTransitionError("shift", "on_break", "start_break")

        occurred = at or self._clock.now()
        if occurred < shift.actual_start:
            raise InvalidShiftTimesError(shift.actual_start, occurred, "break starts before clock-in")

        kind = BreakType(break_type).value
        model = next(
            (b for b in shift.breaks if b.break_type == kind and b.actual_start is None),
            None,
        )
        if model is None:
            model = BreakModel(break_type=kind, paid=False, required=False, created_by_id=actor_id)
            shift.breaks.append(model)
        model.actual_start = occurred
        model.updated_by_id = actor_id
        self.session.flush()
        self._append_entry(shift, TimeEntryType.BREAK_START, occurred, actor_id, model)
        self.session.flush()
        logger.info(
            "break_started",
            extra={"shift_id": str(shift_id), "break_id": str(model.id), "break_type": kind},
        )
        return model.to_dto()

    def end_break(self, shift_id: UUID, actor_id: UUID, at: datetime | None = None) -> BreakInfo:
        shift = self._get_shift_model(shift_id)
        model = _open_break(shift)
        if model is None:
            raise BreakNotFoundError(f"open break on shift {shift_id}")
        occurred = at or self._clock.now()
        if occurred <= model.actual_start:
            raise InvalidShiftTimesError(model.actual_start, occurred, "break must end after it starts")
        model.actual_end = occurred
        model.updated_by_id = actor_id
        self._append_entry(shift, TimeEntryType.BREAK_END, occurred, actor_id, model)
        self.session.flush()
        logger.info(
            "break_ended",
            extra={
                "shift_id": str(shift_id),
                "break_id": str(model.id),
                "break_minutes": _minutes_between(model.actual_start, occurred),
            },
        )
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_shift(self, shift_id: UUID) -> ShiftInfo:
        return self._get_shift_model(shift_id).to_dto()

    def shifts_for_employee(
        self,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        statuses: tuple[ShiftStatus, ...] | None = None,
    ) -> list[ShiftInfo]:
        """Shifts of ``employee_id`` scheduled to start within the inclusive date range."""
        stmt = select(ShiftModel).where(
            ShiftModel.employee_id == employee_id,
            ShiftModel.scheduled_start >= _day_start(start_date),
            ShiftModel.scheduled_start < _day_start(end_date + timedelta(days=1)),
        )
        if statuses:
            stmt = stmt.where(ShiftModel.status.in_([s.value for s in statuses]))
        rows = self.session.execute(stmt.order_by(ShiftModel.scheduled_start)).scalars().all()
        return [r.to_dto() for r in rows]

    def completed_shifts(self, employee_id: UUID, start_date: date, end_date: date) -> list[ShiftInfo]:
        """Completed shifts with both actual times whose actual start falls in the inclusive range."""
        rows = self.session.execute(
            select(ShiftModel)
            .where(
                ShiftModel.employee_id == employee_id,
                ShiftModel.status == ShiftStatus.COMPLETED.value,
                ShiftModel.actual_start.is_not(None),
                ShiftModel.actual_end.is_not(None),
                ShiftModel.actual_start >= _day_start(start_date),
                ShiftModel.actual_start < _day_start(end_date + timedelta(days=1)),
            )
            .order_by(ShiftModel.actual_start, ShiftModel.id)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def employees_with_completed_shifts(self, branch_id: UUID, start_date: date, end_date: date) -> set[UUID]:
        rows = self.session.execute(
            select(ShiftModel.employee_id)
            .where(
                ShiftModel.branch_id == branch_id,
                ShiftModel.status == ShiftStatus.COMPLETED.value,
                ShiftModel.actual_start >= _day_start(start_date),
                ShiftModel.actual_start < _day_start(end_date + timedelta(days=1)),
            )
            .distinct()
        ).scalars().all()
        return set(rows)

    def time_entries(self, shift_id: UUID) -> list[TimeEntryInfo]:
        rows = self.session.execute(
            select(TimeEntryModel)
            .where(TimeEntryModel.shift_id == shift_id)
            .order_by(TimeEntryModel.occurred_at, TimeEntryModel.created_at)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_shift_model(self, shift_id: UUID) -> ShiftModel:
        model = self.session.get(ShiftModel, shift_id)
        if model is None:
            raise ShiftNotFoundError(shift_id)
        return model

    def _check_interval(self, start: datetime, end: datetime) -> None:
        if end <= start:
            raise InvalidShiftTimesError(start, end, "end must be after start")
        if _minutes_between(start, end) > self._config.scheduling.max_shift_minutes:
            raise InvalidShiftTimesError(
                start, end,
                f"longer than {self._config.scheduling.max_shift_minutes} minutes",
            )

    def _close_active_requests(self, shift_id: UUID, actor_id: UUID) -> list[str]:
        closed = []
        for model, workflow, action, not_found in (
            (ShiftTradeModel, SHIFT_TRADE_WORKFLOW, "withdraw", TradeNotFoundError),
            (ShiftDropModel, SHIFT_DROP_WORKFLOW, "cancel", DropNotFoundError),
        ):
            request_id = self.session.execute(
                select(model.id).where(model.active_shift_id == shift_id)
            ).scalar_one_or_none()
            if request_id is None:
                continue
            apply_transition(
                self.session,
                model,
                request_id,
                workflow,
                action,
                not_found,
                values={
                    "active_shift_id": None,
                    "resolved_by_id": actor_id,
                    "resolved_at": self._clock.now(),
                    "updated_by_id": actor_id,
                },
            )
            closed.append(str(request_id))
        return closed

    def _append_entry(
        self,
        shift: ShiftModel,
        entry_type: TimeEntryType,
        occurred: datetime,
        actor_id: UUID,
        break_model: BreakModel | None = None,
    ) -> None:
        self.session.add(
            TimeEntryModel(
                employee_id=shift.employee_id,
                shift_id=shift.id,
                break_id=break_model.id if break_model is not None else None,
                entry_type=entry_type.value,
                occurred_at=occurred,
                created_by_id=actor_id,
            )
        )


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _open_break(shift: ShiftModel) -> BreakModel | None:
    return next(
        (b for b in shift.breaks if b.actual_start is not None and b.actual_end is None),
        None,
    )


def _clock_state(shift: ShiftModel) -> str:
    if shift.status != ShiftStatus.SCHEDULED.value:
        return shift.status
    return "clocked_in" if shift.actual_start is not None else "not_clocked_in"
