"""
Time-off requests (``cafe_modules.scheduling.time_off``).

Responsibility
--------------
Employees request a date range off; a manager of their branch approves or
rejects the request.  Yearly balances are derived from the configured
allowances and the approved requests.

Invariants enforced
-------------------
* ``end_date >= start_date`` and the start honours the notice rule.
* Approved requests of one employee never overlap.  The overlap check runs
  inside the approving transaction after the employee row is locked
  (``SELECT ... FOR UPDATE``), so two concurrent approvals for the same
  employee serialize and the second sees the first.

Failure modes
-------------
* ``TimeOffOverlapError`` (``ValidationError``) on approval of an
  overlapping range.
* ``ValidationError`` / ``InsufficientNoticeError`` on malformed requests.
* ``AuthorizationError`` when a non-manager resolves, or someone requests
  on behalf of another employee without being a manager.
* ``StaleStateError`` when the request is no longer pending.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_config.schema import CafeConfiguration
from cafe_kernel.context import RequestContext
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.events import EventSink, InMemoryEventSink, TimeOffRequested, TimeOffResolved
from cafe_kernel.exceptions import (
    TimeOffNotFoundError,
    TimeOffOverlapError,
    ValidationError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition
from cafe_modules._service_helpers import check_notice, owned_transaction
from cafe_modules.scheduling.models import TimeOffBalance, TimeOffInfo, TimeOffStatus, TimeOffType
from cafe_modules.scheduling.orm import TimeOffRequestModel
from cafe_modules.scheduling.workflows import TIME_OFF_WORKFLOW

logger = get_logger("modules.scheduling.time_off")


class TimeOffService:
    """Request, approve and reject time off; report yearly balances."""

    def __init__(
        self,
        session: Session,
        config: CafeConfiguration,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock(config.timezone)
        self._events = event_sink if event_sink is not None else InMemoryEventSink()
        self._employees = EmployeeService(session)

    def request_time_off(
        self,
        employee_id: UUID,
        start_date: date,
        end_date: date,
        time_off_type: TimeOffType | str,
        reason: str,
        ctx: RequestContext,
    ) -> TimeOffInfo:
        """File a pending request.  The caller is the employee or a manager of their branch."""
        with ctx.bind_logging(employee_id=employee_id):
            with owned_transaction(self._session, "request_time_off"):
                employee = self._employees.get_employee(employee_id)
                ctx.require_actor(employee_id, "request_time_off", allow_manager=True)
                if ctx.actor_id != employee_id:
                    ctx.require_manager("request_time_off", employee.branch_id)
                if not employee.is_active:
                    raise ValidationError(f"Employee {employee_id} is inactive")
                if end_date < start_date:
                    raise ValidationError(
                        f"Time off end {end_date.isoformat()} is before start {start_date.isoformat()}"
                    )
                try:
                    kind = TimeOffType(time_off_type)
                except ValueError as exc:
                    raise ValidationError(f"Unknown time-off type {time_off_type!r}") from exc
                if not reason or not reason.strip():
                    raise ValidationError("A reason is required for time off")
                check_notice(start_date, self._clock.today(), self._config.scheduling.min_notice_days)

                model = TimeOffRequestModel(
                    employee_id=employee_id,
                    start_date=start_date,
                    end_date=end_date,
                    time_off_type=kind.value,
                    reason=reason.strip(),
                    status=TimeOffStatus.PENDING.value,
                    created_by_id=ctx.actor_id,
                )
                self._session.add(model)
                self._session.flush()
                request = model.to_dto()

            logger.info(
                "time_off_requested",
                extra={
                    "request_id": str(request.id),
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                    "time_off_type": kind.value,
                },
            )
            self._events.publish(
                TimeOffRequested(
                    request_id=request.id,
                    employee_id=employee_id,
                    start_date=start_date,
                    end_date=end_date,
                )
            )
            return request

    def approve_time_off(self, request_id: UUID, ctx: RequestContext) -> TimeOffInfo:
        """Approve a pending request unless it overlaps another approved one."""
        with ctx.bind_logging():
            with owned_transaction(self._session, "approve_time_off"):
                current = self._get_model(request_id).to_dto()
                employee = self._employees.lock_employee(current.employee_id)
                ctx.require_manager("approve_time_off", employee.branch_id)

                conflict = self._session.execute(
                    select(TimeOffRequestModel.id)
                    .where(
                        TimeOffRequestModel.employee_id == current.employee_id,
                        TimeOffRequestModel.id != request_id,
                        TimeOffRequestModel.status == TimeOffStatus.APPROVED.value,
                        TimeOffRequestModel.start_date <= current.end_date,
                        TimeOffRequestModel.end_date >= current.start_date,
                    )
                    .order_by(TimeOffRequestModel.start_date)
                ).scalars().first()
                if conflict is not None:
                    raise TimeOffOverlapError(
                        request_id, conflict, current.start_date, current.end_date,
                    )

                request = self._transition(request_id, "approve", ctx)

            self._log_and_publish(request, ctx)
            return request

    def reject_time_off(self, request_id: UUID, ctx: RequestContext) -> TimeOffInfo:
        with ctx.bind_logging():
            with owned_transaction(self._session, "reject_time_off"):
                current = self._get_model(request_id).to_dto()
                employee = self._employees.get_employee(current.employee_id)
                ctx.require_manager("reject_time_off", employee.branch_id)
                request = self._transition(request_id, "reject", ctx)

            self._log_and_publish(request, ctx)
            return request

    # =========================================================================
    # Queries
    # =========================================================================

    def get_time_off(self, request_id: UUID) -> TimeOffInfo:
        return self._get_model(request_id).to_dto()

    def requests_for_employee(
        self,
        employee_id: UUID,
        status: TimeOffStatus | None = None,
    ) -> list[TimeOffInfo]:
        stmt = select(TimeOffRequestModel).where(TimeOffRequestModel.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(TimeOffRequestModel.status == status.value)
        rows = self._session.execute(stmt.order_by(TimeOffRequestModel.start_date)).scalars().all()
        return [r.to_dto() for r in rows]

    def time_off_balance(self, employee_id: UUID, year: int) -> list[TimeOffBalance]:
        """
        One balance per time-off type for ``year``.

        Days of a request are counted inside the year only, so a request
        spanning New Year splits between the two years.
        """
        self._employees.get_employee(employee_id)
        year_start, year_end = date(year, 1, 1), date(year, 12, 31)
        used: dict[TimeOffType, int] = {t: 0 for t in TimeOffType}
        pending: dict[TimeOffType, int] = {t: 0 for t in TimeOffType}

        for request in self.requests_for_employee(employee_id):
            if not request.overlaps(year_start, year_end):
                continue
            days = (min(request.end_date, year_end) - max(request.start_date, year_start)).days + 1
            if request.status is TimeOffStatus.APPROVED:
                used[request.time_off_type] += days
            elif request.status is TimeOffStatus.PENDING:
                pending[request.time_off_type] += days

        return [
            TimeOffBalance(
                employee_id=employee_id,
                year=year,
                time_off_type=t,
                allowance_days=int(self._config.time_off_allowances.get(t.value, 0)),
                used_days=used[t],
                pending_days=pending[t],
            )
            for t in TimeOffType
        ]

    # -------------------------------------------------------------------------

    def _transition(self, request_id: UUID, action: str, ctx: RequestContext) -> TimeOffInfo:
        model = apply_transition(
            self._session,
            TimeOffRequestModel,
            request_id,
            TIME_OFF_WORKFLOW,
            action,
            TimeOffNotFoundError,
            values={
                "resolved_by_id": ctx.actor_id,
                "resolved_at": self._clock.now(),
                "updated_by_id": ctx.actor_id,
            },
        )
        return model.to_dto()

    def _log_and_publish(self, request: TimeOffInfo, ctx: RequestContext) -> None:
        logger.info(
            "time_off_resolved",
            extra={"request_id": str(request.id), "time_off_status": request.status.value},
        )
        self._events.publish(
            TimeOffResolved(
                request_id=request.id,
                employee_id=request.employee_id,
                status=request.status.value,
                resolved_by_id=ctx.actor_id,
            )
        )

    def _get_model(self, request_id: UUID) -> TimeOffRequestModel:
        model = self._session.get(TimeOffRequestModel, request_id)
        if model is None:
            raise TimeOffNotFoundError(request_id)
        return model
