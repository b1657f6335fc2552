"""
Payroll Module Service (``cafe_modules.payroll.service``).

Responsibility
--------------
Orchestrates payroll: pay-period lifecycle, batch payroll runs, and entry
approval/payment.  Pure computation is delegated to
``HoursAggregator`` / ``DeductionBracketResolver`` / ``compute_payroll``;
shifts come from ``TimeLedgerService``; employees from ``EmployeeService``.

Architecture position
---------------------
**Modules layer** -- ``PayrollService`` is the sole public entry point for
payroll operations.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (commit on success,
  rollback on failure or exception).
* One run at a time per (branch, period): an in-process keyed lock with a
  bounded wait, a PostgreSQL advisory lock, and ``SELECT ... FOR UPDATE``
  on the period row.
* Each employee is computed inside its own SAVEPOINT; a failure rolls back
  only that employee's writes and the batch continues.
* Draft entries are overwritten in place; approved and paid entries are
  never recomputed.  The hourly rate is snapshotted on first computation.
* Re-running over unchanged inputs yields identical entry values, including
  ``computed_at``.
* When a draft cannot be recomputed it keeps its old figures, is flagged
  ``stale`` and cannot be approved until a later run succeeds.

Failure modes
-------------
* ``PayrollRunInProgressError`` when the run lock is not obtained in time.
* ``PeriodNotOpenError`` when running a closed or paid period.
* ``OpenPeriodExistsError`` / ``PeriodOverlapError`` when opening periods.
* Per-employee ``ComputationError`` / ``NegativeNetPayError`` (and any
  unexpected exception) are reported in ``PayrollRunResult`` and logged
  with employee, period, deduction type and salary.

Audit relevance
---------------
Every run persists a ``PayrollRunModel`` row with its counters and error
summary.  Structured log events are emitted at run start, per employee,
and at completion.
"""

from __future__ import annotations

import threading
from datetime import date
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cafe_config.schema import CafeConfiguration
from cafe_kernel.context import RequestContext
from cafe_kernel.db.locks import KeyedLockRegistry, acquire_advisory_xact_lock, default_lock_registry
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.domain.dtos import EmployeeInfo
from cafe_kernel.events import EventSink, InMemoryEventSink, PayrollEntryComputed
from cafe_kernel.exceptions import (
    CafeCoreError,
    OpenPeriodExistsError,
    PayrollEntryNotFoundError,
    PayrollRunInProgressError,
    PeriodNotFoundError,
    PeriodNotOpenError,
    PeriodOverlapError,
    ValidationError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition
from cafe_modules._service_helpers import owned_transaction
from cafe_modules.payroll.calculator import compute_payroll
from cafe_modules.payroll.deductions import DeductionBracketResolver
from cafe_modules.payroll.hours import HoursAggregator
from cafe_modules.payroll.models import (
    EmployeeOutcome,
    EmployeeRunOutcome,
    EntryStatus,
    PayrollEntryInfo,
    PayrollPeriodInfo,
    PayrollRunResult,
    PeriodStatus,
    RunStatus,
)
from cafe_modules.payroll.orm import PayrollEntryModel, PayrollPeriodModel, PayrollRunModel
from cafe_modules.payroll.workflows import PAYROLL_ENTRY_WORKFLOW, PAYROLL_PERIOD_WORKFLOW
from cafe_modules.scheduling.ledger import TimeLedgerService

logger = get_logger("modules.payroll.service")


def payroll_lock_key(branch_id: UUID, period_id: UUID) -> tuple[str, str, str]:
    """Key under which runs of one (branch, period) serialize."""
    return ("payroll", str(branch_id), str(period_id))


class PayrollService:
    """
    Pay periods, payroll runs and payroll entries.

    Contract
    --------
    * ``run_payroll`` returns a ``PayrollRunResult``; per-employee failures
      are outcomes in the result, not exceptions.
    * Errors that abort the whole run (lock timeout, period not open,
      authorization) are raised.

    Guarantees
    ----------
    * Clock, configuration, event sink and lock registry are injectable for
      deterministic testing.
    * Events are published only after the run has committed.
    """

    def __init__(
        self,
        session: Session,
        config: CafeConfiguration,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
        lock_registry: KeyedLockRegistry | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock(config.timezone)
        self._events = event_sink if event_sink is not None else InMemoryEventSink()
        self._locks = lock_registry or default_lock_registry
        self._ledger = TimeLedgerService(session, config, self._clock)
        self._employees = EmployeeService(session)
        self._aggregator = HoursAggregator(config)
        self._resolver = DeductionBracketResolver(config)

    # =========================================================================
    # Periods
    # =========================================================================

    def open_period(
        self,
        branch_id: UUID,
        start_date: date,
        end_date: date,
        ctx: RequestContext,
    ) -> PayrollPeriodInfo:
        """Open a pay period.  A branch has at most one open period and no overlapping ones."""
        with ctx.bind_logging():
            with owned_transaction(self._session, "open_period"):
                ctx.require_manager("open_period", branch_id)
                self._employees.get_branch(branch_id)
                if end_date < start_date:
                    raise ValidationError(
                        f"Period end {end_date.isoformat()} is before start {start_date.isoformat()}"
                    )

                overlapping = self._session.execute(
                    select(PayrollPeriodModel.id).where(
                        PayrollPeriodModel.branch_id == branch_id,
                        PayrollPeriodModel.start_date <= end_date,
                        PayrollPeriodModel.end_date >= start_date,
                    )
                ).scalars().first()
                if overlapping is not None:
                    raise PeriodOverlapError(branch_id, start_date, end_date, overlapping)

                model = PayrollPeriodModel(
                    branch_id=branch_id,
                    start_date=start_date,
                    end_date=end_date,
                    status=PeriodStatus.OPEN.value,
                    open_branch_id=branch_id,
                    created_by_id=ctx.actor_id,
                )
                self._session.add(model)
                try:
                    self._session.flush()
                except IntegrityError as exc:
                    raise OpenPeriodExistsError(branch_id) from exc
                period = model.to_dto()

            logger.info(
                "payroll_period_opened",
                extra={
                    "period_id": str(period.id),
                    "start_date": start_date.isoformat(),
                    "end_date": end_date.isoformat(),
                },
            )
            return period

    def close_period(self, period_id: UUID, ctx: RequestContext) -> PayrollPeriodInfo:
        """Close an open period; its entries can no longer be recomputed by a run."""
        with ctx.bind_logging(period_id=period_id):
            with owned_transaction(self._session, "close_period"):
                current = self._get_period_model(period_id).to_dto()
                ctx.require_manager("close_period", current.branch_id)
                model = apply_transition(
                    self._session,
                    PayrollPeriodModel,
                    period_id,
                    PAYROLL_PERIOD_WORKFLOW,
                    "close",
                    PeriodNotFoundError,
                    values={
                        "open_branch_id": None,
                        "closed_at": self._clock.now(),
                        "updated_by_id": ctx.actor_id,
                    },
                )
                period = model.to_dto()

            logger.info("payroll_period_closed", extra={"period_status": period.status.value})
            return period

    def mark_period_paid(self, period_id: UUID, ctx: RequestContext) -> PayrollPeriodInfo:
        """Settle a closed period.  Every entry must be approved; approved entries become paid."""
        with ctx.bind_logging(period_id=period_id):
            with owned_transaction(self._session, "mark_period_paid"):
                current = self._get_period_model(period_id).to_dto()
                ctx.require_manager("mark_period_paid", current.branch_id)
                drafts = self._session.execute(
                    select(func.count(PayrollEntryModel.id)).where(
                        PayrollEntryModel.period_id == period_id,
                        PayrollEntryModel.status == EntryStatus.DRAFT.value,
                    )
                ).scalar_one()
                if drafts:
                    raise ValidationError(
                        f"Period {period_id} still has {drafts} draft payroll entries"
                    )

                now = self._clock.now()
                model = apply_transition(
                    self._session,
                    PayrollPeriodModel,
                    period_id,
                    PAYROLL_PERIOD_WORKFLOW,
                    "mark_paid",
                    PeriodNotFoundError,
                    values={"paid_at": now, "updated_by_id": ctx.actor_id},
                )
                paid = self._session.execute(
                    update(PayrollEntryModel)
                    .where(
                        PayrollEntryModel.period_id == period_id,
                        PayrollEntryModel.status == EntryStatus.APPROVED.value,
                    )
                    .values(status=EntryStatus.PAID.value, paid_at=now, updated_by_id=ctx.actor_id)
                    .execution_options(synchronize_session=False)
                ).rowcount
                period = model.to_dto()

            logger.info("payroll_period_paid", extra={"entries_paid": paid})
            return period

    def get_period(self, period_id: UUID) -> PayrollPeriodInfo:
        return self._get_period_model(period_id).to_dto()

    def open_period_for(self, branch_id: UUID) -> PayrollPeriodInfo | None:
        model = self._session.execute(
            select(PayrollPeriodModel).where(PayrollPeriodModel.open_branch_id == branch_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    # =========================================================================
    # Runs
    # =========================================================================

    def run_payroll(
        self,
        period_id: UUID,
        ctx: RequestContext,
        cancel_event: threading.Event | None = None,
    ) -> PayrollRunResult:
        """
        Compute draft entries for every active employee of the period's
        branch who has completed shifts in the period.

        ``cancel_event`` is checked between employees; entries computed
        before it was set are kept and the run is recorded as cancelled.

        Raises:
            PayrollRunInProgressError: another run holds the lock too long.
            PeriodNotOpenError: the period is closed or paid.
        """
        with ctx.bind_logging(period_id=period_id):
            with owned_transaction(self._session, "run_payroll_prepare"):
                period = self._get_period_model(period_id).to_dto()
                ctx.require_manager("run_payroll", period.branch_id)

            timeout = self._config.locking.payroll_lock_timeout_seconds
            key = payroll_lock_key(period.branch_id, period_id)
            with self._locks.hold(key, timeout) as acquired:
                if not acquired:
                    logger.warning(
                        "payroll_run_lock_timeout",
                        extra={"timeout_seconds": timeout},
                    )
                    raise PayrollRunInProgressError(period.branch_id, period_id, timeout)
                return self._run_locked(period_id, ctx, cancel_event)

    def _run_locked(
        self,
        period_id: UUID,
        ctx: RequestContext,
        cancel_event: threading.Event | None,
    ) -> PayrollRunResult:
        computed_events: list[PayrollEntryComputed] = []

        with owned_transaction(self._session, "run_payroll"):
            period_model = self._lock_period(period_id)
            period = period_model.to_dto()
            acquire_advisory_xact_lock(self._session, *payroll_lock_key(period.branch_id, period_id))
            if period.status is not PeriodStatus.OPEN:
                raise PeriodNotOpenError(period_id, period.status.value)

            started_at = self._clock.now()
            run = PayrollRunModel(
                period_id=period_id,
                branch_id=period.branch_id,
                status=RunStatus.RUNNING.value,
                started_at=started_at,
                correlation_id=ctx.correlation_id,
                created_by_id=ctx.actor_id,
            )
            self._session.add(run)
            self._session.flush()

            with_hours = self._ledger.employees_with_completed_shifts(
                period.branch_id, period.start_date, period.end_date,
            )
            employees = [
                e for e in self._employees.list_active_employees(period.branch_id)
                if e.id in with_hours
            ]
            logger.info(
                "payroll_run_started",
                extra={"run_id": str(run.id), "employee_count": len(employees)},
            )

            outcomes: list[EmployeeRunOutcome] = []
            cancelled = False
            for employee in employees:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    logger.warning(
                        "payroll_run_cancelled",
                        extra={
                            "run_id": str(run.id),
                            "processed": len(outcomes),
                            "remaining": len(employees) - len(outcomes),
                        },
                    )
                    break
                outcome = self._compute_employee(employee, period, run.id, ctx)
                outcomes.append(outcome)
                if outcome.outcome is EmployeeOutcome.COMPUTED:
                    entry = self._session.get(PayrollEntryModel, outcome.entry_id)
                    computed_events.append(
                        PayrollEntryComputed(
                            entry_id=entry.id,
                            employee_id=employee.id,
                            period_id=period_id,
                            gross_pay=entry.gross_pay,
                            net_pay=entry.net_pay,
                        )
                    )

            result = self._finish_run(run, period, tuple(outcomes), cancelled, len(employees))

        for event in computed_events:
            self._events.publish(event)
        logger.info(
            "payroll_run_completed",
            extra={
                "run_id": str(result.run_id),
                "run_status": result.status.value,
                "computed": result.computed,
                "skipped": result.skipped,
                "failed": result.failed,
            },
        )
        return result

    def _compute_employee(
        self,
        employee: EmployeeInfo,
        period: PayrollPeriodInfo,
        run_id: UUID,
        ctx: RequestContext,
    ) -> EmployeeRunOutcome:
        with ctx.bind_logging(employee_id=employee.id, period_id=period.id):
            existing = self._find_entry(employee.id, period.id)
            if existing is not None and existing.status != EntryStatus.DRAFT.value:
                logger.info(
                    "payroll_entry_skipped",
                    extra={"entry_id": str(existing.id), "entry_status": existing.status},
                )
                return EmployeeRunOutcome(
                    employee_id=employee.id,
                    outcome=EmployeeOutcome.SKIPPED,
                    entry_id=existing.id,
                    net_pay=existing.net_pay,
                )

            savepoint = self._session.begin_nested()
            try:
                shifts = self._ledger.completed_shifts(employee.id, period.start_date, period.end_date)
                rate = existing.hourly_rate if existing is not None else employee.hourly_rate
                computation = compute_payroll(
                    employee,
                    period,
                    shifts,
                    self._config,
                    hourly_rate=rate,
                    aggregator=self._aggregator,
                    resolver=self._resolver,
                )
                entry = existing
                if entry is None:
                    entry = PayrollEntryModel(
                        employee_id=employee.id,
                        period_id=period.id,
                        status=EntryStatus.DRAFT.value,
                        hourly_rate=rate,
                        created_by_id=ctx.actor_id,
                    )
                    self._session.add(entry)
                changed = entry.apply_computation(computation, self._clock.now(), run_id, ctx.actor_id)
                self._session.flush()
                savepoint.commit()
            except CafeCoreError as exc:
                savepoint.rollback()
                logger.warning(
                    "payroll_employee_failed",
                    extra={
                        "error_code": exc.code,
                        "error_message": exc.message,
                        "deduction_type": getattr(exc, "deduction_type", None),
                        "salary": str(exc.salary) if hasattr(exc, "salary") else None,
                    },
                )
                return self._failed(employee, existing, exc.code, exc.message)
            except Exception as exc:
                savepoint.rollback()
                logger.error(
                    "payroll_employee_failed",
                    extra={"error_code": "UNHANDLED_EXCEPTION", "error_message": str(exc)},
                    exc_info=True,
                )
                return self._failed(employee, existing, "UNHANDLED_EXCEPTION", str(exc))

            logger.info(
                "payroll_entry_computed",
                extra={
                    "entry_id": str(entry.id),
                    "gross_pay": str(computation.gross_pay),
                    "net_pay": str(computation.net_pay),
                    "changed": changed,
                },
            )
            return EmployeeRunOutcome(
                employee_id=employee.id,
                outcome=EmployeeOutcome.COMPUTED,
                entry_id=entry.id,
                net_pay=computation.net_pay,
            )

    def _failed(
        self,
        employee: EmployeeInfo,
        existing: PayrollEntryModel | None,
        error_code: str,
        error_message: str,
    ) -> EmployeeRunOutcome:
        """Flag an earlier draft as stale so it cannot be approved until a run succeeds."""
        stale_entry_id = None
        if existing is not None:
            existing.stale = True
            self._session.flush()
            stale_entry_id = existing.id
            logger.warning(
                "payroll_draft_marked_stale",
                extra={"entry_id": str(existing.id), "error_code": error_code},
            )
        return EmployeeRunOutcome(
            employee_id=employee.id,
            outcome=EmployeeOutcome.FAILED,
            entry_id=stale_entry_id,
            error_code=error_code,
            error_message=error_message,
        )

    def _finish_run(
        self,
        run: PayrollRunModel,
        period: PayrollPeriodInfo,
        outcomes: tuple[EmployeeRunOutcome, ...],
        cancelled: bool,
        total: int,
    ) -> PayrollRunResult:
        computed = sum(1 for o in outcomes if o.outcome is EmployeeOutcome.COMPUTED)
        skipped = sum(1 for o in outcomes if o.outcome is EmployeeOutcome.SKIPPED)
        failed = sum(1 for o in outcomes if o.outcome is EmployeeOutcome.FAILED)

        if cancelled:
            status = RunStatus.CANCELLED
        elif failed == 0:
            status = RunStatus.COMPLETED
        elif computed == 0 and skipped == 0:
            status = RunStatus.FAILED
        else:
            status = RunStatus.PARTIALLY_COMPLETED

        completed_at = self._clock.now()
        run.status = status.value
        run.completed_at = completed_at
        run.total_employees = total
        run.computed_count = computed
        run.skipped_count = skipped
        run.failed_count = failed
        if failed:
            codes = sorted({o.error_code or "UNKNOWN" for o in outcomes if o.outcome is EmployeeOutcome.FAILED})
            run.error_summary = f"{failed} employee(s) failed: {', '.join(codes)}"
            stale = sum(1 for o in outcomes if o.left_stale_draft)
            if stale:
                run.error_summary += f"; {stale} earlier draft(s) kept and marked stale"
        self._session.flush()

        return PayrollRunResult(
            run_id=run.id,
            period_id=period.id,
            branch_id=period.branch_id,
            status=status,
            outcomes=outcomes,
            started_at=run.started_at,
            completed_at=completed_at,
        )

    # =========================================================================
    # Entries
    # =========================================================================

    def get_payroll_entry(self, employee_id: UUID, period_id: UUID) -> PayrollEntryInfo | None:
        model = self._find_entry(employee_id, period_id)
        return model.to_dto() if model is not None else None

    def list_entries(self, period_id: UUID, status: EntryStatus | None = None) -> list[PayrollEntryInfo]:
        stmt = select(PayrollEntryModel).where(PayrollEntryModel.period_id == period_id)
        if status is not None:
            stmt = stmt.where(PayrollEntryModel.status == status.value)
        rows = self._session.execute(stmt).scalars().all()
        return sorted((r.to_dto() for r in rows), key=lambda e: str(e.employee_id))

    def approve_entry(self, entry_id: UUID, ctx: RequestContext) -> PayrollEntryInfo:
        """Freeze a draft entry; later runs skip it.  Stale drafts are refused."""
        return self._transition_entry(
            entry_id, ctx, "approve",
            {"approved_by_id": ctx.actor_id, "approved_at": self._clock.now()},
        )

    def mark_entry_paid(self, entry_id: UUID, ctx: RequestContext) -> PayrollEntryInfo:
        return self._transition_entry(entry_id, ctx, "mark_paid", {"paid_at": self._clock.now()})

    # -------------------------------------------------------------------------

    def _transition_entry(
        self,
        entry_id: UUID,
        ctx: RequestContext,
        action: str,
        values: dict,
    ) -> PayrollEntryInfo:
        with ctx.bind_logging():
            with owned_transaction(self._session, f"{action}_payroll_entry"):
                current = self._session.get(PayrollEntryModel, entry_id)
                if current is None:
                    raise PayrollEntryNotFoundError(entry_id)
                period = self._get_period_model(current.period_id).to_dto()
                ctx.require_manager(f"{action}_payroll_entry", period.branch_id)
                if action == "approve" and current.stale:
                    raise ValidationError(
                        f"Payroll entry {entry_id} is stale; its last recomputation failed"
                    )
                model = apply_transition(
                    self._session,
                    PayrollEntryModel,
                    entry_id,
                    PAYROLL_ENTRY_WORKFLOW,
                    action,
                    PayrollEntryNotFoundError,
                    values={**values, "updated_by_id": ctx.actor_id},
                )
                entry = model.to_dto()

            logger.info(
                "payroll_entry_transitioned",
                extra={"entry_id": str(entry_id), "entry_status": entry.status.value},
            )
            return entry

    def _find_entry(self, employee_id: UUID, period_id: UUID) -> PayrollEntryModel | None:
        return self._session.execute(
            select(PayrollEntryModel)
            .where(
                PayrollEntryModel.employee_id == employee_id,
                PayrollEntryModel.period_id == period_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_period(self, period_id: UUID) -> PayrollPeriodModel:
        model = self._session.execute(
            select(PayrollPeriodModel)
            .where(PayrollPeriodModel.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise PeriodNotFoundError(period_id)
        return model

    def _get_period_model(self, period_id: UUID) -> PayrollPeriodModel:
        model = self._session.get(PayrollPeriodModel, period_id)
        if model is None:
            raise PeriodNotFoundError(period_id)
        return model
