"""
Payroll ORM persistence models (``cafe_modules.payroll.orm``).

Responsibility:
    SQLAlchemy models for payroll periods, payroll runs and payroll entries.
    Each converts to its frozen DTO from ``cafe_modules.payroll.models`` via
    ``to_dto()``.

Architecture position:
    **Modules layer** -- persistence companions to the DTOs.  Inherits from
    ``TrackedBase`` (UUID id plus audit columns).

Invariants enforced:
    - Exactly one open period per branch: ``open_branch_id`` holds the
      branch id while the period is open and is cleared when it closes
      (uq_payroll_period_open).
    - One entry per (employee, period) (uq_payroll_entry_employee_period);
      recomputation overwrites the draft row in place.
    - Money columns are Numeric; values are written already rounded to
      centavos.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cafe_kernel.db.base import TrackedBase
from cafe_kernel.db.types import round_money

# ---------------------------------------------------------------------------
# PayrollPeriodModel
# ---------------------------------------------------------------------------


class PayrollPeriodModel(TrackedBase):
    """
    ORM model for a branch pay period.

    Guarantees:
        - ``status`` is one of open / closed / paid.
        - ``open_branch_id`` is non-NULL only while the period is open.
    """

    __tablename__ = "payroll_periods"

    branch_id: Mapped[UUID] = mapped_column(ForeignKey("branches.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="open")
    open_branch_id: Mapped[UUID | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("open_branch_id", name="uq_payroll_period_open"),
        Index("idx_payroll_period_branch_dates", "branch_id", "start_date", "end_date"),
    )

    def to_dto(self):
        from cafe_modules.payroll.models import PayrollPeriodInfo, PeriodStatus
        return PayrollPeriodInfo(
            id=self.id,
            branch_id=self.branch_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=PeriodStatus(self.status),
            closed_at=self.closed_at,
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return f"<PayrollPeriodModel {self.start_date}..{self.end_date} ({self.status})>"


# ---------------------------------------------------------------------------
# PayrollRunModel
# ---------------------------------------------------------------------------


class PayrollRunModel(TrackedBase):
    """One ``run_payroll`` invocation and its counters."""

    __tablename__ = "payroll_runs"

    period_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_periods.id"), nullable=False)
    branch_id: Mapped[UUID] = mapped_column(ForeignKey("branches.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="running")
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    computed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_summary: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        Index("idx_payroll_run_period", "period_id"),
    )

    def __repr__(self) -> str:
        return f"<PayrollRunModel {self.id} period={self.period_id} ({self.status})>"


# ---------------------------------------------------------------------------
# PayrollEntryModel
# ---------------------------------------------------------------------------


class PayrollEntryModel(TrackedBase):
    """
    ORM model for one employee's pay in one period.

    Guarantees:
        - Unique per (employee_id, period_id).
        - ``hourly_rate`` is snapshotted at first computation and reused by
          every recomputation of the draft.
    """

    __tablename__ = "payroll_entries"

    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    period_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_periods.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)

    # Minute buckets
    elapsed_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unpaid_break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    regular_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    holiday_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rest_day_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    night_diff_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Pay components
    basic_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    holiday_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    rest_day_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    night_diff_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    gross_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Deductions
    sss: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    philhealth: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pagibig: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    withholding_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sss_loan: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pagibig_loan: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cash_advance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    computed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_run_id: Mapped[UUID | None] = mapped_column(nullable=True)
    stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "period_id", name="uq_payroll_entry_employee_period"),
        Index("idx_payroll_entry_period_status", "period_id", "status"),
    )

    def computed_values(self) -> tuple:
        """Every column a computation writes, in a fixed order."""
        return (
            self.elapsed_minutes,
            self.unpaid_break_minutes,
            self.regular_minutes,
            self.overtime_minutes,
            self.holiday_minutes,
            self.rest_day_minutes,
            self.night_diff_minutes,
            self.basic_pay,
            self.overtime_pay,
            self.holiday_pay,
            self.rest_day_pay,
            self.night_diff_pay,
            self.gross_pay,
            self.sss,
            self.philhealth,
            self.pagibig,
            self.withholding_tax,
            self.sss_loan,
            self.pagibig_loan,
            self.cash_advance,
            self.other_deductions,
            self.total_deductions,
            self.net_pay,
        )

    def apply_computation(self, computation, computed_at: datetime, run_id: UUID | None, actor_id: UUID) -> bool:
        """
        Overwrite buckets, pay and deductions from a ``PayrollComputation``.

        ``computed_at`` and ``last_run_id`` move only when a value changed
        or the entry was stale, so an unchanged rerun leaves the row as is.
        Returns whether anything changed.
        """
        before = self.computed_values()
        totals = computation.hours.totals
        self.elapsed_minutes = totals.elapsed_minutes
        self.unpaid_break_minutes = totals.unpaid_break_minutes
        self.regular_minutes = totals.regular_minutes
        self.overtime_minutes = totals.overtime_minutes
        self.holiday_minutes = totals.holiday_minutes
        self.rest_day_minutes = totals.rest_day_minutes
        self.night_diff_minutes = totals.night_diff_minutes

        pay = computation.pay
        self.basic_pay = pay.basic
        self.overtime_pay = pay.overtime
        self.holiday_pay = pay.holiday
        self.rest_day_pay = pay.rest_day
        self.night_diff_pay = pay.night_diff
        self.gross_pay = computation.gross_pay

        d = computation.deductions
        self.sss = d.sss
        self.philhealth = d.philhealth
        self.pagibig = d.pagibig
        self.withholding_tax = d.withholding_tax
        self.sss_loan = d.sss_loan
        self.pagibig_loan = d.pagibig_loan
        self.cash_advance = d.cash_advance
        self.other_deductions = d.other
        self.total_deductions = computation.total_deductions
        self.net_pay = computation.net_pay

        changed = self.computed_at is None or self.stale or before != self.computed_values()
        if changed:
            self.computed_at = computed_at
            self.last_run_id = run_id
            self.updated_by_id = actor_id
            self.stale = False
        return changed

    def to_dto(self):
        from cafe_modules.payroll.models import (
            DeductionBreakdown,
            EntryStatus,
            HourBuckets,
            PayComponents,
            PayrollEntryInfo,
        )
        return PayrollEntryInfo(
            id=self.id,
            employee_id=self.employee_id,
            period_id=self.period_id,
            status=EntryStatus(self.status),
            hourly_rate=self.hourly_rate,
            buckets=HourBuckets(
                elapsed_minutes=self.elapsed_minutes,
                unpaid_break_minutes=self.unpaid_break_minutes,
                regular_minutes=self.regular_minutes,
                overtime_minutes=self.overtime_minutes,
                holiday_minutes=self.holiday_minutes,
                rest_day_minutes=self.rest_day_minutes,
                night_diff_minutes=self.night_diff_minutes,
            ),
            pay=PayComponents(
                basic=round_money(self.basic_pay),
                overtime=round_money(self.overtime_pay),
                holiday=round_money(self.holiday_pay),
                rest_day=round_money(self.rest_day_pay),
                night_diff=round_money(self.night_diff_pay),
            ),
            deductions=DeductionBreakdown(
                sss=round_money(self.sss),
                philhealth=round_money(self.philhealth),
                pagibig=round_money(self.pagibig),
                withholding_tax=round_money(self.withholding_tax),
                sss_loan=round_money(self.sss_loan),
                pagibig_loan=round_money(self.pagibig_loan),
                cash_advance=round_money(self.cash_advance),
                other=round_money(self.other_deductions),
            ),
            gross_pay=round_money(self.gross_pay),
            total_deductions=round_money(self.total_deductions),
            net_pay=round_money(self.net_pay),
            computed_at=self.computed_at,
            stale=bool(self.stale),
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return f"<PayrollEntryModel employee={self.employee_id} period={self.period_id} ({self.status})>"
