"""
Branch and employee ORM models (``cafe_kernel.models.employee``).

Responsibility:
    Persist the minimal branch/employee registry that the scheduling and
    payroll modules reference.  Editing screens and bulk activation are
    outside the core; only the fields the core reads live here.

Architecture position:
    Kernel > Models.  Module ORM tables hold foreign keys to
    ``branches.id`` and ``employees.id``.

Invariants enforced:
    - ``hourly_rate`` and manual deductions are Decimal, never float.
    - ``rest_day`` is a Python weekday number (Monday=0 .. Sunday=6) or
      NULL to use the branch/default assignment from configuration.
    - ``role`` stores the ``Role`` enum value string.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cafe_kernel.db.base import TrackedBase


class BranchModel(TrackedBase):
    """A café branch."""

    __tablename__ = "branches"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self):
        from cafe_kernel.domain.dtos import BranchInfo
        return BranchInfo(
            id=self.id,
            name=self.name,
            address=self.address,
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<BranchModel {self.name}>"


class EmployeeModel(TrackedBase):
    """
    ORM model for an employee.

    Guarantees:
        - ``branch_id`` references ``branches.id``.
        - Manual deduction columns default to zero.
    """

    __tablename__ = "employees"

    branch_id: Mapped[UUID] = mapped_column(ForeignKey("branches.id"), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee")
    position: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hourly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    rest_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sss_loan: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pagibig_loan: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cash_advance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("idx_employee_branch_active", "branch_id", "is_active"),
    )

    def to_dto(self):
        from cafe_kernel.context import Role
        from cafe_kernel.domain.dtos import EmployeeInfo, ManualDeductions
        return EmployeeInfo(
            id=self.id,
            branch_id=self.branch_id,
            first_name=self.first_name,
            last_name=self.last_name,
            role=Role(self.role),
            position=self.position,
            hourly_rate=self.hourly_rate,
            rest_day=self.rest_day,
            manual_deductions=ManualDeductions(
                sss_loan=self.sss_loan,
                pagibig_loan=self.pagibig_loan,
                cash_advance=self.cash_advance,
                other=self.other_deductions,
            ),
            is_active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<EmployeeModel {self.first_name} {self.last_name} ({self.role})>"
