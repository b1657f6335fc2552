"""
Kernel DTOs -- immutable views of branches and employees.

Services return these instead of ORM instances so callers never hold a
session-bound object.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from cafe_kernel.context import Role


@dataclass(frozen=True)
class BranchInfo:
    id: UUID
    name: str
    address: str | None
    is_active: bool


@dataclass(frozen=True)
class ManualDeductions:
    """Recurring per-employee deductions, passed through opaquely to payroll."""

    sss_loan: Decimal = Decimal("0")
    pagibig_loan: Decimal = Decimal("0")
    cash_advance: Decimal = Decimal("0")
    other: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.sss_loan + self.pagibig_loan + self.cash_advance + self.other


@dataclass(frozen=True)
class EmployeeInfo:
    id: UUID
    branch_id: UUID
    first_name: str
    last_name: str
    role: Role
    position: str | None
    hourly_rate: Decimal
    rest_day: int | None
    manual_deductions: ManualDeductions
    is_active: bool

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
