"""
EmployeeService -- minimal branch and employee registry.

Responsibility:
    Register branches and employees and look them up for the scheduling and
    payroll modules.  Flush-only; the caller commits.

Failure modes:
    - BranchNotFoundError / EmployeeNotFoundError for unknown ids.
    - ValidationError for a negative hourly rate or rest day outside 0-6.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from cafe_kernel.context import Role
from cafe_kernel.db.types import to_decimal
from cafe_kernel.domain.dtos import BranchInfo, EmployeeInfo, ManualDeductions
from cafe_kernel.exceptions import (
    BranchNotFoundError,
    EmployeeNotFoundError,
    InactiveEmployeeError,
    ValidationError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.models.employee import BranchModel, EmployeeModel
from cafe_kernel.services.base import BaseService

logger = get_logger("services.employee")


class EmployeeService(BaseService):
    """Branch/employee registry used by the module services."""

    def register_branch(
        self,
        name: str,
        actor_id: UUID,
        address: str | None = None,
        branch_id: UUID | None = None,
    ) -> BranchInfo:
        branch = BranchModel(
            name=name,
            address=address,
            is_active=True,
            created_by_id=actor_id,
        )
        if branch_id is not None:
            branch.id = branch_id
        self.session.add(branch)
        self.session.flush()
        logger.info("branch_registered", extra={"branch_id": str(branch.id), "branch_name": name})
        return branch.to_dto()

    def register_employee(
        self,
        branch_id: UUID,
        first_name: str,
        last_name: str,
        hourly_rate: Decimal | str,
        actor_id: UUID,
        role: Role = Role.EMPLOYEE,
        position: str | None = None,
        rest_day: int | None = None,
        manual_deductions: ManualDeductions | None = None,
        employee_id: UUID | None = None,
    ) -> EmployeeInfo:
        self._get_branch_model(branch_id)
        rate = to_decimal(hourly_rate)
        if rate < 0:
            raise ValidationError(f"Hourly rate must be non-negative, got {rate}")
        if rest_day is not None and not 0 <= rest_day <= 6:
            raise ValidationError(f"Rest day must be a weekday number 0-6, got {rest_day}")
        deductions = manual_deductions or ManualDeductions()
        employee = EmployeeModel(
            branch_id=branch_id,
            first_name=first_name,
            last_name=last_name,
            role=role.value,
            position=position,
            hourly_rate=rate,
            rest_day=rest_day,
            sss_loan=deductions.sss_loan,
            pagibig_loan=deductions.pagibig_loan,
            cash_advance=deductions.cash_advance,
            other_deductions=deductions.other,
            is_active=True,
            created_by_id=actor_id,
        )
        if employee_id is not None:
            employee.id = employee_id
        self.session.add(employee)
        self.session.flush()
        logger.info(
            "employee_registered",
            extra={
                "employee_id": str(employee.id),
                "branch_id": str(branch_id),
                "role": role.value,
            },
        )
        return employee.to_dto()

    def get_branch(self, branch_id: UUID) -> BranchInfo:
        return self._get_branch_model(branch_id).to_dto()

    def get_employee(self, employee_id: UUID) -> EmployeeInfo:
        return self._get_employee_model(employee_id).to_dto()

    def lock_employee(self, employee_id: UUID) -> EmployeeInfo:
        """Load the employee row with SELECT ... FOR UPDATE.

        Serializes per-employee decisions (time-off approval) on PostgreSQL.
        """
        model = self.session.execute(
            select(EmployeeModel)
            .where(EmployeeModel.id == employee_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise EmployeeNotFoundError(employee_id)
        return model.to_dto()

    def require_active_in_branch(self, employee_id: UUID, branch_id: UUID) -> EmployeeInfo:
        employee = self.get_employee(employee_id)
        if not employee.is_active:
            raise InactiveEmployeeError(employee_id, "employee is inactive")
        if employee.branch_id != branch_id:
            raise InactiveEmployeeError(employee_id, f"not assigned to branch {branch_id}")
        return employee

    def list_active_employees(self, branch_id: UUID) -> list[EmployeeInfo]:
        rows = self.session.execute(
            select(EmployeeModel)
            .where(EmployeeModel.branch_id == branch_id, EmployeeModel.is_active.is_(True))
        ).scalars().all()
        # Deterministic batch order
        return sorted((r.to_dto() for r in rows), key=lambda e: str(e.id))

    def set_hourly_rate(self, employee_id: UUID, hourly_rate: Decimal | str, actor_id: UUID) -> EmployeeInfo:
        model = self._get_employee_model(employee_id)
        rate = to_decimal(hourly_rate)
        if rate < 0:
            raise ValidationError(f"Hourly rate must be non-negative, got {rate}")
        model.hourly_rate = rate
        model.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "employee_rate_changed",
            extra={"employee_id": str(employee_id), "hourly_rate": str(rate)},
        )
        return model.to_dto()

    def deactivate_employee(self, employee_id: UUID, actor_id: UUID) -> EmployeeInfo:
        model = self._get_employee_model(employee_id)
        model.is_active = False
        model.updated_by_id = actor_id
        self.session.flush()
        logger.info("employee_deactivated", extra={"employee_id": str(employee_id)})
        return model.to_dto()

    def _get_branch_model(self, branch_id: UUID) -> BranchModel:
        model = self.session.get(BranchModel, branch_id)
        if model is None:
            raise BranchNotFoundError(branch_id)
        return model

    def _get_employee_model(self, employee_id: UUID) -> EmployeeModel:
        model = self.session.get(EmployeeModel, employee_id)
        if model is None:
            raise EmployeeNotFoundError(employee_id)
        return model
