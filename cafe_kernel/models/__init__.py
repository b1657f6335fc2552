"""Kernel ORM models."""

from cafe_kernel.models.employee import BranchModel, EmployeeModel

__all__ = ["BranchModel", "EmployeeModel"]
