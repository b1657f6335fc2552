"""Kernel services: flush-only registry and transition helpers."""

from cafe_kernel.services.base import BaseService
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition

__all__ = ["BaseService", "EmployeeService", "apply_transition"]
