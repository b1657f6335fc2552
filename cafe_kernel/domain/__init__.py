"""
Pure domain layer.

Clock abstraction and workflow value objects with NO dependencies on
the ORM, the database or I/O.
"""

from cafe_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from cafe_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
