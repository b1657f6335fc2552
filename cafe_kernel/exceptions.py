"""
Typed exception hierarchy for the café workforce core.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Scheduling and payroll callers must react to failures precisely: a lost
claim race is shown to the employee differently from a malformed request,
and a bracket gap must abort one employee's payroll computation without
touching the rest of the batch.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (ids, states, amounts)

Example:
    try:
        lifecycle.claim_trade(trade_id, claimant_id, ctx)
    except StaleStateError as e:
        respond(409, code=e.code, actual=e.actual_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CafeCoreError (base)
    |
    +-- ValidationError
    |   +-- InvalidShiftTimesError
    |   +-- InsufficientNoticeError
    |   +-- SelfClaimError
    |   +-- InactiveEmployeeError
    |   +-- InvalidTransitionError
    |   +-- TimeOffOverlapError
    |   +-- PeriodNotOpenError
    |   +-- PeriodOverlapError
    |   +-- NegativeNetPayError
    |
    +-- AuthorizationError
    |
    +-- ConflictError
    |   +-- StaleStateError
    |   +-- ActiveRequestExistsError
    |   +-- OpenPeriodExistsError
    |   +-- PayrollRunInProgressError
    |
    +-- NotFoundError
    |   +-- BranchNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- ShiftNotFoundError
    |   +-- BreakNotFoundError
    |   +-- TradeNotFoundError
    |   +-- DropNotFoundError
    |   +-- TimeOffNotFoundError
    |   +-- PeriodNotFoundError
    |   +-- PayrollEntryNotFoundError
    |
    +-- ComputationError
    |   +-- BracketGapError
    |   +-- AmbiguousBracketError
    |   +-- BracketTableError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|-------------------------------------------
Validation    | INVALID_SHIFT_TIMES       | End not after start, or shift over 24h
              | INSUFFICIENT_NOTICE       | Request made inside the notice window
              | SELF_CLAIM                | Claimant/picker is the requester
              | INACTIVE_EMPLOYEE         | Employee inactive or outside the branch
              | INVALID_TRANSITION        | Action not legal from the current state
              | TIME_OFF_OVERLAP          | Approval would overlap an approved request
              | PERIOD_NOT_OPEN           | Payroll run against a non-open period
              | PERIOD_OVERLAP            | New period overlaps an existing one
              | NEGATIVE_NET_PAY          | Deductions exceed gross pay
--------------|---------------------------|-------------------------------------------
Authorization | NOT_AUTHORIZED            | Role or ownership check failed
--------------|---------------------------|-------------------------------------------
Conflict      | STALE_STATE               | Conditional transition matched zero rows
              | ACTIVE_REQUEST_EXISTS     | Shift already has an active trade/drop
              | OPEN_PERIOD_EXISTS        | Branch already has an open period
              | PAYROLL_RUN_IN_PROGRESS   | Run lock not acquired within timeout
--------------|---------------------------|-------------------------------------------
Not found     | *_NOT_FOUND               | Referenced record does not exist
--------------|---------------------------|-------------------------------------------
Computation   | BRACKET_GAP               | No bracket matches the salary
              | AMBIGUOUS_BRACKET         | More than one bracket matches
              | BRACKET_TABLE_INVALID     | Table unordered, gapped or overlapping
--------------|---------------------------|-------------------------------------------
Configuration | CONFIGURATION_INVALID     | Malformed configuration file

===============================================================================
HANDLING RULES
===============================================================================

* Validation and authorization errors are surfaced immediately and never
  retried.
* Conflicts are surfaced to the caller and never retried automatically.
* Computation errors abort only the affected employee's payroll entry.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


class CafeCoreError(Exception):
    """Base exception for all café core errors."""

    code: str = "CAFE_CORE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(CafeCoreError):
    """Malformed input or a business rule rejected the request."""

    code: str = "VALIDATION_ERROR"


class InvalidShiftTimesError(ValidationError):
    """Shift or break times are inconsistent."""

    code: str = "INVALID_SHIFT_TIMES"

    def __init__(self, start: datetime | None, end: datetime | None, reason: str):
        self.start = start
        self.end = end
        self.reason = reason
        super().__init__(f"Invalid times {start} -> {end}: {reason}")


class InsufficientNoticeError(ValidationError):
    """The request was made inside the advance-notice window."""

    code: str = "INSUFFICIENT_NOTICE"

    def __init__(self, starts_on: date, earliest_allowed: date, min_notice_days: int):
        self.starts_on = starts_on
        self.earliest_allowed = earliest_allowed
        self.min_notice_days = min_notice_days
        super().__init__(
            f"Requests need {min_notice_days} days notice: "
            f"{starts_on} is before {earliest_allowed}"
        )


class SelfClaimError(ValidationError):
    """An employee tried to claim or pick up their own shift."""

    code: str = "SELF_CLAIM"

    def __init__(self, request_id: UUID, employee_id: UUID):
        self.request_id = request_id
        self.employee_id = employee_id
        super().__init__(
            f"Employee {employee_id} cannot take their own shift (request {request_id})"
        )


class InactiveEmployeeError(ValidationError):
    """Employee is inactive or does not belong to the required branch."""

    code: str = "INACTIVE_EMPLOYEE"

    def __init__(self, employee_id: UUID, reason: str):
        self.employee_id = employee_id
        self.reason = reason
        super().__init__(f"Employee {employee_id} not eligible: {reason}")


class InvalidTransitionError(ValidationError):
    """The requested action is not legal from the record's current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, current_state: str, action: str):
        self.workflow = workflow
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Action '{action}' is not allowed from state '{current_state}' "
            f"in workflow '{workflow}'"
        )


class TimeOffOverlapError(ValidationError):
    """Approving would overlap an already approved time-off request."""

    code: str = "TIME_OFF_OVERLAP"

    def __init__(
        self,
        request_id: UUID,
        conflicting_request_id: UUID,
        start_date: date,
        end_date: date,
    ):
        self.request_id = request_id
        self.conflicting_request_id = conflicting_request_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Time off {request_id} ({start_date} to {end_date}) overlaps "
            f"approved request {conflicting_request_id}"
        )


class PeriodNotOpenError(ValidationError):
    """Payroll operation requires an open period."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, period_id: UUID, status: str):
        self.period_id = period_id
        self.status = status
        super().__init__(f"Payroll period {period_id} is {status}, not open")


class PeriodOverlapError(ValidationError):
    """New payroll period overlaps an existing period of the branch."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, branch_id: UUID, start_date: date, end_date: date, existing_id: UUID):
        self.branch_id = branch_id
        self.start_date = start_date
        self.end_date = end_date
        self.existing_id = existing_id
        super().__init__(
            f"Period {start_date} to {end_date} overlaps period {existing_id} "
            f"of branch {branch_id}"
        )


class NegativeNetPayError(ValidationError):
    """Deductions exceed gross pay; net pay is never clamped."""

    code: str = "NEGATIVE_NET_PAY"

    def __init__(
        self,
        employee_id: UUID,
        period_id: UUID,
        gross_pay: Decimal,
        total_deductions: Decimal,
    ):
        self.employee_id = employee_id
        self.period_id = period_id
        self.gross_pay = gross_pay
        self.total_deductions = total_deductions
        super().__init__(
            f"Net pay for employee {employee_id} in period {period_id} would be "
            f"negative: gross {gross_pay}, deductions {total_deductions}"
        )


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(CafeCoreError):
    """The acting user is not allowed to perform the action."""

    code: str = "NOT_AUTHORIZED"

    def __init__(self, actor_id: UUID, action: str, reason: str):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {action}: {reason}")


# =============================================================================
# Conflict
# =============================================================================


class ConflictError(CafeCoreError):
    """The request lost a race or collides with existing state."""

    code: str = "CONFLICT"


class StaleStateError(ConflictError):
    """A conditional transition found the record no longer in the expected state."""

    code: str = "STALE_STATE"

    def __init__(
        self,
        entity: str,
        entity_id: UUID,
        expected: tuple[str, ...],
        actual: str | None,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.expected = expected
        self.actual_status = actual
        super().__init__(
            f"{entity} {entity_id} is '{actual}', expected one of {list(expected)}"
        )


class ActiveRequestExistsError(ConflictError):
    """The shift already has an active trade or drop request."""

    code: str = "ACTIVE_REQUEST_EXISTS"

    def __init__(self, request_kind: str, shift_id: UUID):
        self.request_kind = request_kind
        self.shift_id = shift_id
        super().__init__(f"Shift {shift_id} already has an active {request_kind} request")


class OpenPeriodExistsError(ConflictError):
    """The branch already has an open payroll period."""

    code: str = "OPEN_PERIOD_EXISTS"

    def __init__(self, branch_id: UUID):
        self.branch_id = branch_id
        super().__init__(f"Branch {branch_id} already has an open payroll period")


class PayrollRunInProgressError(ConflictError):
    """Another payroll run holds the (branch, period) lock."""

    code: str = "PAYROLL_RUN_IN_PROGRESS"

    def __init__(self, branch_id: UUID, period_id: UUID, timeout_seconds: float):
        self.branch_id = branch_id
        self.period_id = period_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Payroll run for branch {branch_id} period {period_id} still in "
            f"progress after {timeout_seconds}s"
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(CafeCoreError):
    """A referenced record does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "record"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class BranchNotFoundError(NotFoundError):
    code: str = "BRANCH_NOT_FOUND"
    entity: str = "Branch"


class EmployeeNotFoundError(NotFoundError):
    code: str = "EMPLOYEE_NOT_FOUND"
    entity: str = "Employee"


class ShiftNotFoundError(NotFoundError):
    code: str = "SHIFT_NOT_FOUND"
    entity: str = "Shift"


class BreakNotFoundError(NotFoundError):
    code: str = "BREAK_NOT_FOUND"
    entity: str = "Break"


class TradeNotFoundError(NotFoundError):
    code: str = "TRADE_NOT_FOUND"
    entity: str = "Shift trade"


class DropNotFoundError(NotFoundError):
    code: str = "DROP_NOT_FOUND"
    entity: str = "Shift drop"


class TimeOffNotFoundError(NotFoundError):
    code: str = "TIME_OFF_NOT_FOUND"
    entity: str = "Time-off request"


class PeriodNotFoundError(NotFoundError):
    code: str = "PERIOD_NOT_FOUND"
    entity: str = "Payroll period"


class PayrollEntryNotFoundError(NotFoundError):
    code: str = "PAYROLL_ENTRY_NOT_FOUND"
    entity: str = "Payroll entry"


# =============================================================================
# Computation
# =============================================================================


class ComputationError(CafeCoreError):
    """A payroll computation could not produce a value."""

    code: str = "COMPUTATION_ERROR"


class BracketGapError(ComputationError):
    """No deduction bracket covers the salary."""

    code: str = "BRACKET_GAP"

    def __init__(self, deduction_type: str, salary: Decimal, as_of: date | None = None):
        self.deduction_type = deduction_type
        self.salary = salary
        self.as_of = as_of
        super().__init__(
            f"bracket gap: no {deduction_type} bracket covers salary {salary}"
            + (f" as of {as_of}" if as_of is not None else "")
        )


class AmbiguousBracketError(ComputationError):
    """More than one deduction bracket covers the salary."""

    code: str = "AMBIGUOUS_BRACKET"

    def __init__(self, deduction_type: str, salary: Decimal, matches: int):
        self.deduction_type = deduction_type
        self.salary = salary
        self.matches = matches
        super().__init__(
            f"{matches} {deduction_type} brackets cover salary {salary}"
        )


class BracketTableError(ComputationError):
    """A bracket table failed load-time validation."""

    code: str = "BRACKET_TABLE_INVALID"

    def __init__(self, deduction_type: str, reason: str):
        self.deduction_type = deduction_type
        self.reason = reason
        super().__init__(f"Invalid {deduction_type} bracket table: {reason}")


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(CafeCoreError):
    """Configuration could not be parsed or failed validation."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = list(errors)
        super().__init__(f"Invalid configuration in {source}: " + "; ".join(errors))
