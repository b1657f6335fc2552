"""
Request context (``cafe_kernel.context``).

Responsibility
--------------
Carries the acting user's identity and role into every mutating operation
as an explicit argument.  There is no process-wide "current user"; two
concurrent requests never observe each other's identity.

Architecture position
---------------------
**Kernel** -- pure value object plus a logging bridge.  Imported by every
module service.

Failure modes
-------------
* ``AuthorizationError`` from ``require_manager`` / ``require_actor``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID, uuid4

from cafe_kernel.exceptions import AuthorizationError
from cafe_kernel.logging_config import LogContext


class Role(str, Enum):
    """Role of the acting user."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller for one request.

    ``branch_id`` is the branch the caller acts in; managers may only
    resolve requests for shifts of their own branch unless they are admins.
    """

    actor_id: UUID
    role: Role = Role.EMPLOYEE
    branch_id: UUID | None = None
    correlation_id: str | None = None

    @classmethod
    def for_actor(
        cls,
        actor_id: UUID,
        role: Role = Role.EMPLOYEE,
        branch_id: UUID | None = None,
    ) -> RequestContext:
        return cls(
            actor_id=actor_id,
            role=role,
            branch_id=branch_id,
            correlation_id=str(uuid4()),
        )

    @property
    def is_manager(self) -> bool:
        return self.role in (Role.MANAGER, Role.ADMIN)

    def require_manager(self, action: str, branch_id: UUID | None = None) -> None:
        """Raise unless the caller is a manager of ``branch_id`` (or an admin)."""
        if not self.is_manager:
            raise AuthorizationError(self.actor_id, action, "manager role required")
        if (
            self.role is Role.MANAGER
            and branch_id is not None
            and self.branch_id is not None
            and self.branch_id != branch_id
        ):
            raise AuthorizationError(
                self.actor_id, action, f"manager of another branch ({self.branch_id})"
            )

    def require_actor(self, employee_id: UUID, action: str, *, allow_manager: bool = False) -> None:
        """Raise unless the caller is ``employee_id`` (or a manager when allowed)."""
        if self.actor_id == employee_id:
            return
        if allow_manager and self.is_manager:
            return
        raise AuthorizationError(self.actor_id, action, f"not acting as {employee_id}")

    def bind_logging(self, **extra: object):
        """Bind this context (plus ``extra`` fields) to the structured log context."""
        return LogContext.bind(
            correlation_id=self.correlation_id,
            actor_id=self.actor_id,
            branch_id=self.branch_id,
            **extra,
        )
