"""
BaseService -- abstract base for flush-only services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write inside a transaction owned by someone else
    (the employee registry, the time ledger).  They use
    ``session.flush()`` and never ``session.commit()``.

Architecture position:
    Kernel > Services.  Module services that own a transaction boundary
    (lifecycle, payroll) compose these services and commit themselves.

Invariants enforced:
    - Flush-only: the caller owns commit/rollback, so a clock-in, a
      shift reassignment and a request transition can share one atomic
      transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
