"""
Shared helpers for module services.

Used by ``cafe_modules/*`` services that own their transaction boundary:
commit on success, rollback and re-raise on any exception.

Architecture: Modules layer.  Imports only from cafe_kernel.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cafe_kernel.exceptions import ActiveRequestExistsError, InsufficientNoticeError
from cafe_kernel.logging_config import get_logger

logger = get_logger("modules.service_helpers")


@contextmanager
def owned_transaction(session: Session, operation: str) -> Iterator[Session]:
    """Commit the session when the block completes; roll back and re-raise otherwise."""
    try:
        yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        logger.warning(
            "operation_rolled_back",
            extra={
                "operation": operation,
                "error_code": getattr(exc, "code", type(exc).__name__),
            },
        )
        raise


def flush_active_request(session: Session, request_kind: str, shift_id) -> None:
    """Flush a new trade/drop row; a unique-constraint hit means another active request exists."""
    try:
        session.flush()
    except IntegrityError as exc:
        raise ActiveRequestExistsError(request_kind, shift_id) from exc


def check_notice(starts_on: date, today: date, min_notice_days: int) -> None:
    """Raise ``InsufficientNoticeError`` unless ``starts_on`` is at least ``min_notice_days`` away."""
    earliest = today + timedelta(days=min_notice_days)
    if starts_on < earliest:
        raise InsufficientNoticeError(starts_on, earliest, min_notice_days)
