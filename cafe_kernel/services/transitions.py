"""
Conditional state transitions (``cafe_kernel.services.transitions``).

Responsibility:
    Apply a workflow action to a persisted record with a single conditional
    UPDATE::

        UPDATE <table> SET status = :to, ...
         WHERE id = :id AND status IN (:legal_sources)

    The row count tells the caller whether it won.  Two requests racing for
    the same pending record both issue the UPDATE; the database serializes
    them and the second matches zero rows.

Architecture position:
    Kernel > Services.  Flush-level helper; the calling module service owns
    commit/rollback.

Invariants enforced:
    - A transition is applied only from a state the workflow allows for the
      action.  Zero affected rows is a lost race, reported as
      ``StaleStateError`` (a ``ConflictError``), never silently ignored.
    - The in-session instance is refreshed afterwards, so DTOs built from it
      reflect the committed values.

Failure modes:
    - NotFoundError subclass (``not_found``) if the record does not exist.
    - StaleStateError if the record exists but is no longer in a legal
      source state.
"""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cafe_kernel.db.base import Base
from cafe_kernel.domain.workflow import Workflow
from cafe_kernel.exceptions import NotFoundError, StaleStateError
from cafe_kernel.logging_config import get_logger

logger = get_logger("services.transitions")

ModelType = TypeVar("ModelType", bound=Base)


def apply_transition(
    session: Session,
    model: type[ModelType],
    record_id: UUID,
    workflow: Workflow,
    action: str,
    not_found: type[NotFoundError],
    values: dict[str, Any] | None = None,
) -> ModelType:
    """Move ``record_id`` through ``action`` if it is still in a legal state.

    Returns the refreshed ORM instance.
    """
    sources = workflow.sources_for(action)
    target = workflow.target_of(action)

    stmt = (
        update(model)
        .where(model.id == record_id, model.status.in_(sources))
        .values(status=target, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)

    if result.rowcount != 1:
        actual = session.execute(
            select(model.status).where(model.id == record_id)
        ).scalar_one_or_none()
        if actual is None:
            raise not_found(record_id)
        logger.warning(
            "transition_conflict",
            extra={
                "workflow": workflow.name,
                "record_id": str(record_id),
                "action": action,
                "expected_states": list(sources),
                "actual_state": actual,
            },
        )
        raise StaleStateError(workflow.name, record_id, sources, actual)

    instance = session.get(model, record_id, populate_existing=True)
    logger.info(
        "transition_applied",
        extra={
            "workflow": workflow.name,
            "record_id": str(record_id),
            "action": action,
            "to_state": target,
        },
    )
    return instance
