"""
Shift drops (``cafe_modules.scheduling.drops``).

Responsibility
--------------
An employee asks to drop a scheduled shift.  A manager approves or rejects
the request; an approved drop is then picked up by a colleague (or assigned
to one by a manager), which reassigns the shift.  The requester or a
manager may cancel a drop that has not been picked up yet.  Managers get an
escalation list of approved drops whose shifts start soon.

Lifecycle (``SHIFT_DROP_WORKFLOW``)::

    pending --approve--> approved --pick_up/assign--> picked_up
       |                    |
       +--reject--> rejected +--cancel--> cancelled
       +--cancel--> cancelled

Invariants enforced
-------------------
* A shift has at most one active drop (pending, or approved and not picked
  up), enforced by ``uq_shift_drop_active``.
* Rejection and cancellation leave the shift assignment untouched.
* Pickup requires ``approved``; the status change is a conditional UPDATE,
  so of two simultaneous pickups exactly one wins and the other receives
  ``StaleStateError``.  The pickup and the shift reassignment are atomic.
* The picker is never the requester.

Failure modes
-------------
* ``DropNotFoundError`` / ``ShiftNotFoundError``.
* ``AuthorizationError`` when a non-manager resolves or assigns.
* ``SelfClaimError``, ``InactiveEmployeeError``, ``InsufficientNoticeError``.
* ``ActiveRequestExistsError`` / ``StaleStateError``.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_config.schema import CafeConfiguration
from cafe_kernel.context import RequestContext
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.events import DropRequested, DropResolved, EventSink, InMemoryEventSink, ShiftPickedUp
from cafe_kernel.exceptions import (
    DropNotFoundError,
    InvalidTransitionError,
    SelfClaimError,
    ValidationError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition
from cafe_modules._service_helpers import check_notice, flush_active_request, owned_transaction
from cafe_modules.scheduling.ledger import TimeLedgerService
from cafe_modules.scheduling.models import (
    DropDecision,
    DropStatus,
    ShiftDropInfo,
    ShiftInfo,
    ShiftStatus,
    Urgency,
)
from cafe_modules.scheduling.orm import ShiftDropModel, ShiftModel
from cafe_modules.scheduling.trades import ensure_no_active_request
from cafe_modules.scheduling.workflows import SHIFT_DROP_WORKFLOW

logger = get_logger("modules.scheduling.drops")


class ShiftDropService:
    """
    Request, resolve, pick up, assign and cancel shift drops.

    Transaction boundary: every public mutating method commits on success
    and rolls back on failure.  Events are published after commit.
    """

    def __init__(
        self,
        session: Session,
        config: CafeConfiguration,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock(config.timezone)
        self._events = event_sink if event_sink is not None else InMemoryEventSink()
        self._ledger = TimeLedgerService(session, config, self._clock)
        self._employees = EmployeeService(session)

    # =========================================================================
    # Request / resolve
    # =========================================================================

    def request_drop(
        self,
        shift_id: UUID,
        ctx: RequestContext,
        reason: str,
        urgency: Urgency = Urgency.NORMAL,
    ) -> ShiftDropInfo:
        """Ask to drop ``shift_id``.  Only the shift owner may ask."""
        with ctx.bind_logging():
            with owned_transaction(self._session, "request_drop"):
                shift = self._ledger.get_shift(shift_id)
                ctx.require_actor(shift.employee_id, "request_drop")
                if shift.status is not ShiftStatus.SCHEDULED:
                    raise InvalidTransitionError("shift", shift.status.value, "request_drop")
                if not reason or not reason.strip():
                    raise ValidationError("A reason is required to drop a shift")
                check_notice(
                    shift.scheduled_start.date(),
                    self._clock.today(),
                    self._config.scheduling.min_notice_days,
                )
                ensure_no_active_request(self._session, shift_id)

                model = ShiftDropModel(
                    shift_id=shift_id,
                    employee_id=shift.employee_id,
                    reason=reason.strip(),
                    urgency=Urgency(urgency).value,
                    status=DropStatus.PENDING.value,
                    active_shift_id=shift_id,
                    created_by_id=ctx.actor_id,
                )
                self._session.add(model)
                flush_active_request(self._session, "drop", shift_id)
                drop = model.to_dto()

            logger.info(
                "drop_requested",
                extra={
                    "drop_id": str(drop.id),
                    "shift_id": str(shift_id),
                    "urgency": drop.urgency.value,
                },
            )
            self._events.publish(
                DropRequested(
                    drop_id=drop.id,
                    shift_id=shift_id,
                    employee_id=drop.employee_id,
                    urgency=drop.urgency.value,
                )
            )
            return drop

    def resolve_drop(
        self,
        drop_id: UUID,
        decision: DropDecision | str,
        ctx: RequestContext,
        manager_notes: str | None = None,
    ) -> ShiftDropInfo:
        """Manager approves or rejects a pending drop.  Rejection keeps the shift with its owner."""
        try:
            decision = DropDecision(decision)
        except ValueError as exc:
            raise ValidationError(f"Unknown drop decision {decision!r}") from exc

        with ctx.bind_logging():
            with owned_transaction(self._session, "resolve_drop"):
                current = self._get_drop_model(drop_id).to_dto()
                shift = self._ledger.get_shift(current.shift_id)
                ctx.require_manager("resolve_drop", shift.branch_id)

                values = {
                    "resolved_by_id": ctx.actor_id,
                    "resolved_at": self._clock.now(),
                    "manager_notes": manager_notes,
                    "updated_by_id": ctx.actor_id,
                }
                if decision is DropDecision.REJECT:
                    values["active_shift_id"] = None
                model = apply_transition(
                    self._session,
                    ShiftDropModel,
                    drop_id,
                    SHIFT_DROP_WORKFLOW,
                    decision.value,
                    DropNotFoundError,
                    values=values,
                )
                drop = model.to_dto()

            self._log_and_publish_resolution(drop, ctx)
            return drop

    # =========================================================================
    # Pickup / assignment
    # =========================================================================

    def pickup_drop(self, drop_id: UUID, employee_id: UUID, ctx: RequestContext) -> ShiftInfo:
        """
        ``employee_id`` picks up an approved drop; the shift is reassigned to them.

        Raises ``StaleStateError`` if the drop is no longer approved (already
        picked up, cancelled, or not yet approved).
        """
        ctx.require_actor(employee_id, "pickup_drop")
        return self._take_over(drop_id, employee_id, ctx, "pick_up", assigned_by_id=None)

    def assign_drop(self, drop_id: UUID, employee_id: UUID, ctx: RequestContext) -> ShiftInfo:
        """Manager assigns an approved drop to ``employee_id``."""
        return self._take_over(drop_id, employee_id, ctx, "assign", assigned_by_id=ctx.actor_id)

    def cancel_drop(self, drop_id: UUID, ctx: RequestContext) -> ShiftDropInfo:
        """Requester or manager cancels a drop that is pending or approved."""
        with ctx.bind_logging():
            with owned_transaction(self._session, "cancel_drop"):
                current = self._get_drop_model(drop_id).to_dto()
                ctx.require_actor(current.employee_id, "cancel_drop", allow_manager=True)
                if ctx.actor_id != current.employee_id:
                    shift = self._ledger.get_shift(current.shift_id)
                    ctx.require_manager("cancel_drop", shift.branch_id)
                model = apply_transition(
                    self._session,
                    ShiftDropModel,
                    drop_id,
                    SHIFT_DROP_WORKFLOW,
                    "cancel",
                    DropNotFoundError,
                    values={
                        "active_shift_id": None,
                        "resolved_by_id": ctx.actor_id,
                        "resolved_at": self._clock.now(),
                        "updated_by_id": ctx.actor_id,
                    },
                )
                drop = model.to_dto()

            self._log_and_publish_resolution(drop, ctx)
            return drop

    # =========================================================================
    # Queries
    # =========================================================================

    def get_drop(self, drop_id: UUID) -> ShiftDropInfo:
        return self._get_drop_model(drop_id).to_dto()

    def drops_for_branch(self, branch_id: UUID, status: DropStatus) -> list[ShiftDropInfo]:
        rows = self._session.execute(
            select(ShiftDropModel)
            .join(ShiftModel, ShiftModel.id == ShiftDropModel.shift_id)
            .where(ShiftModel.branch_id == branch_id, ShiftDropModel.status == status.value)
            .order_by(ShiftModel.scheduled_start)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def available_drops(self, branch_id: UUID) -> list[ShiftDropInfo]:
        """Approved drops that can be picked up."""
        return self.drops_for_branch(branch_id, DropStatus.APPROVED)

    def unfilled_drops(self, branch_id: UUID, within_hours: int | None = None) -> list[ShiftDropInfo]:
        """Approved, unpicked drops whose shift starts within ``within_hours`` from now."""
        hours = within_hours if within_hours is not None else self._config.scheduling.escalation_hours
        now = self._clock.now()
        rows = self._session.execute(
            select(ShiftDropModel)
            .join(ShiftModel, ShiftModel.id == ShiftDropModel.shift_id)
            .where(
                ShiftModel.branch_id == branch_id,
                ShiftDropModel.status == DropStatus.APPROVED.value,
                ShiftModel.scheduled_start > now,
                ShiftModel.scheduled_start <= now + timedelta(hours=hours),
            )
            .order_by(ShiftModel.scheduled_start)
        ).scalars().all()
        drops = [r.to_dto() for r in rows]
        if drops:
            logger.warning(
                "unfilled_drops_need_escalation",
                extra={"unfilled_count": len(drops), "within_hours": hours},
            )
        return drops

    # -------------------------------------------------------------------------

    def _take_over(
        self,
        drop_id: UUID,
        employee_id: UUID,
        ctx: RequestContext,
        action: str,
        assigned_by_id: UUID | None,
    ) -> ShiftInfo:
        with ctx.bind_logging(employee_id=employee_id):
            with owned_transaction(self._session, f"{action}_drop"):
                current = self._get_drop_model(drop_id).to_dto()
                shift = self._ledger.get_shift(current.shift_id)
                if action == "assign":
                    ctx.require_manager("assign_drop", shift.branch_id)
                self._ledger.require_unstarted(shift, f"{action}_drop")
                if employee_id == current.employee_id:
                    raise SelfClaimError(drop_id, employee_id)
                self._employees.require_active_in_branch(employee_id, shift.branch_id)

                now = self._clock.now()
                apply_transition(
                    self._session,
                    ShiftDropModel,
                    drop_id,
                    SHIFT_DROP_WORKFLOW,
                    action,
                    DropNotFoundError,
                    values={
                        "active_shift_id": None,
                        "picked_up_by_id": employee_id,
                        "picked_up_at": now,
                        "updated_by_id": ctx.actor_id,
                    },
                )
                reassigned = self._ledger.reassign_shift(
                    current.shift_id, current.employee_id, employee_id, ctx.actor_id,
                )

            logger.info(
                "shift_picked_up",
                extra={
                    "drop_id": str(drop_id),
                    "shift_id": str(current.shift_id),
                    "original_employee_id": str(current.employee_id),
                    "new_employee_id": str(employee_id),
                    "assigned": assigned_by_id is not None,
                },
            )
            self._events.publish(
                ShiftPickedUp(
                    drop_id=drop_id,
                    shift_id=current.shift_id,
                    original_employee_id=current.employee_id,
                    new_employee_id=employee_id,
                    assigned_by_id=assigned_by_id,
                )
            )
            return reassigned

    def _log_and_publish_resolution(self, drop: ShiftDropInfo, ctx: RequestContext) -> None:
        logger.info(
            "drop_resolved",
            extra={"drop_id": str(drop.id), "drop_status": drop.status.value},
        )
        self._events.publish(
            DropResolved(
                drop_id=drop.id,
                shift_id=drop.shift_id,
                employee_id=drop.employee_id,
                status=drop.status.value,
                resolved_by_id=ctx.actor_id,
            )
        )

    def _get_drop_model(self, drop_id: UUID) -> ShiftDropModel:
        model = self._session.get(ShiftDropModel, drop_id)
        if model is None:
            raise DropNotFoundError(drop_id)
        return model
