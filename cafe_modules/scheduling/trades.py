"""
Shift trades (``cafe_modules.scheduling.trades``).

Responsibility
--------------
An employee offers one of their scheduled shifts, either to a specific
colleague or to anyone in the branch.  The first eligible claimant takes
the shift; the offer can also be withdrawn by its owner or rejected by a
manager.

Lifecycle: ``pending -> approved | rejected | withdrawn`` (see
``SHIFT_TRADE_WORKFLOW``).  All three outcomes are terminal.

Invariants enforced
-------------------
* At most one pending trade per shift (``uq_shift_trade_active``).
* A claim succeeds only while the trade is pending.  The transition is a
  conditional UPDATE; when two claims race, exactly one matches a row and
  the other receives ``StaleStateError`` (a ``ConflictError``).
* The trade transition and the shift reassignment commit together or not
  at all.
* The claimant is never the owner and must be active in the shift's
  branch; a targeted trade can only be claimed by its target.

Failure modes
-------------
* ``TradeNotFoundError`` / ``ShiftNotFoundError``.
* ``SelfClaimError``, ``InactiveEmployeeError``, ``InsufficientNoticeError``,
  ``InvalidTransitionError`` (``ValidationError``).
* ``AuthorizationError`` for non-owners and non-managers.
* ``ActiveRequestExistsError`` / ``StaleStateError`` (``ConflictError``).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cafe_config.schema import CafeConfiguration
from cafe_kernel.context import RequestContext
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.events import EventSink, InMemoryEventSink, TradeClaimed, TradeClosed, TradeOffered
from cafe_kernel.exceptions import (
    ActiveRequestExistsError,
    AuthorizationError,
    InvalidTransitionError,
    SelfClaimError,
    TradeNotFoundError,
    ValidationError,
)
from cafe_kernel.logging_config import get_logger
from cafe_kernel.services.employee_service import EmployeeService
from cafe_kernel.services.transitions import apply_transition
from cafe_modules._service_helpers import check_notice, flush_active_request, owned_transaction
from cafe_modules.scheduling.ledger import TimeLedgerService
from cafe_modules.scheduling.models import ShiftInfo, ShiftStatus, ShiftTradeInfo, TradeStatus, Urgency
from cafe_modules.scheduling.orm import ShiftDropModel, ShiftModel, ShiftTradeModel
from cafe_modules.scheduling.workflows import SHIFT_TRADE_WORKFLOW

logger = get_logger("modules.scheduling.trades")


class ShiftTradeService:
    """
    Offer, claim, reject and withdraw shift trades.

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

    def offer_trade(
        self,
        shift_id: UUID,
        ctx: RequestContext,
        reason: str,
        to_employee_id: UUID | None = None,
        urgency: Urgency = Urgency.NORMAL,
    ) -> ShiftTradeInfo:
        """Offer ``shift_id`` for trade.  Only the shift owner may offer it."""
        with ctx.bind_logging():
            with owned_transaction(self._session, "offer_trade"):
                shift = self._ledger.get_shift(shift_id)
                ctx.require_actor(shift.employee_id, "offer_trade")
                if shift.status is not ShiftStatus.SCHEDULED:
                    raise InvalidTransitionError("shift", shift.status.value, "offer_trade")
                if not reason or not reason.strip():
                    raise ValidationError("A reason is required to offer a shift")
                check_notice(
                    shift.scheduled_start.date(),
                    self._clock.today(),
                    self._config.scheduling.min_notice_days,
                )
                if to_employee_id is not None:
                    if to_employee_id == shift.employee_id:
                        raise ValidationError("A shift cannot be offered to its own owner")
                    self._employees.require_active_in_branch(to_employee_id, shift.branch_id)
                ensure_no_active_request(self._session, shift_id)

                model = ShiftTradeModel(
                    shift_id=shift_id,
                    from_employee_id=shift.employee_id,
                    to_employee_id=to_employee_id,
                    reason=reason.strip(),
                    urgency=Urgency(urgency).value,
                    status=TradeStatus.PENDING.value,
                    active_shift_id=shift_id,
                    created_by_id=ctx.actor_id,
                )
                self._session.add(model)
                flush_active_request(self._session, "trade", shift_id)
                trade = model.to_dto()

            logger.info(
                "trade_offered",
                extra={
                    "trade_id": str(trade.id),
                    "shift_id": str(shift_id),
                    "to_employee_id": str(to_employee_id) if to_employee_id else None,
                    "urgency": trade.urgency.value,
                },
            )
            self._events.publish(
                TradeOffered(
                    trade_id=trade.id,
                    shift_id=shift_id,
                    from_employee_id=trade.from_employee_id,
                    to_employee_id=to_employee_id,
                )
            )
            return trade

    def claim_trade(self, trade_id: UUID, claimant_id: UUID, ctx: RequestContext) -> ShiftInfo:
        """
        Claim a pending trade for ``claimant_id`` and reassign the shift.

        Returns the reassigned shift.  Raises ``StaleStateError`` if another
        claim (or a rejection/withdrawal) got there first.
        """
        with ctx.bind_logging(employee_id=claimant_id):
            ctx.require_actor(claimant_id, "claim_trade", allow_manager=True)
            with owned_transaction(self._session, "claim_trade"):
                trade = self._get_trade_model(trade_id).to_dto()
                if claimant_id == trade.from_employee_id:
                    raise SelfClaimError(trade_id, claimant_id)
                if trade.to_employee_id is not None and trade.to_employee_id != claimant_id:
                    raise AuthorizationError(
                        claimant_id, "claim_trade", "trade is offered to another employee",
                    )
                shift = self._ledger.get_shift(trade.shift_id)
                self._ledger.require_unstarted(shift, "claim_trade")
                self._employees.require_active_in_branch(claimant_id, shift.branch_id)

                now = self._clock.now()
                apply_transition(
                    self._session,
                    ShiftTradeModel,
                    trade_id,
                    SHIFT_TRADE_WORKFLOW,
                    "claim",
                    TradeNotFoundError,
                    values={
                        "to_employee_id": claimant_id,
                        "active_shift_id": None,
                        "resolved_by_id": ctx.actor_id,
                        "resolved_at": now,
                        "updated_by_id": ctx.actor_id,
                    },
                )
                reassigned = self._ledger.reassign_shift(
                    trade.shift_id, trade.from_employee_id, claimant_id, ctx.actor_id,
                )

            logger.info(
                "trade_claimed",
                extra={
                    "trade_id": str(trade_id),
                    "shift_id": str(trade.shift_id),
                    "from_employee_id": str(trade.from_employee_id),
                    "to_employee_id": str(claimant_id),
                },
            )
            self._events.publish(
                TradeClaimed(
                    trade_id=trade_id,
                    shift_id=trade.shift_id,
                    from_employee_id=trade.from_employee_id,
                    to_employee_id=claimant_id,
                )
            )
            return reassigned

    def reject_trade(self, trade_id: UUID, ctx: RequestContext) -> ShiftTradeInfo:
        """Manager rejects a pending trade; the shift stays with its owner."""
        return self._close(trade_id, ctx, "reject")

    def withdraw_trade(self, trade_id: UUID, ctx: RequestContext) -> ShiftTradeInfo:
        """Owner withdraws a pending trade."""
        return self._close(trade_id, ctx, "withdraw")

    def get_trade(self, trade_id: UUID) -> ShiftTradeInfo:
        return self._get_trade_model(trade_id).to_dto()

    def open_trades(self, branch_id: UUID, for_employee_id: UUID | None = None) -> list[ShiftTradeInfo]:
        """Pending trades of a branch, optionally those claimable by ``for_employee_id``."""
        stmt = (
            select(ShiftTradeModel)
            .join(ShiftModel, ShiftModel.id == ShiftTradeModel.shift_id)
            .where(
                ShiftModel.branch_id == branch_id,
                ShiftTradeModel.status == TradeStatus.PENDING.value,
            )
            .order_by(ShiftModel.scheduled_start)
        )
        trades = [m.to_dto() for m in self._session.execute(stmt).scalars().all()]
        if for_employee_id is None:
            return trades
        return [
            t for t in trades
            if t.from_employee_id != for_employee_id
            and t.to_employee_id in (None, for_employee_id)
        ]

    # -------------------------------------------------------------------------

    def _close(self, trade_id: UUID, ctx: RequestContext, action: str) -> ShiftTradeInfo:
        with ctx.bind_logging():
            with owned_transaction(self._session, f"{action}_trade"):
                current = self._get_trade_model(trade_id).to_dto()
                if action == "reject":
                    shift = self._ledger.get_shift(current.shift_id)
                    ctx.require_manager("reject_trade", shift.branch_id)
                else:
                    ctx.require_actor(current.from_employee_id, "withdraw_trade")
                model = apply_transition(
                    self._session,
                    ShiftTradeModel,
                    trade_id,
                    SHIFT_TRADE_WORKFLOW,
                    action,
                    TradeNotFoundError,
                    values={
                        "active_shift_id": None,
                        "resolved_by_id": ctx.actor_id,
                        "resolved_at": self._clock.now(),
                        "updated_by_id": ctx.actor_id,
                    },
                )
                trade = model.to_dto()

            logger.info(
                "trade_closed",
                extra={"trade_id": str(trade_id), "trade_status": trade.status.value},
            )
            self._events.publish(
                TradeClosed(
                    trade_id=trade_id,
                    shift_id=trade.shift_id,
                    status=trade.status.value,
                    closed_by_id=ctx.actor_id,
                )
            )
            return trade

    def _get_trade_model(self, trade_id: UUID) -> ShiftTradeModel:
        model = self._session.get(ShiftTradeModel, trade_id)
        if model is None:
            raise TradeNotFoundError(trade_id)
        return model


def ensure_no_active_request(session: Session, shift_id: UUID) -> None:
    """Raise ``ActiveRequestExistsError`` if the shift has a pending trade or an active drop."""
    for model, kind in ((ShiftTradeModel, "trade"), (ShiftDropModel, "drop")):
        active = session.execute(
            select(model.id).where(model.active_shift_id == shift_id)
        ).first()
        if active is not None:
            raise ActiveRequestExistsError(kind, shift_id)
