"""
ShiftLifecycle facade.

One entry point over the trade, drop and time-off services, sharing a
session, configuration, clock and event sink.  Callers that only need one
workflow may use the individual services directly.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from cafe_config.schema import CafeConfiguration
from cafe_kernel.context import RequestContext
from cafe_kernel.domain.clock import Clock, SystemClock
from cafe_kernel.events import EventSink, InMemoryEventSink
from cafe_modules.scheduling.drops import ShiftDropService
from cafe_modules.scheduling.models import (
    DropDecision,
    ShiftDropInfo,
    ShiftInfo,
    ShiftTradeInfo,
    TimeOffInfo,
    TimeOffType,
    Urgency,
)
from cafe_modules.scheduling.time_off import TimeOffService
from cafe_modules.scheduling.trades import ShiftTradeService


class ShiftLifecycle:
    """Trades, drops and time off behind one object."""

    def __init__(
        self,
        session: Session,
        config: CafeConfiguration,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
    ):
        clock = clock or SystemClock(config.timezone)
        self.events = event_sink if event_sink is not None else InMemoryEventSink()
        self.trades = ShiftTradeService(session, config, clock, self.events)
        self.drops = ShiftDropService(session, config, clock, self.events)
        self.time_off = TimeOffService(session, config, clock, self.events)

    # Trades

    def offer_trade(
        self,
        shift_id: UUID,
        ctx: RequestContext,
        reason: str,
        to_employee_id: UUID | None = None,
        urgency: Urgency = Urgency.NORMAL,
    ) -> ShiftTradeInfo:
        return self.trades.offer_trade(shift_id, ctx, reason, to_employee_id, urgency)

    def claim_trade(self, trade_id: UUID, claimant_id: UUID, ctx: RequestContext) -> ShiftInfo:
        return self.trades.claim_trade(trade_id, claimant_id, ctx)

    # Drops

    def request_drop(
        self,
        shift_id: UUID,
        ctx: RequestContext,
        reason: str,
        urgency: Urgency = Urgency.NORMAL,
    ) -> ShiftDropInfo:
        return self.drops.request_drop(shift_id, ctx, reason, urgency)

    def resolve_drop(
        self,
        drop_id: UUID,
        decision: DropDecision | str,
        ctx: RequestContext,
        manager_notes: str | None = None,
    ) -> ShiftDropInfo:
        return self.drops.resolve_drop(drop_id, decision, ctx, manager_notes)

    def pickup_drop(self, drop_id: UUID, employee_id: UUID, ctx: RequestContext) -> ShiftInfo:
        return self.drops.pickup_drop(drop_id, employee_id, ctx)

    # Time off

    def request_time_off(
        self,
        employee_id: UUID,
        date_range: tuple[date, date],
        time_off_type: TimeOffType | str,
        reason: str,
        ctx: RequestContext,
    ) -> TimeOffInfo:
        start_date, end_date = date_range
        return self.time_off.request_time_off(
            employee_id, start_date, end_date, time_off_type, reason, ctx,
        )

    def approve_time_off(self, request_id: UUID, ctx: RequestContext) -> TimeOffInfo:
        return self.time_off.approve_time_off(request_id, ctx)
