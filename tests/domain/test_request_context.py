"""Authorization checks carried by RequestContext."""

from uuid import uuid4

import pytest

from cafe_kernel.context import RequestContext, Role
from cafe_kernel.exceptions import AuthorizationError


@pytest.fixture
def branch_id():
    return uuid4()


class TestRequireManager:
    def test_employee_is_rejected(self, branch_id):
        ctx = RequestContext.for_actor(uuid4(), Role.EMPLOYEE, branch_id)
        with pytest.raises(AuthorizationError) as exc_info:
            ctx.require_manager("resolve_drop", branch_id)
        assert exc_info.value.action == "resolve_drop"
        assert exc_info.value.code == "NOT_AUTHORIZED"

    def test_manager_of_branch_passes(self, branch_id):
        RequestContext.for_actor(uuid4(), Role.MANAGER, branch_id).require_manager("x", branch_id)

    def test_manager_of_other_branch_is_rejected(self, branch_id):
        ctx = RequestContext.for_actor(uuid4(), Role.MANAGER, uuid4())
        with pytest.raises(AuthorizationError, match="another branch"):
            ctx.require_manager("approve_time_off", branch_id)

    def test_admin_spans_branches(self, branch_id):
        RequestContext.for_actor(uuid4(), Role.ADMIN, uuid4()).require_manager("x", branch_id)


class TestRequireActor:
    def test_self_passes(self):
        actor = uuid4()
        RequestContext(actor_id=actor).require_actor(actor, "offer_trade")

    def test_other_employee_is_rejected(self):
        with pytest.raises(AuthorizationError):
            RequestContext(actor_id=uuid4()).require_actor(uuid4(), "offer_trade")

    def test_manager_allowed_only_when_requested(self):
        ctx = RequestContext(actor_id=uuid4(), role=Role.MANAGER)
        ctx.require_actor(uuid4(), "claim_trade", allow_manager=True)
        with pytest.raises(AuthorizationError):
            ctx.require_actor(uuid4(), "withdraw_trade")


def test_for_actor_assigns_a_correlation_id():
    first = RequestContext.for_actor(uuid4())
    second = RequestContext.for_actor(first.actor_id)
    assert first.correlation_id
    assert first.correlation_id != second.correlation_id
    assert first.role is Role.EMPLOYEE
