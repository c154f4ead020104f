"""
Unit tests for expense_api/services/approval_service.py

Tests: plan_approve / plan_reject / plan_mark_paid / plan_delete preconditions,
       commit_transition conditional write and Conflict on a lost race.
"""

import uuid
from datetime import datetime
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from expense_api.errors import Conflict, Denied, InvalidTransition
from expense_api.services.approval_service import (
    commit_transition,
    plan_approve,
    plan_delete,
    plan_mark_paid,
    plan_reject,
)
from expense_api.services.authorization import Action, Principal, Role

APPROVER = Principal(id="approver-1", role=Role.APPROVER)
OWNER = Principal(id="user-1", role=Role.USER)
NOW = datetime(2026, 10, 18, 12, 0, 0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_request(
    status: str = "pending",
    is_paid: bool = False,
    submitted_by: str = "user-1",
    rejection_reason: Optional[str] = None,
):
    r = MagicMock()
    r.id = uuid.uuid4()
    r.status = status
    r.is_paid = is_paid
    r.submitted_by = submitted_by
    r.rejection_reason = rejection_reason
    return r


def _mock_store(applied: bool = True) -> AsyncMock:
    store = AsyncMock()
    store.conditional_update = AsyncMock(return_value=applied)
    store.refresh = AsyncMock(side_effect=lambda r: r)
    return store


# ---------------------------------------------------------------------------
# approve
# ---------------------------------------------------------------------------


def test_plan_approve_from_pending():
    t = plan_approve(_make_request(), APPROVER, now=NOW)

    assert t.action is Action.APPROVE
    assert t.from_status == "pending"
    assert t.values["status"] == "approved"
    assert t.values["approved_by"] == "approver-1"
    assert t.values["rejection_reason"] is None
    assert t.values["is_paid"] is False
    assert t.values["decided_at"] == NOW


@pytest.mark.parametrize("status", ["approved", "rejected"])
def test_plan_approve_rejects_decided_requests(status):
    with pytest.raises(InvalidTransition):
        plan_approve(_make_request(status=status), APPROVER)


def test_plan_approve_denied_for_user_on_own_request():
    with pytest.raises(Denied):
        plan_approve(_make_request(submitted_by=OWNER.id), OWNER)


# ---------------------------------------------------------------------------
# reject
# ---------------------------------------------------------------------------


def test_plan_reject_records_reason_and_actor():
    t = plan_reject(_make_request(), APPROVER, "  missing invoice  ", now=NOW)

    assert t.from_status == "pending"
    assert t.values["status"] == "rejected"
    assert t.values["rejected_by"] == "approver-1"
    assert t.values["rejection_reason"] == "missing invoice"
    assert t.values["is_paid"] is False


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_plan_reject_requires_reason(reason):
    with pytest.raises(InvalidTransition) as exc_info:
        plan_reject(_make_request(), APPROVER, reason)
    assert exc_info.value.code == "REJECTION_REASON_REQUIRED"


def test_plan_reject_already_approved():
    with pytest.raises(InvalidTransition):
        plan_reject(_make_request(status="approved"), APPROVER, "too late")


# ---------------------------------------------------------------------------
# mark_paid
# ---------------------------------------------------------------------------


def test_plan_mark_paid_guards_on_unpaid():
    t = plan_mark_paid(_make_request(status="approved"), APPROVER, True, now=NOW)

    assert t.from_status == "approved"
    assert t.values == {"is_paid": True, "paid_at": NOW}
    assert t.expected_paid is False


def test_plan_mark_paid_pending_is_invalid_transition():
    with pytest.raises(InvalidTransition):
        plan_mark_paid(_make_request(status="pending"), APPROVER, True)


def test_plan_mark_paid_twice_is_invalid_transition():
    with pytest.raises(InvalidTransition):
        plan_mark_paid(_make_request(status="approved", is_paid=True), APPROVER, True)


def test_plan_mark_paid_cannot_unpay():
    with pytest.raises(InvalidTransition) as exc_info:
        plan_mark_paid(_make_request(status="approved", is_paid=True), APPROVER, False)
    assert exc_info.value.code == "PAYMENT_IRREVERSIBLE"


def test_plan_mark_paid_denied_for_user():
    with pytest.raises(Denied):
        plan_mark_paid(_make_request(status="approved"), OWNER, True)


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("status", ["pending", "approved"])
def test_plan_delete_allowed_states(status):
    assert plan_delete(_make_request(status=status), APPROVER).from_status == status


def test_plan_delete_rejected_request():
    with pytest.raises(InvalidTransition):
        plan_delete(_make_request(status="rejected"), APPROVER)


# ---------------------------------------------------------------------------
# commit_transition
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_commit_transition_applies_conditional_update():
    req = _make_request()
    store = _mock_store(applied=True)
    t = plan_approve(req, APPROVER, now=NOW)

    result = await commit_transition(store, req, t)

    assert result is req
    store.conditional_update.assert_awaited_once_with(
        req.id, "pending", t.values, expected_paid=None
    )
    store.refresh.assert_awaited_once_with(req)


@pytest.mark.asyncio
async def test_commit_transition_lost_race_raises_conflict():
    req = _make_request()
    store = _mock_store(applied=False)

    with pytest.raises(Conflict) as exc_info:
        await commit_transition(store, req, plan_approve(req, APPROVER))

    assert exc_info.value.retryable is True
    store.refresh.assert_not_awaited()


@pytest.mark.asyncio
async def test_commit_mark_paid_passes_paid_guard():
    req = _make_request(status="approved")
    store = _mock_store(applied=True)

    await commit_transition(store, req, plan_mark_paid(req, APPROVER, True, now=NOW))

    store.conditional_update.assert_awaited_once_with(
        req.id, "approved", {"is_paid": True, "paid_at": NOW}, expected_paid=False
    )
