"""
Approval state machine.

    pending ──approve──▶ approved ──mark_paid──▶ approved, is_paid
       │
       └────reject────▶ rejected

approved and rejected never return to pending, and is_paid only goes from
false to true. A transition is planned against the loaded record and then
committed with a conditional update on the status seen at load time; if
another actor got there first the update matches no row and Conflict is
raised. Nothing is written when planning fails.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from expense_api.errors import Conflict, InvalidTransition
from expense_api.models.spend_request import SpendRequest
from expense_api.services.authorization import Action, Principal, ensure_allowed
from expense_api.services.request_store import RequestStore

logger = structlog.get_logger()

# action -> statuses the request may be in when the action starts
SOURCE_STATUSES: dict[Action, tuple[str, ...]] = {
    Action.APPROVE: ("pending",),
    Action.REJECT: ("pending",),
    Action.MARK_PAID: ("approved",),
    Action.DELETE: ("pending", "approved"),
}


@dataclass
class Transition:
    action: Action
    from_status: str
    values: dict = field(default_factory=dict)
    expected_paid: Optional[bool] = None


def _require_source(request: SpendRequest, action: Action) -> str:
    if request.status not in SOURCE_STATUSES[action]:
        raise InvalidTransition(
            f"Cannot {action.value.replace('_', ' ')} a request that is {request.status}"
        )
    return request.status


def plan_approve(
    request: SpendRequest, principal: Principal, now: Optional[datetime] = None
) -> Transition:
    ensure_allowed(principal, Action.APPROVE, request)
    from_status = _require_source(request, Action.APPROVE)
    return Transition(
        action=Action.APPROVE,
        from_status=from_status,
        values={
            "status": "approved",
            "approved_by": principal.id,
            "rejected_by": None,
            "rejection_reason": None,
            "is_paid": False,
            "decided_at": now or datetime.utcnow(),
        },
    )


def plan_reject(
    request: SpendRequest,
    principal: Principal,
    reason: Optional[str],
    now: Optional[datetime] = None,
) -> Transition:
    ensure_allowed(principal, Action.REJECT, request)
    from_status = _require_source(request, Action.REJECT)
    reason = (reason or "").strip()
    if not reason:
        raise InvalidTransition(
            "A rejection reason is required", code="REJECTION_REASON_REQUIRED"
        )
    return Transition(
        action=Action.REJECT,
        from_status=from_status,
        values={
            "status": "rejected",
            "rejected_by": principal.id,
            "rejection_reason": reason,
            "is_paid": False,
            "decided_at": now or datetime.utcnow(),
        },
    )


def plan_mark_paid(
    request: SpendRequest,
    principal: Principal,
    paid: bool = True,
    now: Optional[datetime] = None,
) -> Transition:
    ensure_allowed(principal, Action.MARK_PAID, request)
    from_status = _require_source(request, Action.MARK_PAID)
    if not paid:
        raise InvalidTransition(
            "Payment cannot be reverted once recorded", code="PAYMENT_IRREVERSIBLE"
        )
    if request.is_paid:
        raise InvalidTransition("Request is already marked as paid")
    return Transition(
        action=Action.MARK_PAID,
        from_status=from_status,
        values={"is_paid": True, "paid_at": now or datetime.utcnow()},
        expected_paid=False,
    )


def plan_delete(request: SpendRequest, principal: Principal) -> Transition:
    ensure_allowed(principal, Action.DELETE, request)
    return Transition(
        action=Action.DELETE,
        from_status=_require_source(request, Action.DELETE),
    )


async def commit_transition(
    store: RequestStore, request: SpendRequest, transition: Transition
) -> SpendRequest:
    """Apply a planned status transition. Raises Conflict if the race was lost."""
    applied = await store.conditional_update(
        request.id,
        transition.from_status,
        transition.values,
        expected_paid=transition.expected_paid,
    )
    if not applied:
        logger.warning(
            "transition_conflict",
            request_id=str(request.id),
            action=transition.action.value,
            expected_status=transition.from_status,
        )
        raise Conflict(
            f"Request {request.id} was changed by someone else; reload and try again"
        )

    request = await store.refresh(request)
    logger.info(
        "transition_applied",
        request_id=str(request.id),
        action=transition.action.value,
        from_status=transition.from_status,
        to_status=request.status,
        is_paid=request.is_paid,
    )
    return request
