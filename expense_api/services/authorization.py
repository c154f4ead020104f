"""
Authorization policy: one capability table, no state.

    approve, reject, delete       → approver, admin
    mark_paid                     → approver, admin; request must be approved
    add_item, remove_item,
    upload_receipt, view          → submitter, approver, admin

``evaluate`` separates a role/ownership denial from a wrong-state outcome so
callers can report ``Denied`` and ``InvalidTransition`` distinctly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from expense_api.errors import Denied, InvalidTransition


class Role(str, Enum):
    USER = "user"
    APPROVER = "approver"
    ADMIN = "admin"


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"
    MARK_PAID = "mark_paid"
    ADD_ITEM = "add_item"
    REMOVE_ITEM = "remove_item"
    UPLOAD_RECEIPT = "upload_receipt"
    VIEW = "view"


class Decision(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    WRONG_STATE = "wrong_state"


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


class RequestLike(Protocol):
    submitted_by: str
    status: str


REVIEWER_ROLES = frozenset({Role.APPROVER, Role.ADMIN})

# action -> (roles always allowed, submitter allowed, required request status)
CAPABILITIES: dict[Action, tuple[frozenset, bool, Optional[str]]] = {
    Action.APPROVE: (REVIEWER_ROLES, False, None),
    Action.REJECT: (REVIEWER_ROLES, False, None),
    Action.DELETE: (REVIEWER_ROLES, False, None),
    Action.MARK_PAID: (REVIEWER_ROLES, False, "approved"),
    Action.ADD_ITEM: (REVIEWER_ROLES, True, None),
    Action.REMOVE_ITEM: (REVIEWER_ROLES, True, None),
    Action.UPLOAD_RECEIPT: (REVIEWER_ROLES, True, None),
    Action.VIEW: (REVIEWER_ROLES, True, None),
}


def evaluate(principal: Principal, action: Action, request: RequestLike) -> Decision:
    roles, submitter_allowed, required_status = CAPABILITIES[action]

    permitted = principal.role in roles or (
        submitter_allowed and str(request.submitted_by) == str(principal.id)
    )
    if not permitted:
        return Decision.DENIED
    if required_status is not None and request.status != required_status:
        return Decision.WRONG_STATE
    return Decision.ALLOWED


def can(principal: Principal, action: Action, request: RequestLike) -> bool:
    return evaluate(principal, action, request) is Decision.ALLOWED


def ensure_allowed(principal: Principal, action: Action, request: RequestLike) -> None:
    """Raise Denied for role/ownership failures, InvalidTransition for wrong state."""
    decision = evaluate(principal, action, request)
    if decision is Decision.DENIED:
        raise Denied(
            f"Role '{principal.role.value}' cannot {action.value.replace('_', ' ')} this request"
        )
    if decision is Decision.WRONG_STATE:
        raise InvalidTransition(
            f"Cannot {action.value.replace('_', ' ')} a request that is {request.status}"
        )
