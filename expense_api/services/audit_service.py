"""Audit logging service: records request state changes."""

from typing import Optional
from datetime import date, datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.models.audit_log import AuditLog
from expense_api.models.spend_request import SpendRequest
from expense_api.services.authorization import Principal

logger = structlog.get_logger()

SNAPSHOT_FIELDS = (
    "status",
    "is_paid",
    "rejection_reason",
    "approved_by",
    "rejected_by",
    "total_cents",
)


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def snapshot(request: SpendRequest) -> dict:
    """The audited subset of a request's state."""
    return {name: _jsonable(getattr(request, name)) for name in SNAPSHOT_FIELDS}


def _compute_changed_fields(
    before: Optional[dict], after: Optional[dict]
) -> Optional[list[str]]:
    """Diff two state dicts and return list of changed field names."""
    if not before or not after:
        return None
    changed = []
    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed or None


async def create_audit_log(
    session: AsyncSession,
    actor: Principal,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID,
    before_state: Optional[dict] = None,
    after_state: Optional[dict] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Uses session.flush(); the caller owns the transaction.
    """
    changed_fields = _compute_changed_fields(before_state, after_state)
    bound = structlog.contextvars.get_contextvars()

    audit = AuditLog(
        actor_id=actor.id,
        actor_role=actor.role.value,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        before_state=before_state,
        after_state=after_state,
        changed_fields=changed_fields,
        request_id=bound.get("request_id"),
        created_at=datetime.utcnow(),
    )
    session.add(audit)
    await session.flush()

    logger.info(
        "audit_log_created",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=actor.id,
    )
    return audit
