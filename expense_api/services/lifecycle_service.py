"""
Lifecycle façade: the only entry point the HTTP layer uses.

Every operation loads current state, checks the authorization policy, hands
off to the state machine or the attachment manager, persists through the
request store and returns the updated record or raises a LifecycleError.
Nothing here retries: an approve repeated after success reports
InvalidTransition, and Conflict/Timeout are left to the caller.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.config import settings
from expense_api.errors import Conflict, ValidationError
from expense_api.models.lookup import Category, CostCenter
from expense_api.models.receipt import Receipt
from expense_api.models.spend_request import RequestItem, SpendRequest
from expense_api.schemas.spend_request import RequestCreate
from expense_api.services import approval_service
from expense_api.services.attachment_service import (
    AttachmentManager,
    ReceiptUpload,
    SignedReceiptUrl,
)
from expense_api.services.audit_service import create_audit_log, snapshot
from expense_api.services.authorization import (
    Action,
    Principal,
    Role,
    ensure_allowed,
)
from expense_api.services.request_store import (
    RequestDetail,
    RequestFilters,
    RequestStore,
    parse_id,
)

logger = structlog.get_logger()

ENTITY_TYPE = "REQUEST"


@dataclass
class DeletedRequest:
    request_id: str
    storage_paths: list[str]


class LifecycleService:
    def __init__(
        self,
        session: AsyncSession,
        blob_store=None,
        read_timeout: Optional[float] = None,
        url_ttl_seconds: Optional[int] = None,
    ):
        self.session = session
        self.store = RequestStore(session, read_timeout=read_timeout)
        self.attachments = AttachmentManager(
            self.store, blob_store=blob_store, ttl_seconds=url_ttl_seconds
        )

    async def _audit(
        self,
        principal: Principal,
        action: str,
        entity_id,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
    ) -> None:
        await create_audit_log(
            self.session,
            actor=principal,
            action=action,
            entity_type=ENTITY_TYPE,
            entity_id=entity_id,
            before_state=before,
            after_state=after,
        )

    # ---------- create / read ----------

    async def create_request(
        self, principal: Principal, data: RequestCreate
    ) -> RequestDetail:
        title = data.title.strip()
        if not title:
            raise ValidationError("Title is required")

        if data.kind == "expense":
            if data.amount_cents is None:
                raise ValidationError("Expenses need an amount")
            total_cents = data.amount_cents
        else:
            if data.amount_cents is not None:
                raise ValidationError(
                    "Purchase order totals are derived from their items"
                )
            total_cents = 0

        category_id = cost_center_id = None
        if data.category_id:
            category_id = parse_id(data.category_id, "Category")
            if not await self.store.category_exists(category_id):
                raise ValidationError(f"Unknown category {data.category_id}")
        if data.cost_center_id:
            cost_center_id = parse_id(data.cost_center_id, "Cost center")
            if not await self.store.cost_center_exists(cost_center_id):
                raise ValidationError(f"Unknown cost center {data.cost_center_id}")

        request = SpendRequest(
            kind=data.kind,
            title=title,
            description=data.description,
            purpose=data.purpose,
            category_id=category_id,
            cost_center_id=cost_center_id,
            submitted_by=principal.id,
            status="pending",
            is_paid=False,
            total_cents=total_cents,
            currency=(data.currency or settings.DEFAULT_CURRENCY).upper(),
            payment_due_date=data.payment_due_date,
        )
        request = await self.store.insert(request)
        await self._audit(principal, "REQUEST_CREATED", request.id, after=snapshot(request))
        logger.info(
            "request_created",
            request_id=str(request.id),
            kind=request.kind,
            submitted_by=principal.id,
        )
        return RequestDetail(request=request)

    async def list_requests(
        self,
        principal: Principal,
        filters: Optional[RequestFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SpendRequest], int]:
        filters = filters or RequestFilters()
        if principal.role == Role.USER:
            # users only ever see their own requests
            filters = replace(filters, submitted_by=principal.id)
        return await self.store.find(filters, page=page, limit=limit)

    async def get_request(self, principal: Principal, request_id: Any) -> RequestDetail:
        detail = await self.store.get_detail(request_id)
        ensure_allowed(principal, Action.VIEW, detail.request)
        return detail

    # ---------- items ----------

    async def add_item(
        self,
        principal: Principal,
        request_id: Any,
        name: str,
        quantity: int,
        unit_price_cents: int,
    ) -> RequestDetail:
        request = await self.store.get(request_id)
        ensure_allowed(principal, Action.ADD_ITEM, request)
        if not request.is_item_backed:
            raise ValidationError("Items can only be added to purchase orders")
        if not name or not name.strip():
            raise ValidationError("Item name is required")
        if quantity is None or quantity < 1:
            raise ValidationError("Item quantity must be at least 1")
        if unit_price_cents is None or unit_price_cents < 0:
            raise ValidationError("Item unit price cannot be negative")

        before = snapshot(request)
        item = await self.store.add_item(
            RequestItem(
                request_id=request.id,
                name=name.strip(),
                quantity=quantity,
                unit_price_cents=unit_price_cents,
            )
        )
        request = await self.store.refresh(request)
        await self._audit(principal, "ITEM_ADDED", request.id, before, snapshot(request))
        logger.info(
            "item_added",
            request_id=str(request.id),
            item_id=str(item.id),
            total_price_cents=item.total_price_cents,
        )
        return await self.store.get_detail(request.id)

    async def remove_item(
        self, principal: Principal, request_id: Any, item_id: Any
    ) -> RequestDetail:
        request = await self.store.get(request_id)
        ensure_allowed(principal, Action.REMOVE_ITEM, request)
        item = await self.store.get_item(request.id, item_id)

        before = snapshot(request)
        await self.store.remove_item(item)
        request = await self.store.refresh(request)
        await self._audit(principal, "ITEM_REMOVED", request.id, before, snapshot(request))
        logger.info("item_removed", request_id=str(request.id), item_id=str(item_id))
        return await self.store.get_detail(request.id)

    # ---------- receipts ----------

    async def upload_receipt(
        self, principal: Principal, request_id: Any, upload: ReceiptUpload
    ) -> Receipt:
        request = await self.store.get(request_id)
        ensure_allowed(principal, Action.UPLOAD_RECEIPT, request)
        receipt = await self.attachments.upload(request, upload, uploaded_by=principal.id)
        try:
            await self._audit(
                principal,
                "RECEIPT_UPLOADED",
                request.id,
                after={"receipt_id": str(receipt.id), "file_name": receipt.file_name},
            )
        except Exception:
            await self.attachments.discard([receipt.storage_path])
            raise
        return receipt

    async def get_receipt_view_url(
        self, principal: Principal, receipt_id: Any
    ) -> SignedReceiptUrl:
        receipt = await self.store.get_receipt(receipt_id)
        request = await self.store.get(receipt.request_id)
        ensure_allowed(principal, Action.VIEW, request)
        return await self.attachments.view_url(receipt)

    # ---------- transitions ----------

    async def _transition(
        self, principal: Principal, request: SpendRequest, transition, audit_action: str
    ) -> RequestDetail:
        before = snapshot(request)
        request = await approval_service.commit_transition(self.store, request, transition)
        await self._audit(principal, audit_action, request.id, before, snapshot(request))
        return await self.store.get_detail(request.id)

    async def approve(self, principal: Principal, request_id: Any) -> RequestDetail:
        request = await self.store.get(request_id)
        transition = approval_service.plan_approve(request, principal)
        return await self._transition(principal, request, transition, "REQUEST_APPROVED")

    async def reject(
        self, principal: Principal, request_id: Any, reason: Optional[str]
    ) -> RequestDetail:
        request = await self.store.get(request_id)
        transition = approval_service.plan_reject(request, principal, reason)
        return await self._transition(principal, request, transition, "REQUEST_REJECTED")

    async def mark_paid(
        self, principal: Principal, request_id: Any, paid: bool = True
    ) -> RequestDetail:
        request = await self.store.get(request_id)
        transition = approval_service.plan_mark_paid(request, principal, paid)
        return await self._transition(principal, request, transition, "REQUEST_PAID")

    async def delete_request(self, principal: Principal, request_id: Any) -> DeletedRequest:
        """
        Delete a request with its items and receipt rows.

        The receipt blobs are returned rather than removed here so the caller
        can discard them once the deletion is committed.
        """
        request = await self.store.get(request_id)
        transition = approval_service.plan_delete(request, principal)
        before = snapshot(request)
        rid = request.id

        paths = await self.store.delete(request, expected_status=transition.from_status)
        if paths is None:
            logger.warning("delete_conflict", request_id=str(rid))
            raise Conflict(
                f"Request {rid} was changed by someone else; reload and try again"
            )

        await self._audit(principal, "REQUEST_DELETED", rid, before=before)
        logger.info("request_deleted", request_id=str(rid), receipts=len(paths))
        return DeletedRequest(request_id=str(rid), storage_paths=paths)

    # ---------- reference data ----------

    async def list_categories(self) -> list[Category]:
        return await self.store.list_categories()

    async def list_cost_centers(self) -> list[CostCenter]:
        return await self.store.list_cost_centers()
