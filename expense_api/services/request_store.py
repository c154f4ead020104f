"""
Request store: canonical reads and writes for requests, items and receipts.

All functions use the caller's session (no commit). get_db() auto-commits.

Every read is bounded by ``read_timeout``; exceeding it raises
``Timeout``. The underlying query is abandoned by the caller, not rolled
back, so a timeout means "unknown outcome".
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Optional, TypeVar

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.config import settings
from expense_api.errors import NotFound, Timeout
from expense_api.models.lookup import Category, CostCenter
from expense_api.models.receipt import Receipt
from expense_api.models.spend_request import RequestItem, SpendRequest

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RequestFilters:
    status: Optional[str] = None
    search: Optional[str] = None
    kind: Optional[str] = None
    category_id: Optional[str] = None
    cost_center_id: Optional[str] = None
    submitted_from: Optional[date] = None
    submitted_to: Optional[date] = None
    submitted_by: Optional[str] = None


@dataclass
class RequestDetail:
    request: SpendRequest
    items: list[RequestItem] = field(default_factory=list)
    receipts: list[Receipt] = field(default_factory=list)


def parse_id(value: Any, entity: str) -> uuid.UUID:
    """Coerce an opaque id; anything unparseable cannot exist."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise NotFound(f"{entity} {value} not found")


class RequestStore:
    def __init__(self, session: AsyncSession, read_timeout: Optional[float] = None):
        self.session = session
        self.read_timeout = (
            settings.READ_TIMEOUT_SECONDS if read_timeout is None else read_timeout
        )

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.read_timeout)
        except asyncio.TimeoutError:
            logger.warning("store_read_timeout", what=what, timeout=self.read_timeout)
            raise Timeout(f"Timed out after {self.read_timeout:g}s loading {what}")

    # ---------- requests ----------

    async def get(self, request_id: Any) -> SpendRequest:
        rid = parse_id(request_id, "Request")
        request = await self._bounded(self._load_request(rid), "request")
        if request is None:
            raise NotFound(f"Request {request_id} not found")
        return request

    async def _load_request(self, rid: uuid.UUID) -> Optional[SpendRequest]:
        result = await self.session.execute(
            select(SpendRequest)
            .where(SpendRequest.id == rid)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_detail(self, request_id: Any) -> RequestDetail:
        rid = parse_id(request_id, "Request")
        detail = await self._bounded(self._load_detail(rid), "request detail")
        if detail is None:
            raise NotFound(f"Request {request_id} not found")
        return detail

    async def _load_detail(self, rid: uuid.UUID) -> Optional[RequestDetail]:
        request = await self._load_request(rid)
        if request is None:
            return None
        return RequestDetail(
            request=request,
            items=await self._items_for(rid),
            receipts=await self._receipts_for(rid),
        )

    async def _items_for(self, rid: uuid.UUID) -> list[RequestItem]:
        result = await self.session.execute(
            select(RequestItem)
            .where(RequestItem.request_id == rid)
            .order_by(RequestItem.created_at, RequestItem.id)
        )
        return list(result.scalars().all())

    async def _receipts_for(self, rid: uuid.UUID) -> list[Receipt]:
        result = await self.session.execute(
            select(Receipt)
            .where(Receipt.request_id == rid)
            .order_by(Receipt.created_at, Receipt.id)
        )
        return list(result.scalars().all())

    async def find(
        self, filters: RequestFilters, page: int = 1, limit: int = 20
    ) -> tuple[list[SpendRequest], int]:
        return await self._bounded(self._list(filters, page, limit), "request list")

    async def _list(
        self, filters: RequestFilters, page: int, limit: int
    ) -> tuple[list[SpendRequest], int]:
        conditions = []
        if filters.status:
            conditions.append(SpendRequest.status == filters.status)
        if filters.kind:
            conditions.append(SpendRequest.kind == filters.kind)
        if filters.search:
            term = f"%{filters.search.strip()}%"
            conditions.append(
                or_(
                    SpendRequest.title.ilike(term),
                    SpendRequest.description.ilike(term),
                )
            )
        if filters.category_id:
            conditions.append(
                SpendRequest.category_id == parse_id(filters.category_id, "Category")
            )
        if filters.cost_center_id:
            conditions.append(
                SpendRequest.cost_center_id
                == parse_id(filters.cost_center_id, "Cost center")
            )
        if filters.submitted_from:
            conditions.append(
                SpendRequest.created_at >= datetime.combine(filters.submitted_from, time.min)
            )
        if filters.submitted_to:
            # inclusive of the whole end day
            end = datetime.combine(filters.submitted_to + timedelta(days=1), time.min)
            conditions.append(SpendRequest.created_at < end)
        if filters.submitted_by:
            conditions.append(SpendRequest.submitted_by == filters.submitted_by)

        count_q = select(func.count(SpendRequest.id)).where(*conditions)
        total = (await self.session.execute(count_q)).scalar() or 0

        result = await self.session.execute(
            select(SpendRequest)
            .where(*conditions)
            .order_by(SpendRequest.created_at.desc(), SpendRequest.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def insert(self, request: SpendRequest) -> SpendRequest:
        self.session.add(request)
        await self.session.flush()
        await self.session.refresh(request)
        return request

    async def conditional_update(
        self,
        request_id: uuid.UUID,
        expected_status: str,
        values: dict,
        expected_paid: Optional[bool] = None,
    ) -> bool:
        """
        UPDATE ... WHERE id = :id AND status = :expected.

        Returns False when no row matched, i.e. another actor already moved
        the request away from ``expected_status``.
        """
        stmt = (
            update(SpendRequest)
            .where(
                SpendRequest.id == request_id,
                SpendRequest.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if expected_paid is not None:
            stmt = stmt.where(SpendRequest.is_paid == expected_paid)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, request: SpendRequest, expected_status: str) -> Optional[list[str]]:
        """
        Delete a request and cascade to its items and receipts.

        Returns the storage paths of the removed receipts, or None if the
        request's status no longer matched ``expected_status``.
        """
        rid = request.id
        paths = [r.storage_path for r in await self.receipts_for(rid)]

        result = await self.session.execute(
            delete(SpendRequest)
            .where(SpendRequest.id == rid, SpendRequest.status == expected_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        # No-ops where the database already cascaded.
        items_result = await self.session.execute(
            delete(RequestItem)
            .where(RequestItem.request_id == rid)
            .execution_options(synchronize_session=False)
        )
        receipts_result = await self.session.execute(
            delete(Receipt)
            .where(Receipt.request_id == rid)
            .execution_options(synchronize_session=False)
        )
        self.session.expunge(request)
        logger.info(
            "request_rows_deleted",
            request_id=str(rid),
            items=max(items_result.rowcount, 0),
            receipts=max(receipts_result.rowcount, 0),
        )
        return paths

    async def refresh(self, request: SpendRequest) -> SpendRequest:
        await self._bounded(self.session.refresh(request), "request")
        return request

    # ---------- children ----------

    async def _lock_parent(self, request_id: uuid.UUID) -> None:
        """SELECT ... FOR UPDATE on the parent; a concurrent delete waits for us."""
        result = await self._bounded(
            self.session.execute(
                select(SpendRequest.id)
                .where(SpendRequest.id == request_id)
                .with_for_update()
            ),
            "request",
        )
        if result.scalar_one_or_none() is None:
            raise NotFound(f"Request {request_id} not found")

    async def _insert_child(self, child, what: str) -> None:
        await self._lock_parent(child.request_id)
        self.session.add(child)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # SQLite has no row locks; the FK still catches a parent deleted in between
            if "foreign key" not in str(e.orig).lower():
                raise
            logger.warning(
                "child_insert_parent_gone", request_id=str(child.request_id), what=what
            )
            raise NotFound(f"Request {child.request_id} not found") from e

    # ---------- items ----------

    async def get_item(self, request_id: uuid.UUID, item_id: Any) -> RequestItem:
        iid = parse_id(item_id, "Item")
        result = await self._bounded(
            self.session.execute(
                select(RequestItem).where(
                    RequestItem.id == iid, RequestItem.request_id == request_id
                )
            ),
            "item",
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFound(f"Item {item_id} not found on request {request_id}")
        return item

    async def add_item(self, item: RequestItem) -> RequestItem:
        await self._insert_child(item, "item")
        await self._recompute_total(item.request_id)
        return item

    async def remove_item(self, item: RequestItem) -> None:
        await self.session.delete(item)
        await self.session.flush()
        await self._recompute_total(item.request_id)

    async def _recompute_total(self, request_id: uuid.UUID) -> None:
        subtotal = (
            select(
                func.coalesce(
                    func.sum(RequestItem.quantity * RequestItem.unit_price_cents), 0
                )
            )
            .where(RequestItem.request_id == request_id)
            .scalar_subquery()
        )
        result = await self.session.execute(
            update(SpendRequest)
            .where(SpendRequest.id == request_id)
            .values(total_cents=subtotal)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound(f"Request {request_id} not found")

    async def items_for(self, request_id: uuid.UUID) -> list[RequestItem]:
        return await self._bounded(self._items_for(request_id), "items")

    # ---------- receipts ----------

    async def get_receipt(self, receipt_id: Any) -> Receipt:
        rid = parse_id(receipt_id, "Receipt")
        receipt = await self._bounded(self._load_receipt(rid), "receipt")
        if receipt is None:
            raise NotFound(f"Receipt {receipt_id} not found")
        return receipt

    async def _load_receipt(self, rid: uuid.UUID) -> Optional[Receipt]:
        result = await self.session.execute(select(Receipt).where(Receipt.id == rid))
        return result.scalar_one_or_none()

    async def add_receipt(self, receipt: Receipt) -> Receipt:
        await self._insert_child(receipt, "receipt")
        return receipt

    async def receipts_for(self, request_id: uuid.UUID) -> list[Receipt]:
        return await self._bounded(self._receipts_for(request_id), "receipts")

    # ---------- reference data ----------

    async def _scalars(self, stmt, what: str) -> list:
        result = await self._bounded(self.session.execute(stmt), what)
        return list(result.scalars().all())

    async def list_categories(self) -> list[Category]:
        return await self._scalars(
            select(Category).where(Category.is_active == True).order_by(Category.name),  # noqa: E712
            "categories",
        )

    async def list_cost_centers(self) -> list[CostCenter]:
        return await self._scalars(
            select(CostCenter)
            .where(CostCenter.is_active == True)  # noqa: E712
            .order_by(CostCenter.name),
            "cost centers",
        )

    async def category_exists(self, category_id: uuid.UUID) -> bool:
        result = await self._bounded(
            self.session.execute(
                select(func.count(Category.id)).where(
                    Category.id == category_id, Category.is_active == True  # noqa: E712
                )
            ),
            "category",
        )
        return bool(result.scalar())

    async def cost_center_exists(self, cost_center_id: uuid.UUID) -> bool:
        result = await self._bounded(
            self.session.execute(
                select(func.count(CostCenter.id)).where(
                    CostCenter.id == cost_center_id, CostCenter.is_active == True  # noqa: E712
                )
            ),
            "cost center",
        )
        return bool(result.scalar())
