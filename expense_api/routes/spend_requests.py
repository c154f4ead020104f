from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status
import structlog

from expense_api.middleware.auth import get_current_principal
from expense_api.middleware.lifecycle import get_lifecycle_service
from expense_api.models.receipt import Receipt
from expense_api.models.spend_request import RequestItem, SpendRequest
from expense_api.schemas.common import ErrorResponse, PaginatedResponse, build_pagination
from expense_api.schemas.receipt import ReceiptResponse
from expense_api.schemas.spend_request import (
    ItemCreate,
    ItemResponse,
    PaymentBody,
    RejectBody,
    RequestCreate,
    SpendRequestResponse,
)
from expense_api.services.attachment_service import ReceiptUpload
from expense_api.services.authorization import Principal
from expense_api.services.lifecycle_service import LifecycleService
from expense_api.services.request_store import RequestDetail, RequestFilters

logger = structlog.get_logger()
router = APIRouter(
    responses={
        code: {"model": ErrorResponse} for code in (403, 404, 409, 422, 502, 504)
    }
)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _item_to_response(item: RequestItem) -> ItemResponse:
    return ItemResponse(
        id=str(item.id),
        name=item.name,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        total_price_cents=item.total_price_cents,
    )


def _receipt_to_response(receipt: Receipt) -> ReceiptResponse:
    return ReceiptResponse(
        id=str(receipt.id),
        request_id=str(receipt.request_id),
        file_name=receipt.file_name,
        mime_type=receipt.mime_type,
        size_bytes=receipt.size_bytes,
        uploaded_by=receipt.uploaded_by,
        created_at=_iso(receipt.created_at) or "",
    )


def _to_response(
    request: SpendRequest,
    items: list[RequestItem] = (),
    receipts: list[Receipt] = (),
) -> SpendRequestResponse:
    return SpendRequestResponse(
        id=str(request.id),
        kind=request.kind,
        title=request.title,
        description=request.description,
        purpose=request.purpose,
        category_id=str(request.category_id) if request.category_id else None,
        cost_center_id=str(request.cost_center_id) if request.cost_center_id else None,
        submitted_by=request.submitted_by,
        status=request.status,
        is_paid=request.is_paid,
        rejection_reason=request.rejection_reason,
        approved_by=request.approved_by,
        rejected_by=request.rejected_by,
        total_cents=request.total_cents,
        currency=request.currency,
        payment_due_date=_iso(request.payment_due_date),
        created_at=_iso(request.created_at) or "",
        updated_at=_iso(request.updated_at) or "",
        decided_at=_iso(request.decided_at),
        paid_at=_iso(request.paid_at),
        items=[_item_to_response(i) for i in items],
        receipts=[_receipt_to_response(r) for r in receipts],
    )


def _detail_to_response(detail: RequestDetail) -> SpendRequestResponse:
    return _to_response(detail.request, detail.items, detail.receipts)


# ---------- LIST / GET ----------


@router.get("", response_model=PaginatedResponse[SpendRequestResponse])
async def list_requests(
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    request_status: Optional[str] = Query(
        None, alias="status", pattern="^(pending|approved|rejected)$"
    ),
    kind: Optional[str] = Query(None, pattern="^(expense|purchase_order)$"),
    search: Optional[str] = Query(None, max_length=200),
    category_id: Optional[str] = Query(None),
    cost_center_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    filters = RequestFilters(
        status=request_status,
        kind=kind,
        search=search,
        category_id=category_id,
        cost_center_id=cost_center_id,
        submitted_from=date_from,
        submitted_to=date_to,
    )
    requests, total = await service.list_requests(principal, filters, page=page, limit=limit)
    logger.info("request_list_result", count=len(requests), total=total)
    return PaginatedResponse(
        data=[_to_response(r) for r in requests],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/{request_id}", response_model=SpendRequestResponse)
async def get_request(
    request_id: str,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.get_request(principal, request_id))


# ---------- CREATE / DELETE ----------


@router.post("", response_model=SpendRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    body: RequestCreate,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.create_request(principal, body))


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    deleted = await service.delete_request(principal, request_id)
    # blobs may only go once the row deletion is durable
    await service.session.commit()
    if deleted.storage_paths:
        background_tasks.add_task(service.attachments.discard, deleted.storage_paths)


# ---------- ITEMS ----------


@router.post(
    "/{request_id}/items",
    response_model=SpendRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_item(
    request_id: str,
    body: ItemCreate,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    detail = await service.add_item(
        principal,
        request_id,
        name=body.name,
        quantity=body.quantity,
        unit_price_cents=body.unit_price_cents,
    )
    return _detail_to_response(detail)


@router.delete("/{request_id}/items/{item_id}", response_model=SpendRequestResponse)
async def remove_item(
    request_id: str,
    item_id: str,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.remove_item(principal, request_id, item_id))


# ---------- RECEIPTS ----------


@router.post(
    "/{request_id}/receipts",
    response_model=ReceiptResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_receipt(
    request_id: str,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    upload = ReceiptUpload(
        file_name=file.filename or "",
        mime_type=file.content_type or "application/octet-stream",
        content=await file.read(),
    )
    receipt = await service.upload_receipt(principal, request_id, upload)
    try:
        await service.session.commit()
    except Exception:
        await service.attachments.discard([receipt.storage_path])
        raise
    return _receipt_to_response(receipt)


# ---------- TRANSITIONS ----------


@router.post("/{request_id}/approve", response_model=SpendRequestResponse)
async def approve_request(
    request_id: str,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.approve(principal, request_id))


@router.post("/{request_id}/reject", response_model=SpendRequestResponse)
async def reject_request(
    request_id: str,
    body: RejectBody,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.reject(principal, request_id, body.reason))


@router.post("/{request_id}/payment", response_model=SpendRequestResponse)
async def mark_paid(
    request_id: str,
    body: PaymentBody,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    return _detail_to_response(await service.mark_paid(principal, request_id, body.paid))
