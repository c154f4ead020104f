from fastapi import APIRouter, Depends

from expense_api.middleware.auth import get_current_principal
from expense_api.middleware.lifecycle import get_lifecycle_service
from expense_api.schemas.receipt import ReceiptUrlResponse
from expense_api.services.authorization import Principal
from expense_api.services.lifecycle_service import LifecycleService

router = APIRouter()


@router.get("/{receipt_id}/url", response_model=ReceiptUrlResponse)
async def get_receipt_view_url(
    receipt_id: str,
    principal: Principal = Depends(get_current_principal),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    """Short-lived signed URL for one receipt. Do not cache past ``expires_at``."""
    signed = await service.get_receipt_view_url(principal, receipt_id)
    return ReceiptUrlResponse(
        receipt_id=signed.receipt_id,
        url=signed.url,
        expires_at=signed.expires_at.isoformat(),
        file_name=signed.file_name,
        mime_type=signed.mime_type,
    )
