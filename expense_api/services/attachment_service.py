"""
Attachment manager: receipt files in the blob store.

Receipts are written under ``receipts/<request_id>/<uuid>.<ext>`` and are
only ever exposed through a freshly signed, read-only URL whose lifetime is
RECEIPT_URL_TTL_SECONDS. Expiry is enforced by the blob store itself.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

import structlog

from expense_api.config import settings
from expense_api.errors import AttachmentUnavailable, ValidationError
from expense_api.models.receipt import Receipt
from expense_api.models.spend_request import SpendRequest
from expense_api.services.request_store import RequestStore
from expense_api.services.storage import r2_client

logger = structlog.get_logger()

ALLOWED_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


@dataclass
class ReceiptUpload:
    file_name: str
    mime_type: str
    content: bytes


@dataclass
class SignedReceiptUrl:
    receipt_id: str
    url: str
    expires_at: datetime
    file_name: str
    mime_type: str


class AttachmentManager:
    def __init__(
        self,
        store: RequestStore,
        blob_store=None,
        ttl_seconds: Optional[int] = None,
        max_size_bytes: Optional[int] = None,
    ):
        self.store = store
        self.blob_store = blob_store or r2_client
        self.ttl_seconds = ttl_seconds or settings.RECEIPT_URL_TTL_SECONDS
        self.max_size_bytes = max_size_bytes or settings.MAX_RECEIPT_SIZE_BYTES

    def validate(self, upload: ReceiptUpload) -> None:
        if not upload.file_name or not upload.file_name.strip():
            raise ValidationError("Receipt file name is required")
        if upload.mime_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                f"Unsupported file type: {upload.mime_type}. "
                f"Allowed: {sorted(ALLOWED_CONTENT_TYPES)}"
            )
        if not upload.content:
            raise ValidationError("Receipt file is empty")
        if len(upload.content) > self.max_size_bytes:
            raise ValidationError(
                f"File too large. Max size: {self.max_size_bytes // (1024 * 1024)} MB"
            )

    @staticmethod
    def storage_path_for(request_id: uuid.UUID, upload: ReceiptUpload) -> str:
        ext = ALLOWED_CONTENT_TYPES[upload.mime_type]
        return f"receipts/{request_id}/{uuid.uuid4()}.{ext}"

    async def upload(
        self, request: SpendRequest, upload: ReceiptUpload, uploaded_by: str
    ) -> Receipt:
        self.validate(upload)
        key = self.storage_path_for(request.id, upload)

        try:
            await asyncio.to_thread(
                self.blob_store.put, key, upload.content, upload.mime_type
            )
        except Exception as e:
            logger.error("receipt_upload_failed", request_id=str(request.id), error=str(e))
            raise AttachmentUnavailable("Failed to upload receipt to storage") from e

        receipt = Receipt(
            request_id=request.id,
            file_name=upload.file_name.strip(),
            mime_type=upload.mime_type,
            size_bytes=len(upload.content),
            storage_path=key,
            uploaded_by=uploaded_by,
        )
        try:
            await self.store.add_receipt(receipt)
        except Exception:
            await self.discard([key])
            raise
        logger.info(
            "receipt_uploaded",
            request_id=str(request.id),
            receipt_id=str(receipt.id),
            size=len(upload.content),
        )
        return receipt

    async def view_url(
        self, receipt: Receipt, now: Optional[datetime] = None
    ) -> SignedReceiptUrl:
        issued_at = now or datetime.utcnow()
        try:
            url = await asyncio.to_thread(
                self.blob_store.signed_url, receipt.storage_path, self.ttl_seconds
            )
        except Exception as e:
            logger.error("receipt_url_failed", receipt_id=str(receipt.id), error=str(e))
            raise AttachmentUnavailable("Receipt is unavailable") from e

        return SignedReceiptUrl(
            receipt_id=str(receipt.id),
            url=url,
            expires_at=issued_at + timedelta(seconds=self.ttl_seconds),
            file_name=receipt.file_name,
            mime_type=receipt.mime_type,
        )

    async def discard(self, storage_paths: Iterable[str]) -> int:
        """
        Remove blobs that no committed row points at: those of a deleted
        request, or one whose receipt row never made it. Failures are logged.
        """
        removed = 0
        for key in storage_paths:
            try:
                await asyncio.to_thread(self.blob_store.delete, key)
                removed += 1
            except Exception as e:
                logger.warning("receipt_blob_cleanup_failed", key=key, error=str(e))
        return removed
