from pydantic import BaseModel


class ReceiptResponse(BaseModel):
    """Receipt metadata; the storage path is never exposed."""

    id: str
    request_id: str
    file_name: str
    mime_type: str
    size_bytes: int
    uploaded_by: str
    created_at: str


class ReceiptUrlResponse(BaseModel):
    receipt_id: str
    url: str
    expires_at: str
    file_name: str
    mime_type: str
