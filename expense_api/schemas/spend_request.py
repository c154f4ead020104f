from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from expense_api.schemas.receipt import ReceiptResponse


class RequestCreate(BaseModel):
    kind: Literal["expense", "purchase_order"]
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    purpose: Optional[str] = Field(None, max_length=100)
    # Expenses only; purchase order totals come from their items.
    amount_cents: Optional[int] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    category_id: Optional[str] = None
    cost_center_id: Optional[str] = None
    payment_due_date: Optional[date] = None


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., ge=1, le=999999)
    unit_price_cents: int = Field(..., ge=0)


class RejectBody(BaseModel):
    reason: str = Field("", max_length=1000)


class PaymentBody(BaseModel):
    paid: bool = True


class ItemResponse(BaseModel):
    id: str
    name: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int


class SpendRequestResponse(BaseModel):
    id: str
    kind: str
    title: str
    description: Optional[str] = None
    purpose: Optional[str] = None
    category_id: Optional[str] = None
    cost_center_id: Optional[str] = None
    submitted_by: str
    status: str
    is_paid: bool
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    total_cents: int
    currency: str
    payment_due_date: Optional[str] = None
    created_at: str
    updated_at: str
    decided_at: Optional[str] = None
    paid_at: Optional[str] = None
    items: List[ItemResponse] = []
    receipts: List[ReceiptResponse] = []
