import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    BigInteger,
    Integer,
    Boolean,
    Date,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from expense_api.database import Base

REQUEST_KINDS = ("expense", "purchase_order")
REQUEST_STATUSES = ("pending", "approved", "rejected")


class SpendRequest(Base):
    __tablename__ = "spend_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    purpose: Mapped[Optional[str]] = mapped_column(String(100))
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id")
    )
    cost_center_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cost_centers.id")
    )
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64))
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64))
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_due_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        CheckConstraint(
            "kind IN ('expense','purchase_order')", name="chk_request_kind"
        ),
        CheckConstraint(
            "status IN ('pending','approved','rejected')", name="chk_request_status"
        ),
        CheckConstraint(
            "status <> 'rejected' OR rejection_reason IS NOT NULL",
            name="chk_request_rejection_reason",
        ),
        CheckConstraint(
            "is_paid = false OR status = 'approved'", name="chk_request_paid_approved"
        ),
        CheckConstraint("total_cents >= 0", name="chk_request_total"),
        Index("idx_requests_status", "status"),
        Index("idx_requests_submitter", "submitted_by"),
        Index("idx_requests_created", "created_at"),
    )

    @property
    def is_item_backed(self) -> bool:
        return self.kind == "purchase_order"


class RequestItem(Base):
    __tablename__ = "request_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("spend_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="chk_item_qty"),
        CheckConstraint("unit_price_cents >= 0", name="chk_item_price"),
        Index("idx_items_request", "request_id"),
    )

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents
