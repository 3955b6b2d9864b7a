# app/models/invoices.py

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

# Largest unit_amount Stripe accepts; an invoice total becomes one price
MAX_AMOUNT_CENTS = 99_999_999
MAX_QUANTITY = 1_000_000


class InvoiceStatus(str, Enum):
    draft = "draft"
    pending = "pending"
    paid = "paid"
    overdue = "overdue"


class LineItemIn(BaseModel):
    description: str
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    unit_price_cents: int = Field(ge=0, le=MAX_AMOUNT_CENTS)


class LineItem(LineItemIn):
    id: int
    invoice_id: int

    class Config:
        from_attributes = True


class Invoice(BaseModel):
    id: int
    invoice_number: str
    customer_name: str
    customer_email: Optional[str] = None
    notes: Optional[str] = None
    total_cents: int
    status: InvoiceStatus
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    stripe_payment_link_id: Optional[str] = None
    stripe_payment_link_url: Optional[str] = None
    stripe_checkout_session_id: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    line_items: List[LineItem] = Field(default_factory=list)

    class Config:
        from_attributes = True


class InvoiceCreateIn(BaseModel):
    """
    Form-style invoice input: line items arrive as parallel arrays and
    unit prices are in major currency units (e.g. "49.99").
    """

    customer_name: str = ""
    customer_email: Optional[str] = None
    notes: Optional[str] = None
    description: List[Optional[str]] = Field(default_factory=list)
    # Raw entries; parse_line_items decides what is usable
    quantity: List[Any] = Field(default_factory=list)
    unit_price: List[Any] = Field(default_factory=list)

    @field_validator("customer_email", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class InvoiceCreateOut(BaseModel):
    invoice: Invoice
    payment_link_created: bool
    message: str


class StatusTotals(BaseModel):
    count: int = 0
    total_cents: int = 0


class DashboardStats(BaseModel):
    pending: StatusTotals = Field(default_factory=StatusTotals)
    paid: StatusTotals = Field(default_factory=StatusTotals)
    overdue: StatusTotals = Field(default_factory=StatusTotals)


class DashboardOut(BaseModel):
    stats: DashboardStats
    recent: List[Invoice]
    marked_overdue: int


class SweepOut(BaseModel):
    marked_overdue: int


class PaymentLinkRecord(BaseModel):
    product_id: str
    price_id: str
    payment_link_id: str
    payment_link_url: str
