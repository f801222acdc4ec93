from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal

from pharmastock.services.sale_composer import PaymentMode


class SaleLineIn(BaseModel):
    batch_id: int
    quantity: int
    discount: Optional[Decimal] = Field(None, decimal_places=2)  # percent, clamped to 0..100


class SaleCreate(BaseModel):
    customer: Optional[str] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    payment_reference: Optional[str] = None  # UTR number, kept for UPI only
    items: List[SaleLineIn] = []


class AllocationCheck(BaseModel):
    """Validate one pick against live stock and the lines already in the pending sale."""
    batch_id: int
    quantity: int
    lines: List[SaleLineIn] = []
    edit_index: Optional[int] = None  # line being edited, excluded from the allocated sum


class SaleItemRecord(BaseModel):
    id: int
    medicine_id: int
    batch_id: int
    quantity: int
    unit_price: Decimal
    expiration_date: date
    discount_percent: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class SaleRecord(BaseModel):
    id: int
    customer: Optional[str] = None
    payment_mode: str
    payment_reference: Optional[str] = None
    total_amount: Decimal
    created_at: Optional[datetime] = None
    items: List[SaleItemRecord] = []

    class Config:
        from_attributes = True
