from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date, datetime
from decimal import Decimal

from pharmastock.services.stock_ledger import MAX_QUANTITY, MAX_UNIT_PRICE


class MedicineCreate(BaseModel):
    name: str
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Medicine name cannot be empty")
        return v


class StockCreate(BaseModel):
    expiration_date: date
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    price: Decimal = Field(ge=0, le=MAX_UNIT_PRICE, decimal_places=2)

    def to_batch_fields(self) -> dict:
        return {"expiration_date": self.expiration_date, "quantity": self.quantity, "unit_price": self.price}


class MedicineWithStockCreate(BaseModel):
    medicine: MedicineCreate
    stock: StockCreate


class EnabledUpdate(BaseModel):
    enabled: bool


class MedicineResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    manufacturer: Optional[str] = None
    enabled: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BatchResponse(BaseModel):
    id: int
    medicine_id: int
    expiration_date: date
    purchased_quantity: int
    available_quantity: int
    unit_price: Decimal
    created_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    band: Optional[str] = None

    class Config:
        from_attributes = True


class MedicineWithStockResponse(BaseModel):
    medicine: MedicineResponse
    batch: BatchResponse


class PurchaseRecord(BatchResponse):
    """One received batch in the purchase history."""
    medicine_name: Optional[str] = None
