# hms_pharmacy/schemas/stock_purchase.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------- Vendors ----------


class VendorCreate(BaseModel):
    hospital_id: Optional[int] = None  # super_admin only
    name: str = Field(..., min_length=1, max_length=255)
    gstin: Optional[str] = ""
    phone: Optional[str] = ""

    @field_validator("name", "gstin", "phone")
    @classmethod
    def _trim(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class VendorOut(BaseModel):
    id: int
    hospital_id: int
    name: str
    gstin: Optional[str] = ""
    phone: Optional[str] = ""
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ---------- Purchases ----------


class PurchaseCreate(BaseModel):
    hospital_id: Optional[int] = None  # super_admin only
    medication_id: int
    vendor_id: Optional[int] = None
    invoice_number: Optional[str] = ""
    purchase_date: Optional[date] = None
    # whole units; checked in the service
    quantity: Decimal
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    discount_pct: Decimal = Field(Decimal("0"), ge=0, le=100)
    tax_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    batch_no: Optional[str] = None
    mfg_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator("invoice_number", "batch_no")
    @classmethod
    def _trim(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class PurchaseOut(BaseModel):
    id: int
    hospital_id: int
    medication_id: int
    vendor_id: Optional[int] = None
    batch_id: Optional[int] = None
    invoice_number: Optional[str] = ""
    purchase_date: date
    quantity: int
    unit_cost: Decimal
    discount_pct: Decimal
    tax_pct: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PurchaseReturnCreate(BaseModel):
    quantity: Decimal
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    return_date: Optional[date] = None


class PurchaseReturnOut(BaseModel):
    id: int
    hospital_id: int
    stock_purchase_id: int
    medication_id: int
    vendor_id: Optional[int] = None
    return_number: str
    return_date: date
    quantity: int
    unit_cost: Decimal
    tax_pct: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
