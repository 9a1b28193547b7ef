# hms_pharmacy/schemas/medication.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

# ---------- Medications ----------


class MedicationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    generic_name: Optional[str] = ""
    category: Optional[str] = ""
    hsn_code: Optional[str] = ""
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    purchase_price: Decimal = Field(Decimal("0"), ge=0)
    gst_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    reorder_level: int = Field(0, ge=0)
    is_restricted_drug: bool = False
    schedule_category: Optional[str] = ""

    @field_validator("name", "generic_name", "category", "hsn_code", "schedule_category")
    @classmethod
    def _trim(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class MedicationCreate(MedicationBase):
    hospital_id: Optional[int] = None  # super_admin only
    opening_stock: int = Field(0, ge=0)
    batch_no: Optional[str] = None
    expiry_date: Optional[date] = None
    mfg_date: Optional[date] = None


class MedicationUpdate(BaseModel):
    """Master fields only; stock moves through /stock, purchases and sales."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    generic_name: Optional[str] = None
    category: Optional[str] = None
    hsn_code: Optional[str] = None
    unit_price: Optional[Decimal] = Field(None, ge=0)
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    reorder_level: Optional[int] = Field(None, ge=0)
    is_restricted_drug: Optional[bool] = None
    schedule_category: Optional[str] = None
    is_active: Optional[bool] = None


class MedicationOut(MedicationBase):
    id: int
    hospital_id: int
    stock_quantity: int
    is_active: bool
    is_low_stock: bool
    is_schedule_h: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- Stock ----------


class StockAdjustIn(BaseModel):
    quantity: int = Field(..., gt=0)
    operation: Literal["add", "subtract"]
    batch_no: Optional[str] = None
    expiry_date: Optional[date] = None  # only used when `add` creates a new batch
    reason: Optional[str] = ""

    @field_validator("reason")
    @classmethod
    def _trim(cls, v: Optional[str]) -> str:
        return (v or "").strip()


class BatchOut(BaseModel):
    id: int
    medication_id: int
    batch_no: str
    mfg_date: Optional[date] = None
    expiry_date: date
    purchase_date: Optional[date] = None
    quantity_on_hand: int
    unit_cost: Decimal
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerEntryOut(BaseModel):
    id: int
    medication_id: int
    batch_id: Optional[int] = None
    entry_date: date
    entry_type: str
    quantity_in: int
    quantity_out: int
    balance_after: int
    reference_type: Optional[str] = ""
    reference_id: Optional[int] = None
    notes: Optional[str] = None
    created_by_user_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StockPositionOut(BaseModel):
    medication_id: int
    stock_quantity: int
    batched_quantity: int
    legacy_quantity: int
    ledger_balance: int
    batches_within_aggregate: bool
    is_consistent: bool


class MedicationDetailOut(MedicationOut):
    batches: List[BatchOut] = Field(default_factory=list)
