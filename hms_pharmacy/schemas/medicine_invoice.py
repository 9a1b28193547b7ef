# hms_pharmacy/schemas/medicine_invoice.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from hms_pharmacy.models.medicine_invoice import PaymentMode

# ---------- Invoice ----------


def _check_breakup(v):
    for mode, amount in (v or {}).items():
        if amount is not None and amount < 0:
            raise ValueError(f"payment_breakup.{mode.value} must be >= 0")
    return v


class InvoiceItemIn(BaseModel):
    medication_id: int
    # whole units; checked in the service so the error names the medication
    quantity: Decimal
    unit_price: Optional[Decimal] = Field(None, ge=0)
    discount_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    tax_pct: Optional[Decimal] = Field(None, ge=0, le=100)
    batch_no: Optional[str] = None
    # required when the medication is Schedule H
    prescriber_doctor_name: Optional[str] = Field(None, max_length=255)

    @field_validator("batch_no", "prescriber_doctor_name")
    @classmethod
    def _trim(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class InvoiceCreate(BaseModel):
    hospital_id: Optional[int] = None  # super_admin only
    patient_id: Optional[int] = None
    invoice_date: Optional[date] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    # None: paid only when a split breakup covers the grand total
    is_paid: Optional[bool] = None
    apply_round_off: bool = True
    payment_breakup: Optional[Dict[PaymentMode, Decimal]] = None
    notes: Optional[str] = None
    items: List[InvoiceItemIn] = Field(default_factory=list)

    @field_validator("payment_breakup")
    @classmethod
    def _non_negative(cls, v):
        return _check_breakup(v)


class MarkPaidIn(BaseModel):
    is_paid: bool = True
    payment_mode: Optional[PaymentMode] = None
    payment_breakup: Optional[Dict[PaymentMode, Decimal]] = None

    @field_validator("payment_breakup")
    @classmethod
    def _non_negative(cls, v):
        return _check_breakup(v)


class InvoiceItemOut(BaseModel):
    id: int
    medication_id: int
    medication_name: Optional[str] = None
    batch_no: Optional[str] = None
    expiry_date: Optional[date] = None
    quantity: int
    unit_price: Decimal
    discount_pct: Decimal
    tax_pct: Decimal
    line_subtotal: Decimal
    line_discount: Decimal
    line_tax: Decimal
    line_total: Decimal
    cgst_pct: Decimal
    sgst_pct: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    is_restricted_drug: bool = False
    prescriber_doctor_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(BaseModel):
    id: int
    hospital_id: int
    patient_id: Optional[int] = None
    patient_name: Optional[str] = None
    sold_by_user_id: Optional[int] = None
    invoice_number: str
    invoice_date: date
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    round_off_amount: Decimal
    grand_total: Decimal
    payment_mode: str
    payment_breakup: Optional[Dict[str, Decimal]] = None
    paid_amount: Decimal
    is_paid: bool
    notes: Optional[str] = None
    created_at: datetime
    items: List[InvoiceItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ---------- Returns ----------


class ReturnItemIn(BaseModel):
    invoice_item_id: int
    # validated in the service so the error names the offending line
    quantity: Decimal


class ReturnCreate(BaseModel):
    items: List[ReturnItemIn] = Field(default_factory=list)
    request_id: Optional[str] = Field(
        None,
        max_length=100,
        validation_alias=AliasChoices("request_id", "client_txn_id", "requestId", "clientTxnId"),
    )
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    return_date: Optional[date] = None


class ReturnItemOut(BaseModel):
    id: int
    invoice_item_id: int
    medication_id: int
    batch_no: Optional[str] = None
    quantity: int
    unit_price: Decimal
    tax_pct: Decimal
    line_subtotal: Decimal
    line_tax: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReturnOut(BaseModel):
    id: int
    hospital_id: int
    invoice_id: int
    return_number: str
    return_date: date
    reason: Optional[str] = None
    notes: Optional[str] = None
    request_key: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    created_at: datetime
    items: List[ReturnItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
