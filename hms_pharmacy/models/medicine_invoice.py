# hms_pharmacy/models/medicine_invoice.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric, JSON,
    ForeignKey, Text, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from hms_pharmacy.db.base import Base

Money = Numeric(12, 2)
Pct = Numeric(5, 2)


class PaymentMode(str, enum.Enum):
    CASH = "cash"
    UPI = "upi"
    CARD = "card"
    NET_BANKING = "net_banking"
    INSURANCE = "insurance"
    OTHER = "other"


# -------------------------
# Sales
# -------------------------
class MedicineInvoice(Base):
    """Created once, never edited in place; corrections go through returns."""
    __tablename__ = "medicine_invoices"
    __table_args__ = (
        UniqueConstraint("hospital_id", "invoice_number", name="uq_medicine_invoices_number"),
        Index("ix_medicine_invoices_hospital_date", "hospital_id", "invoice_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    sold_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False)

    subtotal = Column(Money, nullable=False, default=Decimal("0"))
    discount_amount = Column(Money, nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0"))
    total_amount = Column(Money, nullable=False, default=Decimal("0"))
    # total_amount rounded to the rupee unless round-off was turned off
    round_off_amount = Column(Money, nullable=False, default=Decimal("0"))
    grand_total = Column(Money, nullable=False, default=Decimal("0"))

    # {"cash": 100.00, "upi": 50.00}; empty when paid in a single mode
    payment_breakup = Column(JSON, nullable=True)
    paid_amount = Column(Money, nullable=False, default=Decimal("0"))
    payment_mode = Column(String(30), nullable=False, default=PaymentMode.CASH.value)
    is_paid = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    patient = relationship("Patient")
    items = relationship("MedicineInvoiceItem",
                         back_populates="invoice",
                         cascade="all, delete-orphan",
                         order_by="MedicineInvoiceItem.id")
    returns = relationship("MedicineInvoiceReturn",
                           back_populates="invoice",
                           order_by="MedicineInvoiceReturn.id")

    @property
    def patient_name(self):
        return self.patient.name if self.patient else None


class MedicineInvoiceItem(Base):
    """Amounts are snapshots taken at sale time."""
    __tablename__ = "medicine_invoice_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_medicine_invoice_items_qty_pos"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("medicine_invoices.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)

    # first allocation; NULL when sold from legacy stock
    batch_no = Column(String(100), nullable=True)
    expiry_date = Column(Date, nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    discount_pct = Column(Pct, nullable=False, default=Decimal("0"))
    tax_pct = Column(Pct, nullable=False, default=Decimal("0"))

    line_subtotal = Column(Money, nullable=False)
    line_discount = Column(Money, nullable=False, default=Decimal("0"))
    line_tax = Column(Money, nullable=False, default=Decimal("0"))
    line_total = Column(Money, nullable=False)

    cgst_pct = Column(Pct, nullable=False, default=Decimal("0"))
    sgst_pct = Column(Pct, nullable=False, default=Decimal("0"))
    cgst_amount = Column(Money, nullable=False, default=Decimal("0"))
    sgst_amount = Column(Money, nullable=False, default=Decimal("0"))

    is_restricted_drug = Column(Boolean, nullable=False, default=False)
    prescriber_doctor_name = Column(String(255), nullable=True)

    invoice = relationship("MedicineInvoice", back_populates="items")
    medication = relationship("Medication")

    @property
    def medication_name(self):
        return self.medication.name if self.medication else None

    @property
    def taxable_amount(self) -> Decimal:
        return Decimal(self.line_subtotal or 0) - Decimal(self.line_discount or 0)


# -------------------------
# Sales returns (credit notes)
# -------------------------
class MedicineInvoiceReturn(Base):
    __tablename__ = "medicine_invoice_returns"
    __table_args__ = (
        UniqueConstraint("hospital_id", "return_number", name="uq_medicine_invoice_returns_number"),
        UniqueConstraint("invoice_id", "request_key", name="uq_medicine_invoice_returns_request"),
        Index("ix_medicine_invoice_returns_hospital_date", "hospital_id", "return_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("medicine_invoices.id"), nullable=False, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    return_number = Column(String(50), nullable=False)
    return_date = Column(Date, nullable=False)
    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    # trimmed + lowercased client request id
    request_key = Column(String(100), nullable=True)

    subtotal = Column(Money, nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0"))
    total_amount = Column(Money, nullable=False, default=Decimal("0"))

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoice = relationship("MedicineInvoice", back_populates="returns")
    items = relationship("MedicineInvoiceReturnItem",
                         back_populates="invoice_return",
                         cascade="all, delete-orphan",
                         order_by="MedicineInvoiceReturnItem.id")


class MedicineInvoiceReturnItem(Base):
    __tablename__ = "medicine_invoice_return_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_medicine_invoice_return_items_qty_pos"),
    )

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("medicine_invoice_returns.id"), nullable=False, index=True)
    invoice_item_id = Column(Integer, ForeignKey("medicine_invoice_items.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False)
    batch_no = Column(String(100), nullable=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    tax_pct = Column(Pct, nullable=False, default=Decimal("0"))

    # line_subtotal is the taxable value (after the original discount)
    line_subtotal = Column(Money, nullable=False)
    line_tax = Column(Money, nullable=False, default=Decimal("0"))
    line_total = Column(Money, nullable=False)

    invoice_return = relationship("MedicineInvoiceReturn", back_populates="items")
    invoice_item = relationship("MedicineInvoiceItem")
    medication = relationship("Medication")
