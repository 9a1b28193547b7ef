# hms_pharmacy/models/stock_purchase.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric,
    ForeignKey, Text, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from hms_pharmacy.db.base import Base

Money = Numeric(12, 2)
Pct = Numeric(5, 2)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    gstin = Column(String(50), default="")
    phone = Column(String(50), default="")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StockPurchase(Base):
    """Supplier receipt of one medication into one batch (input tax side)."""
    __tablename__ = "stock_purchases"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_purchases_qty_pos"),
        Index("ix_stock_purchases_hospital_date", "hospital_id", "purchase_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)
    batch_id = Column(Integer, ForeignKey("medication_batches.id"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    invoice_number = Column(String(100), default="")  # supplier's bill number
    purchase_date = Column(Date, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Money, nullable=False)
    discount_pct = Column(Pct, nullable=False, default=Decimal("0"))
    tax_pct = Column(Pct, nullable=False, default=Decimal("0"))

    taxable_amount = Column(Money, nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0"))
    total_amount = Column(Money, nullable=False, default=Decimal("0"))

    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    medication = relationship("Medication")
    vendor = relationship("Vendor")
    batch = relationship("MedicationBatch")
    returns = relationship("StockPurchaseReturn",
                           back_populates="purchase",
                           order_by="StockPurchaseReturn.id")


class StockPurchaseReturn(Base):
    """Goods sent back to the supplier (debit note)."""
    __tablename__ = "stock_purchase_returns"
    __table_args__ = (
        UniqueConstraint("hospital_id", "return_number", name="uq_stock_purchase_returns_number"),
        CheckConstraint("quantity > 0", name="ck_stock_purchase_returns_qty_pos"),
        Index("ix_stock_purchase_returns_hospital_date", "hospital_id", "return_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    stock_purchase_id = Column(Integer, ForeignKey("stock_purchases.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    return_number = Column(String(50), nullable=False)
    return_date = Column(Date, nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_cost = Column(Money, nullable=False)
    tax_pct = Column(Pct, nullable=False, default=Decimal("0"))

    taxable_amount = Column(Money, nullable=False, default=Decimal("0"))
    tax_amount = Column(Money, nullable=False, default=Decimal("0"))
    total_amount = Column(Money, nullable=False, default=Decimal("0"))

    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    purchase = relationship("StockPurchase", back_populates="returns")
    medication = relationship("Medication")
