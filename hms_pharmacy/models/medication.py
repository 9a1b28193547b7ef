# hms_pharmacy/models/medication.py
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


class Medication(Base):
    """
    Medication master for one hospital.

    stock_quantity is the cached aggregate: sum of active batch
    quantity_on_hand plus any legacy (pre-batch) stock. Every change to it
    happens in the same transaction as the matching ledger entry.
    """
    __tablename__ = "medications"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_medications_stock_nonneg"),
        Index("ix_medications_hospital_name", "hospital_id", "name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    generic_name = Column(String(255), default="")
    category = Column(String(100), default="")
    hsn_code = Column(String(50), default="")

    unit_price = Column(Money, nullable=False, default=Decimal("0"))
    purchase_price = Column(Money, nullable=False, default=Decimal("0"))
    gst_rate = Column(Pct, nullable=False, default=Decimal("0"))

    stock_quantity = Column(Integer, nullable=False, default=0)
    reorder_level = Column(Integer, nullable=False, default=0)

    # Schedule H/H1/X; schedule_category like "schedule_h1" also marks it restricted
    is_restricted_drug = Column(Boolean, nullable=False, default=False)
    schedule_category = Column(String(50), default="")

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    batches = relationship("MedicationBatch", back_populates="medication", order_by="MedicationBatch.id")

    @property
    def is_low_stock(self) -> bool:
        return int(self.stock_quantity or 0) <= int(self.reorder_level or 0)

    @property
    def is_schedule_h(self) -> bool:
        category = (self.schedule_category or "").strip().lower()
        return bool(self.is_restricted_drug) or category.startswith("schedule_h")


class MedicationBatch(Base):
    """
    Lot of one medication. batch_no is stored uppercased.
    Rows are never deleted; a batch at zero stays for history.
    """
    __tablename__ = "medication_batches"
    __table_args__ = (
        UniqueConstraint("medication_id", "batch_no", name="uq_medication_batches_med_batch"),
        CheckConstraint("quantity_on_hand >= 0", name="ck_medication_batches_qty_nonneg"),
        Index("ix_medication_batches_fefo", "medication_id", "expiry_date", "purchase_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)

    batch_no = Column(String(100), nullable=False)
    mfg_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=False)
    purchase_date = Column(Date, nullable=True)

    quantity_on_hand = Column(Integer, nullable=False, default=0)
    unit_cost = Column(Money, nullable=False, default=Decimal("0"))

    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    medication = relationship("Medication", back_populates="batches")
