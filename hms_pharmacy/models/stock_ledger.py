# hms_pharmacy/models/stock_ledger.py
from __future__ import annotations

import enum
from datetime import datetime, date

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, ForeignKey, Text, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship

from hms_pharmacy.db.base import Base


class StockEntryType(str, enum.Enum):
    OPENING = "opening"
    PURCHASE = "purchase"
    SALE = "sale"
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"
    MANUAL_ADD = "manual_add"
    MANUAL_SUBTRACT = "manual_subtract"


class StockLedgerEntry(Base):
    """
    Append-only stock movement log.
    balance_after is the medication aggregate right after this movement.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        CheckConstraint("quantity_in >= 0 AND quantity_out >= 0", name="ck_stock_ledger_qty_nonneg"),
        Index("ix_stock_ledger_med_date", "medication_id", "entry_date"),
        Index("ix_stock_ledger_ref", "reference_type", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)
    # NULL for legacy / manual movements
    batch_id = Column(Integer, ForeignKey("medication_batches.id"), nullable=True)

    entry_date = Column(Date, nullable=False, default=date.today)
    entry_type = Column(String(30), nullable=False)

    quantity_in = Column(Integer, nullable=False, default=0)
    quantity_out = Column(Integer, nullable=False, default=0)
    balance_after = Column(Integer, nullable=False)

    reference_type = Column(String(50), default="")
    reference_id = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    medication = relationship("Medication")
    batch = relationship("MedicationBatch")


class LedgerImmutableError(RuntimeError):
    pass


@event.listens_for(StockLedgerEntry, "before_update")
def _block_ledger_update(mapper, connection, target):
    raise LedgerImmutableError(
        f"Stock ledger entry #{target.id} is immutable; post a compensating entry instead")


@event.listens_for(StockLedgerEntry, "before_delete")
def _block_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock ledger entry #{target.id} cannot be deleted")
