# hms_pharmacy/services/stock_ledger.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from hms_pharmacy.models import Medication, MedicationBatch, StockEntryType, StockLedgerEntry
from hms_pharmacy.services.batches import active_batch_quantity

logger = logging.getLogger(__name__)


def record_stock_movement(
    db: Session,
    *,
    medication: Medication,
    entry_type: StockEntryType,
    quantity_in: int = 0,
    quantity_out: int = 0,
    batch: Optional[MedicationBatch] = None,
    entry_date: Optional[date] = None,
    reference_type: str = "",
    reference_id: Optional[int] = None,
    notes: str = "",
    user=None,
) -> StockLedgerEntry:
    """
    Central creator for StockLedgerEntry; always use this so audit is consistent.
    The caller updates medication.stock_quantity first: balance_after snapshots it.
    """
    entry = StockLedgerEntry(
        hospital_id=medication.hospital_id,
        medication_id=medication.id,
        batch_id=batch.id if batch is not None else None,
        entry_date=entry_date or date.today(),
        entry_type=StockEntryType(entry_type).value,
        quantity_in=int(quantity_in or 0),
        quantity_out=int(quantity_out or 0),
        balance_after=int(medication.stock_quantity or 0),
        reference_type=reference_type or "",
        reference_id=reference_id,
        notes=notes or None,
        created_by_user_id=getattr(user, "id", None),
    )
    db.add(entry)
    return entry


def list_ledger(
    db: Session,
    *,
    hospital_id: int,
    medication_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[StockLedgerEntry]:
    q = db.query(StockLedgerEntry).filter(
        StockLedgerEntry.hospital_id == hospital_id,
        StockLedgerEntry.medication_id == medication_id,
    )
    if date_from:
        q = q.filter(StockLedgerEntry.entry_date >= date_from)
    if date_to:
        q = q.filter(StockLedgerEntry.entry_date <= date_to)
    return q.order_by(StockLedgerEntry.id.asc()).all()


def ledger_balance(db: Session, medication_id: int) -> int:
    total_in, total_out = (db.query(
        func.coalesce(func.sum(StockLedgerEntry.quantity_in), 0),
        func.coalesce(func.sum(StockLedgerEntry.quantity_out), 0),
    ).filter(StockLedgerEntry.medication_id == medication_id).one())
    return int(total_in or 0) - int(total_out or 0)


def stock_position(db: Session, medication: Medication) -> Dict[str, Any]:
    """
    Cross-check of the three stock views for one medication.

    Legacy stock is derived (aggregate - batches), so the aggregate check
    is that legacy never goes negative. The ledger check only holds for
    medications whose every movement went through the ledger.
    """
    aggregate = int(medication.stock_quantity or 0)
    batched = active_batch_quantity(db, medication.id)
    legacy = aggregate - batched
    balance = ledger_balance(db, medication.id)

    return {
        "medication_id": medication.id,
        "stock_quantity": aggregate,
        "batched_quantity": batched,
        "legacy_quantity": max(legacy, 0),
        "ledger_balance": balance,
        "batches_within_aggregate": legacy >= 0,
        "is_consistent": legacy >= 0 and balance == aggregate,
    }
