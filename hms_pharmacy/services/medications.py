# hms_pharmacy/services/medications.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from hms_pharmacy.core.errors import InsufficientStockError, NotFoundError, PharmacyError, ValidationError
from hms_pharmacy.models import Medication, MedicationBatch, StockEntryType
from hms_pharmacy.schemas.medication import MedicationCreate, MedicationUpdate, StockAdjustIn
from hms_pharmacy.services.batches import (
    adjust_batch_qty,
    find_batch,
    legacy_unbatched_quantity,
    normalize_batch_no,
    receive_into_batch,
)
from hms_pharmacy.services.money import D
from hms_pharmacy.services.stock_ledger import record_stock_movement

logger = logging.getLogger(__name__)


def get_medication(db: Session, *, hospital_id: int, medication_id: int,
                   lock: bool = False) -> Medication:
    q = db.query(Medication).filter(
        Medication.id == medication_id,
        Medication.hospital_id == hospital_id,
    )
    if lock:
        q = q.with_for_update()
    med = q.first()
    if not med:
        raise NotFoundError("Medication not found", details={"medication_id": medication_id})
    return med


def list_medications(
    db: Session,
    *,
    hospital_id: int,
    search: Optional[str] = None,
    category: Optional[str] = None,
    low_stock: bool = False,
    include_inactive: bool = False,
) -> List[Medication]:
    q = db.query(Medication).filter(Medication.hospital_id == hospital_id)
    if not include_inactive:
        q = q.filter(Medication.is_active.is_(True))
    if category:
        q = q.filter(Medication.category == category)
    if low_stock:
        q = q.filter(Medication.stock_quantity <= Medication.reorder_level)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Medication.name.ilike(like), Medication.generic_name.ilike(like)))
    return q.order_by(Medication.name.asc(), Medication.id.asc()).all()


def create_medication(db: Session, *, hospital_id: int, payload: MedicationCreate, user=None) -> Medication:
    """
    Create the master row. Opening stock lands in a batch (the given one or
    an AUTO-OPEN-<id> batch) with one `opening` ledger entry.
    """
    try:
        med = Medication(
            hospital_id=hospital_id,
            name=payload.name,
            generic_name=payload.generic_name or "",
            category=payload.category or "",
            hsn_code=payload.hsn_code or "",
            unit_price=D(payload.unit_price),
            purchase_price=D(payload.purchase_price),
            gst_rate=D(payload.gst_rate),
            reorder_level=payload.reorder_level,
            is_restricted_drug=bool(payload.is_restricted_drug),
            schedule_category=payload.schedule_category or "",
            stock_quantity=0,
            is_active=True,
        )
        db.add(med)
        db.flush()

        qty = int(payload.opening_stock or 0)
        if qty > 0:
            batch = receive_into_batch(
                db,
                medication=med,
                batch_no=payload.batch_no,
                quantity=qty,
                expiry_date=payload.expiry_date,
                mfg_date=payload.mfg_date,
                purchase_date=date.today(),
                unit_cost=payload.purchase_price,
                auto_ref=f"OPEN-{med.id}",
            )
            med.stock_quantity = qty
            record_stock_movement(
                db,
                medication=med,
                entry_type=StockEntryType.OPENING,
                quantity_in=qty,
                batch=batch,
                reference_type="medication",
                reference_id=med.id,
                notes=f"Opening stock ({batch.batch_no})",
                user=user,
            )

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(med)
    logger.info("Medication #%s created for hospital %s (opening stock %s)",
                med.id, hospital_id, med.stock_quantity)
    return med


# master columns that cannot be cleared; text columns fall back to ""
REQUIRED_MASTER_FIELDS = ("name", "unit_price", "purchase_price", "gst_rate",
                          "reorder_level", "is_restricted_drug", "is_active")
CLEARABLE_TEXT_FIELDS = ("generic_name", "category", "hsn_code", "schedule_category")


def update_medication(db: Session, *, hospital_id: int, medication_id: int,
                      payload: MedicationUpdate) -> Medication:
    data = payload.model_dump(exclude_unset=True)
    nulls = sorted(k for k in REQUIRED_MASTER_FIELDS if k in data and data[k] is None)
    if nulls:
        raise ValidationError("These fields cannot be empty: " + ", ".join(nulls),
                              details={"fields": nulls})
    if "name" in data and not data["name"].strip():
        raise ValidationError("Medication name cannot be blank", details={"fields": ["name"]})
    for field in CLEARABLE_TEXT_FIELDS:
        if field in data and data[field] is None:
            data[field] = ""
    for field in ("unit_price", "purchase_price", "gst_rate"):
        if field in data:
            data[field] = D(data[field])

    try:
        med = get_medication(db, hospital_id=hospital_id, medication_id=medication_id)
        for key, value in data.items():
            setattr(med, key, value.strip() if isinstance(value, str) else value)
        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Medication #%s update rejected (hospital %s): %s", medication_id, hospital_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Medication #%s update failed (hospital %s)", medication_id, hospital_id)
        raise

    db.refresh(med)
    return med


def deactivate_medication(db: Session, *, hospital_id: int, medication_id: int) -> Medication:
    med = get_medication(db, hospital_id=hospital_id, medication_id=medication_id)
    med.is_active = False
    db.commit()
    db.refresh(med)
    logger.info("Medication #%s deactivated (hospital %s)", med.id, hospital_id)
    return med


def list_batches(db: Session, *, hospital_id: int, medication_id: int) -> List[MedicationBatch]:
    """Full batch history, zero-quantity batches included."""
    get_medication(db, hospital_id=hospital_id, medication_id=medication_id)
    return (db.query(MedicationBatch)
            .filter(MedicationBatch.medication_id == medication_id)
            .order_by(MedicationBatch.expiry_date.asc(), MedicationBatch.id.asc())
            .all())


def _subtract_unnamed(db: Session, med: Medication, qty: int, *, reason: str, user) -> None:
    """
    Write-off without a batch: legacy stock first, then batches by earliest
    expiry (expired batches included).
    """
    legacy = legacy_unbatched_quantity(db, med)
    remaining = qty

    take_legacy = min(legacy, remaining)
    if take_legacy > 0:
        med.stock_quantity = int(med.stock_quantity) - take_legacy
        remaining -= take_legacy
        record_stock_movement(db, medication=med, entry_type=StockEntryType.MANUAL_SUBTRACT,
                              quantity_out=take_legacy, reference_type="manual_adjustment",
                              notes=reason or "Manual stock subtract (legacy stock without batch)",
                              user=user)

    if remaining <= 0:
        return

    batches = (db.query(MedicationBatch)
               .filter(MedicationBatch.medication_id == med.id,
                       MedicationBatch.is_active.is_(True),
                       MedicationBatch.quantity_on_hand > 0)
               .order_by(MedicationBatch.expiry_date.asc(), MedicationBatch.id.asc())
               .with_for_update()
               .all())
    for batch in batches:
        if remaining <= 0:
            break
        take = min(int(batch.quantity_on_hand), remaining)
        adjust_batch_qty(batch=batch, delta=-take)
        med.stock_quantity = int(med.stock_quantity) - take
        remaining -= take
        record_stock_movement(db, medication=med, entry_type=StockEntryType.MANUAL_SUBTRACT,
                              quantity_out=take, batch=batch, reference_type="manual_adjustment",
                              notes=reason or f"Manual stock subtract ({batch.batch_no})", user=user)

    if remaining > 0:
        # aggregate pre-check passed, so batches and aggregate disagree
        raise InsufficientStockError(med.name, requested=qty, available=qty - remaining)


def adjust_stock(db: Session, *, hospital_id: int, medication_id: int,
                 payload: StockAdjustIn, user=None) -> Medication:
    """
    Manual stock correction under a row lock.

    `add` with a batch_no receives into that batch (created when missing);
    `add` without one grows legacy stock. `subtract` never drives the
    aggregate or the named batch negative.
    """
    qty = int(payload.quantity)
    batch_no = normalize_batch_no(payload.batch_no)

    try:
        med = get_medication(db, hospital_id=hospital_id, medication_id=medication_id, lock=True)
        if not med.is_active:
            raise ValidationError(f"{med.name} is inactive")

        if payload.operation == "add":
            batch = None
            if batch_no:
                batch = receive_into_batch(db, medication=med, batch_no=batch_no, quantity=qty,
                                           expiry_date=payload.expiry_date, purchase_date=date.today(),
                                           unit_cost=med.purchase_price)
            med.stock_quantity = int(med.stock_quantity or 0) + qty
            record_stock_movement(
                db,
                medication=med,
                entry_type=StockEntryType.MANUAL_ADD,
                quantity_in=qty,
                batch=batch,
                reference_type="manual_adjustment",
                notes=payload.reason or "Manual stock add",
                user=user,
            )
        else:
            if int(med.stock_quantity or 0) < qty:
                raise InsufficientStockError(med.name, requested=qty, available=int(med.stock_quantity or 0))

            if batch_no:
                batch = find_batch(db, medication_id=med.id, batch_no=batch_no)
                if not batch:
                    raise ValidationError(f"Batch {batch_no} not found for {med.name}",
                                          details={"batch_no": batch_no})
                adjust_batch_qty(batch=batch, delta=-qty)
                med.stock_quantity = int(med.stock_quantity) - qty
                record_stock_movement(db, medication=med, entry_type=StockEntryType.MANUAL_SUBTRACT,
                                      quantity_out=qty, batch=batch, reference_type="manual_adjustment",
                                      notes=payload.reason or f"Manual stock subtract ({batch.batch_no})",
                                      user=user)
            else:
                _subtract_unnamed(db, med, qty, reason=payload.reason, user=user)

        db.commit()
    except InsufficientStockError as exc:
        db.rollback()
        logger.warning("Stock adjust rejected for medication #%s: %s", medication_id, exc.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(med)
    logger.info("Medication #%s stock %s %s -> %s (hospital %s)",
                med.id, payload.operation, qty, med.stock_quantity, hospital_id)
    return med

