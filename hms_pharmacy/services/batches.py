# hms_pharmacy/services/batches.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session

from hms_pharmacy.core.config import settings
from hms_pharmacy.core.errors import InsufficientStockError, ValidationError
from hms_pharmacy.models import Medication, MedicationBatch
from hms_pharmacy.services.money import D

logger = logging.getLogger(__name__)


@dataclass
class Allocation:
    """One slice of a sale line: `batch` is None for legacy (unbatched) stock."""
    batch: Optional[MedicationBatch]
    quantity: int

    @property
    def is_legacy(self) -> bool:
        return self.batch is None


def normalize_batch_no(batch_no: Optional[str]) -> Optional[str]:
    value = (batch_no or "").strip().upper()
    return value or None


def auto_batch_no(ref) -> str:
    return f"{settings.AUTO_BATCH_PREFIX}-{ref}".upper()


def default_expiry() -> date:
    return date.fromisoformat(settings.DEFAULT_BATCH_EXPIRY)


def fefo_batch_query(
    db: Session,
    *,
    medication_id: int,
    as_of: date,
    lock: bool = True,
) -> Query:
    """
    Sellable batches in First-Expiry-First-Out order.

    - active, quantity_on_hand > 0, expiry_date >= as_of
    - expiry ASC, purchase_date ASC (NULL purchase_date last), id ASC
    - rows locked FOR UPDATE so concurrent sales serialize on them
    """
    # Portable NULLS LAST: non-null purchase_date (0) sorts before NULL (1)
    nulls_last_expr = case(
        (MedicationBatch.purchase_date.is_(None), 1),
        else_=0,
    )

    q = (
        db.query(MedicationBatch).filter(
            MedicationBatch.medication_id == medication_id,
            MedicationBatch.is_active.is_(True),
            MedicationBatch.quantity_on_hand > 0,
            MedicationBatch.expiry_date >= as_of,
        ).order_by(
            MedicationBatch.expiry_date.asc(),
            nulls_last_expr.asc(),
            MedicationBatch.purchase_date.asc(),
            MedicationBatch.id.asc(),
        ))
    if lock:
        q = q.with_for_update()
    return q


def active_batch_quantity(db: Session, medication_id: int) -> int:
    """Sum over all active batches, expired ones included."""
    total = (db.query(func.coalesce(func.sum(MedicationBatch.quantity_on_hand), 0))
             .filter(
                 MedicationBatch.medication_id == medication_id,
                 MedicationBatch.is_active.is_(True),
             ).scalar())
    return int(total or 0)


def legacy_unbatched_quantity(db: Session, medication: Medication) -> int:
    """
    Stock that predates batch tracking: aggregate minus every active batch.

    Expired batches count as batched, so expired stock can never leak out
    through the legacy path.
    """
    legacy = int(medication.stock_quantity or 0) - active_batch_quantity(db, medication.id)
    return max(legacy, 0)


def allocate_fefo(
    batches: Iterable[MedicationBatch],
    quantity: int,
    *,
    legacy_available: int = 0,
    medication_name: str = "",
) -> List[Allocation]:
    """
    Greedy FEFO walk over `batches` (already ordered), then legacy fallback.

    Nothing is mutated unless the whole quantity is covered; on success every
    used batch has quantity_on_hand decremented in memory (the caller's
    session persists it on flush).
    """
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("Quantity must be a positive integer")

    remaining = int(quantity)
    plan: List[Allocation] = []
    batched_available = 0

    for batch in batches:
        available = int(batch.quantity_on_hand or 0)
        if available <= 0:
            continue
        batched_available += available
        if remaining <= 0:
            continue
        take = min(available, remaining)
        plan.append(Allocation(batch=batch, quantity=take))
        remaining -= take

    if remaining > 0:
        if int(legacy_available or 0) >= remaining:
            plan.append(Allocation(batch=None, quantity=remaining))
            remaining = 0
        else:
            raise InsufficientStockError(
                medication_name,
                requested=int(quantity),
                available=batched_available + max(int(legacy_available or 0), 0),
            )

    for alloc in plan:
        if alloc.batch is not None:
            adjust_batch_qty(batch=alloc.batch, delta=-alloc.quantity)
    return plan


def adjust_batch_qty(*, batch: MedicationBatch, delta: int) -> None:
    """
    Positive delta = stock in, negative delta = stock out.
    A batch reaching zero stays active; FEFO skips it by quantity.
    """
    new_qty = int(batch.quantity_on_hand or 0) + int(delta or 0)
    if new_qty < 0:
        raise InsufficientStockError(
            f"batch {batch.batch_no}",
            requested=-int(delta),
            available=int(batch.quantity_on_hand or 0),
        )
    batch.quantity_on_hand = new_qty


def find_batch(
    db: Session,
    *,
    medication_id: int,
    batch_no: Optional[str],
    lock: bool = True,
) -> Optional[MedicationBatch]:
    normalized = normalize_batch_no(batch_no)
    if not normalized:
        return None
    q = db.query(MedicationBatch).filter(
        MedicationBatch.medication_id == medication_id,
        MedicationBatch.batch_no == normalized,
    )
    if lock:
        q = q.with_for_update()
    return q.first()


def pinned_batch_allocation(
    db: Session,
    *,
    medication: Medication,
    batch_no: str,
    quantity: int,
    as_of: date,
) -> List[Allocation]:
    """Allocation drawn only from the named batch."""
    batch = find_batch(db, medication_id=medication.id, batch_no=batch_no)
    if not batch or not batch.is_active:
        raise ValidationError(
            f"Batch {normalize_batch_no(batch_no)} not found for {medication.name}",
            details={"medication_id": medication.id, "batch_no": batch_no},
        )
    if batch.expiry_date < as_of:
        raise ValidationError(
            f"Batch {batch.batch_no} of {medication.name} expired on {batch.expiry_date.isoformat()}",
            details={"medication_id": medication.id, "batch_no": batch.batch_no},
        )
    available = int(batch.quantity_on_hand or 0)
    if available < int(quantity):
        raise InsufficientStockError(
            f"{medication.name} (batch {batch.batch_no})",
            requested=int(quantity),
            available=available,
        )
    adjust_batch_qty(batch=batch, delta=-int(quantity))
    return [Allocation(batch=batch, quantity=int(quantity))]


def receive_into_batch(
    db: Session,
    *,
    medication: Medication,
    batch_no: Optional[str],
    quantity: int,
    expiry_date: Optional[date] = None,
    purchase_date: Optional[date] = None,
    mfg_date: Optional[date] = None,
    unit_cost=None,
    auto_ref=None,
    notes: Optional[str] = None,
) -> MedicationBatch:
    """
    Find-or-create the batch by normalized number and add `quantity`.
    Does not touch medication.stock_quantity.
    """
    normalized = normalize_batch_no(batch_no) or auto_batch_no(auto_ref if auto_ref is not None else medication.id)

    batch = find_batch(db, medication_id=medication.id, batch_no=normalized)
    if batch is None:
        batch = MedicationBatch(
            hospital_id=medication.hospital_id,
            medication_id=medication.id,
            batch_no=normalized,
            mfg_date=mfg_date,
            expiry_date=expiry_date or default_expiry(),
            purchase_date=purchase_date,
            quantity_on_hand=0,
            unit_cost=D(unit_cost),
            is_active=True,
            notes=notes,
        )
        db.add(batch)
        db.flush()
        logger.info("Created batch %s for medication #%s", normalized, medication.id)
    else:
        batch.is_active = True
        if expiry_date:
            batch.expiry_date = expiry_date
        if purchase_date and not batch.purchase_date:
            batch.purchase_date = purchase_date
        if unit_cost is not None:
            batch.unit_cost = D(unit_cost)

    adjust_batch_qty(batch=batch, delta=int(quantity))
    return batch
