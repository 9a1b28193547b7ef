# hms_pharmacy/services/stock_purchases.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from hms_pharmacy.core.config import settings
from hms_pharmacy.core.errors import (
    InsufficientStockError,
    NotFoundError,
    OverReturnError,
    PharmacyError,
    ValidationError,
)
from hms_pharmacy.models import (
    Medication,
    MedicationBatch,
    StockEntryType,
    StockPurchase,
    StockPurchaseReturn,
    Vendor,
)
from hms_pharmacy.schemas.stock_purchase import PurchaseCreate, PurchaseReturnCreate, VendorCreate
from hms_pharmacy.services.batches import adjust_batch_qty, receive_into_batch
from hms_pharmacy.services.medicine_invoices import ensure_hospital_scope, whole_quantity
from hms_pharmacy.services.money import D, HUNDRED, money2, prorate
from hms_pharmacy.services.number_series import next_document_number, series_key
from hms_pharmacy.services.stock_ledger import record_stock_movement

logger = logging.getLogger(__name__)

PURCHASE_REFERENCE = "stock_purchase"
PURCHASE_RETURN_REFERENCE = "stock_purchase_return"


# -------------------------
# Vendors
# -------------------------
def create_vendor(db: Session, *, hospital_id: int, payload: VendorCreate) -> Vendor:
    vendor = Vendor(hospital_id=hospital_id, name=payload.name, gstin=payload.gstin or "",
                    phone=payload.phone or "", is_active=True)
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    return vendor


def list_vendors(db: Session, *, hospital_id: int) -> List[Vendor]:
    return (db.query(Vendor)
            .filter(Vendor.hospital_id == hospital_id, Vendor.is_active.is_(True))
            .order_by(Vendor.name.asc())
            .all())


# -------------------------
# Purchases
# -------------------------
def purchase_amounts(qty: int, unit_cost, discount_pct, tax_pct):
    """Taxable = qty*cost less discount; tax on the taxable value."""
    base = money2(D(qty) * D(unit_cost))
    discount = money2(base * D(discount_pct) / HUNDRED)
    taxable = money2(base - discount)
    tax = money2(taxable * D(tax_pct) / HUNDRED)
    return taxable, tax, money2(taxable + tax)


def create_purchase(db: Session, *, hospital_id: int, payload: PurchaseCreate, user=None) -> StockPurchase:
    """Receive supplier stock into a batch, grow the aggregate, write a `purchase` entry."""
    try:
        med = (db.query(Medication)
               .filter(Medication.id == payload.medication_id)
               .with_for_update()
               .first())
        if not med or not med.is_active:
            raise ValidationError("Medication not found", details={"medication_id": payload.medication_id})
        if med.hospital_id != hospital_id:
            raise ValidationError("Medication belongs to another hospital",
                                  details={"medication_id": payload.medication_id})

        qty = whole_quantity(payload.quantity, med.name)

        vendor = None
        if payload.vendor_id:
            vendor = db.query(Vendor).filter(Vendor.id == payload.vendor_id).first()
            if not vendor:
                raise ValidationError("Vendor not found", details={"vendor_id": payload.vendor_id})
            if vendor.hospital_id != hospital_id:
                raise ValidationError("Vendor belongs to another hospital", details={"vendor_id": payload.vendor_id})

        purchase_date = payload.purchase_date or date.today()
        cost = payload.unit_cost if payload.unit_cost is not None else med.purchase_price
        tax_pct = payload.tax_pct if payload.tax_pct is not None else med.gst_rate
        taxable, tax, total = purchase_amounts(qty, cost, payload.discount_pct, tax_pct)

        purchase = StockPurchase(
            hospital_id=hospital_id,
            medication_id=med.id,
            vendor_id=vendor.id if vendor else None,
            created_by_user_id=getattr(user, "id", None),
            invoice_number=payload.invoice_number or "",
            purchase_date=purchase_date,
            quantity=qty,
            unit_cost=money2(cost),
            discount_pct=money2(payload.discount_pct),
            tax_pct=money2(tax_pct),
            taxable_amount=taxable,
            tax_amount=tax,
            total_amount=total,
            notes=payload.notes or None,
        )
        db.add(purchase)
        db.flush()

        batch = receive_into_batch(
            db,
            medication=med,
            batch_no=payload.batch_no,
            quantity=qty,
            expiry_date=payload.expiry_date,
            purchase_date=purchase_date,
            mfg_date=payload.mfg_date,
            unit_cost=money2(cost),
            auto_ref=purchase.id,
            notes=payload.notes or None,
        )
        purchase.batch_id = batch.id

        med.stock_quantity = int(med.stock_quantity or 0) + qty
        med.purchase_price = money2(cost)

        record_stock_movement(
            db,
            medication=med,
            entry_type=StockEntryType.PURCHASE,
            quantity_in=qty,
            batch=batch,
            entry_date=purchase_date,
            reference_type=PURCHASE_REFERENCE,
            reference_id=purchase.id,
            notes=payload.notes or f"Purchase {payload.invoice_number or purchase.id} ({batch.batch_no})",
            user=user,
        )
        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Stock purchase rejected (hospital %s): %s", hospital_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Stock purchase failed (hospital %s)", hospital_id)
        raise

    db.refresh(purchase)
    logger.info("Stock purchase #%s: %s x %s into batch %s (hospital %s)",
                purchase.id, qty, med.name, batch.batch_no, hospital_id)
    return purchase


def get_purchase(db: Session, *, hospital_id: Optional[int], purchase_id: int, lock: bool = False) -> StockPurchase:
    q = db.query(StockPurchase).filter(StockPurchase.id == purchase_id)
    if lock:
        q = q.with_for_update()
    purchase = q.first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    ensure_hospital_scope(purchase, hospital_id, "purchase")
    return purchase


def list_purchases(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    vendor_id: Optional[int] = None,
    medication_id: Optional[int] = None,
    search: Optional[str] = None,
) -> List[StockPurchase]:
    q = db.query(StockPurchase)
    if hospital_id is not None:
        q = q.filter(StockPurchase.hospital_id == hospital_id)
    if vendor_id:
        q = q.filter(StockPurchase.vendor_id == vendor_id)
    if medication_id:
        q = q.filter(StockPurchase.medication_id == medication_id)
    if date_from:
        q = q.filter(StockPurchase.purchase_date >= date_from)
    if date_to:
        q = q.filter(StockPurchase.purchase_date <= date_to)
    if search:
        q = q.filter(StockPurchase.invoice_number.ilike(f"%{search.strip()}%"))
    return q.order_by(StockPurchase.purchase_date.desc(), StockPurchase.id.desc()).all()


# -------------------------
# Purchase returns (debit notes)
# -------------------------
def _return_batches(db: Session, purchase: StockPurchase) -> List[MedicationBatch]:
    """The purchase's own batch first, then every other stocked batch by expiry (expired included)."""
    batches = (db.query(MedicationBatch)
               .filter(
                   MedicationBatch.medication_id == purchase.medication_id,
                   MedicationBatch.is_active.is_(True),
                   MedicationBatch.quantity_on_hand > 0,
               )
               .order_by(MedicationBatch.expiry_date.asc(), MedicationBatch.id.asc())
               .with_for_update()
               .all())
    own = [b for b in batches if b.id == purchase.batch_id]
    return own + [b for b in batches if b.id != purchase.batch_id]


def create_purchase_return(
    db: Session,
    *,
    hospital_id: Optional[int],
    purchase_id: int,
    payload: PurchaseReturnCreate,
    user=None,
) -> StockPurchaseReturn:
    try:
        purchase = get_purchase(db, hospital_id=hospital_id, purchase_id=purchase_id, lock=True)
        med = (db.query(Medication)
               .filter(Medication.id == purchase.medication_id)
               .with_for_update()
               .first())
        if not med:
            raise ValidationError("Medication not found for this purchase")

        qty = whole_quantity(payload.quantity, med.name)

        already = int(db.query(func.coalesce(func.sum(StockPurchaseReturn.quantity), 0))
                      .filter(StockPurchaseReturn.stock_purchase_id == purchase.id)
                      .scalar() or 0)
        if qty > int(purchase.quantity) - already:
            raise OverReturnError(med.name, sold=int(purchase.quantity), already_returned=already, requested=qty)

        if int(med.stock_quantity or 0) < qty:
            raise InsufficientStockError(
                med.name, requested=qty, available=int(med.stock_quantity or 0),
                message="Insufficient current stock to process this return")

        slices = []
        remaining = qty
        for batch in _return_batches(db, purchase):
            if remaining <= 0:
                break
            take = min(int(batch.quantity_on_hand), remaining)
            slices.append((batch, take))
            remaining -= take
        if remaining > 0:
            raise InsufficientStockError(
                med.name, requested=qty, available=qty - remaining,
                message="Batch stock mismatch: insufficient lot quantity for return")

        return_date = payload.return_date or date.today()
        prefix = settings.PURCHASE_RETURN_NUMBER_PREFIX
        taxable = prorate(purchase.taxable_amount, qty, purchase.quantity)
        tax = prorate(purchase.tax_amount, qty, purchase.quantity)
        ret = StockPurchaseReturn(
            hospital_id=purchase.hospital_id,
            stock_purchase_id=purchase.id,
            medication_id=purchase.medication_id,
            vendor_id=purchase.vendor_id,
            created_by_user_id=getattr(user, "id", None),
            return_number=next_document_number(db, series_key(prefix, purchase.hospital_id), prefix, return_date),
            return_date=return_date,
            quantity=qty,
            unit_cost=money2(purchase.unit_cost),
            tax_pct=money2(purchase.tax_pct),
            taxable_amount=taxable,
            tax_amount=tax,
            total_amount=money2(taxable + tax),
            reason=payload.reason or None,
            notes=payload.notes or None,
        )
        db.add(ret)
        db.flush()

        for batch, take in slices:
            adjust_batch_qty(batch=batch, delta=-take)
            med.stock_quantity = int(med.stock_quantity) - take
            record_stock_movement(
                db,
                medication=med,
                entry_type=StockEntryType.PURCHASE_RETURN,
                quantity_out=take,
                batch=batch,
                entry_date=return_date,
                reference_type=PURCHASE_RETURN_REFERENCE,
                reference_id=ret.id,
                notes=payload.reason or payload.notes or f"Purchase return {ret.return_number} ({batch.batch_no})",
                user=user,
            )
        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Purchase return rejected for purchase %s: %s", purchase_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Purchase return failed for purchase %s", purchase_id)
        raise

    db.refresh(ret)
    logger.info("Purchase return %s: %s units against purchase #%s", ret.return_number, qty, purchase_id)
    return ret


def list_purchase_returns(db: Session, *, hospital_id: Optional[int], purchase_id: int) -> List[StockPurchaseReturn]:
    purchase = get_purchase(db, hospital_id=hospital_id, purchase_id=purchase_id)
    return (db.query(StockPurchaseReturn)
            .filter(StockPurchaseReturn.stock_purchase_id == purchase.id)
            .order_by(StockPurchaseReturn.return_date.desc(), StockPurchaseReturn.id.desc())
            .all())
