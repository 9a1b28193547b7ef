# hms_pharmacy/services/medicine_invoices.py
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, contains_eager, selectinload

from hms_pharmacy.core.config import settings
from hms_pharmacy.core.errors import (
    AccessDeniedError,
    InsufficientStockError,
    NotFoundError,
    PharmacyError,
    ValidationError,
)
from hms_pharmacy.models import (
    Medication,
    MedicationBatch,
    MedicineInvoice,
    MedicineInvoiceItem,
    MedicineInvoiceReturn,
    Patient,
    PaymentMode,
    StockEntryType,
)
from hms_pharmacy.schemas.medicine_invoice import InvoiceCreate, MarkPaidIn
from hms_pharmacy.services.batches import (
    Allocation,
    allocate_fefo,
    fefo_batch_query,
    legacy_unbatched_quantity,
    pinned_batch_allocation,
)
from hms_pharmacy.services.money import (
    D,
    ZERO,
    compute_line_amounts,
    money2,
    round_to_rupee,
    within_tolerance,
)
from hms_pharmacy.services.number_series import next_document_number, series_key
from hms_pharmacy.services.stock_ledger import record_stock_movement

logger = logging.getLogger(__name__)

INVOICE_REFERENCE = "medicine_invoice"


def whole_quantity(value, label: str) -> int:
    qty = D(value)
    if qty <= 0:
        raise ValidationError(f"Invalid quantity for {label}", details={"quantity": str(value)})
    if qty != qty.to_integral_value():
        raise ValidationError(f"Quantity must be a whole number for {label}",
                              details={"quantity": str(value)})
    return int(qty)


def ensure_hospital_scope(row, hospital_id: Optional[int], label: str) -> None:
    """hospital_id None means an unscoped (super_admin) caller."""
    if hospital_id is not None and row.hospital_id != hospital_id:
        raise AccessDeniedError(f"Access denied for this hospital {label}")


def _load_patient(db: Session, hospital_id: int, patient_id: Optional[int]) -> Optional[Patient]:
    if not patient_id:
        return None
    patient = db.query(Patient).filter(Patient.id == patient_id).first()
    if not patient:
        raise ValidationError("Patient not found", details={"patient_id": patient_id})
    if patient.hospital_id != hospital_id:
        raise ValidationError("Patient belongs to another hospital", details={"patient_id": patient_id})
    return patient


def _lock_medications(db: Session, hospital_id: int, medication_ids: List[int]) -> Dict[int, Medication]:
    # ascending id order so two invoices never lock the same rows in opposite order
    meds = (db.query(Medication)
            .filter(
                Medication.id.in_(medication_ids),
                Medication.hospital_id == hospital_id,
                Medication.is_active.is_(True),
            )
            .order_by(Medication.id.asc())
            .with_for_update()
            .all())
    by_id = {m.id: m for m in meds}
    missing = [mid for mid in medication_ids if mid not in by_id]
    if missing:
        raise ValidationError("One or more medications are invalid for this hospital",
                              details={"medication_ids": missing})
    return by_id


def normalize_breakup(breakup) -> Dict[str, Decimal]:
    """Split payment by mode, keeping only the modes that carry money."""
    out: Dict[str, Decimal] = {}
    for mode, amount in (breakup or {}).items():
        value = money2(amount)
        if value > 0:
            out[mode.value if isinstance(mode, PaymentMode) else str(mode)] = value
    return out


def _checked_breakup_sum(breakup: Dict[str, Decimal], payable: Decimal) -> Decimal:
    received = money2(sum(breakup.values(), ZERO))
    if received > 0 and not within_tolerance(received, payable, settings.PAYMENT_TOLERANCE):
        raise ValidationError(f"Split payment mismatch. Received {received}, expected {payable}",
                              details={"received": str(received), "expected": str(payable)})
    return received


def _breakup_json(breakup: Dict[str, Decimal]) -> Optional[Dict[str, str]]:
    return {mode: str(amount) for mode, amount in breakup.items()} or None


def create_invoice(db: Session, *, hospital_id: int, payload: InvoiceCreate, user=None) -> MedicineInvoice:
    """
    Multi-item sale with atomic stock deduction.

    Every line is allocated FEFO (or from its pinned batch) before anything
    is written; one failing line rolls back the whole invoice.
    Schedule H lines need a prescriber and the invoice then needs a patient.
    """
    if not payload.items:
        raise ValidationError("At least one medicine item is required")

    try:
        patient = _load_patient(db, hospital_id, payload.patient_id)
        meds = _lock_medications(db, hospital_id, sorted({it.medication_id for it in payload.items}))

        quantities: List[int] = []
        requested: Dict[int, int] = defaultdict(int)
        for it in payload.items:
            med = meds[it.medication_id]
            qty = whole_quantity(it.quantity, med.name)
            quantities.append(qty)
            requested[med.id] += qty
            if med.is_schedule_h and not it.prescriber_doctor_name:
                raise ValidationError(f"Prescriber doctor name is required for restricted medicine {med.name}",
                                      details={"medication_id": med.id})

        if patient is None and any(meds[it.medication_id].is_schedule_h for it in payload.items):
            raise ValidationError("Patient details are required for restricted (Schedule H) medicine sale")

        # aggregate pre-check, per medication across all its lines
        for med_id, qty in requested.items():
            med = meds[med_id]
            if qty > int(med.stock_quantity or 0):
                raise InsufficientStockError(med.name, requested=qty, available=int(med.stock_quantity or 0))

        sale_date = payload.invoice_date or date.today()
        legacy_left = {mid: legacy_unbatched_quantity(db, m) for mid, m in meds.items()}
        fefo_batches: Dict[int, List[MedicationBatch]] = {}

        items: List[MedicineInvoiceItem] = []
        allocations: List[List[Allocation]] = []
        for it, qty in zip(payload.items, quantities):
            med = meds[it.medication_id]
            if it.batch_no:
                allocs = pinned_batch_allocation(db, medication=med, batch_no=it.batch_no,
                                                 quantity=qty, as_of=sale_date)
            else:
                if med.id not in fefo_batches:
                    fefo_batches[med.id] = fefo_batch_query(db, medication_id=med.id, as_of=sale_date).all()
                allocs = allocate_fefo(fefo_batches[med.id], qty,
                                       legacy_available=legacy_left[med.id],
                                       medication_name=med.name)
            legacy_left[med.id] -= sum(a.quantity for a in allocs if a.is_legacy)

            unit_price = it.unit_price if it.unit_price is not None else med.unit_price
            discount_pct = it.discount_pct if it.discount_pct is not None else D(0)
            tax_pct = it.tax_pct if it.tax_pct is not None else med.gst_rate
            amounts = compute_line_amounts(qty, unit_price, discount_pct, tax_pct)

            first = allocs[0]
            items.append(
                MedicineInvoiceItem(
                    medication_id=med.id,
                    batch_no=first.batch.batch_no if first.batch else None,
                    expiry_date=first.batch.expiry_date if first.batch else None,
                    quantity=qty,
                    unit_price=money2(unit_price),
                    discount_pct=D(discount_pct),
                    tax_pct=D(tax_pct),
                    is_restricted_drug=med.is_schedule_h,
                    prescriber_doctor_name=it.prescriber_doctor_name,
                    **amounts,
                ))
            allocations.append(allocs)

        total_amount = money2(sum(i.line_total for i in items))
        grand_total = round_to_rupee(total_amount) if payload.apply_round_off else total_amount
        breakup = normalize_breakup(payload.payment_breakup)
        paid_from_breakup = _checked_breakup_sum(breakup, grand_total)
        if paid_from_breakup > 0:
            paid_amount = paid_from_breakup
        else:
            paid_amount = grand_total if payload.is_paid else ZERO
        is_paid = payload.is_paid if payload.is_paid is not None else paid_from_breakup > 0

        prefix = settings.INVOICE_NUMBER_PREFIX
        invoice = MedicineInvoice(
            hospital_id=hospital_id,
            patient_id=payload.patient_id,
            sold_by_user_id=getattr(user, "id", None),
            invoice_number=next_document_number(db, series_key(prefix, hospital_id), prefix, sale_date),
            invoice_date=sale_date,
            subtotal=money2(sum(i.line_subtotal for i in items)),
            discount_amount=money2(sum(i.line_discount for i in items)),
            tax_amount=money2(sum(i.line_tax for i in items)),
            total_amount=total_amount,
            round_off_amount=money2(grand_total - total_amount),
            grand_total=grand_total,
            payment_mode=payload.payment_mode.value,
            payment_breakup=_breakup_json(breakup),
            paid_amount=paid_amount,
            is_paid=bool(is_paid),
            notes=payload.notes or None,
        )
        invoice.items = items
        db.add(invoice)
        db.flush()

        # ledger in item order, one entry per allocation
        for item, allocs in zip(items, allocations):
            med = meds[item.medication_id]
            for alloc in allocs:
                med.stock_quantity = int(med.stock_quantity) - alloc.quantity
                record_stock_movement(
                    db,
                    medication=med,
                    entry_type=StockEntryType.SALE,
                    quantity_out=alloc.quantity,
                    batch=alloc.batch,
                    entry_date=sale_date,
                    reference_type=INVOICE_REFERENCE,
                    reference_id=invoice.id,
                    notes=(f"Invoice {invoice.invoice_number} (legacy stock without batch)"
                           if alloc.is_legacy else f"Invoice {invoice.invoice_number}"),
                    user=user,
                )

        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Medicine invoice rejected (hospital %s): %s", hospital_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Medicine invoice create failed (hospital %s)", hospital_id)
        raise

    db.refresh(invoice)
    logger.info("Medicine invoice %s created (hospital %s, %s items, total %s)",
                invoice.invoice_number, hospital_id, len(items), invoice.total_amount)
    return invoice


def get_invoice(db: Session, *, hospital_id: Optional[int], invoice_id: int) -> MedicineInvoice:
    invoice = (db.query(MedicineInvoice)
               .options(selectinload(MedicineInvoice.items).selectinload(MedicineInvoiceItem.medication),
                        selectinload(MedicineInvoice.patient))
               .filter(MedicineInvoice.id == invoice_id)
               .first())
    if not invoice:
        raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    ensure_hospital_scope(invoice, hospital_id, "invoice")
    return invoice


def list_invoices(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    patient_id: Optional[int] = None,
    is_paid: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 25,
) -> Dict[str, Any]:
    page = max(int(page), 1)
    page_size = min(max(int(page_size), 1), 100)

    qry = db.query(MedicineInvoice).options(
        selectinload(MedicineInvoice.items).selectinload(MedicineInvoiceItem.medication),
        selectinload(MedicineInvoice.patient),
    )
    if hospital_id is not None:
        qry = qry.filter(MedicineInvoice.hospital_id == hospital_id)
    if patient_id:
        qry = qry.filter(MedicineInvoice.patient_id == patient_id)
    if is_paid is not None:
        qry = qry.filter(MedicineInvoice.is_paid.is_(bool(is_paid)))
    if date_from:
        qry = qry.filter(MedicineInvoice.invoice_date >= date_from)
    if date_to:
        qry = qry.filter(MedicineInvoice.invoice_date <= date_to)
    if search:
        qry = qry.filter(MedicineInvoice.invoice_number.ilike(f"%{search.strip()}%"))

    total = int(qry.count())
    rows = (qry.order_by(MedicineInvoice.invoice_date.desc(), MedicineInvoice.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all())
    return {"items": rows, "page": page, "page_size": page_size, "total": total}


def _payable(invoice: MedicineInvoice) -> Decimal:
    return money2(invoice.grand_total or invoice.total_amount)


def mark_paid(db: Session, *, hospital_id: int, invoice_id: int, payload: MarkPaidIn) -> MedicineInvoice:
    """A new split breakup replaces the stored one; without one the old breakup is kept."""
    try:
        invoice = get_invoice(db, hospital_id=hospital_id, invoice_id=invoice_id)
        payable = _payable(invoice)
        breakup = normalize_breakup(payload.payment_breakup)
        paid_from_breakup = _checked_breakup_sum(breakup, payable)

        invoice.is_paid = bool(payload.is_paid)
        if payload.payment_mode is not None:
            invoice.payment_mode = payload.payment_mode.value
        if breakup:
            invoice.payment_breakup = _breakup_json(breakup)
        if paid_from_breakup > 0:
            invoice.paid_amount = paid_from_breakup
        else:
            invoice.paid_amount = payable if invoice.is_paid else ZERO
        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Payment update rejected for invoice #%s: %s", invoice_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Payment update failed for invoice #%s", invoice_id)
        raise

    db.refresh(invoice)
    logger.info("Medicine invoice %s payment status -> %s (paid %s)",
                invoice.invoice_number, invoice.is_paid, invoice.paid_amount)
    return invoice


# -------------------------
# Schedule H register
# -------------------------
def schedule_h_log(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Restricted lines sold in the range, newest invoice first."""
    qry = (db.query(MedicineInvoiceItem)
           .join(MedicineInvoiceItem.invoice)
           .options(contains_eager(MedicineInvoiceItem.invoice).selectinload(MedicineInvoice.patient),
                    selectinload(MedicineInvoiceItem.medication))
           .filter(MedicineInvoiceItem.is_restricted_drug.is_(True)))
    if hospital_id is not None:
        qry = qry.filter(MedicineInvoice.hospital_id == hospital_id)
    if date_from:
        qry = qry.filter(MedicineInvoice.invoice_date >= date_from)
    if date_to:
        qry = qry.filter(MedicineInvoice.invoice_date <= date_to)

    rows = []
    for item in qry.order_by(MedicineInvoice.invoice_date.desc(), MedicineInvoiceItem.id.desc()).all():
        inv = item.invoice
        patient = inv.patient
        med = item.medication
        rows.append({
            "invoice_id": inv.id,
            "invoice_number": inv.invoice_number,
            "invoice_date": inv.invoice_date,
            "patient_id": patient.id if patient else None,
            "patient_name": patient.name if patient else None,
            "patient_uhid": patient.display_id if patient else None,
            "patient_phone": (patient.phone or None) if patient else None,
            "medication_id": item.medication_id,
            "medication_name": med.name if med else None,
            "schedule_category": (med.schedule_category or None) if med else None,
            "batch_no": item.batch_no,
            "quantity": int(item.quantity),
            "prescriber_doctor_name": item.prescriber_doctor_name,
            "recorded_at": inv.created_at,
        })
    return rows


# -------------------------
# Sales analytics
# -------------------------
def sales_analytics(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Sales dashboard for a date range.

    Totals are net of returns dated in the same range; a return only
    reduces the paid figure when its invoice is paid. Day, category and
    medicine breakdowns are gross sales.
    """
    inv_q = db.query(MedicineInvoice).options(
        selectinload(MedicineInvoice.items).selectinload(MedicineInvoiceItem.medication))
    ret_q = (db.query(MedicineInvoiceReturn)
             .join(MedicineInvoiceReturn.invoice)
             .options(contains_eager(MedicineInvoiceReturn.invoice)))
    if hospital_id is not None:
        inv_q = inv_q.filter(MedicineInvoice.hospital_id == hospital_id)
        ret_q = ret_q.filter(MedicineInvoiceReturn.hospital_id == hospital_id)
    if date_from:
        inv_q = inv_q.filter(MedicineInvoice.invoice_date >= date_from)
        ret_q = ret_q.filter(MedicineInvoiceReturn.return_date >= date_from)
    if date_to:
        inv_q = inv_q.filter(MedicineInvoice.invoice_date <= date_to)
        ret_q = ret_q.filter(MedicineInvoiceReturn.return_date <= date_to)

    invoices = inv_q.order_by(MedicineInvoice.invoice_date.asc(), MedicineInvoice.id.asc()).all()
    returns = ret_q.all()

    gross = money2(sum((_payable(i) for i in invoices), ZERO))
    gross_paid = money2(sum((_payable(i) for i in invoices if i.is_paid), ZERO))
    returns_amount = money2(sum((D(r.total_amount) for r in returns), ZERO))
    returns_on_paid = money2(sum((D(r.total_amount) for r in returns if r.invoice.is_paid), ZERO))

    total_amount = money2(gross - returns_amount)
    paid_amount = money2(gross_paid - returns_on_paid)
    pending_amount = money2(total_amount - paid_amount)

    by_day: Dict[date, Dict[str, Any]] = {}
    by_category: Dict[str, Dict[str, Any]] = {}
    by_medicine: Dict[str, Dict[str, Any]] = {}
    for inv in invoices:
        amount = _payable(inv)
        day = by_day.setdefault(inv.invoice_date, {
            "date": inv.invoice_date, "invoices": 0,
            "amount": ZERO, "paid_amount": ZERO, "pending_amount": ZERO,
        })
        day["invoices"] += 1
        day["amount"] += amount
        day["paid_amount" if inv.is_paid else "pending_amount"] += amount

        for item in inv.items:
            med = item.medication
            category = (med.category if med else "") or "other"
            name = med.name if med else "Unknown"
            for bucket, key, label in ((by_category, category, "category"), (by_medicine, name, "name")):
                rec = bucket.setdefault(key, {label: key, "amount": ZERO, "quantity": 0})
                rec["amount"] += D(item.line_total)
                rec["quantity"] += int(item.quantity)

    window = max(int(settings.ANALYTICS_DAY_WINDOW), 1)
    day_wise = [by_day[d] for d in sorted(by_day)][-window:]
    category_wise = sorted(by_category.values(), key=lambda r: r["amount"], reverse=True)
    top_medicines = sorted(by_medicine.values(), key=lambda r: r["amount"], reverse=True)
    top_medicines = top_medicines[:settings.ANALYTICS_TOP_MEDICINES]

    return {
        "range": {"from": date_from, "to": date_to},
        "summary": {
            "total_invoices": len(invoices),
            "total_returns": len(returns),
            "total_returns_amount": returns_amount,
            "total_amount": total_amount,
            "paid_amount": paid_amount,
            "pending_amount": pending_amount,
            "collection_rate": (money2(paid_amount / total_amount * 100)
                                if total_amount > 0 else ZERO),
        },
        "day_wise": day_wise,
        "category_wise": category_wise,
        "top_medicines": top_medicines,
    }
