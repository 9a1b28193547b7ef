# hms_pharmacy/services/invoice_returns.py
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from hms_pharmacy.core.config import settings
from hms_pharmacy.core.errors import NotFoundError, OverReturnError, PharmacyError, ValidationError
from hms_pharmacy.models import (
    Medication,
    MedicineInvoice,
    MedicineInvoiceItem,
    MedicineInvoiceReturn,
    MedicineInvoiceReturnItem,
    StockEntryType,
)
from hms_pharmacy.schemas.medicine_invoice import ReturnCreate
from hms_pharmacy.services.batches import adjust_batch_qty, find_batch
from hms_pharmacy.services.medicine_invoices import ensure_hospital_scope, whole_quantity
from hms_pharmacy.services.money import money2, prorate
from hms_pharmacy.services.number_series import next_document_number, series_key
from hms_pharmacy.services.stock_ledger import record_stock_movement

logger = logging.getLogger(__name__)

RETURN_REFERENCE = "medicine_invoice_return"


def parse_request_key(value: Optional[str]) -> Optional[str]:
    key = (value or "").strip().lower()
    return key or None


def _find_by_request_key(db: Session, invoice_id: int, request_key: str) -> Optional[MedicineInvoiceReturn]:
    return (db.query(MedicineInvoiceReturn)
            .options(selectinload(MedicineInvoiceReturn.items))
            .filter(
                MedicineInvoiceReturn.invoice_id == invoice_id,
                MedicineInvoiceReturn.request_key == request_key,
            )
            .first())


def returned_quantities(db: Session, invoice_id: int) -> Dict[int, int]:
    """Quantity already returned per invoice item, over every return of the invoice."""
    rows = (db.query(MedicineInvoiceReturnItem.invoice_item_id,
                     func.coalesce(func.sum(MedicineInvoiceReturnItem.quantity), 0))
            .join(MedicineInvoiceReturn, MedicineInvoiceReturn.id == MedicineInvoiceReturnItem.return_id)
            .filter(MedicineInvoiceReturn.invoice_id == invoice_id)
            .group_by(MedicineInvoiceReturnItem.invoice_item_id)
            .all())
    return {int(item_id): int(qty or 0) for item_id, qty in rows}


def _lock_invoice(db: Session, invoice_id: int) -> MedicineInvoice:
    invoice = (db.query(MedicineInvoice)
               .filter(MedicineInvoice.id == invoice_id)
               .with_for_update()
               .first())
    if not invoice:
        raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def create_return(
    db: Session,
    *,
    hospital_id: Optional[int],
    invoice_id: int,
    payload: ReturnCreate,
    user=None,
) -> Tuple[MedicineInvoiceReturn, bool]:
    """
    Partial / full return against an invoice. Returns (return, replayed).

    A non-empty request id makes the call idempotent: a second submission
    with the same id answers with the first return and writes nothing.
    """
    if not payload.items:
        raise ValidationError("At least one return item is required")

    request_key = parse_request_key(payload.request_id)

    try:
        invoice = _lock_invoice(db, invoice_id)
        ensure_hospital_scope(invoice, hospital_id, "invoice")

        if request_key:
            existing = _find_by_request_key(db, invoice.id, request_key)
            if existing:
                db.rollback()
                logger.info("Return request %s replayed for invoice %s -> %s",
                            request_key, invoice_id, existing.return_number)
                return existing, True

        seen = set()
        for raw in payload.items:
            if raw.invoice_item_id in seen:
                raise ValidationError(f"Duplicate invoiceItemId in return payload: {raw.invoice_item_id}",
                                      details={"invoice_item_id": raw.invoice_item_id})
            seen.add(raw.invoice_item_id)

        sold_items = {
            it.id: it
            for it in db.query(MedicineInvoiceItem)
            .options(selectinload(MedicineInvoiceItem.medication))
            .filter(MedicineInvoiceItem.invoice_id == invoice.id)
            .all()
        }
        already = returned_quantities(db, invoice.id)

        lines: List[MedicineInvoiceReturnItem] = []
        for raw in payload.items:
            src = sold_items.get(raw.invoice_item_id)
            if not src:
                raise ValidationError(f"Invalid invoiceItemId: {raw.invoice_item_id}",
                                      details={"invoice_item_id": raw.invoice_item_id})
            name = src.medication_name or f"item {src.id}"
            qty = whole_quantity(raw.quantity, name)

            sold = int(src.quantity)
            returned = already.get(src.id, 0)
            if qty > sold - returned:
                raise OverReturnError(name, sold=sold, already_returned=returned, requested=qty)

            # per-unit share of the original snapshot, not the current catalog price
            taxable = prorate(src.taxable_amount, qty, sold)
            tax = prorate(src.line_tax, qty, sold)
            lines.append(
                MedicineInvoiceReturnItem(
                    invoice_item_id=src.id,
                    medication_id=src.medication_id,
                    batch_no=src.batch_no,
                    quantity=qty,
                    unit_price=money2(src.unit_price),
                    tax_pct=money2(src.tax_pct),
                    line_subtotal=taxable,
                    line_tax=tax,
                    line_total=money2(taxable + tax),
                ))

        return_date = payload.return_date or date.today()
        prefix = settings.SALES_RETURN_NUMBER_PREFIX
        subtotal = money2(sum(x.line_subtotal for x in lines))
        tax_amount = money2(sum(x.line_tax for x in lines))
        ret = MedicineInvoiceReturn(
            hospital_id=invoice.hospital_id,
            invoice_id=invoice.id,
            created_by_user_id=getattr(user, "id", None),
            return_number=next_document_number(db, series_key(prefix, invoice.hospital_id), prefix, return_date),
            return_date=return_date,
            reason=payload.reason or None,
            notes=payload.notes or None,
            request_key=request_key,
            subtotal=subtotal,
            tax_amount=tax_amount,
            total_amount=money2(subtotal + tax_amount),
        )
        ret.items = lines
        db.add(ret)
        try:
            db.flush()
        except IntegrityError:
            # a concurrent submission with the same request id committed first
            db.rollback()
            winner = _find_by_request_key(db, invoice_id, request_key) if request_key else None
            if winner is None:
                raise
            logger.info("Return request %s lost the insert race; answering with %s",
                        request_key, winner.return_number)
            return winner, True

        meds = {
            m.id: m
            for m in db.query(Medication)
            .filter(Medication.id.in_(sorted({x.medication_id for x in lines})))
            .order_by(Medication.id.asc())
            .with_for_update()
            .all()
        }
        for line in lines:
            med = meds.get(line.medication_id)
            if med is None:
                raise ValidationError("Medication not found while processing return",
                                      details={"medication_id": line.medication_id})

            batch = find_batch(db, medication_id=med.id, batch_no=line.batch_no) if line.batch_no else None
            if batch is not None:
                adjust_batch_qty(batch=batch, delta=line.quantity)
            med.stock_quantity = int(med.stock_quantity or 0) + line.quantity

            record_stock_movement(
                db,
                medication=med,
                entry_type=StockEntryType.SALES_RETURN,
                quantity_in=line.quantity,
                batch=batch,
                entry_date=return_date,
                reference_type=RETURN_REFERENCE,
                reference_id=ret.id,
                notes=payload.reason or payload.notes or f"Return {ret.return_number} against {invoice.invoice_number}",
                user=user,
            )

        db.commit()
    except PharmacyError as exc:
        db.rollback()
        logger.warning("Return rejected for invoice %s: %s", invoice_id, exc.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("Return create failed for invoice %s", invoice_id)
        raise

    db.refresh(ret)
    logger.info("Return %s created for invoice %s (total %s)", ret.return_number, invoice_id, ret.total_amount)
    return ret, False


def list_returns(db: Session, *, hospital_id: Optional[int], invoice_id: int) -> List[MedicineInvoiceReturn]:
    invoice = db.query(MedicineInvoice).filter(MedicineInvoice.id == invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found", details={"invoice_id": invoice_id})
    ensure_hospital_scope(invoice, hospital_id, "invoice")
    return (db.query(MedicineInvoiceReturn)
            .options(selectinload(MedicineInvoiceReturn.items))
            .filter(MedicineInvoiceReturn.invoice_id == invoice_id)
            .order_by(MedicineInvoiceReturn.id.asc())
            .all())
