# hms_pharmacy/services/gst_export.py
"""Marg-compatible sales export (one row per invoice line)."""
from __future__ import annotations

import csv
import io
from datetime import date
from decimal import Decimal
from typing import Any, List, Optional

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from sqlalchemy.orm import Session, joinedload, selectinload

from hms_pharmacy.models import MedicineInvoice, MedicineInvoiceItem
from hms_pharmacy.services.gst_reports import sale_filters
from hms_pharmacy.services.money import D, ZERO, half, money2

MARG_HEADERS = [
    "InvoiceNumber", "InvoiceDate", "PatientName", "PatientId", "PatientPhone",
    "ItemName", "HSNCode", "BatchNo", "ExpiryDate", "Quantity", "UnitPrice",
    "TaxableValue", "GSTRate", "CGSTRate", "CGSTAmount", "SGSTRate", "SGSTAmount",
    "IGSTRate", "IGSTAmount", "LineTotal", "PaymentMode", "IsPaid",
]


def _d(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def marg_export_rows(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[List[Any]]:
    invoices = (db.query(MedicineInvoice)
                .options(selectinload(MedicineInvoice.items).joinedload(MedicineInvoiceItem.medication),
                         joinedload(MedicineInvoice.patient))
                .filter(*sale_filters(hospital_id, date_from, date_to))
                .order_by(MedicineInvoice.invoice_date.asc(), MedicineInvoice.id.asc())
                .all())

    rows: List[List[Any]] = []
    for inv in invoices:
        patient = inv.patient
        for item in sorted(inv.items, key=lambda i: i.id):
            med = item.medication
            rate = money2(item.tax_pct)
            tax = money2(item.line_tax)
            cgst = half(tax)
            rows.append([
                inv.invoice_number,
                _d(inv.invoice_date),
                patient.name if patient else "Walk-in",
                patient.display_id if patient else "",
                (patient.phone or "") if patient else "",
                med.name if med else "",
                (med.hsn_code or "") if med else "",
                item.batch_no or "",
                _d(item.expiry_date),
                int(item.quantity),
                money2(item.unit_price),
                money2(D(item.line_subtotal) - D(item.line_discount)),
                rate,
                half(rate),
                cgst,
                half(rate),
                money2(tax - cgst),
                ZERO,
                ZERO,
                money2(item.line_total),
                inv.payment_mode or "",
                "Yes" if inv.is_paid else "No",
            ])
    return rows


def marg_filename(date_from: Optional[date], date_to: Optional[date], ext: str = "csv") -> str:
    start = date_from.isoformat() if date_from else "start"
    end = date_to.isoformat() if date_to else "end"
    return f"marg-gst-export-{start}-to-{end}.{ext}"


def _cell(value):
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return value


def build_marg_csv(rows: List[List[Any]]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(MARG_HEADERS)
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return buf.getvalue().encode("utf-8")


def build_marg_xlsx(rows: List[List[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Marg GST Export"

    ws.append(MARG_HEADERS)
    for row in rows:
        ws.append([float(v) if isinstance(v, Decimal) else v for v in row])

    for col in range(1, len(MARG_HEADERS) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 18

    fp = io.BytesIO()
    wb.save(fp)
    return fp.getvalue()
