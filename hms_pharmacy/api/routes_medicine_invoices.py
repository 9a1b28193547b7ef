# hms_pharmacy/api/routes_medicine_invoices.py
from __future__ import annotations

import io
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from hms_pharmacy.api.deps import (
    REPORT_ROLES,
    SALES_ROLES,
    STOCK_ROLES,
    CurrentUser,
    get_db,
    require_roles,
    resolve_hospital_id,
    scope_hospital_id,
)
from hms_pharmacy.api.response import err, ok
from hms_pharmacy.schemas.medicine_invoice import (
    InvoiceCreate,
    InvoiceOut,
    MarkPaidIn,
    ReturnCreate,
    ReturnOut,
)
from hms_pharmacy.services import gst_export, gst_reports
from hms_pharmacy.services import invoice_returns as return_service
from hms_pharmacy.services import medicine_invoices as invoice_service

router = APIRouter(prefix="/medicine-invoices", tags=["Medicine Invoices"])


# -------------------------
# GST reports (report routes are registered before /{invoice_id})
# -------------------------
@router.get("/gst-report")
def gst_report(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    gst_rate: Optional[Decimal] = Query(None, alias="gstRate", ge=0, le=100),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REPORT_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    data = gst_reports.gst_summary(db, hospital_id=hid, date_from=date_from, date_to=date_to, gst_rate=gst_rate)
    return ok(data)


@router.get("/gstr1")
def gstr1_report(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REPORT_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    return ok(gst_reports.gstr1(db, hospital_id=hid, date_from=date_from, date_to=date_to))


@router.get("/gstr3b")
def gstr3b_report(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REPORT_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    return ok(gst_reports.gstr3b(db, hospital_id=hid, date_from=date_from, date_to=date_to))


@router.get("/gst-marg-export")
def gst_marg_export(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    fmt: str = Query("csv", alias="format"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REPORT_ROLES)),
):
    fmt = (fmt or "csv").strip().lower()
    if fmt not in {"csv", "xlsx"}:
        return err("format must be csv or xlsx", status_code=400, code="validation_error")

    hid = scope_hospital_id(user, hospital_id)
    rows = gst_export.marg_export_rows(db, hospital_id=hid, date_from=date_from, date_to=date_to)
    filename = gst_export.marg_filename(date_from, date_to, fmt)

    if fmt == "xlsx":
        content = gst_export.build_marg_xlsx(rows)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        content = gst_export.build_marg_csv(rows)
        media_type = "text/csv; charset=utf-8"

    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# -------------------------
# Sales analytics and Schedule H register
# -------------------------
@router.get("/analytics")
def sales_analytics(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REPORT_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    return ok(invoice_service.sales_analytics(db, hospital_id=hid, date_from=date_from, date_to=date_to))


@router.get("/schedule-h-log")
def schedule_h_log(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*STOCK_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    rows = invoice_service.schedule_h_log(db, hospital_id=hid, date_from=date_from, date_to=date_to)
    return ok(rows, meta={"count": len(rows)})


# -------------------------
# Invoices
# -------------------------
@router.post("")
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, payload.hospital_id)
    invoice = invoice_service.create_invoice(db, hospital_id=hid, payload=payload, user=user)
    return ok(InvoiceOut.model_validate(invoice).model_dump(), status_code=201)


@router.get("")
def list_invoices(
    hospital_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    patient_id: Optional[int] = Query(None),
    is_paid: Optional[bool] = Query(None),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = scope_hospital_id(user, hospital_id)
    result = invoice_service.list_invoices(
        db, hospital_id=hid, date_from=date_from, date_to=date_to, patient_id=patient_id,
        is_paid=is_paid, search=q, page=page, page_size=page_size,
    )
    return ok(
        [InvoiceOut.model_validate(x).model_dump() for x in result["items"]],
        meta={"page": result["page"], "page_size": result["page_size"], "total": result["total"]},
    )


@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    invoice = invoice_service.get_invoice(db, hospital_id=scope_hospital_id(user), invoice_id=invoice_id)
    return ok(InvoiceOut.model_validate(invoice).model_dump())


@router.patch("/{invoice_id}/mark-paid")
def mark_paid(
    invoice_id: int,
    payload: MarkPaidIn,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    invoice = invoice_service.mark_paid(db, hospital_id=hid, invoice_id=invoice_id, payload=payload)
    return ok(InvoiceOut.model_validate(invoice).model_dump())


# -------------------------
# Returns
# -------------------------
@router.get("/{invoice_id}/returns")
def list_returns(
    invoice_id: int,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    rows = return_service.list_returns(db, hospital_id=scope_hospital_id(user), invoice_id=invoice_id)
    return ok([ReturnOut.model_validate(r).model_dump() for r in rows])


@router.post("/{invoice_id}/returns")
def create_return(
    invoice_id: int,
    payload: ReturnCreate,
    hospital_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*SALES_ROLES)),
):
    hid = resolve_hospital_id(user, hospital_id)
    ret, replayed = return_service.create_return(
        db, hospital_id=hid, invoice_id=invoice_id, payload=payload, user=user,
    )
    return ok(ReturnOut.model_validate(ret).model_dump(), meta={"replayed": replayed},
              status_code=200 if replayed else 201)
