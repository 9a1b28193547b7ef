# hms_pharmacy/services/gst_reports.py
"""
GST reports over sales, sales returns, purchases and purchase returns.

Read-only. Every report nets returns out of the side they belong to, and
the summary cross-checks totals reached by independent paths (row sums in
Python vs. SQL aggregates vs. document headers). A mismatch becomes a
warning string in the report; it never stops the report.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, contains_eager, joinedload, selectinload

from hms_pharmacy.core.config import settings
from hms_pharmacy.models import (
    MedicineInvoice,
    MedicineInvoiceItem,
    MedicineInvoiceReturn,
    MedicineInvoiceReturnItem,
    StockPurchase,
    StockPurchaseReturn,
)
from hms_pharmacy.services.money import D, ZERO, money2, within_tolerance

logger = logging.getLogger(__name__)

UNSPECIFIED_HSN = "UNSPECIFIED"

WARN_SALES_HEADERS = "Sales item totals do not match invoice header totals."
WARN_RETURN_HEADERS = "Sales return item totals do not match return header totals."
WARN_OUTPUT_BY_RATE = "Output GST by-rate totals do not match output summary totals."
WARN_INPUT_BY_RATE = "Input GST by-rate totals do not match purchase summary totals."
WARN_NET_FORMULA = "Net tax payable does not match output GST minus input GST formula."


# -------------------------
# Row loaders
# -------------------------
def _in_range(col, date_from: Optional[date], date_to: Optional[date]) -> list:
    conds = []
    if date_from:
        conds.append(col >= date_from)
    if date_to:
        conds.append(col <= date_to)
    return conds


def _scope(col, hospital_id: Optional[int]) -> list:
    return [col == hospital_id] if hospital_id is not None else []


def sale_filters(hospital_id, date_from, date_to, gst_rate=None) -> list:
    conds = (_scope(MedicineInvoice.hospital_id, hospital_id)
             + _in_range(MedicineInvoice.invoice_date, date_from, date_to))
    if gst_rate is not None:
        conds.append(MedicineInvoiceItem.tax_pct == D(gst_rate))
    return conds


def _sales_return_filters(hospital_id, date_from, date_to, gst_rate=None) -> list:
    conds = (_scope(MedicineInvoiceReturn.hospital_id, hospital_id)
             + _in_range(MedicineInvoiceReturn.return_date, date_from, date_to))
    if gst_rate is not None:
        conds.append(MedicineInvoiceReturnItem.tax_pct == D(gst_rate))
    return conds


def _purchase_filters(hospital_id, date_from, date_to, gst_rate=None) -> list:
    conds = (_scope(StockPurchase.hospital_id, hospital_id)
             + _in_range(StockPurchase.purchase_date, date_from, date_to))
    if gst_rate is not None:
        conds.append(StockPurchase.tax_pct == D(gst_rate))
    return conds


def _purchase_return_filters(hospital_id, date_from, date_to, gst_rate=None) -> list:
    conds = (_scope(StockPurchaseReturn.hospital_id, hospital_id)
             + _in_range(StockPurchaseReturn.return_date, date_from, date_to))
    if gst_rate is not None:
        conds.append(StockPurchaseReturn.tax_pct == D(gst_rate))
    return conds


def sale_items(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> List[MedicineInvoiceItem]:
    return (db.query(MedicineInvoiceItem)
            .join(MedicineInvoice, MedicineInvoice.id == MedicineInvoiceItem.invoice_id)
            .options(contains_eager(MedicineInvoiceItem.invoice), joinedload(MedicineInvoiceItem.medication))
            .filter(*sale_filters(hospital_id, date_from, date_to, gst_rate))
            .order_by(MedicineInvoice.invoice_date.asc(), MedicineInvoice.id.asc(), MedicineInvoiceItem.id.asc())
            .all())


def sales_return_items(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> List[MedicineInvoiceReturnItem]:
    return (db.query(MedicineInvoiceReturnItem)
            .join(MedicineInvoiceReturn, MedicineInvoiceReturn.id == MedicineInvoiceReturnItem.return_id)
            .options(contains_eager(MedicineInvoiceReturnItem.invoice_return),
                     joinedload(MedicineInvoiceReturnItem.medication))
            .filter(*_sales_return_filters(hospital_id, date_from, date_to, gst_rate))
            .order_by(MedicineInvoiceReturn.return_date.asc(), MedicineInvoiceReturn.id.asc(),
                      MedicineInvoiceReturnItem.id.asc())
            .all())


def purchase_rows(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> List[StockPurchase]:
    return (db.query(StockPurchase)
            .options(joinedload(StockPurchase.medication))
            .filter(*_purchase_filters(hospital_id, date_from, date_to, gst_rate))
            .order_by(StockPurchase.purchase_date.asc(), StockPurchase.id.asc())
            .all())


def purchase_return_rows(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> List[StockPurchaseReturn]:
    return (db.query(StockPurchaseReturn)
            .options(joinedload(StockPurchaseReturn.medication))
            .filter(*_purchase_return_filters(hospital_id, date_from, date_to, gst_rate))
            .order_by(StockPurchaseReturn.return_date.asc(), StockPurchaseReturn.id.asc())
            .all())


# -------------------------
# SQL aggregates (the independent side of the checks)
# -------------------------
def _sum2(db: Session, taxable_expr, tax_expr, join=None, filters=()) -> Dict[str, Decimal]:
    q = db.query(func.coalesce(func.sum(taxable_expr), 0), func.coalesce(func.sum(tax_expr), 0))
    if join is not None:
        q = q.select_from(join[0]).join(join[1], join[2])
    taxable, tax = q.filter(*filters).one()
    return {"taxable": money2(taxable), "tax": money2(tax)}


def output_totals_sql(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> Dict[str, Decimal]:
    sold = _sum2(db,
                 MedicineInvoiceItem.line_subtotal - MedicineInvoiceItem.line_discount,
                 MedicineInvoiceItem.line_tax,
                 join=(MedicineInvoiceItem, MedicineInvoice, MedicineInvoice.id == MedicineInvoiceItem.invoice_id),
                 filters=sale_filters(hospital_id, date_from, date_to, gst_rate))
    returned = _sum2(db,
                     MedicineInvoiceReturnItem.line_subtotal,
                     MedicineInvoiceReturnItem.line_tax,
                     join=(MedicineInvoiceReturnItem, MedicineInvoiceReturn,
                           MedicineInvoiceReturn.id == MedicineInvoiceReturnItem.return_id),
                     filters=_sales_return_filters(hospital_id, date_from, date_to, gst_rate))
    return {
        "taxable": money2(sold["taxable"] - returned["taxable"]),
        "tax": money2(sold["tax"] - returned["tax"]),
    }


def input_totals_sql(db: Session, hospital_id, date_from, date_to, gst_rate=None) -> Dict[str, Decimal]:
    bought = _sum2(db, StockPurchase.taxable_amount, StockPurchase.tax_amount,
                   filters=_purchase_filters(hospital_id, date_from, date_to, gst_rate))
    sent_back = _sum2(db, StockPurchaseReturn.taxable_amount, StockPurchaseReturn.tax_amount,
                      filters=_purchase_return_filters(hospital_id, date_from, date_to, gst_rate))
    return {
        "taxable": money2(bought["taxable"] - sent_back["taxable"]),
        "tax": money2(bought["tax"] - sent_back["tax"]),
    }


# -------------------------
# Buckets
# -------------------------
def _rate_key(pct) -> Decimal:
    return money2(pct)


def _bucket(buckets: "OrderedDict[Decimal, Dict[str, Any]]", rate, **extra) -> Dict[str, Any]:
    key = _rate_key(rate)
    if key not in buckets:
        buckets[key] = {"gst_rate": key, "taxable_amount": ZERO, "gst_amount": ZERO, **extra}
    return buckets[key]


def _med_bucket(buckets: Dict[str, Dict[str, Any]], name: str, gst_rate, qty_field: str) -> Dict[str, Any]:
    if name not in buckets:
        buckets[name] = {"name": name, "gst_rate": money2(gst_rate), qty_field: 0,
                         "taxable_amount": ZERO, "gst_amount": ZERO}
    return buckets[name]


def _finish_rates(buckets) -> List[Dict[str, Any]]:
    out = []
    for key in sorted(buckets):
        rec = dict(buckets[key])
        if "_ids" in rec:
            rec["invoice_count"] = len(rec.pop("_ids"))
        rec["taxable_amount"] = money2(rec["taxable_amount"])
        rec["gst_amount"] = money2(rec["gst_amount"])
        out.append(rec)
    return out


def _finish_meds(buckets, top_n: int) -> List[Dict[str, Any]]:
    rows = []
    for rec in buckets.values():
        rec = dict(rec, taxable_amount=money2(rec["taxable_amount"]), gst_amount=money2(rec["gst_amount"]))
        rows.append(rec)
    rows.sort(key=lambda r: (-r["gst_amount"], r["name"]))
    return rows[:top_n]


def _item_taxable(item: MedicineInvoiceItem) -> Decimal:
    return money2(D(item.line_subtotal) - D(item.line_discount))


def _med_name(row) -> str:
    med = getattr(row, "medication", None)
    return med.name if med is not None else "Unknown"


def _check(left_label: str, left_taxable, right_label: str, right_taxable,
           left_tax, right_tax, *, tax_left_label: str, tax_right_label: str, tolerance) -> Dict[str, Any]:
    return {
        left_label: money2(left_taxable),
        right_label: money2(right_taxable),
        "diff_taxable": money2(D(left_taxable) - D(right_taxable)),
        tax_left_label: money2(left_tax),
        tax_right_label: money2(right_tax),
        "diff_gst": money2(D(left_tax) - D(right_tax)),
        "is_matched": (within_tolerance(left_taxable, right_taxable, tolerance)
                       and within_tolerance(left_tax, right_tax, tolerance)),
    }


def _period(date_from: Optional[date], date_to: Optional[date]) -> Dict[str, Optional[str]]:
    return {
        "from": date_from.isoformat() if date_from else None,
        "to": date_to.isoformat() if date_to else None,
    }


# -------------------------
# GST summary + reconciliation
# -------------------------
def gst_summary(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    gst_rate=None,
) -> Dict[str, Any]:
    tolerance = settings.GST_RECON_TOLERANCE
    top_n = settings.GST_REPORT_TOP_N

    # ---- output side: sales less sales returns ----
    items = sale_items(db, hospital_id, date_from, date_to, gst_rate)
    ret_items = sales_return_items(db, hospital_id, date_from, date_to, gst_rate)

    out_taxable = ZERO
    out_gst = ZERO
    invoice_ids = set()
    out_rates: "OrderedDict[Decimal, Dict[str, Any]]" = OrderedDict()
    out_meds: Dict[str, Dict[str, Any]] = {}

    for item in items:
        taxable = _item_taxable(item)
        tax = D(item.line_tax)
        out_taxable += taxable
        out_gst += tax
        invoice_ids.add(item.invoice_id)

        rec = _bucket(out_rates, item.tax_pct, _ids=set())
        rec["taxable_amount"] += taxable
        rec["gst_amount"] += tax
        rec["_ids"].add(item.invoice_id)

        med = item.medication
        mrec = _med_bucket(out_meds, _med_name(item), med.gst_rate if med is not None else item.tax_pct, "qty_sold")
        mrec["qty_sold"] += int(item.quantity)
        mrec["taxable_amount"] += taxable
        mrec["gst_amount"] += tax

    for rit in ret_items:
        taxable = money2(rit.line_subtotal)
        tax = D(rit.line_tax)
        out_taxable -= taxable
        out_gst -= tax

        rec = _bucket(out_rates, rit.tax_pct, _ids=set())
        rec["taxable_amount"] -= taxable
        rec["gst_amount"] -= tax

        med = rit.medication
        mrec = _med_bucket(out_meds, _med_name(rit), med.gst_rate if med is not None else rit.tax_pct, "qty_sold")
        mrec["qty_sold"] -= int(rit.quantity)
        mrec["taxable_amount"] -= taxable
        mrec["gst_amount"] -= tax

    by_rate = _finish_rates(out_rates)
    medicines = _finish_meds(out_meds, top_n)

    # ---- input side: purchases less purchase returns ----
    purchases = purchase_rows(db, hospital_id, date_from, date_to, gst_rate)
    purchase_returns = purchase_return_rows(db, hospital_id, date_from, date_to, gst_rate)

    in_taxable = ZERO
    in_gst = ZERO
    in_rates: "OrderedDict[Decimal, Dict[str, Any]]" = OrderedDict()
    in_meds: Dict[str, Dict[str, Any]] = {}

    for p in purchases:
        taxable, tax = D(p.taxable_amount), D(p.tax_amount)
        in_taxable += taxable
        in_gst += tax
        rec = _bucket(in_rates, p.tax_pct, purchase_count=0)
        rec["taxable_amount"] += taxable
        rec["gst_amount"] += tax
        rec["purchase_count"] += 1
        med = p.medication
        mrec = _med_bucket(in_meds, _med_name(p), med.gst_rate if med is not None else p.tax_pct, "qty_purchased")
        mrec["qty_purchased"] += int(p.quantity)
        mrec["taxable_amount"] += taxable
        mrec["gst_amount"] += tax

    for pr in purchase_returns:
        taxable, tax = D(pr.taxable_amount), D(pr.tax_amount)
        in_taxable -= taxable
        in_gst -= tax
        rec = _bucket(in_rates, pr.tax_pct, purchase_count=0)
        rec["taxable_amount"] -= taxable
        rec["gst_amount"] -= tax
        med = pr.medication
        mrec = _med_bucket(in_meds, _med_name(pr), med.gst_rate if med is not None else pr.tax_pct, "qty_purchased")
        mrec["qty_purchased"] -= int(pr.quantity)
        mrec["taxable_amount"] -= taxable
        mrec["gst_amount"] -= tax

    input_by_rate = _finish_rates(in_rates)
    input_medicines = _finish_meds(in_meds, top_n)

    output_gst = money2(out_gst)
    input_gst = money2(in_gst)
    net_tax_payable = money2(output_gst - input_gst)

    # ---- reconciliation ----
    # document-level checks run on the whole period, independent of a rate filter
    all_items = _sum2(db,
                      MedicineInvoiceItem.line_subtotal - MedicineInvoiceItem.line_discount,
                      MedicineInvoiceItem.line_tax,
                      join=(MedicineInvoiceItem, MedicineInvoice, MedicineInvoice.id == MedicineInvoiceItem.invoice_id),
                      filters=sale_filters(hospital_id, date_from, date_to))
    headers = _sum2(db,
                    MedicineInvoice.subtotal - MedicineInvoice.discount_amount,
                    MedicineInvoice.tax_amount,
                    filters=sale_filters(hospital_id, date_from, date_to))
    all_ret_items = _sum2(db,
                          MedicineInvoiceReturnItem.line_subtotal,
                          MedicineInvoiceReturnItem.line_tax,
                          join=(MedicineInvoiceReturnItem, MedicineInvoiceReturn,
                                MedicineInvoiceReturn.id == MedicineInvoiceReturnItem.return_id),
                          filters=_sales_return_filters(hospital_id, date_from, date_to))
    ret_headers = _sum2(db,
                        MedicineInvoiceReturn.subtotal,
                        MedicineInvoiceReturn.tax_amount,
                        filters=_sales_return_filters(hospital_id, date_from, date_to))

    out_sql = output_totals_sql(db, hospital_id, date_from, date_to, gst_rate)
    in_sql = input_totals_sql(db, hospital_id, date_from, date_to, gst_rate)
    by_rate_taxable = money2(sum((r["taxable_amount"] for r in by_rate), ZERO))
    by_rate_gst = money2(sum((r["gst_amount"] for r in by_rate), ZERO))
    in_by_rate_taxable = money2(sum((r["taxable_amount"] for r in input_by_rate), ZERO))
    in_by_rate_gst = money2(sum((r["gst_amount"] for r in input_by_rate), ZERO))
    computed_net = money2(out_sql["tax"] - in_sql["tax"])

    reconciliation = {
        "tolerance": D(tolerance),
        "sales_items_vs_invoice_headers": _check(
            "item_taxable", all_items["taxable"], "header_taxable", headers["taxable"],
            all_items["tax"], headers["tax"],
            tax_left_label="item_gst", tax_right_label="header_gst", tolerance=tolerance),
        "sales_returns_items_vs_return_headers": _check(
            "item_taxable", all_ret_items["taxable"], "header_taxable", ret_headers["taxable"],
            all_ret_items["tax"], ret_headers["tax"],
            tax_left_label="item_gst", tax_right_label="header_gst", tolerance=tolerance),
        "output_by_rate_vs_output_totals": _check(
            "by_rate_taxable", by_rate_taxable, "output_taxable", out_sql["taxable"],
            by_rate_gst, out_sql["tax"],
            tax_left_label="by_rate_gst", tax_right_label="output_gst", tolerance=tolerance),
        "input_by_rate_vs_input_totals": _check(
            "by_rate_taxable", in_by_rate_taxable, "input_taxable", in_sql["taxable"],
            in_by_rate_gst, in_sql["tax"],
            tax_left_label="by_rate_gst", tax_right_label="input_gst", tolerance=tolerance),
        "net_formula_check": {
            "computed_net": computed_net,
            "reported_net": net_tax_payable,
            "diff": money2(computed_net - net_tax_payable),
            "is_matched": within_tolerance(computed_net, net_tax_payable, tolerance),
        },
    }

    warnings = []
    if not reconciliation["sales_items_vs_invoice_headers"]["is_matched"]:
        warnings.append(WARN_SALES_HEADERS)
    if not reconciliation["sales_returns_items_vs_return_headers"]["is_matched"]:
        warnings.append(WARN_RETURN_HEADERS)
    if not reconciliation["output_by_rate_vs_output_totals"]["is_matched"]:
        warnings.append(WARN_OUTPUT_BY_RATE)
    if not reconciliation["input_by_rate_vs_input_totals"]["is_matched"]:
        warnings.append(WARN_INPUT_BY_RATE)
    if not reconciliation["net_formula_check"]["is_matched"]:
        warnings.append(WARN_NET_FORMULA)
    for w in warnings:
        logger.warning("GST reconciliation (hospital %s, %s..%s): %s", hospital_id, date_from, date_to, w)

    return {
        "summary": {
            "total_invoices": len(invoice_ids),
            "total_taxable_amount": money2(out_taxable),
            "total_gst_amount": output_gst,
            "output_gst_amount": output_gst,
            "input_gst_amount": input_gst,
            "net_tax_payable": net_tax_payable,
            "by_rate": by_rate,
        },
        "reconciliation": reconciliation,
        "warnings": warnings,
        "medicines": medicines,
        "purchases": {
            "total_purchases": len(purchases),
            "total_purchase_returns": len(purchase_returns),
            "total_taxable_amount": money2(in_taxable),
            "total_gst_amount": input_gst,
            "by_rate": input_by_rate,
            "medicines": input_medicines,
        },
        "range": _period(date_from, date_to),
    }


# -------------------------
# GSTR-1 (outward supplies)
# -------------------------
def gstr1(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Dict[str, Any]:
    q = (db.query(MedicineInvoice)
         .options(selectinload(MedicineInvoice.items).joinedload(MedicineInvoiceItem.medication),
                  joinedload(MedicineInvoice.patient))
         .filter(*sale_filters(hospital_id, date_from, date_to))
         .order_by(MedicineInvoice.invoice_date.asc(), MedicineInvoice.id.asc()))
    invoices = q.all()

    rates: "OrderedDict[Decimal, Dict[str, Any]]" = OrderedDict()
    hsn: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()

    def _rate(rate):
        key = _rate_key(rate)
        if key not in rates:
            rates[key] = {"rate": key, "taxable_value": ZERO, "tax_amount": ZERO, "_ids": set()}
        return rates[key]

    def _hsn(code, name, rate):
        key = (code, name, _rate_key(rate))
        if key not in hsn:
            hsn[key] = {"hsn": code, "description": name, "uqc": "NOS", "total_qty": 0,
                        "taxable_value": ZERO, "tax_rate": _rate_key(rate), "tax_amount": ZERO}
        return hsn[key]

    for inv in invoices:
        for item in inv.items:
            taxable = _item_taxable(item)
            tax = money2(item.line_tax)
            rec = _rate(item.tax_pct)
            rec["taxable_value"] += taxable
            rec["tax_amount"] += tax
            rec["_ids"].add(inv.id)

            med = item.medication
            h = _hsn((med.hsn_code if med is not None else "") or UNSPECIFIED_HSN, _med_name(item), item.tax_pct)
            h["total_qty"] += int(item.quantity)
            h["taxable_value"] += taxable
            h["tax_amount"] += tax

    ret_items = sales_return_items(db, hospital_id, date_from, date_to)
    credit_notes = []
    for rit in ret_items:
        taxable = money2(rit.line_subtotal)
        tax = money2(rit.line_tax)
        credit_notes.append({
            "return_number": rit.invoice_return.return_number,
            "return_date": rit.invoice_return.return_date,
            "medication_name": _med_name(rit),
            "quantity": int(rit.quantity),
            "taxable_value": taxable,
            "tax_amount": tax,
            "total_value": money2(rit.line_total),
            "tax_rate": _rate_key(rit.tax_pct),
        })

        rec = _rate(rit.tax_pct)
        rec["taxable_value"] -= taxable
        rec["tax_amount"] -= tax

        med = rit.medication
        h = _hsn((med.hsn_code if med is not None else "") or UNSPECIFIED_HSN, _med_name(rit), rit.tax_pct)
        h["total_qty"] -= int(rit.quantity)
        h["taxable_value"] -= taxable
        h["tax_amount"] -= tax

    outward_by_rate = []
    for key in sorted(rates):
        rec = rates[key]
        outward_by_rate.append({
            "rate": rec["rate"],
            "invoice_count": len(rec["_ids"]),
            "taxable_value": money2(rec["taxable_value"]),
            "tax_amount": money2(rec["tax_amount"]),
        })

    hsn_summary = [
        dict(h, taxable_value=money2(h["taxable_value"]), tax_amount=money2(h["tax_amount"]))
        for h in hsn.values()
    ]
    hsn_summary.sort(key=lambda h: (-h["tax_amount"], h["hsn"], h["description"]))

    invoice_rows = [{
        "invoice_number": inv.invoice_number,
        "invoice_date": inv.invoice_date,
        "recipient_name": inv.patient.name if inv.patient else "Walk-in",
        "recipient_id": inv.patient.display_id if inv.patient else None,
        "taxable_value": money2(D(inv.subtotal) - D(inv.discount_amount)),
        "tax_amount": money2(inv.tax_amount),
        "total_value": money2(inv.total_amount),
        "item_count": len(inv.items),
    } for inv in invoices]

    return {
        "return_type": "GSTR-1",
        "generated_at": datetime.utcnow(),
        "period": _period(date_from, date_to),
        "summary": {
            "total_invoices": len(invoices),
            "total_credit_notes": len(credit_notes),
            "total_taxable_value": money2(sum((r["taxable_value"] for r in outward_by_rate), ZERO)),
            "total_tax_amount": money2(sum((r["tax_amount"] for r in outward_by_rate), ZERO)),
        },
        "outward_by_rate": outward_by_rate,
        "invoice_rows": invoice_rows,
        "credit_notes": credit_notes,
        "hsn_summary": hsn_summary,
        "notes": [
            "This is a system-generated draft summary for GSTR-1 preparation.",
            "Validate data with your CA before filing.",
        ],
    }


# -------------------------
# GSTR-3B (summary return)
# -------------------------
def _rate_rows(buckets) -> List[Dict[str, Any]]:
    return [{"rate": k, "taxable_value": money2(v["taxable_value"]), "tax_amount": money2(v["tax_amount"])}
            for k, v in sorted(buckets.items())]


def gstr3b(
    db: Session,
    *,
    hospital_id: Optional[int],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Dict[str, Any]:
    outward: Dict[Decimal, Dict[str, Decimal]] = {}
    inward: Dict[Decimal, Dict[str, Decimal]] = {}

    def _add(buckets, rate, taxable, tax):
        rec = buckets.setdefault(_rate_key(rate), {"taxable_value": ZERO, "tax_amount": ZERO})
        rec["taxable_value"] += taxable
        rec["tax_amount"] += tax

    out_taxable = out_tax = ZERO
    for item in sale_items(db, hospital_id, date_from, date_to):
        taxable, tax = _item_taxable(item), money2(item.line_tax)
        out_taxable += taxable
        out_tax += tax
        _add(outward, item.tax_pct, taxable, tax)

    ret_items = sales_return_items(db, hospital_id, date_from, date_to)
    ret_taxable = ret_tax = ZERO
    for rit in ret_items:
        taxable, tax = money2(rit.line_subtotal), money2(rit.line_tax)
        ret_taxable += taxable
        ret_tax += tax
        _add(outward, rit.tax_pct, -taxable, -tax)
    out_taxable -= ret_taxable
    out_tax -= ret_tax

    in_taxable = itc = ZERO
    for p in purchase_rows(db, hospital_id, date_from, date_to):
        taxable, tax = money2(p.taxable_amount), money2(p.tax_amount)
        in_taxable += taxable
        itc += tax
        _add(inward, p.tax_pct, taxable, tax)
    purchase_returns = purchase_return_rows(db, hospital_id, date_from, date_to)
    for pr in purchase_returns:
        taxable, tax = money2(pr.taxable_amount), money2(pr.tax_amount)
        in_taxable -= taxable
        itc -= tax
        _add(inward, pr.tax_pct, -taxable, -tax)

    return {
        "return_type": "GSTR-3B",
        "generated_at": datetime.utcnow(),
        "period": _period(date_from, date_to),
        "outward_supplies": {
            "taxable_value": money2(out_taxable),
            "tax_amount": money2(out_tax),
            "by_rate": _rate_rows(outward),
        },
        "inward_supplies": {
            "taxable_value": money2(in_taxable),
            "input_tax_credit": money2(itc),
            "by_rate": _rate_rows(inward),
        },
        "liability": {
            "output_tax": money2(out_tax),
            "input_tax_credit": money2(itc),
            "net_tax_payable": money2(out_tax - itc),
        },
        "adjustments": {
            "sales_returns_count": len(ret_items),
            "sales_returns_taxable_value": money2(ret_taxable),
            "sales_returns_tax_amount": money2(ret_tax),
            "purchase_returns_count": len(purchase_returns),
        },
        "notes": [
            "This is a draft GSTR-3B support report.",
            "Use CA-reviewed figures for statutory filing.",
        ],
    }
