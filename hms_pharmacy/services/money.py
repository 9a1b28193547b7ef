# hms_pharmacy/services/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def D(x) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def money2(x) -> Decimal:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def within_tolerance(a, b, tolerance) -> bool:
    return abs(D(a) - D(b)) <= D(tolerance)


def half(x) -> Decimal:
    return money2(D(x) / 2)


def round_to_rupee(x) -> Decimal:
    return money2(D(x).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_line_amounts(qty, unit_price, discount_pct,
                         tax_pct) -> Dict[str, Decimal]:
    """
    Sale line amounts, rounded to paise at every step so the invoice
    totals are exact sums of what is printed on each line.
    """
    qty = D(qty)
    unit_price = D(unit_price)
    discount_pct = D(discount_pct)
    tax_pct = D(tax_pct)

    line_subtotal = money2(qty * unit_price)
    line_discount = money2(line_subtotal * discount_pct / HUNDRED)
    taxable = line_subtotal - line_discount
    line_tax = money2(taxable * tax_pct / HUNDRED)
    line_total = money2(taxable + line_tax)
    # SGST takes the remainder so the halves always add back to line_tax
    cgst_amount = half(line_tax)

    return {
        "line_subtotal": line_subtotal,
        "line_discount": line_discount,
        "line_tax": line_tax,
        "line_total": line_total,
        "cgst_pct": half(tax_pct),
        "sgst_pct": half(tax_pct),
        "cgst_amount": cgst_amount,
        "sgst_amount": money2(line_tax - cgst_amount),
    }


def prorate(amount, part_qty, whole_qty) -> Decimal:
    """Share of a snapshotted line amount for `part_qty` of `whole_qty` units."""
    whole = D(whole_qty)
    if whole <= 0:
        return ZERO
    return money2(D(amount) / whole * D(part_qty))
