"""
Tests for medicine invoice creation.

Covers:
- The FEFO sale end to end (amounts, aggregate, batch, ledger)
- Line-level rounding and header totals
- Oversell protection and all-or-nothing rollback
- Pinned batches and legacy stock
- Input validation and hospital scoping
- Schedule H prescriber/patient rule and its register
- Round-off, split payments and sales analytics
"""

from datetime import date
from decimal import Decimal

import pytest

from hms_pharmacy.core.errors import (
    AccessDeniedError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from hms_pharmacy.models import MedicationBatch, MedicineInvoice, Patient, StockLedgerEntry
from hms_pharmacy.schemas.medicine_invoice import (
    InvoiceCreate,
    InvoiceItemIn,
    MarkPaidIn,
    ReturnCreate,
    ReturnItemIn,
)
from hms_pharmacy.services.invoice_returns import create_return
from hms_pharmacy.services.money import compute_line_amounts
from hms_pharmacy.services.medicine_invoices import (
    create_invoice,
    get_invoice,
    list_invoices,
    mark_paid,
    sales_analytics,
    schedule_h_log,
)

SALE_DATE = date(2025, 6, 1)


def _sale(medication_id, quantity, **kw) -> InvoiceItemIn:
    return InvoiceItemIn(medication_id=medication_id, quantity=Decimal(str(quantity)), **kw)


def _sale_entries(db, medication_id):
    return (db.query(StockLedgerEntry)
            .filter(StockLedgerEntry.medication_id == medication_id, StockLedgerEntry.entry_type == "sale")
            .order_by(StockLedgerEntry.id.asc())
            .all())


class TestInvoiceEndToEnd:
    """Opening stock 100 in batch B1, sell 20 at 5% discount and 12% tax."""

    def test_sale_amounts_stock_and_ledger(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=100,
                              batch_no="B1", expiry_date=date(2025, 12, 31))

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE,
            items=[_sale(med.id, 20, discount_pct=Decimal("5"), tax_pct=Decimal("12"))],
        ))

        item = invoice.items[0]
        assert item.line_subtotal == Decimal("200.00")
        assert item.line_discount == Decimal("10.00")
        assert item.line_tax == Decimal("22.80")
        assert item.line_total == Decimal("212.80")
        assert item.cgst_amount == Decimal("11.40")
        assert item.sgst_amount == Decimal("11.40")
        assert item.batch_no == "B1"
        assert item.expiry_date == date(2025, 12, 31)

        assert invoice.total_amount == Decimal("212.80")
        assert invoice.invoice_number == "MED20250601001"

        db.refresh(med)
        batch = db.query(MedicationBatch).filter_by(medication_id=med.id, batch_no="B1").one()
        assert med.stock_quantity == 80
        assert batch.quantity_on_hand == 80

        entries = _sale_entries(db, med.id)
        assert len(entries) == 1
        assert entries[0].quantity_out == 20
        assert entries[0].balance_after == 80
        assert entries[0].batch_id == batch.id
        assert entries[0].reference_id == invoice.id

    def test_catalog_price_and_gst_rate_are_defaults(self, db, hospital, make_medication):
        med = make_medication(unit_price="25.00", gst_rate="5", opening_stock=10)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            items=[_sale(med.id, 2)],
        ))

        item = invoice.items[0]
        assert item.unit_price == Decimal("25.00")
        assert item.tax_pct == Decimal("5.00")
        assert item.line_tax == Decimal("2.50")

    def test_invoice_numbers_run_per_day(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)

        first = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, items=[_sale(med.id, 1)]))
        second = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, items=[_sale(med.id, 1)]))
        next_day = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=date(2025, 6, 2), items=[_sale(med.id, 1)]))

        assert first.invoice_number == "MED20250601001"
        assert second.invoice_number == "MED20250601002"
        assert next_day.invoice_number == "MED20250602001"


class TestRounding:
    """Header totals are exact sums of the rounded lines."""

    def test_three_lines_with_distinct_rates(self, db, hospital, make_medication):
        a = make_medication("Amoxicillin 250mg", unit_price="33.33", gst_rate="12", opening_stock=50)
        b = make_medication("Cetirizine 10mg", unit_price="12.49", gst_rate="5", opening_stock=50)
        c = make_medication("Insulin Pen", unit_price="99.99", gst_rate="18", opening_stock=50)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[
            _sale(a.id, 3, discount_pct=Decimal("7.5")),
            _sale(b.id, 7, discount_pct=Decimal("2.5")),
            _sale(c.id, 1),
        ]))

        totals = [i.line_total for i in invoice.items]
        assert totals == [Decimal("103.59"), Decimal("89.50"), Decimal("117.99")]
        assert invoice.total_amount == sum(totals)
        assert invoice.total_amount == Decimal("311.08")
        assert invoice.subtotal == sum(i.line_subtotal for i in invoice.items)
        assert invoice.discount_amount == sum(i.line_discount for i in invoice.items)
        assert invoice.tax_amount == sum(i.line_tax for i in invoice.items)
        assert invoice.total_amount == invoice.subtotal - invoice.discount_amount + invoice.tax_amount

    def test_gst_halves_add_back_to_line_tax(self, db, hospital, make_medication):
        amounts = compute_line_amounts(1, Decimal("1.00"), 0, Decimal("5"))

        assert amounts["line_tax"] == Decimal("0.05")
        assert amounts["cgst_amount"] == Decimal("0.03")
        assert amounts["sgst_amount"] == Decimal("0.02")

        med = make_medication("ORS Sachet", unit_price="1.00", gst_rate="5", opening_stock=10)
        item = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)])).items[0]
        assert item.cgst_amount + item.sgst_amount == item.line_tax


class TestOversell:
    """Stock can never go below zero."""

    def test_second_sale_of_six_from_ten_is_rejected(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)

        create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 6)]))
        with pytest.raises(InsufficientStockError) as exc_info:
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 6)]))

        assert exc_info.value.available == 4
        assert exc_info.value.requested == 6
        assert med.name in exc_info.value.message
        db.refresh(med)
        assert med.stock_quantity == 4
        assert db.query(MedicineInvoice).count() == 1
        assert len(_sale_entries(db, med.id)) == 1

    def test_lines_of_same_medication_are_checked_together(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)

        with pytest.raises(InsufficientStockError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[
                _sale(med.id, 6), _sale(med.id, 6),
            ]))

        db.refresh(med)
        assert med.stock_quantity == 10

    def test_failing_later_line_rolls_back_earlier_lines(self, db, hospital, make_medication):
        plenty = make_medication("ORS Sachet", opening_stock=50)
        # aggregate says 5, but the only batch is expired: fails during allocation
        scarce = make_medication("Azithromycin 500mg", opening_stock=5, batch_no="EXP",
                                 expiry_date=date(2025, 1, 31))

        with pytest.raises(InsufficientStockError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                invoice_date=SALE_DATE,
                items=[_sale(plenty.id, 10), _sale(scarce.id, 3)],
            ))

        db.refresh(plenty)
        batch = db.query(MedicationBatch).filter_by(medication_id=plenty.id).one()
        assert plenty.stock_quantity == 50
        assert batch.quantity_on_hand == 50
        assert db.query(MedicineInvoice).count() == 0
        assert _sale_entries(db, plenty.id) == []

    def test_expired_batches_are_not_sold(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10, batch_no="OLD", expiry_date=date(2025, 1, 31))

        with pytest.raises(InsufficientStockError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                invoice_date=SALE_DATE, items=[_sale(med.id, 1)]))


class TestAllocationSources:
    """Pinned batches and legacy stock."""

    def test_sale_spans_batches_in_expiry_order(self, db, hospital, make_medication, make_batch):
        med = make_medication()
        make_batch(med, "B-LATE", 10, date(2026, 6, 1))
        make_batch(med, "B-EARLY", 5, date(2025, 9, 1))

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, items=[_sale(med.id, 8)]))

        entries = _sale_entries(db, med.id)
        assert [e.quantity_out for e in entries] == [5, 3]
        assert [e.balance_after for e in entries] == [10, 7]
        assert invoice.items[0].batch_no == "B-EARLY"

    def test_pinned_batch_skips_fefo(self, db, hospital, make_medication, make_batch):
        med = make_medication()
        early = make_batch(med, "B-EARLY", 5, date(2025, 9, 1))
        late = make_batch(med, "B-LATE", 10, date(2026, 6, 1))

        create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, items=[_sale(med.id, 4, batch_no=" b-late ")]))

        db.refresh(early)
        db.refresh(late)
        assert early.quantity_on_hand == 5
        assert late.quantity_on_hand == 6

    def test_pinned_expired_batch_is_rejected(self, db, hospital, make_medication, make_batch):
        med = make_medication()
        make_batch(med, "B-OLD", 5, date(2025, 1, 1))

        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                invoice_date=SALE_DATE, items=[_sale(med.id, 1, batch_no="B-OLD")]))

    def test_legacy_stock_covers_the_remainder(self, db, hospital, make_medication, make_batch):
        med = make_medication()
        make_batch(med, "B1", 3, date(2026, 1, 1))
        med.stock_quantity = med.stock_quantity + 5  # pre-batch stock
        db.commit()

        create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, items=[_sale(med.id, 6)]))

        entries = _sale_entries(db, med.id)
        assert [(e.batch_id is None, e.quantity_out) for e in entries] == [(False, 3), (True, 3)]
        assert "legacy stock without batch" in entries[1].notes
        db.refresh(med)
        assert med.stock_quantity == 2


class TestValidation:
    """Bad input fails before anything is written."""

    def test_empty_items(self, db, hospital):
        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[]))

    @pytest.mark.parametrize("quantity", ["0", "-2", "2.5"])
    def test_bad_quantities(self, db, hospital, make_medication, quantity):
        med = make_medication(opening_stock=10)

        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, quantity)]))

    def test_whole_decimal_quantity_is_accepted(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, "2.0")]))

        assert invoice.items[0].quantity == 2

    def test_medication_from_other_hospital(self, db, hospital, other_hospital, make_medication):
        foreign = make_medication(hospital_id=other_hospital.id, opening_stock=10)

        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(foreign.id, 1)]))

    def test_inactive_medication(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)
        med.is_active = False
        db.commit()

        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)]))

    def test_patient_from_other_hospital(self, db, hospital, other_hospital, make_medication):
        stranger = Patient(hospital_id=other_hospital.id, uhid="LC-9", name="Ravi")
        db.add(stranger)
        db.commit()
        med = make_medication(opening_stock=10)

        with pytest.raises(ValidationError):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                patient_id=stranger.id, items=[_sale(med.id, 1)]))


class TestReadAndPayment:
    """Lookup, listing and payment status."""

    def test_get_invoice_is_hospital_scoped(self, db, hospital, other_hospital, make_medication):
        med = make_medication(opening_stock=10)
        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)]))

        assert get_invoice(db, hospital_id=None, invoice_id=invoice.id).id == invoice.id
        with pytest.raises(AccessDeniedError):
            get_invoice(db, hospital_id=other_hospital.id, invoice_id=invoice.id)
        with pytest.raises(NotFoundError):
            get_invoice(db, hospital_id=hospital.id, invoice_id=9999)

    def test_list_invoices_paginates(self, db, hospital, patient, make_medication):
        med = make_medication(opening_stock=10)
        for _ in range(3):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                patient_id=patient.id, items=[_sale(med.id, 1)]))

        page = list_invoices(db, hospital_id=hospital.id, page=1, page_size=2)

        assert page["total"] == 3
        assert len(page["items"]) == 2
        assert page["items"][0].patient_name == "Anita Raman"

    def test_mark_paid(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)
        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)]))
        assert invoice.is_paid is False

        updated = mark_paid(db, hospital_id=hospital.id, invoice_id=invoice.id,
                            payload=MarkPaidIn(is_paid=True, payment_mode="upi"))

        assert updated.is_paid is True
        assert updated.payment_mode == "upi"

    def test_mark_paid_with_split_breakup(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=20)
        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 10)]))

        updated = mark_paid(db, hospital_id=hospital.id, invoice_id=invoice.id,
                            payload=MarkPaidIn(payment_breakup={"cash": Decimal("60"), "card": Decimal("52")}))

        assert updated.is_paid is True
        assert updated.paid_amount == Decimal("112.00")
        assert updated.payment_breakup == {"cash": "60.00", "card": "52.00"}

    def test_mark_paid_split_mismatch_changes_nothing(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=20)
        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 10)]))

        with pytest.raises(ValidationError):
            mark_paid(db, hospital_id=hospital.id, invoice_id=invoice.id,
                      payload=MarkPaidIn(payment_breakup={"cash": Decimal("50")}))

        db.refresh(invoice)
        assert invoice.is_paid is False
        assert invoice.paid_amount == Decimal("0.00")


class TestScheduleH:
    """Restricted medicines need a prescriber and a named patient."""

    @pytest.fixture
    def restricted(self, make_medication):
        return make_medication("Alprazolam 0.5mg", schedule_category="schedule_h1", opening_stock=10)

    def test_missing_prescriber_is_rejected(self, db, hospital, patient, restricted):
        with pytest.raises(ValidationError, match="Prescriber doctor name is required"):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                patient_id=patient.id, items=[_sale(restricted.id, 1, prescriber_doctor_name="   ")]))

        db.refresh(restricted)
        assert restricted.stock_quantity == 10

    def test_walk_in_sale_is_rejected(self, db, hospital, restricted):
        with pytest.raises(ValidationError, match="Patient details are required"):
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                items=[_sale(restricted.id, 1, prescriber_doctor_name="Dr. Meera Iyer")]))

        assert db.query(MedicineInvoice).count() == 0

    def test_unrestricted_lines_need_neither(self, db, hospital, make_medication):
        med = make_medication(opening_stock=10)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)]))

        assert invoice.items[0].is_restricted_drug is False
        assert invoice.patient_id is None

    def test_sale_is_recorded_in_register(self, db, hospital, other_hospital, patient, make_medication,
                                          restricted):
        plain = make_medication("Dolo 650", opening_stock=10)
        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            patient_id=patient.id, invoice_date=SALE_DATE,
            items=[_sale(restricted.id, 2, prescriber_doctor_name=" Dr. Meera Iyer "), _sale(plain.id, 1)]))

        assert invoice.items[0].is_restricted_drug is True
        assert invoice.items[0].prescriber_doctor_name == "Dr. Meera Iyer"

        rows = schedule_h_log(db, hospital_id=hospital.id, date_from=SALE_DATE, date_to=SALE_DATE)
        assert len(rows) == 1
        row = rows[0]
        assert row["invoice_number"] == invoice.invoice_number
        assert row["patient_name"] == "Anita Raman"
        assert row["patient_uhid"] == "UH-0001"
        assert row["medication_name"] == "Alprazolam 0.5mg"
        assert row["schedule_category"] == "schedule_h1"
        assert row["quantity"] == 2
        assert row["prescriber_doctor_name"] == "Dr. Meera Iyer"

        assert schedule_h_log(db, hospital_id=other_hospital.id) == []
        assert schedule_h_log(db, hospital_id=hospital.id, date_from=date(2025, 7, 1)) == []


class TestPayments:
    """Round-off to the rupee and split-payment breakup."""

    def test_grand_total_is_rounded_to_the_rupee(self, db, hospital, make_medication):
        med = make_medication(unit_price="33.33", gst_rate="12", opening_stock=10)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(items=[_sale(med.id, 1)]))

        assert invoice.total_amount == Decimal("37.33")
        assert invoice.grand_total == Decimal("37.00")
        assert invoice.round_off_amount == Decimal("-0.33")
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.is_paid is False

    def test_round_off_can_be_turned_off(self, db, hospital, make_medication):
        med = make_medication(unit_price="33.33", gst_rate="12", opening_stock=10)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            apply_round_off=False, is_paid=True, items=[_sale(med.id, 1)]))

        assert invoice.grand_total == Decimal("37.33")
        assert invoice.round_off_amount == Decimal("0.00")
        assert invoice.paid_amount == Decimal("37.33")

    def test_split_payment_marks_invoice_paid(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=20)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            payment_breakup={"cash": Decimal("100"), "upi": Decimal("12"), "card": Decimal("0")},
            items=[_sale(med.id, 10)]))

        assert invoice.grand_total == Decimal("112.00")
        assert invoice.paid_amount == Decimal("112.00")
        assert invoice.is_paid is True
        assert invoice.payment_breakup == {"cash": "100.00", "upi": "12.00"}

    def test_split_payment_mismatch_is_rejected(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=20)

        with pytest.raises(ValidationError, match="Split payment mismatch") as exc:
            create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
                payment_breakup={"cash": Decimal("100")}, items=[_sale(med.id, 10)]))

        assert exc.value.details == {"received": "100.00", "expected": "112.00"}
        assert db.query(MedicineInvoice).count() == 0
        db.refresh(med)
        assert med.stock_quantity == 20

    def test_split_within_tolerance_is_accepted(self, db, hospital, make_medication):
        med = make_medication(unit_price="10.00", gst_rate="12", opening_stock=20)

        invoice = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            payment_breakup={"cash": Decimal("111.60")}, items=[_sale(med.id, 10)]))

        assert invoice.paid_amount == Decimal("111.60")
        assert invoice.is_paid is True


class TestSalesAnalytics:
    """Totals net of returns; breakdowns by day, category and medicine."""

    @pytest.fixture
    def june_sales(self, db, hospital, make_medication):
        antibiotic = make_medication("Azithromycin 500mg", unit_price="10.00", gst_rate="12",
                                     opening_stock=50, category="Antibiotic")
        ors = make_medication("ORS Sachet", unit_price="5.00", gst_rate="5", opening_stock=50)
        paid = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=SALE_DATE, is_paid=True, items=[_sale(antibiotic.id, 10)]))
        unpaid = create_invoice(db, hospital_id=hospital.id, payload=InvoiceCreate(
            invoice_date=date(2025, 6, 2), items=[_sale(ors.id, 3)]))
        create_return(db, hospital_id=hospital.id, invoice_id=paid.id, payload=ReturnCreate(
            items=[ReturnItemIn(invoice_item_id=paid.items[0].id, quantity=Decimal("2"))],
            return_date=date(2025, 6, 3)))
        return paid, unpaid

    def test_summary_is_net_of_returns(self, db, hospital, june_sales):
        report = sales_analytics(db, hospital_id=hospital.id,
                                 date_from=date(2025, 6, 1), date_to=date(2025, 6, 30))

        summary = report["summary"]
        assert summary["total_invoices"] == 2
        assert summary["total_returns"] == 1
        assert summary["total_returns_amount"] == Decimal("22.40")
        assert summary["total_amount"] == Decimal("105.60")
        assert summary["paid_amount"] == Decimal("89.60")
        assert summary["pending_amount"] == Decimal("16.00")
        assert summary["collection_rate"] == Decimal("84.85")

    def test_breakdowns(self, db, hospital, june_sales):
        report = sales_analytics(db, hospital_id=hospital.id)

        assert [(d["date"], d["invoices"], d["paid_amount"], d["pending_amount"]) for d in report["day_wise"]] == [
            (date(2025, 6, 1), 1, Decimal("112.00"), Decimal("0.00")),
            (date(2025, 6, 2), 1, Decimal("0.00"), Decimal("16.00")),
        ]
        assert report["category_wise"] == [
            {"category": "Antibiotic", "amount": Decimal("112.00"), "quantity": 10},
            {"category": "other", "amount": Decimal("15.75"), "quantity": 3},
        ]
        assert report["top_medicines"][0]["name"] == "Azithromycin 500mg"

    def test_returns_outside_range_are_not_netted(self, db, hospital, june_sales):
        report = sales_analytics(db, hospital_id=hospital.id, date_to=date(2025, 6, 2))

        assert report["summary"]["total_returns"] == 0
        assert report["summary"]["total_amount"] == Decimal("128.00")

    def test_empty_range(self, db, hospital):
        report = sales_analytics(db, hospital_id=hospital.id)

        assert report["summary"]["total_amount"] == Decimal("0.00")
        assert report["summary"]["collection_rate"] == Decimal("0.00")
        assert report["day_wise"] == []
