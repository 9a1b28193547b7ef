"""
HTTP-level tests for the pharmacy API.

Covers:
- Auth and role gates
- The {"ok": ..., "data": ...} envelope and error codes
- Sale -> return (with replay) -> reports, end to end through the routes
- Hospital scoping of writes for super_admin
"""

import pytest

API = "/api"


@pytest.fixture
def admin(make_user, hospital):
    return make_user(hospital.id, "admin")


@pytest.fixture
def receptionist(make_user, hospital):
    return make_user(hospital.id, "receptionist")


@pytest.fixture
def super_admin(make_user):
    return make_user(None, "super_admin")


def _create_medication(client, headers, **overrides):
    body = {"name": "Azithromycin 500mg", "unit_price": "10.00", "gst_rate": "12",
            "hsn_code": "30042019", "opening_stock": 50}
    body.update(overrides)
    return client.post(f"{API}/medications", json=body, headers=headers)


def _sell(client, headers, medication_id, quantity):
    return client.post(f"{API}/medicine-invoices", headers=headers, json={
        "invoice_date": "2025-06-01",
        "items": [{"medication_id": medication_id, "quantity": quantity}],
    })


class TestHealthAndAuth:
    def test_root(self, client):
        res = client.get("/")

        assert res.status_code == 200
        assert res.json()["version"] == "v1"

    def test_missing_token(self, client):
        res = client.get(f"{API}/medications")

        assert res.status_code == 401
        body = res.json()
        assert body["ok"] is False
        assert body["error"]["code"] == "http_error"

    def test_garbage_token(self, client):
        res = client.get(f"{API}/medications", headers={"Authorization": "Bearer not-a-jwt"})

        assert res.status_code == 401

    def test_receptionist_cannot_read_gst_report(self, client, receptionist, auth_headers):
        res = client.get(f"{API}/medicine-invoices/gst-report", headers=auth_headers(receptionist))

        assert res.status_code == 403

    def test_receptionist_cannot_adjust_master(self, client, receptionist, auth_headers):
        res = _create_medication(client, auth_headers(receptionist))

        assert res.status_code == 403

    def test_super_admin_must_name_a_hospital(self, client, super_admin, hospital, auth_headers):
        headers = auth_headers(super_admin)

        assert _create_medication(client, headers).status_code == 400
        assert _create_medication(client, headers, hospital_id=hospital.id).status_code == 201


class TestSalesFlow:
    def test_create_medication_and_invoice(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)

        res = _create_medication(client, headers)
        assert res.status_code == 201
        med = res.json()["data"]
        assert med["stock_quantity"] == 50

        res = _sell(client, headers, med["id"], 10)
        assert res.status_code == 201
        body = res.json()
        assert body["ok"] is True
        invoice = body["data"]
        assert invoice["invoice_number"] == "MED20250601001"
        assert invoice["total_amount"] == pytest.approx(112.0)
        assert invoice["items"][0]["batch_no"] == f"AUTO-OPEN-{med['id']}"

        res = client.get(f"{API}/medications/{med['id']}/stock-position", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["stock_quantity"] == 40

    def test_oversell_is_a_conflict(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]

        res = _sell(client, headers, med["id"], 500)

        assert res.status_code == 409
        error = res.json()["error"]
        assert error["code"] == "insufficient_stock"
        assert error["details"]["available"] == 50

    def test_malformed_body_is_422(self, client, pharmacist, auth_headers):
        res = client.post(f"{API}/medicine-invoices", headers=auth_headers(pharmacist),
                          json={"items": [{"medication_id": "x", "quantity": 1}]})

        assert res.status_code == 422
        assert res.json()["error"]["code"] == "validation_error"

    def test_list_is_paginated(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]
        for _ in range(3):
            _sell(client, headers, med["id"], 1)

        res = client.get(f"{API}/medicine-invoices", headers=headers, params={"page": 1, "page_size": 2})

        body = res.json()
        assert len(body["data"]) == 2
        assert body["meta"] == {"page": 1, "page_size": 2, "total": 3}

    def test_return_replay(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]
        invoice = _sell(client, headers, med["id"], 10).json()["data"]
        body = {"clientTxnId": "POS-7781", "items": [{"invoice_item_id": invoice["items"][0]["id"], "quantity": 3}]}
        url = f"{API}/medicine-invoices/{invoice['id']}/returns"

        first = client.post(url, headers=headers, json=body)
        second = client.post(url, headers=headers, json=body)

        assert first.status_code == 201
        assert first.json()["meta"] == {"replayed": False}
        assert second.status_code == 200
        assert second.json()["meta"] == {"replayed": True}
        assert second.json()["data"]["id"] == first.json()["data"]["id"]
        assert len(client.get(url, headers=headers).json()["data"]) == 1

    def test_over_return_is_a_conflict(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]
        invoice = _sell(client, headers, med["id"], 2).json()["data"]

        res = client.post(f"{API}/medicine-invoices/{invoice['id']}/returns", headers=headers,
                          json={"items": [{"invoice_item_id": invoice["items"][0]["id"], "quantity": 3}]})

        assert res.status_code == 409
        assert res.json()["error"]["code"] == "over_return"

    def test_null_name_update_is_rejected(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]

        res = client.put(f"{API}/medications/{med['id']}", headers=headers, json={"name": None})

        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "validation_error"
        assert error["details"] == {"fields": ["name"]}

        res = client.put(f"{API}/medications/{med['id']}", headers=headers, json={"category": None})
        assert res.status_code == 200
        assert res.json()["data"]["name"] == "Azithromycin 500mg"

    def test_restricted_sale_needs_prescriber(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers, is_restricted_drug=True).json()["data"]

        res = _sell(client, headers, med["id"], 1)

        assert res.status_code == 400
        assert res.json()["error"]["code"] == "validation_error"

    def test_super_admin_return_must_name_a_hospital(self, client, super_admin, hospital, auth_headers):
        headers = auth_headers(super_admin)
        med = _create_medication(client, headers, hospital_id=hospital.id).json()["data"]
        invoice = client.post(f"{API}/medicine-invoices", headers=headers, json={
            "hospital_id": hospital.id,
            "invoice_date": "2025-06-01",
            "items": [{"medication_id": med["id"], "quantity": 4}],
        }).json()["data"]
        url = f"{API}/medicine-invoices/{invoice['id']}/returns"
        body = {"items": [{"invoice_item_id": invoice["items"][0]["id"], "quantity": 1}]}

        assert client.post(url, headers=headers, json=body).status_code == 400
        assert client.patch(f"{API}/medicine-invoices/{invoice['id']}/mark-paid", headers=headers,
                            json={}).status_code == 400
        assert client.post(url, headers=headers, json=body, params={"hospital_id": hospital.id}).status_code == 201

    def test_invoice_from_other_hospital_is_denied(self, client, pharmacist, make_user, other_hospital,
                                                   auth_headers):
        med = _create_medication(client, auth_headers(pharmacist)).json()["data"]
        invoice = _sell(client, auth_headers(pharmacist), med["id"], 1).json()["data"]
        outsider = make_user(other_hospital.id, "pharmacist")

        res = client.get(f"{API}/medicine-invoices/{invoice['id']}", headers=auth_headers(outsider))

        assert res.status_code == 403
        assert res.json()["error"]["code"] == "access_denied"


class TestReports:
    @pytest.fixture
    def sold(self, client, pharmacist, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers).json()["data"]
        return _sell(client, headers, med["id"], 10).json()["data"]

    def test_gst_report(self, client, admin, auth_headers, sold):
        res = client.get(f"{API}/medicine-invoices/gst-report", headers=auth_headers(admin),
                         params={"from": "2025-06-01", "to": "2025-06-30"})

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["summary"]["total_invoices"] == 1
        assert data["summary"]["output_gst_amount"] == pytest.approx(12.0)
        assert data["warnings"] == []

    def test_gstr_drafts(self, client, admin, auth_headers, sold):
        headers = auth_headers(admin)

        r1 = client.get(f"{API}/medicine-invoices/gstr1", headers=headers).json()["data"]
        r3b = client.get(f"{API}/medicine-invoices/gstr3b", headers=headers).json()["data"]

        assert r1["return_type"] == "GSTR-1"
        assert r1["hsn_summary"][0]["hsn"] == "30042019"
        assert r3b["liability"]["net_tax_payable"] == pytest.approx(12.0)

    def test_marg_csv_download(self, client, admin, auth_headers, sold):
        res = client.get(f"{API}/medicine-invoices/gst-marg-export", headers=auth_headers(admin),
                         params={"from": "2025-06-01", "to": "2025-06-30"})

        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        assert "marg-gst-export-2025-06-01-to-2025-06-30.csv" in res.headers["content-disposition"]
        lines = res.text.strip().splitlines()
        assert lines[0].startswith("InvoiceNumber,InvoiceDate,")
        assert lines[1].startswith(sold["invoice_number"])

    def test_marg_unknown_format(self, client, admin, auth_headers):
        res = client.get(f"{API}/medicine-invoices/gst-marg-export", headers=auth_headers(admin),
                         params={"format": "pdf"})

        assert res.status_code == 400
        assert res.json()["ok"] is False

    def test_sales_analytics(self, client, admin, receptionist, auth_headers, sold):
        res = client.get(f"{API}/medicine-invoices/analytics", headers=auth_headers(admin),
                         params={"from": "2025-06-01", "to": "2025-06-30"})

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["summary"]["total_invoices"] == 1
        assert data["summary"]["total_amount"] == pytest.approx(112.0)
        assert data["range"] == {"from": "2025-06-01", "to": "2025-06-30"}
        assert client.get(f"{API}/medicine-invoices/analytics",
                          headers=auth_headers(receptionist)).status_code == 403

    def test_schedule_h_log(self, client, pharmacist, patient, auth_headers):
        headers = auth_headers(pharmacist)
        med = _create_medication(client, headers, schedule_category="schedule_h").json()["data"]
        client.post(f"{API}/medicine-invoices", headers=headers, json={
            "patient_id": patient.id,
            "invoice_date": "2025-06-01",
            "items": [{"medication_id": med["id"], "quantity": 1, "prescriber_doctor_name": "Dr. Meera Iyer"}],
        })

        res = client.get(f"{API}/medicine-invoices/schedule-h-log", headers=headers)

        assert res.status_code == 200
        body = res.json()
        assert body["meta"] == {"count": 1}
        assert body["data"][0]["prescriber_doctor_name"] == "Dr. Meera Iyer"
