from decimal import Decimal

from fastapi.testclient import TestClient
from jose import jwt

from config import settings
from database import get_session
from main import app

from conftest import COMPANY_ID, OTHER_COMPANY_ID


def _generate(client, occupancy, month="2024-01"):
    return client.post(
        "/api/invoices/generate-rent",
        json={"occupancyId": occupancy.id, "month": month},
    )


def _pay(client, invoice_id, amount, **extra):
    body = {
        "invoiceId": invoice_id,
        "amount": amount,
        "paidAt": "2024-01-10T09:30:00Z",
        "method": "BANK",
    }
    body.update(extra)
    return client.post("/api/payments", json=body)


def test_generate_rent_invoice_returns_camel_case_invoice(client, make_occupancy):
    occupancy = make_occupancy(monthly_rent="1000.00")

    response = _generate(client, occupancy)

    assert response.status_code == 201
    body = response.json()
    assert body["invoiceNumber"] == f"INV-202401-{occupancy.id[:8]}"
    assert body["status"] == "draft"
    assert body["dueDate"] == "2024-01-05"
    assert Decimal(body["totalAmount"]) == Decimal("1000.00")
    assert Decimal(body["amountDue"]) == Decimal("1000.00")
    assert body["lineItems"][0]["description"] == "Monthly Rent - January 2024"
    assert "unitPrice" in body["lineItems"][0]


def test_duplicate_generation_is_409(client, make_occupancy):
    occupancy = make_occupancy()
    assert _generate(client, occupancy).status_code == 201

    response = _generate(client, occupancy)

    assert response.status_code == 409
    body = response.json()
    assert body["detail"] == "Invoice for this period already exists"
    assert body["error"]["code"] == "DUPLICATE_RESOURCE"
    assert body["error"]["statusCode"] == 409


def test_malformed_month_is_422(client, make_occupancy):
    occupancy = make_occupancy()
    response = _generate(client, occupancy, month="2024-1")
    assert response.status_code == 422


def test_payment_flow_over_http(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]

    first = _pay(client, invoice_id, "600.00")
    assert first.status_code == 201
    assert first.json()["method"] == "BANK"

    invoice = client.get(f"/api/invoices/{invoice_id}").json()
    assert invoice["status"] == "sent"
    assert Decimal(invoice["amountPaid"]) == Decimal("600.00")

    assert _pay(client, invoice_id, "400.00").status_code == 201
    invoice = client.get(f"/api/invoices/{invoice_id}").json()
    assert invoice["status"] == "paid"
    assert invoice["paidDate"] is not None

    over = _pay(client, invoice_id, "1.00")
    assert over.status_code == 400
    assert over.json()["error"]["code"] == "PAYMENT_EXCEEDS_TOTAL"

    verify = client.get(f"/api/invoices/{invoice_id}/ledger/verify").json()
    assert verify["verified"] is True
    assert Decimal(verify["ledgerTotal"]) == Decimal("1000.00")


def test_invoice_payment_route_and_listing(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]

    response = client.post(
        f"/api/invoices/{invoice_id}/payment",
        json={"amount": "250.00", "paidAt": "2024-01-10T09:30:00", "method": "CASH", "metadata": {"till": 3}},
    )
    assert response.status_code == 201
    assert response.json()["metadata"] == {"till": 3}

    payments = client.get(f"/api/invoices/{invoice_id}/payments").json()
    assert payments["total"] == 1
    assert payments["payments"][0]["invoiceId"] == invoice_id


def test_idempotency_header_replays_payment(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]
    body = {"invoiceId": invoice_id, "amount": "100.00", "paidAt": "2024-01-10T09:30:00", "method": "CARD"}

    first = client.post("/api/payments", json=body, headers={"Idempotency-Key": "abc-1"})
    second = client.post("/api/payments", json=body, headers={"Idempotency-Key": "abc-1"})

    assert first.json()["id"] == second.json()["id"]
    invoice = client.get(f"/api/invoices/{invoice_id}").json()
    assert Decimal(invoice["amountPaid"]) == Decimal("100.00")


def test_update_and_remove_payment_over_http(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]
    payment_id = _pay(client, invoice_id, "1000.00").json()["id"]

    response = client.patch(f"/api/payments/{payment_id}", json={"amount": "1000.01"})
    assert response.status_code == 400

    response = client.patch(f"/api/payments/{payment_id}", json={"amount": "900.00", "reference": "TXN-9"})
    assert response.status_code == 200
    assert response.json()["reference"] == "TXN-9"
    assert client.get(f"/api/invoices/{invoice_id}").json()["status"] == "sent"

    assert client.delete(f"/api/payments/{payment_id}").status_code == 204
    assert client.delete(f"/api/payments/{payment_id}").status_code == 404
    assert Decimal(client.get(f"/api/invoices/{invoice_id}").json()["amountPaid"]) == Decimal("0.00")

    response = client.post(f"/api/payments/{payment_id}/activate")
    assert response.status_code == 200
    assert response.json()["isActive"] is True


def test_payment_update_rejects_unknown_fields(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]
    payment_id = _pay(client, invoice_id, "10.00").json()["id"]

    response = client.patch(f"/api/payments/{payment_id}", json={"invoiceId": "elsewhere"})

    assert response.status_code == 422


def test_payment_update_rejects_null_for_required_fields(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]
    payment_id = _pay(client, invoice_id, "10.00").json()["id"]

    for field in ("paidAt", "method", "amount"):
        response = client.patch(f"/api/payments/{payment_id}", json={field: None})
        assert response.status_code == 422, field

    payment = client.get(f"/api/payments/{payment_id}").json()
    assert payment["method"] == "BANK"
    assert payment["paidAt"] is not None


def test_zero_rent_occupancy_is_400_and_writes_nothing(client, make_occupancy):
    occupancy = make_occupancy(monthly_rent="0.00")

    first = _generate(client, occupancy)
    second = _generate(client, occupancy)

    assert first.status_code == 400
    assert second.status_code == 400
    assert client.get(f"/api/invoices/occupancy/{occupancy.id}").json() == []


def test_status_transitions_over_http(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]

    response = client.patch(f"/api/invoices/{invoice_id}/status", json={"status": "paid"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    assert client.post(f"/api/invoices/{invoice_id}/send").json()["status"] == "sent"

    response = client.patch(f"/api/invoices/{invoice_id}/status", json={"status": "paid"})
    assert response.status_code == 200
    assert Decimal(response.json()["amountPaid"]) == Decimal("1000.00")

    response = client.post(f"/api/invoices/{invoice_id}/cancel")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "CANNOT_CANCEL_PAID_INVOICE"

    response = client.patch(f"/api/invoices/{invoice_id}", json={"notes": "late"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "CANNOT_UPDATE_PAID_INVOICE"

    assert client.delete(f"/api/invoices/{invoice_id}").status_code == 400


def test_remove_and_activate_invoice_over_http(client, make_occupancy):
    invoice_id = _generate(client, make_occupancy()).json()["id"]

    assert client.delete(f"/api/invoices/{invoice_id}").status_code == 204
    assert client.get(f"/api/invoices/{invoice_id}").status_code == 404

    response = client.post(f"/api/invoices/{invoice_id}/activate")
    assert response.status_code == 200
    assert response.json()["isActive"] is True


def test_bulk_generate_over_http(client, make_occupancy):
    make_occupancy()
    make_occupancy(tenant_id="tenant-2")

    response = client.post("/api/invoices/bulk-generate", json={"month": "2024-02"})

    assert response.status_code == 201
    body = response.json()
    assert body["processed"] == 2
    assert body["created"] == 2
    assert len(body["createdInvoiceIds"]) == 2


def test_list_stats_and_balance(client, make_occupancy):
    occupancy = make_occupancy(tenant_id="tenant-9")
    invoice_id = _generate(client, occupancy).json()["id"]
    client.post(f"/api/invoices/{invoice_id}/send")
    _pay(client, invoice_id, "250.00")

    listing = client.get("/api/invoices", params={"status": "sent", "pageSize": 5}).json()
    assert listing["total"] == 1
    assert listing["pageSize"] == 5

    stats = client.get("/api/invoices/stats").json()
    assert stats["sent"] == 1
    assert Decimal(stats["totalOutstanding"]) == Decimal("750.00")

    balance = client.get("/api/invoices/tenant/tenant-9/balance").json()
    assert Decimal(balance["totalOwed"]) == Decimal("750.00")
    assert balance["openCount"] == 1

    payment_stats = client.get("/api/payments/stats").json()
    assert payment_stats["totalPayments"] == 1
    assert payment_stats["byMethod"]["BANK"]["count"] == 1


def test_other_company_gets_404(client, make_occupancy):
    occupancy = make_occupancy(company_id=OTHER_COMPANY_ID)
    response = _generate(client, occupancy)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


def test_company_scope_comes_from_the_token(db_session, make_occupancy):
    occupancy = make_occupancy(company_id=OTHER_COMPANY_ID)

    def _session_override():
        yield db_session

    app.dependency_overrides[get_session] = _session_override
    try:
        client = TestClient(app)
        assert _generate(client, occupancy).status_code == 401

        token = jwt.encode({"company_id": OTHER_COMPANY_ID}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        response = client.post(
            "/api/invoices/generate-rent",
            json={"occupancyId": occupancy.id, "month": "2024-01"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 201
        assert response.json()["companyId"] == OTHER_COMPANY_ID

        token = jwt.encode({"company_id": COMPANY_ID}, "wrong-secret", algorithm=settings.jwt_algorithm)
        response = client.get("/api/invoices", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403
    finally:
        app.dependency_overrides.clear()
