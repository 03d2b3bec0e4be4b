from datetime import date

import pytest

from config import AppConfig
from services.event_publisher import LoanEvent


@pytest.fixture
def disbursed_loan(client, customer_payload, loan_payload):
    """30000 at 1% per month over 3 months: EMI 10300, disbursed on 2024-01-10."""
    customer_id = client.post("/customers", json=customer_payload).json()["id"]
    loan_payload.update(requested_amount=30000, interest_rate=1, period=3)
    loan_id = client.post(f"/customers/{customer_id}/loans", json=loan_payload).json()["id"]
    client.post(f"/loans/{loan_id}/approve", json={"approved_by": "officer-1"})
    client.post(
        f"/loans/{loan_id}/disburse",
        json={"disbursed_by": "cashier-1", "disbursed_date": "2024-01-10", "disbursement_method": "cash"},
    )
    return loan_id


@pytest.fixture
def schedule(client, disbursed_loan):
    resp = client.post(f"/loans/{disbursed_loan}/schedule")
    assert resp.status_code == 200
    return resp.json()["data"]


def _pay(client, repayment_id, amount, day="2024-02-10", **extra):
    body = {"paid_amount": amount, "payment_date": day, "payment_mode": "cash", **extra}
    return client.post(f"/payments/{repayment_id}/pay", json=body)


def test_generate_schedule(schedule):
    assert [item["emi_no"] for item in schedule] == [1, 2, 3]
    assert [item["due_date"] for item in schedule] == ["2024-02-10", "2024-03-10", "2024-04-10"]
    assert all(item["amount"] == 10300 for item in schedule)
    assert all(item["balance"] == 10300 for item in schedule)
    assert all(item["status"] == "pending" for item in schedule)


def test_schedule_requires_disbursement(client, customer_payload, loan_payload):
    customer_id = client.post("/customers", json=customer_payload).json()["id"]
    loan_id = client.post(f"/customers/{customer_id}/loans", json=loan_payload).json()["id"]

    resp = client.post(f"/loans/{loan_id}/schedule")
    assert resp.status_code == 422


def test_schedule_regeneration_replaces_unpaid_installments(client, disbursed_loan, schedule):
    resp = client.post(f"/loans/{disbursed_loan}/schedule")
    assert resp.json()["count"] == 3
    assert client.get(f"/loans/{disbursed_loan}/payments").json()["count"] == 3


def test_schedule_cannot_be_regenerated_after_payment(client, disbursed_loan, schedule):
    _pay(client, schedule[0]["id"], 10300)
    assert client.post(f"/loans/{disbursed_loan}/schedule").status_code == 409


def test_get_payment(client, schedule):
    resp = client.get(f"/payments/{schedule[0]['id']}")
    assert resp.status_code == 200
    assert resp.json()["emi_no"] == 1

    assert client.get("/payments/missing").status_code == 404


def test_first_payment_activates_loan(client, publisher, disbursed_loan, schedule):
    resp = _pay(client, schedule[0]["id"], 10300, processed_by="cashier-1")

    assert resp.status_code == 200
    paid = resp.json()
    assert paid["status"] == "paid"
    assert paid["balance"] == 0
    assert paid["paid_amount"] == 10300
    assert paid["receipt_number"] == f"RCP-{disbursed_loan}-001"
    assert paid["processed_by"] == "cashier-1"
    assert client.get(f"/loans/{disbursed_loan}").json()["status"] == "active"

    event, payload = publisher.publish.call_args[0]
    assert event is LoanEvent.PAYMENT_RECEIPT
    assert payload["amount"] == 10300
    assert payload["balance"] == 20600


def test_partial_payments_accumulate(client, disbursed_loan, schedule):
    first = _pay(client, schedule[1]["id"], 5000, day="2024-03-01").json()
    assert first["status"] == "partial"
    assert first["balance"] == 5300
    assert first["receipt_number"] is None

    second = _pay(client, schedule[1]["id"], 5300, day="2024-03-05").json()
    assert second["status"] == "paid"
    assert second["paid_amount"] == 10300
    assert second["receipt_number"] == f"RCP-{disbursed_loan}-002"


def test_settling_every_installment_completes_loan(client, disbursed_loan, schedule):
    for item in schedule:
        assert _pay(client, item["id"], 10300, day=item["due_date"]).status_code == 200

    assert client.get(f"/loans/{disbursed_loan}").json()["status"] == "completed"


def test_paying_a_paid_installment(client, schedule):
    _pay(client, schedule[0]["id"], 10300)
    resp = _pay(client, schedule[0]["id"], 10300)
    assert resp.status_code == 422


def test_payment_must_be_positive(client, schedule):
    assert _pay(client, schedule[0]["id"], 0).status_code == 422


def test_cannot_delete_loan_with_repayments(client, disbursed_loan, schedule):
    assert client.delete(f"/loans/{disbursed_loan}").status_code == 409


def test_overdue_lists_unsettled_past_installments(client, schedule, monkeypatch):
    monkeypatch.setattr(AppConfig, "PENALTY_RATE", 1.0)
    monkeypatch.setattr(AppConfig, "PENALTY_TYPE", "per_day")
    _pay(client, schedule[0]["id"], 10300)
    _pay(client, schedule[1]["id"], 5000, day="2024-03-10")

    resp = client.get("/payments/overdue")
    assert resp.status_code == 200
    body = resp.json()
    # the schedule fell due in 2024, so the two open installments are late
    assert body["count"] == 2
    first, second = body["data"]
    assert (first["emi_no"], first["status"]) == (2, "partial")
    assert second["emi_no"] == 3

    days = (date.today() - date(2024, 3, 10)).days
    assert first["is_overdue"] is True
    assert first["days_overdue"] == days
    assert first["penalty"] == round(10300 * 0.01 * days)
    assert first["customer_name"] == "Nimal Perera"
    assert first["customer_phone"] == "+94771234567"


def test_overdue_penalty_follows_configured_type(client, schedule, monkeypatch):
    monkeypatch.setattr(AppConfig, "PENALTY_RATE", 2.0)
    monkeypatch.setattr(AppConfig, "PENALTY_TYPE", "fixed_total")

    data = client.get("/payments/overdue").json()["data"]
    assert [item["penalty"] for item in data] == [206, 206, 206]


def test_overdue_is_empty_without_late_installments(client):
    assert client.get("/payments/overdue").json() == {"count": 0, "data": []}


def test_daily_collection_sheet(client, disbursed_loan, schedule):
    resp = client.get("/payments/daily/2024-03-10")
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    item = body["data"][0]
    assert item["loan_id"] == disbursed_loan
    assert item["emi_no"] == 2
    assert item["is_overdue"] is True
    assert item["days_overdue"] == (date.today() - date(2024, 3, 10)).days
    assert item["next_payment_date"] == "2024-04-10"


def test_daily_sheet_for_paid_and_last_installment(client, schedule):
    _pay(client, schedule[2]["id"], 10300, day="2024-04-10")

    item = client.get("/payments/daily/2024-04-10").json()["data"][0]
    assert item["status"] == "paid"
    assert item["is_overdue"] is False
    assert item["days_overdue"] == 0
    assert item["next_payment_date"] is None


def test_daily_sheet_defaults_to_today(client, schedule):
    resp = client.get("/payments/daily")
    assert resp.status_code == 200
    assert resp.json()["count"] == 0


def test_bulk_payments_report_each_entry(client, publisher, disbursed_loan, schedule):
    _pay(client, schedule[2]["id"], 10300, day="2024-04-10")
    publisher.publish.reset_mock()
    entries = [
        {"loan_id": disbursed_loan, "emi_no": 1, "paid_amount": 10300,
         "payment_date": "2024-02-10", "payment_mode": "cash"},
        {"loan_id": disbursed_loan, "emi_no": 2, "paid_amount": 4000,
         "payment_date": "2024-03-10", "payment_mode": "online", "receipt_number": "BANK-77"},
        {"loan_id": disbursed_loan, "emi_no": 3, "paid_amount": 10300,
         "payment_date": "2024-04-10", "payment_mode": "cash"},
        {"loan_id": disbursed_loan, "emi_no": 9, "paid_amount": 100,
         "payment_date": "2024-04-10", "payment_mode": "cash"},
        {"loan_id": disbursed_loan, "emi_no": 1, "payment_mode": "cash"},
    ]

    resp = client.post("/payments/bulk", json={"payments": entries})
    assert resp.status_code == 200
    body = resp.json()
    assert (body["processed"], body["failed"]) == (2, 3)

    success = body["results"]["success"]
    assert [(r["emi_no"], r["status"]) for r in success] == [(1, "paid"), (2, "partial")]
    assert success[1]["receipt_number"] == "BANK-77"

    errors = [f["error"] for f in body["results"]["failed"]]
    assert "already paid" in errors[0]
    assert errors[1] == "Repayment not found"
    assert "paid_amount, payment_date" in errors[2]
    assert body["results"]["failed"][1]["payment"]["emi_no"] == 9

    assert publisher.publish.call_count == 2
    assert client.get(f"/loans/{disbursed_loan}").json()["status"] == "active"


def test_bulk_payments_require_a_list(client):
    assert client.post("/payments/bulk", json={"payments": "all"}).status_code == 422
