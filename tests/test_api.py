from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from main import app, get_db, get_read_db
from recurrence import local_today


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_read_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _category_id(client: TestClient, name: str) -> int:
    client.post("/api/categories/seed")
    categories = client.get("/api/categories").json()
    return next(c["id"] for c in categories if c["name"] == name)


def test_complete_flow_through_dashboard(client: TestClient):
    emi = _category_id(client, "EMI")
    account = client.post(
        "/api/accounts", json={"name": "Savings", "initial_balance": "100000"}
    ).json()
    created = client.post(
        "/api/transactions",
        json={
            "title": "Car loan",
            "amount": "12500.00",
            "kind": "expense",
            "schedule_type": "recurring",
            "category_id": emi,
            "cadence": "monthly",
            "start_date": "2026-01-01",
            "end_date": "2026-12-31",
            "paid_from_account_id": account["id"],
        },
    )
    assert created.status_code == 201
    loan_id = created.json()["id"]

    done = client.post(
        f"/api/recurring/{loan_id}/complete", json={"year": 2026, "month": 3}
    )
    assert done.status_code == 200
    assert done.json()["entry_role"] == "recurring_completion"

    view = client.get("/api/dashboard", params={"year": 2026, "month": 3}).json()
    item = view["due_items"][0]
    assert item["status"] == "due_completed"
    assert item["completed"] is True
    assert item["installment_number"] == 3
    assert item["total_installments"] == 12
    assert view["completed_recurring_count"] == 1
    assert view["top_expense_category"] == "EMI"

    reverted = client.post(
        f"/api/recurring/{loan_id}/revert", params={"year": 2026, "month": 3}
    )
    assert reverted.json() == {"reverted": True}
    view = client.get("/api/dashboard", params={"year": 2026, "month": 3}).json()
    assert view["pending_recurring_count"] == 1

    balance = client.get(
        f"/api/accounts/{account['id']}/balance", params={"year": 2026, "month": 3}
    ).json()
    assert Decimal(str(balance["balance"])) == Decimal("62500")


def test_errors_map_to_status_codes(client: TestClient):
    assert client.get("/api/accounts/999/balance").status_code == 404
    assert client.post(
        "/api/recurring/999/complete", json={"year": 2026, "month": 3}
    ).status_code == 404
    assert client.get(
        "/api/dashboard", params={"year": 2026}
    ).status_code == 400

    food = _category_id(client, "Food")
    missing_account = client.post(
        "/api/transactions",
        json={
            "title": "Dinner",
            "amount": "800",
            "kind": "expense",
            "category_id": food,
            "date": date(2026, 3, 2).isoformat(),
        },
    )
    assert missing_account.status_code == 400
    assert "Paid-from account" in missing_account.json()["detail"]

    invalid_month = client.post(
        "/api/recurring/complete-all", params={"year": 2026, "month": 13}
    )
    assert invalid_month.status_code == 400


def test_not_due_month_is_rejected(client: TestClient):
    insurance = _category_id(client, "Insurance")
    account = client.post("/api/accounts", json={"name": "Savings"}).json()
    premium = client.post(
        "/api/transactions",
        json={
            "title": "Term plan",
            "amount": "9000",
            "kind": "expense",
            "schedule_type": "recurring",
            "category_id": insurance,
            "cadence": "yearly",
            "start_date": "2026-04-01",
            "paid_from_account_id": account["id"],
        },
    ).json()

    response = client.post(
        f"/api/recurring/{premium['id']}/complete", json={"year": 2026, "month": 5}
    )
    assert response.status_code == 400
    assert "not due" in response.json()["detail"]


def test_healthz_reports_local_date(client: TestClient):
    body = client.get("/healthz").json()
    assert body["status"] == "ok"
    assert body["today"] == local_today().isoformat()


def test_pausing_template_and_listing_accounts(client: TestClient):
    salary = _category_id(client, "Salary")
    account = client.post(
        "/api/accounts", json={"name": "Payroll", "initial_balance": "500.25"}
    ).json()
    pay = client.post(
        "/api/transactions",
        json={
            "title": "Salary",
            "amount": "1000",
            "kind": "income",
            "schedule_type": "recurring",
            "category_id": salary,
            "cadence": "monthly",
            "start_date": "2026-01-01",
            "received_to_account_id": account["id"],
        },
    ).json()

    paused = client.post(
        f"/api/transactions/{pay['id']}/active", params={"is_active": "false"}
    )
    assert paused.status_code == 200
    assert paused.json()["is_active"] is False

    view = client.get("/api/dashboard", params={"year": 2026, "month": 2}).json()
    assert view["due_items"] == []

    listed = client.get("/api/accounts").json()
    assert [a["name"] for a in listed] == ["Payroll"]
    assert "current_balance" in listed[0]
    assert client.post(
        "/api/transactions/999/active", params={"is_active": "true"}
    ).status_code == 404
