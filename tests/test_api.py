import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import services
from database import Base, _enable_sqlite_pragmas
from main import app, get_db


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", _enable_sqlite_pragmas)
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, email: str = "ana@example.com") -> dict[str, str]:
    created = client.post(
        "/api/v1/users",
        json={"name": "Ana", "email": email, "password": "correct horse"},
    )
    assert created.status_code == 201
    tokens = client.post(
        "/api/v1/tokens", json={"email": email, "password": "correct horse"}
    )
    assert tokens.status_code == 200
    return {"Authorization": f"Bearer {tokens.json()['access_token']}"}


def make_category(client, headers, name: str = "Food") -> str:
    resp = client.post("/api/v1/categories", json={"name": name}, headers=headers)
    assert resp.status_code == 201
    return resp.json()["id"]


def test_health(client) -> None:
    resp = client.get("/api/v1")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_signup_login_and_me(client) -> None:
    headers = login(client)

    me = client.get("/api/v1/users/me", headers=headers)

    assert me.status_code == 200
    assert me.json()["email"] == "ana@example.com"
    assert "password_hash" not in me.json()


def test_duplicate_signup_conflicts(client) -> None:
    login(client)

    resp = client.post(
        "/api/v1/users",
        json={"name": "Ana", "email": "ana@example.com", "password": "correct horse"},
    )

    assert resp.status_code == 409


def test_wrong_password_is_unauthorized(client) -> None:
    login(client)

    resp = client.post(
        "/api/v1/tokens", json={"email": "ana@example.com", "password": "wrong"}
    )

    assert resp.status_code == 401


def test_refresh_returns_access_token(client) -> None:
    login(client)
    tokens = client.post(
        "/api/v1/tokens", json={"email": "ana@example.com", "password": "correct horse"}
    ).json()

    resp = client.post(
        "/api/v1/tokens/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    rejected = client.post(
        "/api/v1/tokens/refresh", json={"refresh_token": tokens["access_token"]}
    )

    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"
    assert rejected.status_code == 401


def test_routes_require_bearer_token(client) -> None:
    assert client.get("/api/v1/expenses").status_code == 401
    assert (
        client.get(
            "/api/v1/expenses", headers={"Authorization": "Bearer nonsense"}
        ).status_code
        == 401
    )
    assert (
        client.get("/api/v1/expenses", headers={"Authorization": "Basic abc"}).status_code
        == 401
    )


def test_expense_flow_keeps_budget_in_step(client) -> None:
    headers = login(client)
    food = make_category(client, headers)
    fun = make_category(client, headers, "Fun")

    expense = client.post(
        "/api/v1/expenses",
        json={"description": "Lunch", "amount": "10.00", "category_id": food},
        headers=headers,
    )
    assert expense.status_code == 201
    expense_id = expense.json()["id"]
    day = expense.json()["created_at"][:10]

    budget = client.post(
        "/api/v1/budgets",
        json={"category_id": food, "goal": "100.00", "start_date": day, "end_date": day},
        headers=headers,
    )
    assert budget.status_code == 201
    assert Decimal(budget.json()["amount"]) == Decimal("10.00")
    budget_id = budget.json()["id"]

    patched = client.patch(
        f"/api/v1/expenses/{expense_id}", json={"amount": "25.50"}, headers=headers
    )
    assert patched.status_code == 200
    assert Decimal(patched.json()["amount"]) == Decimal("25.50")
    refreshed = client.get(f"/api/v1/budgets/{budget_id}", headers=headers)
    assert Decimal(refreshed.json()["amount"]) == Decimal("25.50")

    moved = client.patch(
        f"/api/v1/expenses/{expense_id}", json={"category_id": fun}, headers=headers
    )
    assert moved.json()["category_id"] == fun
    refreshed = client.get(f"/api/v1/budgets/{budget_id}", headers=headers)
    assert Decimal(refreshed.json()["amount"]) == Decimal("0")

    deleted = client.delete(f"/api/v1/expenses/{expense_id}", headers=headers)
    assert deleted.status_code == 200
    assert client.get(f"/api/v1/expenses/{expense_id}", headers=headers).status_code == 404


def test_list_pages_carry_next_only_when_full(client) -> None:
    headers = login(client)
    food = make_category(client, headers)
    for amount in ("1.00", "2.00"):
        client.post(
            "/api/v1/expenses",
            json={"amount": amount, "category_id": food},
            headers=headers,
        )

    first = client.get("/api/v1/expenses", params={"limit": 1}, headers=headers)
    everything = client.get("/api/v1/expenses", headers=headers)

    assert len(first.json()["expenses"]) == 1
    assert "next" in first.json()
    second = client.get(
        "/api/v1/expenses",
        params={"limit": 1, "cursor": first.json()["next"]},
        headers=headers,
    )
    assert second.json()["expenses"][0]["id"] != first.json()["expenses"][0]["id"]
    assert len(everything.json()["expenses"]) == 2
    assert "next" not in everything.json()

    by_category = client.get(f"/api/v1/categories/{food}/expenses", headers=headers)
    assert len(by_category.json()["expenses"]) == 2
    empty = client.get("/api/v1/budgets", headers=headers)
    assert empty.status_code == 200
    assert empty.json() == {"budgets": []}


def test_bad_page_arguments_are_client_errors(client) -> None:
    headers = login(client)

    assert (
        client.get(
            "/api/v1/categories", params={"cursor": "!!"}, headers=headers
        ).status_code
        == 400
    )
    assert (
        client.get("/api/v1/categories", params={"limit": 0}, headers=headers).status_code
        == 400
    )


def test_invalid_input_is_rejected(client) -> None:
    headers = login(client)
    food = make_category(client, headers)
    expense = client.post(
        "/api/v1/expenses",
        json={"amount": "3.00", "category_id": food},
        headers=headers,
    ).json()

    negative = client.post(
        "/api/v1/expenses",
        json={"amount": "-1.00", "category_id": food},
        headers=headers,
    )
    null_amount = client.patch(
        f"/api/v1/expenses/{expense['id']}", json={"amount": None}, headers=headers
    )
    bad_window = client.post(
        "/api/v1/budgets",
        json={
            "category_id": food,
            "goal": "10.00",
            "start_date": "2025-02-01",
            "end_date": "2025-01-01",
        },
        headers=headers,
    )
    bad_id = client.get("/api/v1/expenses/not-a-uuid", headers=headers)

    assert negative.status_code == 422
    assert null_amount.status_code == 422
    assert bad_window.status_code == 422
    assert bad_id.status_code == 422


def test_missing_resources_are_not_found(client) -> None:
    headers = login(client)
    missing = uuid.uuid4()

    assert client.get(f"/api/v1/expenses/{missing}", headers=headers).status_code == 404
    assert client.get(f"/api/v1/budgets/{missing}", headers=headers).status_code == 404
    assert (
        client.get(f"/api/v1/categories/{missing}", headers=headers).status_code == 404
    )
    unknown_category = client.post(
        "/api/v1/expenses",
        json={"amount": "1.00", "category_id": str(missing)},
        headers=headers,
    )
    assert unknown_category.status_code == 404


def test_category_in_use_cannot_be_deleted(client) -> None:
    headers = login(client)
    food = make_category(client, headers)
    client.post(
        "/api/v1/expenses",
        json={"amount": "1.00", "category_id": food},
        headers=headers,
    )

    resp = client.delete(f"/api/v1/categories/{food}", headers=headers)

    assert resp.status_code == 409


def test_total_spent(client) -> None:
    headers = login(client)
    food = make_category(client, headers)
    for amount in ("1.25", "2.50"):
        client.post(
            "/api/v1/expenses",
            json={"amount": amount, "category_id": food},
            headers=headers,
        )

    resp = client.get(
        "/api/v1/expenses/total",
        params={"start": "2000-01-01", "end": "2999-12-31"},
        headers=headers,
    )
    backwards = client.get(
        "/api/v1/expenses/total",
        params={"start": "2025-02-01", "end": "2025-01-01"},
        headers=headers,
    )

    assert resp.status_code == 200
    assert Decimal(resp.json()["total"]) == Decimal("3.75")
    assert backwards.status_code == 400


def test_storage_failure_is_reported_without_details(client, monkeypatch) -> None:
    headers = login(client)
    food = make_category(client, headers)

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE budgets", {}, Exception("database is locked"))

    monkeypatch.setattr(services, "update_budget_amount", broken)

    resp = client.post(
        "/api/v1/expenses",
        json={"amount": "1.00", "category_id": food},
        headers=headers,
    )

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
    listed = client.get("/api/v1/expenses", headers=headers)
    assert listed.json()["expenses"] == []


def test_deleted_account_token_is_rejected(client) -> None:
    headers = login(client)

    deleted = client.delete("/api/v1/users/me", headers=headers)
    me = client.get("/api/v1/users/me", headers=headers)
    created = client.post("/api/v1/categories", json={"name": "Food"}, headers=headers)

    assert deleted.status_code == 200
    assert me.status_code == 401
    assert created.status_code == 401
