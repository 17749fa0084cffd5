import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import app, get_db


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def register(client, email: str = "ana@example.com") -> dict:
    response = await client.post(
        "/auths/register",
        json={"name": "Ana", "email": email, "password": "secret123"},
    )
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.mark.asyncio
async def test_health(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_register_login_and_auth_errors(client) -> None:
    await register(client)

    duplicate = await client.post(
        "/auths/register",
        json={"name": "Ana", "email": "ANA@example.com", "password": "secret123"},
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["message"] == "Email already exists"

    login = await client.post(
        "/auths/login", json={"email": "ana@example.com", "password": "secret123"}
    )
    assert login.status_code == 200
    assert login.json()["access_token"]

    wrong = await client.post(
        "/auths/login", json={"email": "ana@example.com", "password": "nope"}
    )
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Invalid credentials"

    assert (await client.get("/budgets")).status_code == 401
    forged = await client.get("/budgets", headers={"Authorization": "Bearer forged"})
    assert forged.status_code == 401
    body = forged.json()
    assert body["message"] == "Unauthorized"
    assert body["path"] == "/budgets"
    assert body["status_code"] == 401
    assert body["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_budget_lifecycle_over_http(client) -> None:
    headers = await register(client)
    category = await client.post(
        "/categories", json={"name": "Food", "type": "expense"}, headers=headers
    )
    assert category.status_code == 201
    category_id = category.json()["id"]
    assert category.json()["type"] == "EXPENSE"

    payload = {
        "amount": "500.00",
        "category_id": category_id,
        "month": 1,
        "year": 2026,
        "type": "EXPENSE",
    }
    created = await client.post("/budgets", json=payload, headers=headers)
    assert created.status_code == 201
    budget = created.json()
    assert budget["amount"] == "500.00"

    duplicate = await client.post("/budgets", json=payload, headers=headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == (
        f"Budget for category {category_id}, type EXPENSE, month 1, and year 2026 already exists"
    )

    bad_month = await client.post("/budgets", json={**payload, "month": 13}, headers=headers)
    assert bad_month.status_code == 400
    assert bad_month.json()["message"] == "Month must be between 1 and 12"

    txn = await client.post(
        "/transactions",
        json={
            "amount": "120.00",
            "type": "EXPENSE",
            "category_id": category_id,
            "date": "2026-01-10T12:00:00Z",
            "description": "groceries",
        },
        headers=headers,
    )
    assert txn.status_code == 201
    assert txn.json()["date"] == "2026-01-10T12:00:00Z"

    spending = await client.get(f"/budgets/{budget['id']}/spending", headers=headers)
    assert spending.status_code == 200
    assert spending.json()["spent"] == "120.00"
    assert spending.json()["remaining"] == "380.00"
    assert spending.json()["utilization_percentage"] == 24.0

    details = await client.get(f"/budgets/{budget['id']}/details", headers=headers)
    assert details.status_code == 200
    assert details.json()["category"]["name"] == "Food"
    assert [t["description"] for t in details.json()["transactions"]] == ["groceries"]

    by_category = await client.get(f"/budgets/category/{category_id}", headers=headers)
    assert [b["id"] for b in by_category.json()] == [budget["id"]]

    updated = await client.put(
        f"/budgets/{budget['id']}", json={"amount": "600"}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["amount"] == "600.00"

    deleted = await client.delete(f"/budgets/{budget['id']}", headers=headers)
    assert deleted.status_code == 200
    missing = await client.get(f"/budgets/{budget['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["message"] == "Budget not found"


@pytest.mark.asyncio
async def test_budgets_are_invisible_to_other_users(client) -> None:
    owner = await register(client, "owner@example.com")
    other = await register(client, "other@example.com")
    category_id = (
        await client.post("/categories", json={"name": "Food", "type": "EXPENSE"}, headers=owner)
    ).json()["id"]
    budget_id = (
        await client.post(
            "/budgets",
            json={
                "amount": "10",
                "category_id": category_id,
                "month": 5,
                "year": 2026,
                "type": "SAVINGS",
            },
            headers=owner,
        )
    ).json()["id"]

    assert (await client.get(f"/budgets/{budget_id}", headers=other)).status_code == 404
    assert (await client.get(f"/budgets/{budget_id}/details", headers=other)).status_code == 404
    assert (await client.get(f"/budgets/{budget_id}/spending", headers=other)).status_code == 404
    foreign_update = await client.put(
        f"/budgets/{budget_id}", json={"amount": "1"}, headers=other
    )
    assert foreign_update.status_code == 404
    assert foreign_update.json()["message"] == "Budget not found"
    assert (await client.delete(f"/budgets/{budget_id}", headers=other)).status_code == 404
    assert (await client.get("/budgets", headers=other)).json() == []


@pytest.mark.asyncio
async def test_dashboard_routes_validate_month(client) -> None:
    headers = await register(client)
    response = await client.get(
        "/dashboard/monthly-summary", params={"month": 13, "year": 2026}, headers=headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid month. Month must be between 1 and 12."

    summary = await client.get(
        "/dashboard/monthly-summary", params={"month": 2, "year": 2026}, headers=headers
    )
    assert summary.status_code == 200
    assert summary.json() == {
        "total_income": "0.00",
        "total_expense": "0.00",
        "balance": "0.00",
    }

    rows = await client.get(
        "/dashboard/budget-vs-actual", params={"month": 2, "year": 2026}, headers=headers
    )
    assert rows.status_code == 200
    assert rows.json() == []


@pytest.mark.asyncio
async def test_request_validation_maps_to_400(client) -> None:
    headers = await register(client)
    response = await client.post(
        "/budgets", json={"amount": "-5", "type": "WEEKLY"}, headers=headers
    )
    assert response.status_code == 400
    assert isinstance(response.json()["message"], list)


@pytest.mark.asyncio
async def test_oversized_amount_is_rejected_before_storage(client) -> None:
    headers = await register(client)
    category_id = (
        await client.post("/categories", json={"name": "Food", "type": "EXPENSE"}, headers=headers)
    ).json()["id"]
    response = await client.post(
        "/budgets",
        json={
            "amount": "100000000000000000000",
            "category_id": category_id,
            "month": 1,
            "year": 2026,
            "type": "EXPENSE",
        },
        headers=headers,
    )
    assert response.status_code == 400
    assert (await client.get("/budgets", headers=headers)).json() == []
