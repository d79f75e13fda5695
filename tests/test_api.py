from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import init_db
from main import app, get_db


def _client() -> TestClient:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def test_category_endpoints() -> None:
    client = _client()

    resp = client.post("/api/categories/initialize")
    assert resp.status_code == 200
    assert resp.json()["created"] > 0

    resp = client.post(
        "/api/categories", json={"name": "Groceries", "parentId": "FOOD_AND_DRINK"}
    )
    assert resp.status_code == 201
    groceries = resp.json()
    assert groceries["parentId"] == "FOOD_AND_DRINK"
    assert groceries["isIncome"] is None

    resp = client.post(
        "/api/categories", json={"name": "Organic", "parentId": groceries["id"]}
    )
    assert resp.status_code == 400
    assert "subcategory" in resp.json()["detail"]

    resp = client.put(f"/api/categories/{groceries['id']}", json={"isRollover": True})
    assert resp.status_code == 200
    assert resp.json()["isRollover"] is True
    rollover = client.get("/api/categories/rollover").json()
    assert [c["id"] for c in rollover] == [groceries["id"]]

    subs = client.get("/api/categories/FOOD_AND_DRINK/subcategories").json()
    assert [c["name"] for c in subs] == ["Groceries"]

    tree = client.get("/api/categories/tree").json()
    income = next(node for node in tree if node["id"] == "INCOME")
    assert any(child["id"] == "INCOME_WAGES" for child in income["children"])

    assert client.get("/api/categories/NOPE").status_code == 404
    assert client.delete("/api/categories/FOOD_AND_DRINK").status_code == 400
    assert client.delete(f"/api/categories/{groceries['id']}").status_code == 204


def test_budget_and_transaction_endpoints() -> None:
    client = _client()
    client.post("/api/categories/initialize")

    resp = client.post(
        "/api/budgets",
        json={"categoryId": "FOOD_AND_DRINK", "month": "2025-01", "amount": 400},
    )
    assert resp.status_code == 201
    budget = resp.json()

    assert client.post(
        "/api/budgets",
        json={"categoryId": "FOOD_AND_DRINK", "month": "2025-13", "amount": 400},
    ).status_code == 422
    assert client.post(
        "/api/budgets",
        json={"categoryId": "FOOD_AND_DRINK", "month": "2025-01", "amount": 0},
    ).status_code == 400

    resp = client.post(
        "/api/transactions",
        json={
            "date": "2025-01-12",
            "name": "Market",
            "amount": -125.5,
            "categoryId": "FOOD_AND_DRINK",
        },
    )
    assert resp.status_code == 201
    txn = resp.json()
    client.post(
        "/api/transactions",
        json={"date": "2025-01-14", "name": "Cinema", "amount": 30, "categoryId": "ENTERTAINMENT"},
    )

    listed = client.get("/api/transactions", params={"month": "2025-01"}).json()
    assert {t["name"] for t in listed} == {"Market", "Cinema"}
    assert client.get("/api/transactions", params={"month": "jan"}).status_code == 400

    comparison = client.post("/api/budgets/comparison/2025-01").json()
    by_id = {c["categoryId"]: c for c in comparison}
    assert by_id["FOOD_AND_DRINK"]["remaining"] == 274.5
    assert by_id["ENTERTAINMENT"]["isOverBudget"] is True

    posted = client.post(
        "/api/budgets/comparison/2025-01", json={"actuals": {"FOOD_AND_DRINK": 500}}
    ).json()
    assert [c["categoryId"] for c in posted] == ["FOOD_AND_DRINK"]
    assert posted[0]["percentUsed"] == 125

    summary = client.get("/api/budgets/summary/2025-01").json()
    assert summary["budgetTotals"]["expense"] == 400
    assert summary["actualTotals"]["expense"] == 155.5

    resp = client.put(f"/api/transactions/{txn['id']}/hidden", json={"isHidden": True})
    assert resp.json()["isHidden"] is True
    resp = client.put(
        f"/api/transactions/{txn['id']}/category", json={"categoryId": "MISSING"}
    )
    assert resp.status_code == 404

    month = client.get("/api/budgets/month/2025-01").json()
    assert month["totals"]["expense"] == 400
    assert client.get("/api/budgets/available-months").json() == ["2025-01"]
    assert client.get(
        "/api/budgets/category/FOOD_AND_DRINK/month/2025-02"
    ).status_code == 404

    copied = client.post(
        "/api/budgets/copy", json={"fromMonth": "2025-01", "toMonth": "2025-02"}
    ).json()
    assert copied["copied"] == 1

    history = client.get(
        "/api/budgets/history/FOOD_AND_DRINK",
        params={"startMonth": "2025-01", "endMonth": "2025-02"},
    ).json()
    assert history["average"] == 400
    assert len(client.get("/api/budgets/year/2025").json()) == 2

    assert client.delete(f"/api/budgets/{budget['id']}").status_code == 204
    assert client.delete(f"/api/budgets/{budget['id']}").status_code == 404
    assert client.delete("/api/budgets/category/FOOD_AND_DRINK").json() == {"deleted": 1}


def test_rollover_endpoint() -> None:
    client = _client()
    client.post("/api/categories/initialize")
    client.put("/api/categories/TRAVEL", json={"isRollover": True})
    client.post(
        "/api/budgets/batch",
        json={"updates": [{"categoryId": "TRAVEL", "month": "2025-01", "amount": 300}]},
    )

    resp = client.post(
        "/api/budgets/rollover",
        json={
            "categoryId": "TRAVEL",
            "fromMonth": "2025-01",
            "toMonth": "2025-02",
            "actualSpent": 100,
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["amount"] == 200
    assert data["budget"]["amount"] == 200


def test_stateless_totals_endpoint() -> None:
    client = _client()
    payload = {
        "categories": [
            {"id": "INCOME", "isIncome": True},
            {"id": "CUSTOM_PAY", "parentId": "INCOME"},
            {"id": "FOOD_AND_DRINK", "isIncome": False},
            {"id": "CUSTOM_HIDDEN", "isHidden": True},
        ],
        "budgets": [
            {"categoryId": "CUSTOM_PAY", "amount": 1000},
            {"categoryId": "FOOD_AND_DRINK", "amount": 300},
            {"categoryId": "CUSTOM_HIDDEN", "amount": 50},
            {"categoryId": "TRANSFER_IN", "amount": 75},
        ],
        "transactions": [
            {"categoryId": "CUSTOM_PAY", "amount": -1100},
            {"categoryId": "FOOD_AND_DRINK", "amount": 320},
            {"categoryId": "TRANSFER_OUT", "amount": 999},
        ],
        "options": {"excludeHidden": True},
    }

    data = client.post("/api/calculations/totals", json=payload).json()
    assert data["budgetTotals"] == {
        "income": 1000,
        "expense": 300,
        "transfer": 0,
        "total": 1300,
    }
    assert data["actualTotals"]["income"] == 1100
    assert data["comparison"]["income"]["remaining"] == 100
    assert data["comparison"]["expense"]["isOverBudget"] is True
    assert data["actuals"] == {"CUSTOM_PAY": 1100, "FOOD_AND_DRINK": 320}
    income = next(c for c in data["categories"] if c["categoryId"] == "INCOME")
    assert income["childrenIds"] == ["CUSTOM_PAY"]
    assert income["isCalculated"] is True


def test_override_and_report_endpoints() -> None:
    client = _client()
    client.post("/api/categories/initialize")
    for payload in (
        {"date": "2025-01-05", "name": "Salary", "amount": -2000, "categoryId": "INCOME_WAGES"},
        {"date": "2025-01-06", "name": "Dinner", "amount": 0.1, "categoryId": "FOOD_AND_DRINK"},
        {"date": "2025-01-07", "name": "Snack", "amount": 0.2, "categoryId": "FOOD_AND_DRINK"},
    ):
        assert client.post("/api/transactions", json=payload).status_code == 201

    resp = client.post(
        "/api/actuals-overrides",
        json={"month": "2025-02", "totalIncome": 1000, "totalExpenses": 400, "notes": "Paper"},
    )
    assert resp.status_code == 201
    override = resp.json()
    assert override["totalIncome"] == 1000
    assert client.post(
        "/api/actuals-overrides",
        json={"month": "2025-02", "totalIncome": -1, "totalExpenses": 0},
    ).status_code == 422
    assert client.get("/api/actuals-overrides/2025-02").json()["notes"] == "Paper"
    assert client.get("/api/actuals-overrides/2025-03").status_code == 404
    assert client.get("/api/actuals-overrides/2025-3").status_code == 400
    ranged = client.get("/api/actuals-overrides/range/2025-01/2025-12").json()
    assert [o["month"] for o in ranged] == ["2025-02"]

    flows = client.get(
        "/api/reports/cash-flow", params={"startMonth": "2025-01", "endMonth": "2025-02"}
    ).json()
    assert flows[0]["income"] == 2000
    assert flows[0]["expenses"] == 0.3
    assert flows[1]["hasOverride"] is True
    assert flows[1]["netFlow"] == 600

    breakdown = client.get(
        "/api/reports/category-breakdown",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
    ).json()
    assert breakdown["total"] == 0.3
    assert breakdown["breakdown"][0]["categoryId"] == "FOOD_AND_DRINK"
    assert breakdown["breakdown"][0]["transactionCount"] == 2

    income = client.get(
        "/api/reports/income-breakdown",
        params={"startDate": "2025-01-01", "endDate": "2025-01-31"},
    ).json()
    assert income["breakdown"][0]["subcategories"][0]["categoryId"] == "INCOME_WAGES"

    trends = client.get(
        "/api/reports/spending-trends",
        params={"startMonth": "2025-01", "endMonth": "2025-01", "categoryIds": "FOOD_AND_DRINK"},
    ).json()
    assert trends == [
        {
            "month": "2025-01",
            "categoryId": "FOOD_AND_DRINK",
            "categoryName": "Food and Drink",
            "amount": 0.3,
            "transactionCount": 2,
        }
    ]
    assert client.get(
        "/api/reports/cash-flow", params={"startMonth": "jan", "endMonth": "2025-02"}
    ).status_code == 400
    assert client.get(
        "/api/reports/projections", params={"monthsToProject": 0}
    ).status_code == 400
    assert len(client.get("/api/reports/projections").json()) == 6
    assert "topCategories" in client.get("/api/reports/year-to-date").json()

    assert client.delete(f"/api/actuals-overrides/{override['id']}").status_code == 204
    assert client.get("/api/actuals-overrides").json() == []
