import pytest
from fastapi.testclient import TestClient

from app import app, get_repos
from repositories import build_repositories


@pytest.fixture
def client(store, clock):
    app.dependency_overrides[get_repos] = lambda: build_repositories(store, clock)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _farm(client, **overrides):
    body = {"name": "Green Valley", "location": "Fresno, CA", "size": 120}
    body.update(overrides)
    res = client.post("/api/farms", json=body)
    assert res.status_code == 200
    return res.json()


def test_create_and_read_farm(client):
    farm = _farm(client)
    assert farm["Name"] == "Green Valley"
    res = client.get(f"/api/farms/{farm['Id']}")
    assert res.status_code == 200
    assert res.json()["location"] == "Fresno, CA"


def test_validation_errors_are_422(client):
    res = client.post("/api/farms", json={"name": "Bad", "location": "Nowhere", "size": -1})
    assert res.status_code == 422
    body = res.json()
    assert body["kind"] == "ValidationError"
    assert "size" in body["field_errors"]
    assert body["retryable"] is False


def test_bad_and_missing_ids(client):
    assert client.get("/api/farms/abc").status_code == 400
    res = client.get("/api/farms/99")
    assert res.status_code == 404
    assert res.json()["detail"] == "Farm with ID 99 not found"


def test_store_failure_is_503(client, store):
    farm = _farm(client)
    store.fail_next_call("timeout")
    res = client.get(f"/api/farms/{farm['Id']}")
    assert res.status_code == 503
    assert res.json()["retryable"] is True


def test_dashboard(client):
    farm = _farm(client)
    client.post("/api/tasks", json={"farmId": farm["Id"], "title": "Late", "type": "Watering", "dueDate": "2024-05-14"})
    client.post("/api/tasks", json={"farmId": farm["Id"], "title": "Soon", "type": "Inspection", "dueDate": "2024-05-16"})
    client.post("/api/transactions", json={
        "farmId": farm["Id"], "type": "income", "category": "Grain Sales",
        "amount": 500, "date": "2024-05-03", "description": "Wheat",
    })

    res = client.get("/api/dashboard", params={"now": "2024-05-15T12:00:00Z"})
    assert res.status_code == 200
    body = res.json()
    assert body["stats"] == {
        "total_farms": 1,
        "active_crops": 0,
        "pending_tasks": 2,
        "overdue_tasks": 1,
        "monthly_profit": 500.0,
    }
    assert [t["title"] for t in body["upcoming_tasks"]] == ["Late", "Soon"]
    assert body["upcoming_tasks"][0]["overdue"] is True
    assert body["upcoming_tasks"][0]["farm_name"] == "Green Valley"


def test_toggle_task(client):
    farm = _farm(client)
    task = client.post("/api/tasks", json={"farmId": farm["Id"], "title": "Weed", "type": "Cultivation", "dueDate": "2024-05-20"}).json()
    res = client.post(f"/api/tasks/{task['Id']}/toggle")
    assert res.status_code == 200
    assert res.json()["completed"] is True

    pending = client.get("/api/tasks", params={"status": "pending"}).json()
    assert pending == []


def test_stock_update_out_of_range(client):
    item = client.post("/api/inventory", json={
        "name": "Urea", "category": "Fertilizers", "currentStock": 10, "maxCapacity": 100, "minimumThreshold": 20,
    }).json()
    res = client.post(f"/api/inventory/{item['Id']}/stock", json={"currentStock": 150})
    assert res.status_code == 422
    assert res.json()["kind"] == "OutOfRangeError"

    low = client.get("/api/inventory/low-stock").json()
    assert low[0]["item_id"] == item["Id"]
    assert low[0]["reorder"] == "reorder needed"


def test_seed_is_idempotent(client):
    assert client.get("/api/seed").json()["status"] == "seeded"
    assert client.get("/api/seed").json()["status"] == "exists"
    assert len(client.get("/api/farms").json()) == 1


def test_monthly_finances_for_one_farm(client):
    north = _farm(client, name="North")
    south = _farm(client, name="South")
    client.post("/api/transactions", json={
        "farmId": north["Id"], "type": "income", "category": "Grain Sales",
        "amount": 100, "date": "2024-05-03", "description": "Wheat",
    })
    client.post("/api/transactions", json={
        "farmId": south["Id"], "type": "expense", "category": "Fuel",
        "amount": 40, "date": "2024-05-04", "description": "Diesel",
    })

    res = client.get("/api/finances/monthly", params={"farm_id": north["Id"]})
    assert res.status_code == 200
    body = res.json()
    assert [(b["month"], b["net"]) for b in body["buckets"]] == [("2024-05", 100.0)]
    assert body["net"] == 60.0
    assert body["skipped"] == 0
