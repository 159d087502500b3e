from datetime import datetime, timezone

import pytest

from repositories import build_repositories
from store import InMemoryRecordStore

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def repos(store, clock):
    return build_repositories(store, clock)


@pytest.fixture
def make_farm(repos):
    async def _make(**overrides):
        payload = {"name": "Green Valley", "location": "Fresno, CA", "size": 120, "sizeUnit": "acres"}
        payload.update(overrides)
        return await repos.farms.create(payload)
    return _make


@pytest.fixture
def make_crop(repos):
    async def _make(farm_id, **overrides):
        payload = {
            "farmId": farm_id,
            "cropType": "Corn",
            "plantingDate": "2024-03-01",
            "expectedHarvestDate": "2024-08-01",
            "status": "Growing",
            "area": 40,
        }
        payload.update(overrides)
        return await repos.crops.create(payload)
    return _make


@pytest.fixture
def make_task(repos):
    async def _make(farm_id, **overrides):
        payload = {"farmId": farm_id, "title": "Irrigate", "type": "Watering", "dueDate": "2024-05-20"}
        payload.update(overrides)
        return await repos.tasks.create(payload)
    return _make


@pytest.fixture
def make_transaction(repos):
    async def _make(farm_id, **overrides):
        payload = {
            "farmId": farm_id,
            "type": "expense",
            "category": "Seeds",
            "amount": 100.0,
            "date": "2024-05-02",
            "description": "Seed corn",
        }
        payload.update(overrides)
        return await repos.transactions.create(payload)
    return _make


@pytest.fixture
def make_item(repos):
    async def _make(**overrides):
        payload = {
            "name": "Urea",
            "category": "Fertilizers",
            "currentStock": 50,
            "maxCapacity": 100,
            "unit": "bags",
            "supplier": "AgriSupply Co",
            "minimumThreshold": 20,
        }
        payload.update(overrides)
        return await repos.inventory.create(payload)
    return _make
