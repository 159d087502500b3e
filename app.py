import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import metrics
import relations
from errors import FarmOpsError, InvalidIdentifier, NotFound, OutOfRangeError, StoreError, ValidationError
from repositories import Repositories, build_repositories
from schemas import Crop, Task, Transaction
from sql_store import SqlRecordStore
from utils import isoformat, utcnow

# ---------- Config ----------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Farm Ops", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Store ----------
store = SqlRecordStore()


def get_repos() -> Repositories:
    return build_repositories(store)


@app.on_event("startup")
def on_startup():
    store.init_schema()


# ---------- Errors ----------
_STATUS_CODES = (
    (InvalidIdentifier, 400),
    (ValidationError, 422),
    (OutOfRangeError, 422),
    (NotFound, 404),
    (StoreError, 503),
)


@app.exception_handler(FarmOpsError)
async def farm_ops_error(request: Request, exc: FarmOpsError):
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 400)
    if status >= 500:
        _LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body: Dict[str, Any] = {"detail": exc.message, "kind": type(exc).__name__, "retryable": exc.retryable}
    if isinstance(exc, ValidationError):
        body["field_errors"] = exc.field_errors
    return JSONResponse(status_code=status, content=body)


# ---------- Helpers ----------
def _crop_view(crop: Crop, farms) -> Dict[str, Any]:
    return {**crop.to_record(), "farm_name": relations.farm_name(crop.farm_id, farms)}


def _task_view(task: Task, farms, crops, now: datetime) -> Dict[str, Any]:
    return {
        **task.to_record(),
        "farm_name": relations.farm_name(task.farm_id, farms),
        "crop_label": relations.crop_display_label(task.crop_id, crops),
        "due_label": metrics.due_label(task),
        "overdue": metrics.is_overdue(task, now),
    }


def _transaction_view(transaction: Transaction, farms) -> Dict[str, Any]:
    return {**transaction.to_record(), "farm_name": relations.farm_name(transaction.farm_id, farms)}


# ---------- APIs: dashboard ----------
@app.get("/api/dashboard")
async def dashboard(
    now: Optional[datetime] = Query(None),
    limit: int = Query(5, ge=1, le=50),
    repos: Repositories = Depends(get_repos),
):
    now = now or utcnow()
    farms, crops, tasks, transactions = await asyncio.gather(
        repos.farms.list(), repos.crops.list(), repos.tasks.list(), repos.transactions.list()
    )
    return {
        "stats": metrics.dashboard_stats(farms, crops, tasks, transactions, now),
        "upcoming_tasks": [_task_view(t, farms, crops, now) for t in metrics.upcoming_tasks(tasks, limit)],
    }


# ---------- APIs: farms ----------
@app.get("/api/farms")
async def list_farms(repos: Repositories = Depends(get_repos)):
    farms, crops = await asyncio.gather(repos.farms.list(), repos.crops.list())
    return [{**f.to_record(), "active_crops": relations.active_crop_count(f.id, crops)} for f in farms]


@app.post("/api/farms")
async def create_farm(body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.farms.create(body)


@app.get("/api/farms/{farm_id}")
async def get_farm(farm_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.farms.get_by_id(farm_id)


@app.get("/api/farms/{farm_id}/summary")
async def farm_summary(farm_id: str, repos: Repositories = Depends(get_repos)):
    farm = await repos.farms.get_by_id(farm_id)
    crops, tasks, transactions = await asyncio.gather(
        repos.crops.list_by_farm(farm.id),
        repos.tasks.list_by_farm(farm.id),
        repos.transactions.list_by_farm(farm.id),
    )
    return {
        "farm": farm,
        "active_crops": relations.active_crop_count(farm.id, crops),
        "crops": crops,
        "tasks": tasks,
        "finances": metrics.financial_summary(transactions),
    }


@app.put("/api/farms/{farm_id}")
async def update_farm(farm_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.farms.update(farm_id, body)


@app.delete("/api/farms/{farm_id}")
async def delete_farm(farm_id: str, repos: Repositories = Depends(get_repos)):
    return {"deleted": await repos.farms.delete(farm_id)}


@app.get("/api/orphans")
async def list_orphans(repos: Repositories = Depends(get_repos)):
    farms, crops, tasks, transactions = await asyncio.gather(
        repos.farms.list(), repos.crops.list(), repos.tasks.list(), repos.transactions.list()
    )
    return {
        "crops": relations.orphaned_records(crops, farms),
        "tasks": relations.orphaned_records(tasks, farms),
        "transactions": relations.orphaned_records(transactions, farms),
    }


# ---------- APIs: crops ----------
@app.get("/api/crops")
async def list_crops(farm_id: str = Query("all"), repos: Repositories = Depends(get_repos)):
    farms, crops = await asyncio.gather(repos.farms.list(), repos.crops.list_by_farm(farm_id))
    return [_crop_view(c, farms) for c in crops]


@app.post("/api/crops")
async def create_crop(body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.crops.create(body)


@app.get("/api/crops/{crop_id}")
async def get_crop(crop_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.crops.get_by_id(crop_id)


@app.put("/api/crops/{crop_id}")
async def update_crop(crop_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.crops.update(crop_id, body)


@app.delete("/api/crops/{crop_id}")
async def delete_crop(crop_id: str, repos: Repositories = Depends(get_repos)):
    return {"deleted": await repos.crops.delete(crop_id)}


# ---------- APIs: tasks ----------
@app.get("/api/tasks")
async def list_tasks(
    farm_id: str = Query("all"),
    status: Literal["all", "pending", "completed", "overdue"] = Query("all"),
    now: Optional[datetime] = Query(None),
    repos: Repositories = Depends(get_repos),
):
    now = now or utcnow()
    farms, crops, tasks = await asyncio.gather(
        repos.farms.list(), repos.crops.list(), repos.tasks.list_by_farm(farm_id)
    )
    tasks = metrics.sort_by_due(metrics.filter_tasks(tasks, status, now))
    return [_task_view(t, farms, crops, now) for t in tasks]


@app.get("/api/tasks/week")
async def task_week(now: Optional[datetime] = Query(None), repos: Repositories = Depends(get_repos)):
    now = now or utcnow()
    farms, crops, tasks = await asyncio.gather(repos.farms.list(), repos.crops.list(), repos.tasks.list())
    return [
        {"day": day.isoformat(), "tasks": [_task_view(t, farms, crops, now) for t in metrics.tasks_due_on(tasks, day)]}
        for day in metrics.week_days(now)
    ]


@app.post("/api/tasks")
async def create_task(body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.tasks.create(body)


@app.get("/api/tasks/{task_id}")
async def get_task(task_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.tasks.get_by_id(task_id)


@app.put("/api/tasks/{task_id}")
async def update_task(task_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.tasks.update(task_id, body)


@app.post("/api/tasks/{task_id}/toggle")
async def toggle_task(task_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.tasks.toggle_complete(task_id)


@app.delete("/api/tasks/{task_id}")
async def delete_task(task_id: str, repos: Repositories = Depends(get_repos)):
    return {"deleted": await repos.tasks.delete(task_id)}


# ---------- APIs: transactions & finances ----------
@app.get("/api/transactions")
async def list_transactions(
    farm_id: str = Query("all"),
    type: Literal["all", "income", "expense"] = Query("all"),
    repos: Repositories = Depends(get_repos),
):
    farms, transactions = await asyncio.gather(repos.farms.list(), repos.transactions.list())
    view = metrics.filter_transactions(transactions, farm_id=farm_id, kind=type)
    return [_transaction_view(t, farms) for t in view]


@app.post("/api/transactions")
async def create_transaction(body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.transactions.create(body)


@app.get("/api/transactions/{transaction_id}")
async def get_transaction(transaction_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.transactions.get_by_id(transaction_id)


@app.put("/api/transactions/{transaction_id}")
async def update_transaction(transaction_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.transactions.update(transaction_id, body)


@app.delete("/api/transactions/{transaction_id}")
async def delete_transaction(transaction_id: str, repos: Repositories = Depends(get_repos)):
    return {"deleted": await repos.transactions.delete(transaction_id)}


@app.get("/api/finances/summary")
async def finance_summary(repos: Repositories = Depends(get_repos)):
    return metrics.financial_summary(await repos.transactions.list())


@app.get("/api/finances/monthly")
async def finance_monthly(farm_id: str = Query("all"), repos: Repositories = Depends(get_repos)):
    return metrics.monthly_rollup(await repos.transactions.list(), farm_id=farm_id)


# ---------- APIs: inventory ----------
@app.get("/api/inventory")
async def list_inventory(category: str = Query("all"), repos: Repositories = Depends(get_repos)):
    items = await repos.inventory.list_by_category(category)
    return [{**i.to_record(), "stock": metrics.stock_status(i)} for i in items]


@app.get("/api/inventory/low-stock")
async def low_stock(repos: Repositories = Depends(get_repos)):
    return [metrics.stock_status(i) for i in await repos.inventory.low_stock()]


@app.post("/api/inventory")
async def create_inventory_item(body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.inventory.create(body)


@app.get("/api/inventory/{item_id}")
async def get_inventory_item(item_id: str, repos: Repositories = Depends(get_repos)):
    return await repos.inventory.get_by_id(item_id)


@app.put("/api/inventory/{item_id}")
async def update_inventory_item(item_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    return await repos.inventory.update(item_id, body)


@app.post("/api/inventory/{item_id}/stock")
async def update_stock(item_id: str, body: Dict[str, Any] = Body(...), repos: Repositories = Depends(get_repos)):
    new_stock = body.get("current_stock", body.get("currentStock"))
    return await repos.inventory.update_stock(item_id, new_stock)


@app.delete("/api/inventory/{item_id}")
async def delete_inventory_item(item_id: str, repos: Repositories = Depends(get_repos)):
    return {"deleted": await repos.inventory.delete(item_id)}


# ---------- Seed ----------
@app.get("/api/seed")
async def seed(repos: Repositories = Depends(get_repos)):
    existing = await repos.farms.list()
    if existing:
        return {"status": "exists", "farms": len(existing)}

    today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    farm = await repos.farms.create({"name": "Green Valley Farm", "location": "Fresno, CA", "size": 120, "sizeUnit": "acres"})
    corn = await repos.crops.create({
        "farmId": farm.id, "cropType": "Corn", "status": "Growing", "area": 40,
        "plantingDate": isoformat(today - timedelta(days=30)),
        "expectedHarvestDate": isoformat(today + timedelta(days=90)),
    })
    await repos.tasks.create({
        "farmId": farm.id, "cropId": corn.id, "title": "Irrigate north field", "type": "Watering",
        "dueDate": isoformat(today + timedelta(days=1)),
    })
    await repos.tasks.create({
        "farmId": farm.id, "title": "Inspect fences", "type": "Inspection",
        "dueDate": isoformat(today - timedelta(days=2)),
    })
    await repos.transactions.create({
        "farmId": farm.id, "type": "expense", "category": "Seeds", "amount": 850.0,
        "date": isoformat(today), "description": "Corn seed",
    })
    await repos.transactions.create({
        "farmId": farm.id, "type": "income", "category": "Grain Sales", "amount": 2400.0,
        "date": isoformat(today), "description": "Wheat sale",
    })
    await repos.inventory.create({
        "name": "Urea", "category": "Fertilizers", "currentStock": 12, "maxCapacity": 100,
        "unit": "bags", "supplier": "AgriSupply Co", "minimumThreshold": 20,
    })
    return {"status": "seeded", "farm_id": farm.id}
