"""Entity repositories.

Each repository owns one record kind: it normalizes incoming payloads,
checks them against the entity's rules and writes them to the record store
as a batch of one. Nothing is cached; every call goes to the store.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from errors import FarmOpsError, NotFound, OutOfRangeError, StoreError, ValidationError
from normalizer import (
    CROP, FARM, INVENTORY_ITEM, REFERENCE_FIELDS, TASK, TRANSACTION,
    is_all, normalize, parse_id,
)
from schemas import (
    CATEGORIES_BY_TYPE, Crop, CropIn, Entity, Farm, FarmIn, InventoryItem, InventoryItemIn,
    Task, TaskIn, Transaction, TransactionIn,
)
from store import RecordStore, build_query, equal_to, unwrap_single
from utils import utcnow

_LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def field_errors(err: PydanticValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for item in err.errors():
        field = str(item["loc"][0]) if item["loc"] else "record"
        message = item["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, message)
    return errors


class Repository:
    kind: str
    label: str
    entity: Type[Entity]
    write_model: Type[BaseModel]
    write_once: Tuple[str, ...] = ()

    def __init__(self, store: RecordStore, clock: Clock = utcnow):
        self.store = store
        self.clock = clock

    # ---------- reads ----------
    async def list(self, **filters) -> List[Entity]:
        """List records, optionally narrowed by equality on storage fields.

        A filter value of None or "all" is ignored. If the store call fails
        the error is logged and an empty list comes back.
        """
        where = []
        for field, value in filters.items():
            if is_all(value):
                continue
            if field in REFERENCE_FIELDS:
                value = parse_id(value, field)
            where.append(equal_to(field, value))

        query = build_query(self.kind, where)
        try:
            response = await self._call("fetch", self.store.fetch_records(self.kind, query))
            if not response or not response.get("success"):
                raise StoreError((response or {}).get("message") or f"Failed to fetch {self.kind} records")
        except StoreError as err:
            _LOGGER.error("Failed to fetch %s records: %s", self.kind, err.message)
            return []

        entities = []
        for row in response.get("data") or []:
            try:
                entities.append(self.entity.model_validate(normalize(self.kind, row)))
            except PydanticValidationError as err:
                _LOGGER.warning("Skipping malformed %s record %s: %s", self.kind, row.get("Id"), err)
        return entities

    async def get_by_id(self, record_id) -> Entity:
        rid = parse_id(record_id)
        response = await self._call("fetch", self.store.get_record_by_id(self.kind, rid, build_query(self.kind)))
        if not response or response.get("success") is False:
            raise StoreError((response or {}).get("message") or f"Failed to fetch {self.label.lower()} {rid}")
        if not response.get("data"):
            raise NotFound(self.label, rid)
        return self._load(response["data"])

    # ---------- writes ----------
    async def create(self, payload: Dict[str, Any]) -> Entity:
        record = normalize(self.kind, payload)
        record.pop("Id", None)
        record = self._prepare_create(record)
        body = self._validate(record)

        action = f"create {self.label.lower()}"
        response = await self._call(action, self.store.create_record(self.kind, {"records": [body]}))
        entity = self._load(unwrap_single(response, action))
        _LOGGER.debug("Created %s %s", self.kind, entity.id)
        return entity

    async def update(self, record_id, payload: Dict[str, Any]) -> Entity:
        current = await self.get_by_id(record_id)
        changes = normalize(self.kind, payload)
        changes.pop("Id", None)
        return await self._apply(current, changes)

    async def delete(self, record_id) -> bool:
        current = await self.get_by_id(record_id)
        action = f"delete {self.label.lower()}"
        response = await self._call(action, self.store.delete_record(self.kind, {"RecordIds": [current.id]}))
        unwrap_single(response, action)
        _LOGGER.debug("Deleted %s %s", self.kind, current.id)
        return True

    async def _apply(self, current: Entity, changes: Dict[str, Any]) -> Entity:
        # the full record goes out in one update call, never field by field;
        # write-once fields are neither re-validated nor sent, so the stored
        # value stays as it is
        merged = current.to_record()
        merged.update(changes)
        for field in self.write_once:
            merged.pop(field, None)
        merged = self._prepare_update(current, merged)
        body = self._validate(merged)
        for field in self.write_once:
            body.pop(field, None)
        body["Id"] = current.id

        action = f"update {self.label.lower()}"
        response = await self._call(action, self.store.update_record(self.kind, {"records": [body]}))
        entity = self._load(unwrap_single(response, action))
        _LOGGER.debug("Updated %s %s", self.kind, entity.id)
        return entity

    # ---------- hooks ----------
    def _prepare_create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return record

    def _prepare_update(self, current: Entity, merged: Dict[str, Any]) -> Dict[str, Any]:
        return merged

    def _check(self, model) -> Dict[str, str]:
        return {}

    def _finalize(self, model) -> None:
        pass

    # ---------- plumbing ----------
    def _validate(self, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            model = self.write_model.model_validate(record)
        except PydanticValidationError as err:
            raise ValidationError(field_errors(err)) from err
        errors = self._check(model)
        if errors:
            raise ValidationError(errors)
        self._finalize(model)
        return model.model_dump(mode="json", by_alias=True)

    def _load(self, data: Dict[str, Any]) -> Entity:
        try:
            return self.entity.model_validate(normalize(self.kind, data))
        except PydanticValidationError as err:
            raise StoreError(f"Store returned a malformed {self.label.lower()} record") from err

    async def _call(self, action: str, pending):
        try:
            return await pending
        except FarmOpsError:
            raise
        except Exception as err:
            _LOGGER.error("Record store %s on %s failed: %s", action, self.kind, err)
            raise StoreError(f"Failed to {action} {self.kind}: {err}") from err


class FarmRepository(Repository):
    kind = FARM
    label = "Farm"
    entity = Farm
    write_model = FarmIn
    write_once = ("created_at",)

    def _prepare_create(self, record):
        record["created_at"] = self.clock()
        return record


class CropRepository(Repository):
    kind = CROP
    label = "Crop"
    entity = Crop
    write_model = CropIn

    async def list_by_farm(self, farm_id) -> List[Crop]:
        return await self.list(farm_id=farm_id)

    def _check(self, model):
        if model.expected_harvest_date <= model.planting_date:
            return {"expected_harvest_date": "Expected harvest date must be after planting date"}
        return {}


class TaskRepository(Repository):
    kind = TASK
    label = "Task"
    entity = Task
    write_model = TaskIn

    async def list_by_farm(self, farm_id) -> List[Task]:
        return await self.list(farm_id=farm_id)

    async def toggle_complete(self, task_id) -> Task:
        current = await self.get_by_id(task_id)
        completed = not current.completed
        return await self._apply(current, {
            "completed": completed,
            "completed_date": self.clock() if completed else None,
        })

    def _prepare_create(self, record):
        record["completed"] = False
        record["completed_date"] = None
        return record

    def _finalize(self, model):
        # completed_date is set exactly when the task is completed
        if not model.completed:
            model.completed_date = None
        elif model.completed_date is None:
            model.completed_date = self.clock()


class TransactionRepository(Repository):
    kind = TRANSACTION
    label = "Transaction"
    entity = Transaction
    write_model = TransactionIn

    async def list_by_farm(self, farm_id) -> List[Transaction]:
        return await self.list(farm_id=farm_id)

    def _check(self, model):
        allowed = CATEGORIES_BY_TYPE[model.type]
        if model.category not in allowed:
            return {"category": f"'{model.category}' is not a valid {model.type} category"}
        return {}


def _whole_number(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class InventoryRepository(Repository):
    kind = INVENTORY_ITEM
    label = "Inventory item"
    entity = InventoryItem
    write_model = InventoryItemIn

    async def list_by_category(self, category) -> List[InventoryItem]:
        return await self.list(category=category)

    async def low_stock(self) -> List[InventoryItem]:
        # field-to-field comparison; filtered here rather than trusted to the store
        return [item for item in await self.list() if item.current_stock <= item.minimum_threshold]

    async def update_stock(self, item_id, new_stock) -> InventoryItem:
        current = await self.get_by_id(item_id)
        stock = _whole_number(new_stock)
        if stock is None:
            raise ValidationError({"current_stock": "Stock amount must be a whole number"})
        if stock < 0 or stock > current.max_capacity:
            raise OutOfRangeError(stock, current.max_capacity)
        return await self._apply(current, {"current_stock": stock, "last_restocked": self.clock()})

    def _check(self, model):
        errors = {}
        if model.current_stock > model.max_capacity:
            errors["current_stock"] = "Stock amount must be between 0 and maximum capacity"
        if model.minimum_threshold > model.max_capacity:
            errors["minimum_threshold"] = "Minimum threshold cannot exceed maximum capacity"
        return errors


class Repositories(NamedTuple):
    farms: FarmRepository
    crops: CropRepository
    tasks: TaskRepository
    transactions: TransactionRepository
    inventory: InventoryRepository


def build_repositories(store: RecordStore, clock: Clock = utcnow) -> Repositories:
    return Repositories(
        farms=FarmRepository(store, clock),
        crops=CropRepository(store, clock),
        tasks=TaskRepository(store, clock),
        transactions=TransactionRepository(store, clock),
        inventory=InventoryRepository(store, clock),
    )
