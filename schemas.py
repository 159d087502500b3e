from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, computed_field

from normalizer import parse_id
from utils import isoformat, parse_when

SizeUnit = Literal["acres", "hectares", "square_feet"]
CropStatus = Literal["Seeding", "Growing", "Flowering", "Tuber Formation", "Ready to Harvest", "Harvested"]
TaskType = Literal["Watering", "Fertilizing", "Harvesting", "Inspection", "Cultivation", "Planting", "Pest Control", "Other"]
TransactionType = Literal["expense", "income"]

SIZE_UNITS = get_args(SizeUnit)
CROP_STATUSES = get_args(CropStatus)
TASK_TYPES = get_args(TaskType)
TRANSACTION_TYPES = get_args(TransactionType)

CROP_TYPES = ("Corn", "Soybeans", "Wheat", "Tomatoes", "Potatoes", "Carrots", "Lettuce", "Other")
INVENTORY_CATEGORIES = ("Seeds", "Fertilizers", "Equipment")
EXPENSE_CATEGORIES = ("Seeds", "Equipment", "Fertilizer", "Labor", "Fuel", "Maintenance", "Insurance", "Other")
INCOME_CATEGORIES = ("Grain Sales", "Vegetable Sales", "Livestock Sales", "Government Subsidies", "Other")
CATEGORIES_BY_TYPE = {"expense": EXPENSE_CATEGORIES, "income": INCOME_CATEGORIES}

HARVESTED = "Harvested"


def _record_id(value: Any) -> int:
    return parse_id(value)


def _optional_id(value: Any) -> Optional[int]:
    if value in (None, "", 0):
        return None
    return parse_id(value)


def _required_when(value: Any) -> datetime:
    when = parse_when(value)
    if when is None:
        raise ValueError("must be a valid date")
    return when


def _optional_when(value: Any) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _required_when(value)


def _stamp_text(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat(value)
    return value


RecordId = Annotated[int, BeforeValidator(_record_id)]
OptionalId = Annotated[Optional[int], BeforeValidator(_optional_id)]
When = Annotated[datetime, BeforeValidator(_required_when)]
OptionalWhen = Annotated[Optional[datetime], BeforeValidator(_optional_when)]
# read side keeps dates as text; a bad value must survive the round trip
Stamp = Annotated[Optional[str], BeforeValidator(_stamp_text)]


# ---------- Entities (as read back from the store) ----------

class Entity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: RecordId = Field(alias="Id")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Farm(Entity):
    name: str = Field("", alias="Name")
    location: str = ""
    size: Optional[float] = None
    size_unit: Optional[str] = None
    created_at: Stamp = None


class Crop(Entity):
    name: Optional[str] = Field(None, alias="Name")
    farm_id: RecordId
    crop_type: str = ""
    planting_date: Stamp = None
    expected_harvest_date: Stamp = None
    status: str = ""
    area: Optional[float] = None
    notes: Optional[str] = None


class Task(Entity):
    farm_id: RecordId
    crop_id: OptionalId = None
    title: str = ""
    type: str = ""
    due_date: Stamp = None
    completed: bool = False
    completed_date: Stamp = None
    notes: Optional[str] = None


class Transaction(Entity):
    farm_id: RecordId
    type: str = ""
    category: str = ""
    amount: float = 0.0
    date: Stamp = None
    description: str = ""


class InventoryItem(Entity):
    name: str = Field("", alias="Name")
    category: str = ""
    current_stock: int = 0
    max_capacity: int = 0
    unit: str = ""
    supplier: str = ""
    minimum_threshold: int = 0
    last_restocked: Stamp = None


# ---------- Write payloads (validated before they reach the store) ----------

class WriteModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class FarmIn(WriteModel):
    name: str = Field(alias="Name", min_length=1)
    location: str = Field(min_length=1)
    size: float = Field(gt=0)
    size_unit: SizeUnit = "acres"
    created_at: OptionalWhen = None


class CropIn(WriteModel):
    name: Optional[str] = Field(None, alias="Name")
    farm_id: RecordId
    crop_type: str = Field(min_length=1)
    planting_date: When
    expected_harvest_date: When
    status: CropStatus = "Seeding"
    area: float = Field(gt=0)
    notes: Optional[str] = None


class TaskIn(WriteModel):
    farm_id: RecordId
    crop_id: OptionalId = None
    title: str = Field(min_length=1)
    type: TaskType
    due_date: When
    completed: bool = False
    completed_date: OptionalWhen = None
    notes: Optional[str] = None


class TransactionIn(WriteModel):
    farm_id: RecordId
    type: TransactionType
    category: str = Field(min_length=1)
    amount: float = Field(gt=0)
    date: When
    description: str = Field(min_length=1)


class InventoryItemIn(WriteModel):
    name: str = Field(alias="Name", min_length=1)
    category: str = Field(min_length=1)
    current_stock: int = Field(ge=0)
    max_capacity: int = Field(gt=0)
    unit: str = ""
    supplier: str = ""
    minimum_threshold: int = Field(0, ge=0)
    last_restocked: OptionalWhen = None


# ---------- Derived metrics ----------

class DashboardStats(BaseModel):
    total_farms: int
    active_crops: int
    pending_tasks: int
    overdue_tasks: int
    monthly_profit: float


class MonthlyBucket(BaseModel):
    month: str  # YYYY-MM
    label: str
    income: float = 0.0
    expense: float = 0.0

    @computed_field
    @property
    def net(self) -> float:
        return self.income - self.expense


class FinancialRollup(BaseModel):
    buckets: List[MonthlyBucket]
    total_income: float
    total_expense: float
    net: float
    skipped: int = 0  # rows with no usable date or type


class FinancialSummary(BaseModel):
    total_income: float
    total_expenses: float
    net_profit: float
    transaction_count: int


class StockStatus(BaseModel):
    item_id: int
    name: str
    percentage: int
    level: str
    reorder: str
