"""Identifier coercion and field-name normalization.

Records reach the core from two places: form payloads (``farmId``,
``sizeUnit``) and records round-tripped through the store (``farm_id``,
``size_unit``). ``normalize`` maps either shape onto the storage keys so the
rest of the code only ever sees one.
"""
import re
from typing import Any, Dict, List, Tuple

from errors import InvalidIdentifier

FARM = "farm"
CROP = "crop"
TASK = "task"
TRANSACTION = "transaction"
INVENTORY_ITEM = "inventory_item"

# storage key -> accepted aliases, per kind
FIELD_MAP: Dict[str, Dict[str, Tuple[str, ...]]] = {
    FARM: {
        "Id": ("id",),
        "Name": ("name",),
        "location": (),
        "size": (),
        "size_unit": ("sizeUnit",),
        "created_at": ("createdAt",),
    },
    CROP: {
        "Id": ("id",),
        "Name": ("name",),
        "farm_id": ("farmId",),
        "crop_type": ("cropType",),
        "planting_date": ("plantingDate",),
        "expected_harvest_date": ("expectedHarvestDate",),
        "status": (),
        "area": (),
        "notes": (),
    },
    TASK: {
        "Id": ("id",),
        "farm_id": ("farmId",),
        "crop_id": ("cropId",),
        "title": (),
        "type": (),
        "due_date": ("dueDate",),
        "completed": (),
        "completed_date": ("completedDate",),
        "notes": (),
    },
    TRANSACTION: {
        "Id": ("id",),
        "farm_id": ("farmId",),
        "type": (),
        "category": (),
        "amount": (),
        "date": (),
        "description": (),
    },
    INVENTORY_ITEM: {
        "Id": ("id",),
        "Name": ("name",),
        "category": (),
        "current_stock": ("currentStock",),
        "max_capacity": ("maxCapacity",),
        "unit": (),
        "supplier": (),
        "minimum_threshold": ("minimumThreshold",),
        "last_restocked": ("lastRestocked",),
    },
}

# fields the store may hand back as {"Id": .., "Name": ..} lookups
REFERENCE_FIELDS = ("farm_id", "crop_id")

_DIGITS = re.compile(r"^\d+$")

ALL = "all"


def parse_id(value: Any, field: str = None) -> int:
    """Coerce ``value`` to a positive integer ID or raise InvalidIdentifier."""
    if isinstance(value, dict) and "Id" in value:
        return parse_id(value["Id"], field)
    if isinstance(value, bool):
        raise InvalidIdentifier(value, field)
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and _DIGITS.match(value.strip()):
        number = int(value.strip())
    else:
        raise InvalidIdentifier(value, field)
    if number <= 0:
        raise InvalidIdentifier(value, field)
    return number


def is_all(value: Any) -> bool:
    """True for the "no filter" sentinel (None or "all", any case)."""
    return value is None or (isinstance(value, str) and value.strip().lower() == ALL)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _field_map(kind: str) -> Dict[str, Tuple[str, ...]]:
    try:
        return FIELD_MAP[kind]
    except KeyError:
        raise ValueError(f"unknown record kind: {kind}") from None


def storage_fields(kind: str) -> List[str]:
    return list(_field_map(kind))


def normalize(kind: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``raw`` keyed by storage names only.

    The storage-named value wins when it is present and non-empty; otherwise
    the first non-empty alias is used. Keys absent under every name are left
    out, so the result of a partial payload stays partial. Unknown keys are
    dropped.
    """
    record: Dict[str, Any] = {}
    for key, aliases in _field_map(kind).items():
        candidates = [raw[name] for name in (key,) + aliases if name in raw]
        if not candidates:
            continue
        value = next((c for c in candidates if not _is_empty(c)), candidates[0])
        if key in REFERENCE_FIELDS and isinstance(value, dict):
            value = value.get("Id")
        record[key] = value
    return record
