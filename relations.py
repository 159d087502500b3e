"""Read-side joins over collections the caller already fetched.

Nothing here touches the store, and lookups that miss (a farm deleted while
its crops remain, say) fall back to a label instead of raising.
"""
from typing import Iterable, List, Optional, Sequence, TypeVar

from errors import InvalidIdentifier
from normalizer import parse_id
from schemas import HARVESTED, Crop, Farm, Task

UNKNOWN_FARM = "Unknown Farm"
UNKNOWN_CROP = "Unknown Crop"

T = TypeVar("T")


def records_for_farm(farm_id, records: Iterable[T]) -> List[T]:
    fid = parse_id(farm_id, "farm_id")
    return [r for r in records if r.farm_id == fid]


def crops_for_farm(farm_id, crops: Iterable[Crop]) -> List[Crop]:
    return records_for_farm(farm_id, crops)


def tasks_for_farm(farm_id, tasks: Iterable[Task]) -> List[Task]:
    return records_for_farm(farm_id, tasks)


def transactions_for_farm(farm_id, transactions):
    return records_for_farm(farm_id, transactions)


def find_farm(farm_id, farms: Iterable[Farm]) -> Optional[Farm]:
    try:
        fid = parse_id(farm_id)
    except InvalidIdentifier:
        return None
    return next((f for f in farms if f.id == fid), None)


def find_crop(crop_id, crops: Iterable[Crop]) -> Optional[Crop]:
    try:
        cid = parse_id(crop_id)
    except InvalidIdentifier:
        return None
    return next((c for c in crops if c.id == cid), None)


def farm_name(farm_id, farms: Iterable[Farm]) -> str:
    farm = find_farm(farm_id, farms)
    return farm.name if farm else UNKNOWN_FARM


def crop_for_task(task: Task, crops: Iterable[Crop]) -> Optional[Crop]:
    if not task.crop_id:
        return None
    return find_crop(task.crop_id, crops)


def crop_name(crop_id, crops: Iterable[Crop]) -> Optional[str]:
    if not crop_id:
        return None
    crop = find_crop(crop_id, crops)
    return crop.crop_type if crop else UNKNOWN_CROP


def crop_display_label(crop_id, crops: Iterable[Crop]) -> Optional[str]:
    """``"Corn (Growing)"``, None when no crop is selected."""
    if not crop_id:
        return None
    crop = find_crop(crop_id, crops)
    if crop is None:
        return UNKNOWN_CROP
    return f"{crop.crop_type} ({crop.status})"


def active_crop_count(farm_id, crops: Iterable[Crop]) -> int:
    return sum(1 for c in crops_for_farm(farm_id, crops) if c.status != HARVESTED)


def orphaned_records(records: Iterable[T], farms: Sequence[Farm]) -> List[T]:
    """Records whose ``farm_id`` no longer points at an existing farm."""
    known = {f.id for f in farms}
    return [r for r in records if r.farm_id not in known]
