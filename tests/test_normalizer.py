import pytest

from errors import InvalidIdentifier
from normalizer import CROP, FARM, TASK, is_all, normalize, parse_id, storage_fields


@pytest.mark.parametrize("raw, expected", [
    (7, 7),
    ("12", 12),
    (" 12 ", 12),
    (3.0, 3),
    ({"Id": 4, "Name": "North"}, 4),
])
def test_parse_id_accepts_numeric_forms(raw, expected):
    assert parse_id(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", None, 0, -1, "-3", True, "12abc", 1.5, {"Name": "x"}])
def test_parse_id_rejects_everything_else(raw):
    with pytest.raises(InvalidIdentifier) as exc:
        parse_id(raw)
    assert isinstance(exc.value, ValueError)
    assert "must be a positive number" in exc.value.message


def test_invalid_identifier_names_the_field():
    with pytest.raises(InvalidIdentifier) as exc:
        parse_id("x", "farm_id")
    assert exc.value.field == "farm_id"
    assert "farm_id" in exc.value.message


def test_normalize_maps_form_names_to_storage_names():
    record = normalize(FARM, {"name": "Green Valley", "location": "Fresno", "size": 10, "sizeUnit": "hectares"})
    assert record == {"Name": "Green Valley", "location": "Fresno", "size": 10, "size_unit": "hectares"}


def test_normalize_prefers_storage_value_when_both_present():
    record = normalize(CROP, {"farm_id": 3, "farmId": 9, "crop_type": "Corn", "cropType": "Wheat"})
    assert record["farm_id"] == 3
    assert record["crop_type"] == "Corn"


def test_normalize_falls_back_when_storage_value_is_empty():
    record = normalize(CROP, {"farm_id": "", "farmId": 9, "crop_type": None, "cropType": "Wheat"})
    assert record["farm_id"] == 9
    assert record["crop_type"] == "Wheat"


def test_normalize_keeps_falsy_values_that_are_not_empty():
    record = normalize(TASK, {"completed": False, "crop_id": None})
    assert record == {"completed": False, "crop_id": None}


def test_normalize_drops_unknown_and_absent_keys():
    record = normalize(TASK, {"title": "Scout", "color": "red"})
    assert record == {"title": "Scout"}


def test_normalize_unwraps_reference_fields():
    record = normalize(CROP, {"farm_id": {"Id": 5, "Name": "North"}})
    assert record == {"farm_id": 5}


def test_storage_fields_and_unknown_kind():
    assert storage_fields(FARM) == ["Id", "Name", "location", "size", "size_unit", "created_at"]
    with pytest.raises(ValueError):
        normalize("weather", {})


@pytest.mark.parametrize("value, expected", [
    (None, True), ("all", True), ("All", True), (" ALL ", True), ("3", False), (3, False), ("", False),
])
def test_is_all(value, expected):
    assert is_all(value) is expected
