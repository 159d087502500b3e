import pytest

from errors import StoreError, ValidationError
from store import InMemoryRecordStore, build_query, equal_to, unwrap_single


def test_unwrap_single_returns_record_data():
    response = {"success": True, "results": [{"success": True, "data": {"Id": 1}}]}
    assert unwrap_single(response, "create farm") == {"Id": 1}


def test_unwrap_single_call_failure_is_store_error():
    with pytest.raises(StoreError) as exc:
        unwrap_single({"success": False, "message": "Service unavailable"}, "create farm")
    assert exc.value.message == "Service unavailable"
    assert exc.value.retryable is True


def test_unwrap_single_record_failure_is_validation_error():
    response = {
        "success": True,
        "results": [{"success": False, "errors": [{"fieldLabel": "size", "message": "too large"}]}],
    }
    with pytest.raises(ValidationError) as exc:
        unwrap_single(response, "create farm")
    assert exc.value.field_errors == {"size": "too large"}
    assert exc.value.retryable is False


def test_unwrap_single_record_failure_without_field_errors():
    response = {"success": True, "results": [{"success": False, "message": "Duplicate record"}]}
    with pytest.raises(ValidationError) as exc:
        unwrap_single(response, "create farm")
    assert exc.value.message == "Duplicate record"


def test_unwrap_single_without_results():
    with pytest.raises(StoreError):
        unwrap_single({"success": True, "results": []}, "update task")


@pytest.mark.asyncio
async def test_memory_store_never_reuses_ids():
    store = InMemoryRecordStore()
    first = await store.create_record("farm", {"records": [{"Name": "A"}]})
    first_id = first["results"][0]["data"]["Id"]
    await store.delete_record("farm", {"RecordIds": [first_id]})
    second = await store.create_record("farm", {"records": [{"Name": "B"}]})
    assert second["results"][0]["data"]["Id"] != first_id


@pytest.mark.asyncio
async def test_memory_store_hands_out_copies():
    store = InMemoryRecordStore()
    created = await store.create_record("farm", {"records": [{"Name": "A"}]})
    created["results"][0]["data"]["Name"] = "changed"
    fetched = await store.fetch_records("farm")
    assert fetched["data"][0]["Name"] == "A"


@pytest.mark.asyncio
async def test_memory_store_filters_and_projects():
    store = InMemoryRecordStore()
    await store.create_record("crop", {"records": [
        {"farm_id": 1, "crop_type": "Corn", "secret": "x"},
        {"farm_id": 2, "crop_type": "Wheat"},
    ]})
    response = await store.fetch_records("crop", build_query("crop", [equal_to("farm_id", 1)]))
    assert response["success"] is True
    assert len(response["data"]) == 1
    row = response["data"][0]
    assert row["crop_type"] == "Corn"
    assert "secret" not in row


@pytest.mark.asyncio
async def test_memory_store_comparison_operator():
    store = InMemoryRecordStore()
    await store.create_record("inventory_item", {"records": [{"current_stock": 5}, {"current_stock": 50}]})
    query = {"where": [{"FieldName": "current_stock", "Operator": "LessThanOrEqualTo", "Values": ["10"]}]}
    response = await store.fetch_records("inventory_item", query)
    assert [r["current_stock"] for r in response["data"]] == [5]


@pytest.mark.asyncio
async def test_memory_store_failure_hooks():
    store = InMemoryRecordStore()
    store.fail_next_call("down")
    assert await store.fetch_records("farm") == {"success": False, "message": "down"}
    assert (await store.fetch_records("farm"))["success"] is True

    store.reject_next_record([{"fieldLabel": "Name", "message": "taken"}])
    response = await store.create_record("farm", {"records": [{"Name": "A"}]})
    assert response["success"] is True
    assert response["results"][0]["success"] is False
    assert store.rows("farm") == []


@pytest.mark.asyncio
async def test_memory_store_update_and_delete_unknown_record():
    store = InMemoryRecordStore()
    update = await store.update_record("farm", {"records": [{"Id": 99, "Name": "x"}]})
    assert update["results"][0]["success"] is False
    delete = await store.delete_record("farm", {"RecordIds": [99]})
    assert delete["results"][0]["success"] is False
