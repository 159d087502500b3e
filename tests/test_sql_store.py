import pytest
from sqlalchemy.orm import sessionmaker

from database import make_engine
from errors import NotFound, StoreError
from repositories import build_repositories
from sql_store import SqlRecordStore

from conftest import FixedClock


@pytest.fixture
def sql_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'farm.db'}")
    store = SqlRecordStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    store.init_schema()
    yield store
    engine.dispose()


@pytest.fixture
def sql_repos(sql_store):
    return build_repositories(sql_store, FixedClock())


@pytest.mark.asyncio
async def test_farm_lifecycle(sql_repos):
    farm = await sql_repos.farms.create({"name": "Hilltop", "location": "Salinas", "size": 40, "sizeUnit": "hectares"})
    assert farm.id > 0
    assert (await sql_repos.farms.get_by_id(str(farm.id))).name == "Hilltop"

    updated = await sql_repos.farms.update(farm.id, {"location": "Gilroy"})
    assert updated.location == "Gilroy"
    assert updated.size_unit == "hectares"
    assert updated.created_at == farm.created_at

    assert await sql_repos.farms.delete(farm.id) is True
    with pytest.raises(NotFound):
        await sql_repos.farms.get_by_id(farm.id)


@pytest.mark.asyncio
async def test_kinds_do_not_leak(sql_repos):
    farm = await sql_repos.farms.create({"name": "Hilltop", "location": "Salinas", "size": 40})
    with pytest.raises(NotFound):
        await sql_repos.crops.get_by_id(farm.id)
    assert await sql_repos.crops.list() == []


@pytest.mark.asyncio
async def test_filters_and_task_toggle(sql_repos):
    north = await sql_repos.farms.create({"name": "North", "location": "A", "size": 10})
    south = await sql_repos.farms.create({"name": "South", "location": "B", "size": 20})
    task = await sql_repos.tasks.create({"farmId": north.id, "title": "Scout", "type": "Inspection", "dueDate": "2024-05-20"})
    await sql_repos.tasks.create({"farmId": south.id, "title": "Spray", "type": "Pest Control", "dueDate": "2024-05-21"})

    assert [t.id for t in await sql_repos.tasks.list_by_farm(north.id)] == [task.id]

    done = await sql_repos.tasks.toggle_complete(task.id)
    assert done.completed is True
    assert done.completed_date is not None


@pytest.mark.asyncio
async def test_database_errors_become_failed_calls(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    repos = build_repositories(SqlRecordStore(sessionmaker(bind=engine)), FixedClock())
    try:
        # no schema: every statement fails
        assert await repos.farms.list() == []
        with pytest.raises(StoreError):
            await repos.farms.get_by_id(1)
        with pytest.raises(StoreError):
            await repos.farms.create({"name": "North", "location": "A", "size": 10})
    finally:
        engine.dispose()
