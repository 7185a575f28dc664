import pytest
import pytest_asyncio

from dentai.database import build_engine, build_session_factory, create_tables, normalize_url
from dentai.store import ANALYSES, IMAGES, ChangeSet, MemoryRecordStore, SqlRecordStore


@pytest_asyncio.fixture
async def sql_store():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield SqlRecordStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_store):
    if request.param == "memory":
        return MemoryRecordStore()
    return sql_store


@pytest.mark.asyncio
async def test_put_get_find(any_store):
    await any_store.put(IMAGES, [{"id": "i-1", "status": "uploaded"}])

    assert await any_store.get(IMAGES) == [{"id": "i-1", "status": "uploaded"}]
    assert await any_store.find(IMAGES, "i-1") == {"id": "i-1", "status": "uploaded"}
    assert await any_store.find(IMAGES, "i-2") is None
    assert await any_store.get(ANALYSES) == []


@pytest.mark.asyncio
async def test_put_upserts_by_id(any_store):
    await any_store.put(IMAGES, [{"id": "i-1", "status": "uploaded"}])
    await any_store.put(IMAGES, [{"id": "i-1", "status": "analyzed"}])

    records = await any_store.get(IMAGES)
    assert records == [{"id": "i-1", "status": "analyzed"}]


@pytest.mark.asyncio
async def test_apply_commits_across_collections(any_store):
    await any_store.put(IMAGES, [{"id": "i-1"}])
    await any_store.put(ANALYSES, [{"id": "a-1", "image_id": "i-1"}])

    await any_store.apply(ChangeSet().delete(IMAGES, "i-1").delete(ANALYSES, "a-1"))
    assert await any_store.get(IMAGES) == []
    assert await any_store.get(ANALYSES) == []


@pytest.mark.asyncio
async def test_delete_missing_is_noop(any_store):
    await any_store.delete(IMAGES, ["nope"])
    assert await any_store.get(IMAGES) == []


@pytest.mark.asyncio
async def test_unknown_collection_rejected(any_store):
    with pytest.raises(ValueError):
        await any_store.get("appointments")


@pytest.mark.asyncio
async def test_failed_apply_writes_nothing(any_store):
    changes = ChangeSet().put(IMAGES, {"id": "i-1"}).put(ANALYSES, {"image_id": "i-1"})

    with pytest.raises(ValueError, match="Record without id"):
        await any_store.apply(changes)
    assert await any_store.get(IMAGES) == []
    assert await any_store.get(ANALYSES) == []


@pytest.mark.asyncio
async def test_sql_apply_rolls_back_mid_transaction(sql_store):
    # the second record only fails once the first has been merged
    changes = ChangeSet().put(IMAGES, {"id": "i-1"}).put(ANALYSES, {"id": "a-1", "blob": object()})

    with pytest.raises(TypeError):
        await sql_store.apply(changes)
    assert await sql_store.get(IMAGES) == []
    assert await sql_store.get(ANALYSES) == []


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = MemoryRecordStore()
    await store.put(IMAGES, [{"id": "i-1", "tags": []}])

    record = await store.find(IMAGES, "i-1")
    record["tags"].append("mutated")
    assert (await store.find(IMAGES, "i-1"))["tags"] == []


def test_postgres_urls_use_asyncpg():
    assert normalize_url("postgres://u:p@db/dentai") == "postgresql+asyncpg://u:p@db/dentai"
    assert normalize_url("postgresql://u:p@db/dentai") == "postgresql+asyncpg://u:p@db/dentai"
    assert normalize_url("sqlite+aiosqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
