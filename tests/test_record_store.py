import asyncio

import pytest

from dal.record_store import RecordStore
from models.errors import NotFound, StoreUnavailable
from models.image_record import ImageRecord
from utils.database_init import AsyncDatabaseInitializer


def _record(n: int, **overrides) -> ImageRecord:
    fields = dict(
        id=f"id-{n}",
        local_filename=f"{n}-file.png",
        original_name=f"file-{n}.png",
        remote_asset_id=f"cloudapp/file_{n}",
        remote_url=f"https://cdn.test/file_{n}",
        uploaded_at="2026-01-01T00:00:00+00:00",
    )
    fields.update(overrides)
    return ImageRecord(**fields)


@pytest.mark.asyncio
async def test_empty_store_lists_nothing(record_store):
    assert await record_store.get_all() == []
    assert await record_store.find_by_id("nope") is None


@pytest.mark.asyncio
async def test_upsert_appends_then_replaces_in_place(record_store):
    await record_store.upsert(_record(1))
    await record_store.upsert(_record(2))
    await record_store.upsert(_record(1, remote_asset_id="cloudapp/other"))

    records = await record_store.get_all()
    assert [r.id for r in records] == ["id-1", "id-2"]
    assert records[0].remote_asset_id == "cloudapp/other"


@pytest.mark.asyncio
async def test_replace_all_overwrites_collection(record_store):
    await record_store.upsert(_record(1))
    await record_store.replace_all([_record(3), _record(2)])

    assert [r.id for r in await record_store.get_all()] == ["id-3", "id-2"]
    assert await record_store.find_by_id("id-1") is None


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(record_store):
    await record_store.upsert(_record(1, size_bytes=10, content_type="image/png"))

    updated = await record_store.update("id-1", restored_at="2026-02-02T00:00:00+00:00")

    assert updated.restored_at == "2026-02-02T00:00:00+00:00"
    assert updated.size_bytes == 10
    assert await record_store.find_by_id("id-1") == updated


@pytest.mark.asyncio
async def test_update_unknown_id_raises_and_writes_nothing(record_store):
    await record_store.upsert(_record(1))
    with pytest.raises(NotFound):
        await record_store.update("missing", remote_url="x")
    assert await record_store.get_all() == [_record(1)]


@pytest.mark.asyncio
async def test_delete_reports_whether_a_record_was_removed(record_store):
    await record_store.upsert(_record(1))
    assert await record_store.delete("id-1") is True
    assert await record_store.delete("id-1") is False
    assert await record_store.get_all() == []


@pytest.mark.asyncio
async def test_concurrent_upserts_do_not_lose_updates(record_store):
    await asyncio.gather(*(record_store.upsert(_record(n)) for n in range(25)))
    ids = {r.id for r in await record_store.get_all()}
    assert ids == {f"id-{n}" for n in range(25)}


@pytest.mark.asyncio
async def test_records_survive_a_new_initializer(config, record_store):
    await record_store.upsert(_record(7))

    reopened = RecordStore(AsyncDatabaseInitializer(config.db_path))
    assert [r.id for r in await reopened.get_all()] == ["id-7"]


@pytest.mark.asyncio
async def test_unreadable_backing_file_raises_store_unavailable(config, record_store):
    config.db_path.unlink()
    config.db_path.mkdir()

    with pytest.raises(StoreUnavailable):
        await record_store.get_all()
    with pytest.raises(StoreUnavailable):
        await record_store.upsert(_record(1))
