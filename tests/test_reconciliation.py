import asyncio

import pytest

from models.image_record import STATUS_AVAILABLE, STATUS_MISSING, STATUS_UNKNOWN, ImageRecord
from services.reconciliation import ReconciliationEngine


async def _upload(workflows, png_bytes, name="cat.png"):
    return await workflows.upload(png_bytes, name, "image/png")


@pytest.mark.asyncio
async def test_records_without_local_blob_are_purged(workflows, reconciler, record_store, blob_store, png_bytes):
    kept = await _upload(workflows, png_bytes, "kept.png")
    orphan = await _upload(workflows, png_bytes, "orphan.png")
    await blob_store.delete(orphan.local_filename)

    views = await reconciler.list_images()

    assert [v.record.id for v in views] == [kept.id]
    assert await record_store.find_by_id(orphan.id) is None
    # Purged records never come back.
    assert [v.record.id for v in await reconciler.list_images()] == [kept.id]


@pytest.mark.asyncio
async def test_status_follows_the_remote_host(workflows, reconciler, asset_host, png_bytes):
    present = await _upload(workflows, png_bytes, "present.png")
    gone = await _upload(workflows, png_bytes, "gone.png")
    asset_host.drop(gone.remote_asset_id)

    statuses = {v.record.id: v.status for v in await reconciler.list_images()}

    assert statuses == {present.id: STATUS_AVAILABLE, gone.id: STATUS_MISSING}


@pytest.mark.asyncio
async def test_unreachable_host_is_inconclusive_not_missing(workflows, reconciler, asset_host, png_bytes):
    record = await _upload(workflows, png_bytes)
    asset_host.unreachable = True

    views = await reconciler.list_images()

    assert [(v.record.id, v.status) for v in views] == [(record.id, STATUS_UNKNOWN)]


@pytest.mark.asyncio
async def test_slow_check_times_out_as_unknown(record_store, blob_store, asset_host, workflows, png_bytes):
    await _upload(workflows, png_bytes)
    asset_host.check_delay = 0.5
    engine = ReconciliationEngine(record_store, blob_store, asset_host, check_timeout=0.05)

    views = await engine.list_images()

    assert [v.status for v in views] == [STATUS_UNKNOWN]


@pytest.mark.asyncio
async def test_record_without_remote_id_is_missing(record_store, blob_store, reconciler):
    name = await blob_store.write(b"bytes", "never.png")
    await record_store.upsert(ImageRecord(id="r1", local_filename=name, original_name="never.png"))

    views = await reconciler.list_images()

    assert [(v.status, v.has_local_file) for v in views] == [(STATUS_MISSING, True)]


@pytest.mark.asyncio
async def test_existence_checks_respect_concurrency_bound(workflows, reconciler, asset_host, config, png_bytes):
    for n in range(8):
        await _upload(workflows, png_bytes, f"img{n}.png")
    asset_host.check_delay = 0.02

    views = await reconciler.list_images()

    assert len(views) == 8
    assert all(v.status == STATUS_AVAILABLE for v in views)
    assert 1 < asset_host.peak_checks <= config.max_concurrent_checks


@pytest.mark.asyncio
async def test_listing_does_not_purge_a_concurrent_upload(workflows, reconciler, record_store, png_bytes):
    results = await asyncio.gather(
        reconciler.list_images(),
        _upload(workflows, png_bytes, "racing.png"),
    )
    uploaded = results[1]

    assert await record_store.find_by_id(uploaded.id) is not None
