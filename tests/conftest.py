import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from dal.record_store import RecordStore
from fakes import InMemoryAssetHost, make_png
from main import create_app
from services.blob_store import LocalBlobStore
from services.image_workflows import ImageWorkflows
from services.reconciliation import ReconciliationEngine
from utils.app_config import AppConfig
from utils.database_init import AsyncDatabaseInitializer


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        database_dir=tmp_path / "database",
        upload_dir=tmp_path / "uploads",
        max_upload_bytes=64 * 1024,
        remote_timeout_seconds=1.0,
        max_concurrent_checks=3,
    )


@pytest.fixture
def asset_host() -> InMemoryAssetHost:
    return InMemoryAssetHost()


@pytest_asyncio.fixture
async def record_store(config) -> RecordStore:
    initializer = AsyncDatabaseInitializer(config.db_path)
    await initializer.ensure_database()
    return RecordStore(initializer)


@pytest.fixture
def blob_store(config) -> LocalBlobStore:
    return LocalBlobStore(config.upload_dir)


@pytest.fixture
def workflows(record_store, blob_store, asset_host, config) -> ImageWorkflows:
    return ImageWorkflows(record_store, blob_store, asset_host, max_upload_bytes=config.max_upload_bytes)


@pytest.fixture
def reconciler(record_store, blob_store, asset_host, config) -> ReconciliationEngine:
    return ReconciliationEngine(
        record_store,
        blob_store,
        asset_host,
        max_concurrent_checks=config.max_concurrent_checks,
        check_timeout=config.remote_timeout_seconds,
    )


@pytest.fixture
def client(config, asset_host):
    app = create_app(config=config, asset_host=asset_host)
    with TestClient(app) as test_client:
        yield test_client
