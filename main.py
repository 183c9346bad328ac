import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from dal.record_store import RecordStore
from routes.image_route import router as image_router
from services.blob_store import LocalBlobStore
from services.image_workflows import ImageWorkflows
from services.reconciliation import ReconciliationEngine
from services.remote_host import CloudinaryAssetHost, RemoteAssetHost
from utils.app_config import AppConfig
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite record store (at DATABASE_DIR/images.db, kept across restarts)
      - the local blob store (UPLOAD_DIR)
      - the remote asset host client (Cloudinary unless one was injected)
      - the reconciliation engine and the image workflows
    and attach them to `app.state`.
    """
    config: AppConfig = app.state.config

    db_initializer = AsyncDatabaseInitializer(config.db_path)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    record_store = RecordStore(db_initializer)
    blob_store = LocalBlobStore(config.upload_dir)

    asset_host: Optional[RemoteAssetHost] = getattr(app.state, "asset_host", None)
    if asset_host is None:
        # Raises RuntimeError naming any missing CLOUDINARY_* variable.
        asset_host = CloudinaryAssetHost.from_env(
            folder=config.cloudinary_folder,
            request_timeout=config.remote_timeout_seconds,
            upload_timeout=config.upload_timeout_seconds,
            max_in_flight=config.max_concurrent_checks,
        )

    app.state.record_store = record_store
    app.state.blob_store = blob_store
    app.state.asset_host = asset_host
    app.state.reconciler = ReconciliationEngine(
        record_store,
        blob_store,
        asset_host,
        max_concurrent_checks=config.max_concurrent_checks,
        check_timeout=config.remote_timeout_seconds,
    )
    app.state.workflows = ImageWorkflows(
        record_store,
        blob_store,
        asset_host,
        max_upload_bytes=config.max_upload_bytes,
    )
    LOGGER.info("Image gateway ready: records=%s uploads=%s", config.db_path, config.upload_dir)

    yield


def create_app(config: Optional[AppConfig] = None, asset_host: Optional[RemoteAssetHost] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Args:
        config: Settings to use; read from the environment when omitted.
        asset_host: Remote host client to use instead of Cloudinary.
    """
    config = config or AppConfig.from_env()

    app = FastAPI(lifespan=lifespan)
    app.state.config = config
    app.state.asset_host = asset_host

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Serve the local blob store for direct retrieval by filename. The
    # directory is created by the lifespan, not here.
    app.mount("/uploads", StaticFiles(directory=config.upload_dir, check_dir=False), name="uploads")

    @app.get("/health")
    async def health(request: Request):
        """
        Liveness probe reporting the current time and which services are wired up.
        """
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "db_initialized": hasattr(request.app.state, "db_initializer"),
            "asset_host_configured": getattr(request.app.state, "asset_host", None) is not None,
        }

    # Register application routers
    app.include_router(image_router)

    return app


if __name__ == "__main__":
    # Equivalent to `uvicorn main:create_app --factory`.
    import os

    import uvicorn

    logging.basicConfig(
        level=AppConfig.from_env().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
    )
