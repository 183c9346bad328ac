from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile

from models.errors import (
    NotFound,
    RemoteUploadError,
    StoreUnavailable,
    ValidationError,
)
from services.blob_store import LocalBlobStore
from services.image_workflows import ImageWorkflows
from services.reconciliation import ReconciliationEngine


def _workflows(request: Request) -> ImageWorkflows:
    workflows = getattr(request.app.state, "workflows", None)
    if workflows is None:
        raise HTTPException(status_code=500, detail="Image workflows not initialized.")
    return workflows


async def upload_image(request: Request, file: Optional[UploadFile]) -> Dict[str, Any]:
    """Validate an uploaded image, store it locally and remotely, and register it.

    Args:
        request: FastAPI Request (used to access app.state for shared services).
        file: The multipart `image` field, or None if the client sent no file.

    Returns:
        A dict with a message and the created record under `data`.

    Raises:
        HTTPException(400) on bad input, HTTPException(500) if the remote host
        or the record store fails (the local copy is already cleaned up).
    """
    workflows = _workflows(request)
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    # Read one byte past the ceiling so oversize uploads are detected without
    # buffering the whole body.
    data = await file.read(workflows.max_upload_bytes + 1)

    try:
        record = await workflows.upload(data, file.filename, file.content_type)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RemoteUploadError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to upload image: {exc}") from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=500, detail=f"Failed to save image record: {exc}") from exc

    return {"message": "Image uploaded successfully", "data": record.to_dict()}


async def list_images(request: Request) -> List[Dict[str, Any]]:
    """Reconcile records against disk and the remote host, and return them with status."""
    engine: ReconciliationEngine = request.app.state.reconciler
    try:
        views = await engine.list_images()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch images: {exc}") from exc
    return [view.to_dict() for view in views]


async def restore_image(request: Request, image_id: str) -> Dict[str, Any]:
    """Re-upload the local copy of an image whose remote copy went missing.

    Raises:
        HTTPException(404) if the record or its local file is missing,
        HTTPException(500) if the re-upload or the record update fails.
    """
    workflows = _workflows(request)
    try:
        record = await workflows.restore(image_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except RemoteUploadError as exc:
        raise HTTPException(status_code=500, detail=f"Failed to restore image: {exc}") from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=500, detail=f"Failed to update image record: {exc}") from exc

    return {"message": "Image restored", "data": record.to_dict()}


async def delete_image(request: Request, image_id: str) -> Dict[str, Any]:
    """Delete an image everywhere; partial sub-delete failures still return 200."""
    workflows = _workflows(request)
    try:
        outcome = await workflows.delete(image_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=500, detail=f"Failed to delete image: {exc}") from exc

    return {
        "message": "Image deleted successfully",
        "id": outcome.id,
        "remote_deleted": outcome.remote_deleted,
        "local_deleted": outcome.local_deleted,
    }


async def list_local_images(request: Request) -> List[Dict[str, Any]]:
    """Return the image files currently present in the local blob store."""
    blobs: LocalBlobStore = request.app.state.blob_store
    entries = await blobs.describe_all()
    return [
        {
            "filename": entry.filename,
            "original_name": entry.filename,
            "size": entry.size,
            "created_at": entry.created_at,
            "path": entry.path,
        }
        for entry in entries
    ]
