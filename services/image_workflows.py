"""Upload, restore and delete workflows spanning the three stores.

Each workflow keeps the stores as close to consistent as it can without
cross-store transactions:

- upload never leaves a record without a remote copy, nor a blob without a record;
- restore only rewrites the remote fields of an existing record;
- delete always removes the record, even when a sub-delete fails.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from dal.record_store import RecordStore
from models.asset_models import DeleteOutcome
from models.errors import (
    BlobNotFound,
    LocalBlobMissing,
    NotFound,
    RemoteTransportError,
    StoreUnavailable,
)
from models.image_record import ImageRecord
from services.blob_store import LocalBlobStore, sanitize_filename
from services.remote_host import RemoteAssetHost
from utils.media_validation import validate_image_upload

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImageWorkflows:
    """Coordinate the record store, the local blob store and the remote host.

    Args:
        records: Record store holding image metadata.
        blobs: Local blob store holding the original bytes.
        remote: Remote asset host holding the public copy.
        max_upload_bytes: Size ceiling enforced before anything is written.
    """

    def __init__(
        self,
        records: RecordStore,
        blobs: LocalBlobStore,
        remote: RemoteAssetHost,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self.records = records
        self.blobs = blobs
        self.remote = remote
        self.max_upload_bytes = max_upload_bytes

    async def upload(
        self,
        data: Optional[bytes],
        original_name: Optional[str],
        content_type: Optional[str],
    ) -> ImageRecord:
        """Store a new image locally and remotely, then register it.

        Raises:
            ValidationError: If the input is rejected; nothing is written.
            RemoteUploadError: If the remote upload fails; the local blob is removed.
            StoreUnavailable: If the record cannot be saved; both copies are removed.
        """
        media_type = validate_image_upload(data, content_type, self.max_upload_bytes)
        display_name = original_name or sanitize_filename(original_name)

        local_filename = await self.blobs.write(data, display_name)
        try:
            asset = await self.remote.upload(data, display_name)
        except Exception:
            LOGGER.warning("Remote upload of %s failed; removing local copy %s", display_name, local_filename)
            await self.blobs.delete(local_filename)
            raise

        record = ImageRecord(
            id=uuid.uuid4().hex,
            local_filename=local_filename,
            original_name=display_name,
            remote_asset_id=asset.remote_asset_id,
            remote_url=asset.remote_url,
            uploaded_at=utc_now_iso(),
            content_type=media_type,
            size_bytes=len(data),
        )
        try:
            await self.records.upsert(record)
        except StoreUnavailable:
            LOGGER.warning("Could not register %s; rolling back both copies", local_filename)
            await self._discard_remote(asset.remote_asset_id)
            await self.blobs.delete(local_filename)
            raise

        LOGGER.info("Uploaded image %s (%s) as %s", record.id, display_name, asset.remote_asset_id)
        return record

    async def restore(self, record_id: str) -> ImageRecord:
        """Re-upload the local copy of a record and point the record at the new asset.

        Raises:
            NotFound: If no record has `record_id`.
            LocalBlobMissing: If the local copy is gone.
            RemoteUploadError: If the re-upload fails; the record is unchanged.
            StoreUnavailable: If the record could not be updated; the new asset
                is deleted again.
        """
        record = await self.records.find_by_id(record_id)
        if record is None:
            raise NotFound(f"Image {record_id} not found")

        LOGGER.info("Restoring image %s from %s", record_id, record.local_filename)
        try:
            data = await self.blobs.read(record.local_filename)
        except BlobNotFound as exc:
            LOGGER.error("Local file not found for image %s: %s", record_id, record.local_filename)
            raise LocalBlobMissing(f"Local image file for {record_id} not found") from exc

        asset = await self.remote.upload(data, record.original_name)
        try:
            restored = await self.records.update(
                record_id,
                remote_asset_id=asset.remote_asset_id,
                remote_url=asset.remote_url,
                restored_at=utc_now_iso(),
            )
        except (NotFound, StoreUnavailable):
            # Deleted while the upload was in flight, or the store went away.
            await self._discard_remote(asset.remote_asset_id)
            raise

        LOGGER.info("Restored image %s as %s", record_id, asset.remote_asset_id)
        return restored

    async def delete(self, record_id: str) -> DeleteOutcome:
        """Remove the remote asset, the local blob and finally the record.

        Sub-delete failures are logged and reported in the outcome; they never
        prevent the record from being removed.

        Raises:
            NotFound: If no record has `record_id`.
        """
        record = await self.records.find_by_id(record_id)
        if record is None:
            raise NotFound(f"Image {record_id} not found")

        remote_deleted = True
        if record.remote_asset_id:
            remote_deleted = await self._discard_remote(record.remote_asset_id)

        local_deleted = True
        try:
            await self.blobs.delete(record.local_filename)
        except OSError as exc:
            local_deleted = False
            LOGGER.warning("Could not delete local file %s: %s", record.local_filename, exc)

        await self.records.delete(record_id)
        LOGGER.info(
            "Deleted image %s (remote_deleted=%s, local_deleted=%s)",
            record_id,
            remote_deleted,
            local_deleted,
        )
        return DeleteOutcome(id=record_id, remote_deleted=remote_deleted, local_deleted=local_deleted)

    async def _discard_remote(self, remote_asset_id: str) -> bool:
        try:
            await self.remote.delete(remote_asset_id)
        except RemoteTransportError as exc:
            LOGGER.warning("Could not delete remote asset %s: %s", remote_asset_id, exc)
            return False
        return True
