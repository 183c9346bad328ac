"""Listing-time reconciliation between the record store, disk and remote host."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from dal.record_store import RecordStore
from models.errors import RemoteTransportError
from models.image_record import (
    STATUS_AVAILABLE,
    STATUS_MISSING,
    STATUS_UNKNOWN,
    ImageRecord,
    ImageView,
)
from services.blob_store import LocalBlobStore
from services.remote_host import RemoteAssetHost

LOGGER = logging.getLogger(__name__)


class ReconciliationEngine:
    """Align records with the blobs on disk and classify remote availability.

    Args:
        records: Record store to reconcile.
        blobs: Local blob store the records point into.
        remote: Remote asset host queried for existence.
        max_concurrent_checks: Upper bound on existence checks in flight.
        check_timeout: Seconds allowed per existence check.
    """

    def __init__(
        self,
        records: RecordStore,
        blobs: LocalBlobStore,
        remote: RemoteAssetHost,
        max_concurrent_checks: int = 8,
        check_timeout: Optional[float] = 5.0,
    ) -> None:
        self.records = records
        self.blobs = blobs
        self.remote = remote
        self.check_timeout = check_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent_checks)

    async def list_images(self) -> List[ImageView]:
        """Run the sync pass, then classify every surviving record."""
        survivors = await self.sync_with_blobs()
        return list(await asyncio.gather(*(self._classify(r) for r in survivors)))

    async def sync_with_blobs(self) -> List[ImageRecord]:
        """Purge records whose blob is gone and return the surviving records.

        The blob listing is taken under the store lock so a record written by a
        concurrent upload is always matched against a listing that includes
        its blob.
        """

        async def _drop_orphans(records: List[ImageRecord]) -> List[ImageRecord]:
            present = set(await self.blobs.list_filenames())
            kept = []
            for record in records:
                if record.local_filename in present:
                    kept.append(record)
                else:
                    LOGGER.warning(
                        "Removing record %s for missing file %s (remote asset %s)",
                        record.id,
                        record.local_filename,
                        record.remote_asset_id,
                    )
            if len(kept) != len(records):
                LOGGER.warning("Synced record store: removed %d stale record(s)", len(records) - len(kept))
            records[:] = kept
            return list(kept)

        return await self.records.mutate(_drop_orphans)

    async def _classify(self, record: ImageRecord) -> ImageView:
        has_local_file = await self.blobs.exists(record.local_filename)
        if not record.remote_asset_id:
            return ImageView(record=record, status=STATUS_MISSING, has_local_file=has_local_file)

        async with self._semaphore:
            try:
                present = await asyncio.wait_for(
                    self.remote.exists(record.remote_asset_id), timeout=self.check_timeout
                )
            except (RemoteTransportError, asyncio.TimeoutError) as exc:
                LOGGER.warning("Remote check for %s inconclusive: %s", record.remote_asset_id, exc)
                return ImageView(record=record, status=STATUS_UNKNOWN, has_local_file=has_local_file)

        status = STATUS_AVAILABLE if present else STATUS_MISSING
        return ImageView(record=record, status=status, has_local_file=has_local_file)
