"""Test doubles: an in-memory remote asset host and image bytes."""

from __future__ import annotations

import asyncio
import io
import itertools
from typing import Dict

from PIL import Image

from models.asset_models import RemoteAsset
from models.errors import RemoteTransportError, RemoteUploadError


class InMemoryAssetHost:
    """Remote host double with switches for the failure modes the workflows handle."""

    def __init__(self) -> None:
        self.assets: Dict[str, bytes] = {}
        self.fail_uploads = False
        self.fail_deletes = False
        self.unreachable = False
        self.check_delay = 0.0
        self.active_checks = 0
        self.peak_checks = 0
        self.upload_calls = 0
        self._ids = itertools.count(1)

    async def upload(self, data: bytes, display_name: str) -> RemoteAsset:
        self.upload_calls += 1
        if self.fail_uploads:
            raise RemoteUploadError("quota exceeded")
        asset_id = f"cloudapp/{display_name}_{next(self._ids)}"
        self.assets[asset_id] = data
        return RemoteAsset(remote_asset_id=asset_id, remote_url=f"https://cdn.test/{asset_id}")

    async def exists(self, remote_asset_id: str) -> bool:
        self.active_checks += 1
        self.peak_checks = max(self.peak_checks, self.active_checks)
        try:
            if self.check_delay:
                await asyncio.sleep(self.check_delay)
            if self.unreachable:
                raise RemoteTransportError("connection reset")
            return remote_asset_id in self.assets
        finally:
            self.active_checks -= 1

    async def delete(self, remote_asset_id: str) -> None:
        if self.fail_deletes:
            raise RemoteTransportError("connection refused")
        self.assets.pop(remote_asset_id, None)

    def drop(self, remote_asset_id: str) -> None:
        """Remove an asset out of band, as if deleted from the host's console."""
        del self.assets[remote_asset_id]


def make_png(color=(200, 30, 30), size=(4, 4)) -> bytes:
    """Small valid PNG for upload tests."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()
