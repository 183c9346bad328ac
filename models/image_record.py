from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

STATUS_AVAILABLE = "available"
STATUS_MISSING = "missing"
STATUS_UNKNOWN = "unknown"


@dataclass(frozen=True)
class ImageRecord:
    """Metadata kept for one uploaded image.

    Attributes:
        id: Opaque unique identifier assigned at upload time.
        local_filename: Name of the original bytes in the local blob store.
        original_name: Client-supplied display name.
        remote_asset_id: Public id returned by the remote host (None until uploaded).
        remote_url: Delivery URL returned by the remote host.
        uploaded_at: ISO-8601 UTC timestamp of the upload.
        restored_at: ISO-8601 UTC timestamp of the last successful restore.
        content_type: Media type declared by the client.
        size_bytes: Size of the stored blob.
    """

    id: str
    local_filename: str
    original_name: str
    remote_asset_id: Optional[str] = None
    remote_url: Optional[str] = None
    uploaded_at: Optional[str] = None
    restored_at: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ImageView:
    """A record decorated with its live availability, as returned by a listing."""

    record: ImageRecord
    status: str
    has_local_file: bool = True

    def to_dict(self) -> Dict[str, Any]:
        payload = self.record.to_dict()
        payload["status"] = self.status
        payload["has_local_file"] = self.has_local_file
        return payload
