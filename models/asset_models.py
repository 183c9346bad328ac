"""Value objects exchanged with the remote host and the local blob store."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RemoteAsset:
    """Identifiers returned by the remote host after a successful upload."""

    remote_asset_id: str
    remote_url: str


@dataclass(frozen=True)
class LocalBlobInfo:
    """Directory entry of the local blob store."""

    filename: str
    size: int
    created_at: str
    path: str


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of a delete: the record is always gone, the sub-deletes may lag."""

    id: str
    remote_deleted: bool
    local_deleted: bool
