"""Filesystem-backed store for the original uploaded bytes.

Blobs live flat in one directory and are addressed by filename only.
The directory is also served statically, so names must stay URL-safe.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os

from models.asset_models import LocalBlobInfo
from models.errors import BlobNotFound

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff", ".svg"}
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME_LENGTH = 100


def sanitize_filename(name: Optional[str]) -> str:
    """Reduce a client-supplied name to a safe basename."""
    base = Path(name or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not cleaned:
        return "upload"
    if len(cleaned) > _MAX_NAME_LENGTH:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and len(ext) <= 10:
            cleaned = stem[: _MAX_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            cleaned = cleaned[:_MAX_NAME_LENGTH]
    return cleaned


class LocalBlobStore:
    """Async wrapper around a blob directory.

    Args:
        base_dir: Directory holding the blobs; created if missing.
        public_prefix: URL prefix under which the directory is served.
    """

    def __init__(self, base_dir: Path | str, public_prefix: str = "/uploads") -> None:
        self.base_dir = Path(base_dir).expanduser()
        self.public_prefix = public_prefix.rstrip("/")
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, filename: str) -> Optional[Path]:
        """Return the on-disk path for `filename`, or None if it is not a bare name."""
        if not filename or filename in (".", "..") or Path(filename).name != filename:
            return None
        if "/" in filename or "\\" in filename:
            return None
        return self.base_dir / filename

    def _new_filename(self, original_name: Optional[str]) -> str:
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{sanitize_filename(original_name)}"

    async def write(self, data: bytes, original_name: Optional[str] = None) -> str:
        """Persist `data` under a freshly generated name and return that name.

        The file is opened exclusively, so an existing blob is never overwritten.
        """
        for _ in range(5):
            filename = self._new_filename(original_name)
            path = self.base_dir / filename
            try:
                async with aiofiles.open(path, "xb") as f:
                    await f.write(data)
            except FileExistsError:
                continue
            LOGGER.debug("Stored blob %s (%d bytes)", filename, len(data))
            return filename
        raise FileExistsError(f"Could not allocate a unique blob name for {original_name!r}")

    async def exists(self, filename: str) -> bool:
        path = self._path_for(filename)
        if path is None:
            return False
        return await aiofiles.os.path.isfile(path)

    async def read(self, filename: str) -> bytes:
        """Return the bytes of `filename`.

        Raises:
            BlobNotFound: If the blob is not on disk.
        """
        path = self._path_for(filename)
        if path is None:
            raise BlobNotFound(f"Blob {filename!r} not found")
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise BlobNotFound(f"Blob {filename!r} not found") from exc

    async def delete(self, filename: str) -> bool:
        """Remove `filename`. Returns False if it was already absent."""
        path = self._path_for(filename)
        if path is None:
            return False
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    async def list_filenames(self) -> List[str]:
        """Names of all regular files currently in the store."""
        await aiofiles.os.makedirs(self.base_dir, exist_ok=True)
        names = await aiofiles.os.listdir(self.base_dir)
        return [name for name in names if await aiofiles.os.path.isfile(self.base_dir / name)]

    async def describe_all(self) -> List[LocalBlobInfo]:
        """Directory listing of the image files in the store, oldest first."""
        entries: List[LocalBlobInfo] = []
        for name in await self.list_filenames():
            if Path(name).suffix.lower() not in IMAGE_EXTENSIONS:
                continue
            try:
                stats = await aiofiles.os.stat(self.base_dir / name)
            except FileNotFoundError:
                continue
            created = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
            entries.append(
                LocalBlobInfo(
                    filename=name,
                    size=stats.st_size,
                    created_at=created.isoformat(),
                    path=f"{self.public_prefix}/{name}",
                )
            )
        entries.sort(key=lambda e: (e.created_at, e.filename))
        return entries
