"""Async record store for image metadata.

The store is a single ordered collection persisted in the IMAGE_RECORD
table. Every operation reads or writes the whole collection; mutations are
serialized behind one lock so concurrent requests cannot lose each
other's updates.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence

import aiosqlite

from models.errors import NotFound, StoreUnavailable
from models.image_record import ImageRecord
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class RecordStore:
    """Whole-collection store of `ImageRecord`s.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "local_filename",
        "original_name",
        "remote_asset_id",
        "remote_url",
        "uploaded_at",
        "restored_at",
        "content_type",
        "size_bytes",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)
    _INSERT_SQL = (
        f"INSERT INTO IMAGE_RECORD (seq, {_COLUMN_LIST}) "
        f"VALUES ({', '.join('?' * (len(_COLUMNS) + 1))})"
    )

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer
        self._lock = asyncio.Lock()

    async def get_all(self) -> List[ImageRecord]:
        """Return every record in collection order."""
        return await self._read_all()

    async def find_by_id(self, record_id: str) -> Optional[ImageRecord]:
        """Return the record for `record_id`, or None if not found."""
        for record in await self._read_all():
            if record.id == record_id:
                return record
        return None

    async def replace_all(self, records: Sequence[ImageRecord]) -> None:
        """Overwrite the whole collection with `records`."""
        async with self._lock:
            await self._write_all(records)

    async def upsert(self, record: ImageRecord) -> ImageRecord:
        """Replace the record with the same id in place, or append it."""

        def _apply(records: List[ImageRecord]) -> ImageRecord:
            for index, existing in enumerate(records):
                if existing.id == record.id:
                    records[index] = record
                    return record
            records.append(record)
            return record

        return await self.mutate(_apply)

    async def update(self, record_id: str, **changes: Any) -> ImageRecord:
        """Apply field `changes` to an existing record and return the new version.

        Raises:
            NotFound: If no record has `record_id`.
        """

        def _apply(records: List[ImageRecord]) -> ImageRecord:
            for index, existing in enumerate(records):
                if existing.id == record_id:
                    records[index] = dataclasses.replace(existing, **changes)
                    return records[index]
            raise NotFound(f"Image {record_id} not found")

        return await self.mutate(_apply)

    async def delete(self, record_id: str) -> bool:
        """Remove the record for `record_id`. Returns True if one was removed."""

        def _apply(records: List[ImageRecord]) -> bool:
            before = len(records)
            records[:] = [r for r in records if r.id != record_id]
            return len(records) != before

        removed = await self.mutate(_apply)
        if not removed:
            LOGGER.warning("No record found to remove for id=%s", record_id)
        return removed

    async def mutate(self, fn: Callable[[List[ImageRecord]], Any]) -> Any:
        """Run a read-modify-write cycle under the store lock.

        `fn` receives the current collection as a list it may edit in place
        (sync or async). Records are frozen, so changes are made by replacing
        list items. The collection is written back only if it changed.
        Returns whatever `fn` returns; exceptions abort without writing.
        """
        async with self._lock:
            records = await self._read_all()
            snapshot = list(records)
            result = fn(records)
            if inspect.isawaitable(result):
                result = await result
            if records != snapshot:
                await self._write_all(records)
            return result

    @asynccontextmanager
    async def _connection(self, action: str) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with self._db.connection() as conn:
                yield conn
        except (aiosqlite.Error, OSError) as exc:
            LOGGER.error("Record store %s failed: %s", action, exc)
            raise StoreUnavailable(f"Record store could not be {action}: {exc}") from exc

    async def _read_all(self) -> List[ImageRecord]:
        async with self._connection("read") as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM IMAGE_RECORD ORDER BY seq ASC"
            )
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def _write_all(self, records: Sequence[ImageRecord]) -> None:
        rows = [
            (seq, *(getattr(record, col) for col in self._COLUMNS))
            for seq, record in enumerate(records)
        ]
        async with self._connection("written") as conn:
            await conn.execute("DELETE FROM IMAGE_RECORD")
            await conn.executemany(self._INSERT_SQL, rows)
            await conn.commit()

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> ImageRecord:
        """Convert a DB row tuple into an ImageRecord."""
        return ImageRecord(
            id=row[0],
            local_filename=row[1],
            original_name=row[2],
            remote_asset_id=row[3],
            remote_url=row[4],
            uploaded_at=row[5],
            restored_at=row[6],
            content_type=row[7],
            size_bytes=row[8],
        )
