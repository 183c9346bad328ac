import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database that backs the record store.

    - The database file lives at `db_path`; its parent directory is created
      on construction. A RuntimeError is raised if that is not possible.
    - On the first call to `ensure_database()` for a given instance the
      IMAGE_RECORD table is created if it does not already exist.
      Existing rows are kept: records must survive restarts.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path).expanduser()
        self.db_dir = self.db_path.parent

        if self.db_dir.exists() and not self.db_dir.is_dir():
            raise RuntimeError(
                f"Database directory {self.db_dir} is a file, not a directory."
            )

        try:
            self.db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {self.db_dir}"
            ) from exc

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the database file and the IMAGE_RECORD table exist.

        The `seq` column holds the record's position in the collection so
        listings come back in upload order.
        """
        if self._initialized:
            return

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS IMAGE_RECORD (
                            id TEXT PRIMARY KEY,
                            seq INTEGER NOT NULL,
                            local_filename TEXT NOT NULL UNIQUE,
                            original_name TEXT NOT NULL,
                            remote_asset_id TEXT,
                            remote_url TEXT,
                            uploaded_at TEXT,
                            restored_at TEXT,
                            content_type TEXT,
                            size_bytes INTEGER
                        )
                        """
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
