"""
Async SQLite storage used by the database sink.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite


logger = logging.getLogger(__name__)


def resolve_db_path(location: str) -> Path:
    """Accept a plain path or a ``sqlite:///path`` / ``sqlite+aiosqlite:///path`` URL."""
    if location.startswith("sqlite"):
        _, _, path = location.partition(":///")
        if not path:
            path = location.split("//")[-1]
        return Path(path)
    return Path(location)


class Database:
    """One lazily opened aiosqlite connection.

    Every write is committed immediately so rows are visible to other
    readers of the file while the poller keeps running.
    """

    def __init__(self, db_path: str = "activations.db"):
        self.db_path = resolve_db_path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> aiosqlite.Connection:
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path, timeout=30)
            self._connection.row_factory = aiosqlite.Row
            # WAL lets readers look at the table while the poller keeps writing
            await self._connection.execute("PRAGMA journal_mode=WAL;")
            await self._connection.execute("PRAGMA busy_timeout=30000;")
            logger.debug(f"Opened {self.db_path}")
        return self._connection

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def ensure_table(self, ddl: str) -> None:
        """Run a CREATE TABLE IF NOT EXISTS statement."""
        conn = await self.connect()
        await conn.execute(ddl)
        await conn.commit()

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        conn = await self.connect()
        async with conn.execute(sql, tuple(params)) as cursor:
            return list(await cursor.fetchall())

    async def upsert(self, table: str, row: Dict[str, Any], key: str) -> None:
        """Insert *row*, or overwrite every other column when *key* already exists."""
        columns = list(row)
        updates = ", ".join(f"{col} = excluded.{col}" for col in columns if col != key)
        conflict = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({key}) {conflict}"
        )

        conn = await self.connect()
        await conn.execute(sql, tuple(row[col] for col in columns))
        await conn.commit()
