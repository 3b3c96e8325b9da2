import asyncio
import logging
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence

import aiosqlite

from ..core.errors import PersistenceError
from ..core.models import IPO_COLUMNS, FieldChange, IpoRecord
from .sql import MISSING_DETAILS_SQL, SELECT_IPOS_SQL, build_update_sql

LOGGER = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS ipos (
id INTEGER PRIMARY KEY,
name TEXT NOT NULL,
category TEXT NOT NULL,
details_ipo_id TEXT,
url_rewrite TEXT,
status TEXT,
subscription TEXT,
gmp TEXT,
price_band TEXT,
offer_start_date TEXT,
offer_end_date TEXT,
allotment_date TEXT,
listing_date TEXT,
image_url TEXT
);
CREATE TABLE IF NOT EXISTS details_ipo (
details_ipo_id TEXT PRIMARY KEY,
ipo_name TEXT,
url_rewrite TEXT
);
"""


def _bind(value: Any) -> Any:
    # dates are stored as ISO text
    if isinstance(value, date):
        return value.isoformat()
    return value


class SqliteTransaction:
    """Explicit BEGIN on the adapter's single connection.

    The adapter lock is held until close(), so batches on one SQLite file run
    one after another.
    """

    def __init__(self, conn: aiosqlite.Connection, lock: asyncio.Lock) -> None:
        self.conn = conn
        self._lock = lock
        self._open = True

    async def commit(self) -> None:
        await self.conn.execute("COMMIT")

    async def rollback(self) -> None:
        await self.conn.execute("ROLLBACK")

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        try:
            if self.conn.in_transaction:
                await self.conn.execute("ROLLBACK")
        finally:
            self._lock.release()


class SqliteAdapter:

    def __init__(self, db_path: str = "ipos.db") -> None:
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._conn_lock = asyncio.Lock()
        self._tx_lock = asyncio.Lock()

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise PersistenceError("SqliteAdapter not initialized. Call .init() before use.")
        return self._conn

    async def init(self) -> None:
        """Open the connection in autocommit mode and ensure the schema exists."""
        async with self._conn_lock:
            if self._conn:
                return
            self._conn = await aiosqlite.connect(self.db_path, isolation_level=None)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.executescript(CREATE_TABLES_SQL)

    async def close(self) -> None:
        """Close the DB connection."""
        async with self._conn_lock:
            if self._conn:
                await self._conn.close()
                self._conn = None

    async def ping(self) -> bool:
        async with self._require_conn().execute("SELECT 1") as cur:
            row = await cur.fetchone()
        return bool(row) and row[0] == 1

    async def _fetch_ipos(self, sql: str, params: Sequence[Any] = ()) -> List[IpoRecord]:
        records: List[IpoRecord] = []
        async with self._require_conn().execute(sql, tuple(params)) as cur:
            async for row in cur:
                records.append(IpoRecord(**dict(row)))
        return records

    async def load_all_ipos(self) -> List[IpoRecord]:
        return await self._fetch_ipos(SELECT_IPOS_SQL)

    async def list_ipos(self, categories: Optional[Iterable[str]] = None) -> List[IpoRecord]:
        categories = list(categories or [])
        sql = SELECT_IPOS_SQL
        if categories:
            sql += f" WHERE category IN ({', '.join('?' for _ in categories)})"
        sql += " ORDER BY id DESC"
        return await self._fetch_ipos(sql, categories)

    async def get_details(self, details_ipo_id: str) -> Optional[dict]:
        sql = "SELECT * FROM details_ipo WHERE details_ipo_id = ?"
        async with self._require_conn().execute(sql, (details_ipo_id,)) as cur:
            row = await cur.fetchone()
        return dict(row) if row else None

    async def begin(self) -> SqliteTransaction:
        conn = self._require_conn()
        await self._tx_lock.acquire()
        try:
            await conn.execute("BEGIN")
        except Exception:
            self._tx_lock.release()
            raise
        return SqliteTransaction(conn, self._tx_lock)

    async def insert_ipo(self, tx: SqliteTransaction, record: IpoRecord) -> None:
        sql = f"INSERT INTO ipos ({', '.join(IPO_COLUMNS)}) VALUES ({', '.join('?' for _ in IPO_COLUMNS)})"
        await tx.conn.execute(sql, tuple(_bind(getattr(record, column)) for column in IPO_COLUMNS))

    async def update_ipo(self, tx: SqliteTransaction, ipo_id: int, changes: Sequence[FieldChange]) -> None:
        if not changes:
            return
        params = tuple(_bind(c.new_value) for c in changes) + (ipo_id,)
        await tx.conn.execute(build_update_sql(changes, paramstyle="qmark"), params)

    async def backfill_details(self) -> int:
        """Create a details_ipo row for every cross-referenced IPO that lacks one."""
        tx = await self.begin()
        inserted = 0
        try:
            async with tx.conn.execute(MISSING_DETAILS_SQL) as cur:
                rows = await cur.fetchall()
            for row in rows:
                cur = await tx.conn.execute(
                    """
                    INSERT INTO details_ipo (ipo_name, details_ipo_id, url_rewrite)
                    VALUES (?, ?, ?)
                    ON CONFLICT (details_ipo_id) DO NOTHING
                    """,
                    (row["ipo_name"], row["details_ipo_id"], row["url_rewrite"]),
                )
                if cur.rowcount == 1:
                    inserted += 1
                    LOGGER.info("Inserted details for IPO: %s", row["ipo_name"])
                await cur.close()
            await tx.commit()
        except Exception:
            await tx.rollback()
            raise
        finally:
            await tx.close()
        return inserted
