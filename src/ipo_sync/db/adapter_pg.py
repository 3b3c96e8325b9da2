# src/ipo_sync/db/adapter_pg.py
from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional, Sequence

import asyncpg

from ..core.errors import PersistenceError
from ..core.models import IPO_COLUMNS, FieldChange, IpoRecord
from .sql import MISSING_DETAILS_SQL, SELECT_IPOS_SQL, build_update_sql

LOGGER = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS ipos (
    id BIGINT PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    details_ipo_id TEXT,
    url_rewrite TEXT,
    status TEXT,
    subscription TEXT,
    gmp TEXT,
    price_band TEXT,
    offer_start_date DATE,
    offer_end_date DATE,
    allotment_date DATE,
    listing_date DATE,
    image_url TEXT
);
CREATE TABLE IF NOT EXISTS details_ipo (
    details_ipo_id TEXT PRIMARY KEY,
    ipo_name TEXT,
    url_rewrite TEXT
);
"""


class PgTransaction:
    """One pooled connection holding an open transaction."""

    def __init__(self, pool: asyncpg.pool.Pool, conn, tx) -> None:
        self._pool = pool
        self.conn = conn
        self._tx = tx

    async def commit(self) -> None:
        await self._tx.commit()

    async def rollback(self) -> None:
        await self._tx.rollback()

    async def close(self) -> None:
        if self.conn is not None:
            await self._pool.release(self.conn)
            self.conn = None


class PgAdapter:
    def __init__(self, database_url: Optional[str] = None, min_size: int = 1, max_size: int = 5):
        self.database_url = database_url or DATABASE_URL
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.pool.Pool] = None

    def _require_pool(self) -> asyncpg.pool.Pool:
        if not self._pool:
            raise PersistenceError("PgAdapter not initialized")
        return self._pool

    async def init(self) -> None:
        if not self.database_url:
            raise PersistenceError("DATABASE_URL not set")
        self._pool = await asyncpg.create_pool(
            self.database_url, min_size=self.min_size, max_size=self.max_size)
        # ensure tables exist
        async with self._pool.acquire() as conn:
            await conn.execute(CREATE_TABLES_SQL)

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def ping(self) -> bool:
        async with self._require_pool().acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def load_all_ipos(self) -> List[IpoRecord]:
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(SELECT_IPOS_SQL)
        return [IpoRecord(**dict(row)) for row in rows]

    async def list_ipos(self, categories: Optional[Iterable[str]] = None) -> List[IpoRecord]:
        categories = list(categories or [])
        sql = SELECT_IPOS_SQL
        args: list = []
        if categories:
            sql += " WHERE category = ANY($1::text[])"
            args.append(categories)
        sql += " ORDER BY id DESC"
        async with self._require_pool().acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [IpoRecord(**dict(row)) for row in rows]

    async def get_details(self, details_ipo_id: str) -> Optional[dict]:
        async with self._require_pool().acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM details_ipo WHERE details_ipo_id = $1", details_ipo_id)
        return dict(row) if row else None

    async def begin(self) -> PgTransaction:
        pool = self._require_pool()
        conn = await pool.acquire()
        try:
            tx = conn.transaction()
            await tx.start()
        except Exception:
            await pool.release(conn)
            raise
        return PgTransaction(pool, conn, tx)

    async def insert_ipo(self, tx: PgTransaction, record: IpoRecord) -> None:
        placeholders = ", ".join(f"${i + 1}" for i in range(len(IPO_COLUMNS)))
        await tx.conn.execute(
            f"INSERT INTO ipos ({', '.join(IPO_COLUMNS)}) VALUES ({placeholders})",
            *(getattr(record, column) for column in IPO_COLUMNS),
        )

    async def update_ipo(self, tx: PgTransaction, ipo_id: int, changes: Sequence[FieldChange]) -> None:
        if not changes:
            return
        await tx.conn.execute(
            build_update_sql(changes), ipo_id, *(c.new_value for c in changes))

    async def backfill_details(self) -> int:
        """Create a details_ipo row for every cross-referenced IPO that lacks one."""
        inserted = 0
        async with self._require_pool().acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(MISSING_DETAILS_SQL)
                for row in rows:
                    status = await conn.execute(
                        """
                        INSERT INTO details_ipo (ipo_name, details_ipo_id, url_rewrite)
                        VALUES ($1, $2, $3)
                        ON CONFLICT (details_ipo_id) DO NOTHING
                        """,
                        row["ipo_name"], row["details_ipo_id"], row["url_rewrite"],
                    )
                    if status.endswith(" 1"):
                        inserted += 1
                        LOGGER.info("Inserted details for IPO: %s", row["ipo_name"])
        return inserted
