# app/db/pool.py
"""
Async Postgres pool for the record store.

The record gateway reads every business domain through this pool and the
coach's write tools run inside `get_db_transaction()`. Sessions are
autocommit so the concurrent snapshot reads never hold a transaction open.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0


class RecordStorePool:
    """Owns the psycopg pool for the lifetime of the process."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._state = "new"  # new -> open -> closed

    @property
    def initialized(self) -> bool:
        return self._state == "open"

    async def initialize(self) -> None:
        if self._state == "open":
            logger.warning("Record store pool already open")
            return
        if self._state == "closed":
            raise RuntimeError("Record store pool was closed and cannot reopen")

        options = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.SUPABASE_DB_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._prepare_session,
            **options,
        )
        try:
            await pool.open()
            await pool.wait()
            async with pool.connection() as conn:
                await self._check_connection(conn)
        except Exception as e:
            logger.error("Record store pool failed to open", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        self._state = "open"
        logger.info(
            "Record store pool open",
            min_size=options["min_size"],
            max_size=options["max_size"],
            statement_timeout_ms=settings.DB_STATEMENT_TIMEOUT_MS,
        )

    async def _prepare_session(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"business-coach-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(settings.DB_STATEMENT_TIMEOUT_MS)
            )
        )

    @staticmethod
    async def _check_connection(conn: psycopg.AsyncConnection) -> None:
        cur = await conn.execute("SELECT 1 AS ok")
        row = await cur.fetchone()
        if not row or row["ok"] != 1:
            raise RuntimeError("Record store health query returned an unexpected row")

    async def close(self) -> None:
        if self._state != "open":
            return
        self._state = "closed"
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Record store pool closed")
        except TimeoutError:
            logger.warning("Record store pool close timed out")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self._state != "open":
            raise RuntimeError(f"Record store pool is {self._state}, not open")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction: commit on exit, rollback on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if self._state != "open":
            return {"healthy": False, "service": "database_pool", "error": f"Pool {self._state}"}

        started = time.perf_counter()
        try:
            async with self.connection() as conn:
                await self._check_connection(conn)
        except Exception as e:
            logger.error("Record store health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = RecordStorePool()


async def get_db_connection():
    return db_pool.connection()


async def get_db_transaction():
    return db_pool.transaction()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
