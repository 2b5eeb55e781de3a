# app/db/helpers.py
"""
Query helpers used by the record gateway.

Each helper runs on a caller-supplied connection when one is given (inside
a write transaction) and otherwise borrows one from the pool. psycopg
errors surface as `DatabaseError`; `with_db_retry` retries the transient
ones with exponential backoff.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _cursor(
    operation: str, query: str, connection: psycopg.AsyncConnection | None
) -> AsyncGenerator[psycopg.AsyncCursor, None]:
    try:
        if connection is not None:
            async with connection.cursor() as cur:
                yield cur
            return
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                yield cur
    except psycopg.Error as e:
        logger.error("Record store query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation=operation) from e


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """Run `query` and return the first row, or None."""
    async with _cursor("fetch_one", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchone()


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    async with _cursor("fetch_all", query, connection) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    async with _cursor("execute", query, connection) as cur:
        await cur.execute(query, params)
        return cur.rowcount


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, psycopg.OperationalError):
        return True
    return isinstance(exc, DatabaseError) and isinstance(exc.__cause__, psycopg.OperationalError)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a gateway coroutine on transient database failures.

    Connection-level errors are retried up to `max_retries` times with
    delays of base_delay * 2**attempt. Anything else is re-raised as a
    non-recoverable `DatabaseError` on the first failure. Writes that
    insert rows pass max_retries=0 and only get the error normalization.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not _is_transient(e):
                        if isinstance(e, DatabaseError):
                            raise
                        logger.error("Record store operation failed", operation=func.__name__, error=str(e))
                        raise DatabaseError(
                            f"Database error in {func.__name__}: {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    if attempt >= max_retries:
                        logger.error(
                            "Record store operation failed after retries",
                            operation=func.__name__,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                        raise DatabaseError(
                            f"Operation failed after {attempt + 1} attempt(s): {e}",
                            operation=func.__name__,
                            recoverable=False,
                        ) from e

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Record store operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
