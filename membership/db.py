"""
Database connection pool and transaction-scoped connection manager.

All database access goes through system_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

import asyncpg

from membership.config import settings

T = TypeVar("T")

pool: asyncpg.Pool | None = None


async def init_pool(dsn: str | None = None) -> None:
    """
    Initialize the connection pool.
    Called once at application startup when STORE_BACKEND is postgres.

    Args:
        dsn: Connection string, defaults to DATABASE_URL
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


@asynccontextmanager
async def system_conn():
    """
    Acquire a database connection inside a transaction.

    Every statement issued through the yielded connection commits together
    when the block exits, or rolls back together if it raises.

    Usage:
        async with system_conn() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE phone = $1", phone)

    Yields:
        asyncpg.Connection with an open transaction
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire(timeout=settings.STORAGE_TIMEOUT_SECONDS) as conn:
        async with conn.transaction():
            yield conn


async def bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """
    Await a storage call with an upper time bound.

    Raises:
        TimeoutError: If the call does not finish in time
    """
    return await asyncio.wait_for(awaitable, timeout or settings.STORAGE_TIMEOUT_SECONDS)
