"""Shared asyncpg pool for the webhook server and the migration CLI."""

import asyncio
import logging
from typing import Optional

import asyncpg

from lumera.config import AppConfig, get_config

logger = logging.getLogger(__name__)

# Errors meaning the database is unreachable, not that the query was wrong
UNAVAILABLE_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.TooManyConnectionsError,
    OSError,
    asyncio.TimeoutError,
)

_pool: Optional[asyncpg.Pool] = None


async def open_pool(config: AppConfig) -> asyncpg.Pool:
    """Open a pool sized from config and check it can serve a query.

    Raises:
        asyncio.TimeoutError: If the database does not answer within
            ``db_connect_timeout``
        RuntimeError: If the health check fails
    """
    timeout = config.db_connect_timeout
    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(
                str(config.db_dsn),
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(f"Database did not answer within {timeout:g}s")

    try:
        async with pool.acquire() as conn:
            await asyncio.wait_for(conn.fetchval("SELECT 1"), timeout=timeout)
    except Exception as e:
        await pool.close()
        raise RuntimeError(f"Database health check failed: {e}") from e

    logger.info(
        f"Database pool ready: min={config.db_pool_min}, max={config.db_pool_max}"
    )
    return pool


async def get_pool() -> asyncpg.Pool:
    """Process-wide pool, opened on first use."""
    global _pool
    if _pool is None:
        _pool = await open_pool(get_config())
    return _pool


async def close_pool() -> None:
    global _pool
    pool, _pool = _pool, None
    if pool is None:
        return

    timeout = get_config().db_close_timeout
    try:
        await asyncio.wait_for(pool.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Pool still busy after {timeout:g}s, terminating connections")
        pool.terminate()
