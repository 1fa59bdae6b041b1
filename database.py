"""
Database connection management and utilities
Async PostgreSQL operations using asyncpg
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from config import DatabaseConfig
from errors import StoreError

logger = logging.getLogger(__name__)

# Rows fetched per round trip when streaming through a cursor
DEFAULT_PREFETCH = 100

# Driver failures that become StoreError for callers
STORE_EXCEPTIONS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class DatabaseConnection:
    """
    Manages PostgreSQL connection pool and provides database operations
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialize connection pool"""
        if self.pool is not None:
            logger.warning("Connection pool already initialized")
            return

        # asyncpg expects: True (require SSL), False (disable SSL), or 'prefer' (try SSL, fallback to non-SSL)
        if self.config.ssl_mode == 'require':
            ssl_setting = True
        elif self.config.ssl_mode == 'disable':
            ssl_setting = False
        else:
            ssl_setting = 'prefer'

        try:
            self.pool = await asyncpg.create_pool(
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password,
                min_size=self.config.min_pool_size,
                max_size=self.config.max_pool_size,
                command_timeout=self.config.command_timeout,
                ssl=ssl_setting,
                server_settings={'timezone': 'UTC'},
            )
        except STORE_EXCEPTIONS as e:
            logger.error(f"❌ Failed to connect to database: {e}")
            raise StoreError(f"Failed to connect to database: {e}") from e

        logger.info(f"✅ Connected to PostgreSQL at {self.config.host}:{self.config.port}")

    async def disconnect(self):
        """Close connection pool"""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                result = await conn.fetch("SELECT * FROM iris")

        Driver and network failures raised while the connection is held are
        re-raised as StoreError. The connection always goes back to the pool.
        """
        if self.pool is None:
            raise StoreError("Database not connected. Call connect() first.")

        try:
            async with self.pool.acquire() as connection:
                yield connection
        except STORE_EXCEPTIONS as e:
            logger.error(f"Error during database operation: {e}")
            raise StoreError(str(e)) from e

    @asynccontextmanager
    async def transaction(self):
        """
        Run statements on one connection inside a transaction

        Usage:
            async with db.transaction() as conn:
                await conn.execute("INSERT INTO ...")
                await conn.execute("INSERT INTO ...")
        """
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def fetch(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None
    ) -> List[asyncpg.Record]:
        """Fetch multiple rows"""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def fetchval(
        self,
        query: str,
        *args,
        column: int = 0,
        timeout: Optional[float] = None
    ) -> Any:
        """Fetch a single value"""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column, timeout=timeout)

    async def iterate(
        self,
        query: str,
        *args,
        prefetch: int = DEFAULT_PREFETCH
    ) -> AsyncIterator[asyncpg.Record]:
        """
        Stream rows through a server-side cursor.

        Rows are fetched in batches of `prefetch`, so memory stays bounded no
        matter how large the result set is. The connection is held until the
        iterator is exhausted or closed.
        """
        async with self.acquire() as conn:
            async with conn.transaction(readonly=True):
                async for record in conn.cursor(query, *args, prefetch=prefetch):
                    yield record

    async def check_connection(self) -> bool:
        """
        Check if database connection is healthy

        Returns:
            True if connection is healthy
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except StoreError as e:
            logger.error(f"Connection check failed: {e}")
            return False

    def get_pool_stats(self) -> Dict[str, Any]:
        """Connection pool statistics for monitoring."""
        if self.pool is None:
            return {'status': 'disconnected', 'size': 0, 'freesize': 0}

        return {
            'status': 'connected',
            'size': self.pool.get_size(),
            'freesize': self.pool.get_idle_size(),
            'min_size': self.config.min_pool_size,
            'max_size': self.config.max_pool_size,
        }
