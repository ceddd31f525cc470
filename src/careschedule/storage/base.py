"""
Base Storage

Base class for PostgreSQL storage with connection pooling.
"""
import asyncpg
import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional, Any

from ..config import Config

logger = logging.getLogger("careschedule.storage")


class BaseStorage:
    """Base storage class with PostgreSQL connection pool"""

    def __init__(self, postgres_dsn: str = "postgresql://postgres@localhost/careschedule"):
        """
        Initialize base storage.

        Args:
            postgres_dsn: PostgreSQL connection DSN
        """
        self.pg_pool: Optional[asyncpg.Pool] = None
        self.pg_dsn = postgres_dsn
        self.process_id = os.getpid()
        self._initialized = False

    async def init(self):
        """Initialize storage - connect to PostgreSQL"""
        if self._initialized:
            return

        start_time = time.time()
        logger.info(f"Initializing {type(self).__name__}...")

        try:
            await self._init_postgres()
            self._initialized = True

            duration_ms = round((time.time() - start_time) * 1000, 2)
            logger.info(f"{type(self).__name__} initialized in {duration_ms}ms")
        except Exception as e:
            logger.error(f"Failed to initialize {type(self).__name__}: {e}")
            raise

    async def _init_postgres(self):
        """Initialize PostgreSQL connection pool with retries"""
        max_retries = 3
        retry_delay = 1

        current_pid = os.getpid()

        # Handle process fork - need new pool
        if self.pg_pool is not None and self.process_id != current_pid:
            logger.info(f"New process detected (old: {self.process_id}, new: {current_pid}), creating new pool")
            self.pg_pool = None

        self.process_id = current_pid

        for attempt in range(1, max_retries + 1):
            try:
                self.pg_pool = await asyncpg.create_pool(
                    self.pg_dsn,
                    min_size=Config.DB_POOL_MIN_SIZE,
                    max_size=Config.DB_POOL_MAX_SIZE,
                    command_timeout=60
                )

                # Test connection
                async with self.pg_pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(f"PostgreSQL connected (attempt {attempt}/{max_retries})")
                return

            except (OSError, asyncpg.PostgresError) as e:
                logger.error(f"PostgreSQL connection failed (attempt {attempt}/{max_retries}): {e}")
                if attempt < max_retries:
                    logger.info(f"Retrying in {retry_delay}s...")
                    await asyncio.sleep(retry_delay)

        raise ConnectionError("Failed to connect to PostgreSQL after all retries")

    async def close(self):
        """Close database connections"""
        if self.pg_pool:
            await self.pg_pool.close()
            self.pg_pool = None
            self._initialized = False
            logger.info(f"{type(self).__name__} closed")

    @asynccontextmanager
    async def _connection(self, conn: Optional[asyncpg.Connection] = None) -> AsyncIterator[asyncpg.Connection]:
        """Reuse the caller's connection or borrow one from the pool"""
        if conn is not None:
            yield conn
            return
        async with self.pg_pool.acquire() as pooled:
            yield pooled

    @asynccontextmanager
    async def transaction(self, lock_keys: Iterable[str] = ()) -> AsyncIterator[asyncpg.Connection]:
        """
        Open a transaction and take transaction-scoped advisory locks.

        Locks are taken in sorted order so two units of work touching the
        same keys cannot deadlock. They are released on commit or rollback.
        """
        async with self.pg_pool.acquire() as conn:
            async with conn.transaction():
                for key in sorted(set(lock_keys)):
                    await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", key)
                yield conn

    async def execute(self, query: str, *args, conn: Optional[asyncpg.Connection] = None) -> str:
        """Execute a query and return status"""
        async with self._connection(conn) as c:
            return await c.execute(query, *args)

    async def fetch(self, query: str, *args, conn: Optional[asyncpg.Connection] = None) -> list:
        """Fetch multiple rows"""
        async with self._connection(conn) as c:
            return await c.fetch(query, *args)

    async def fetchrow(self, query: str, *args, conn: Optional[asyncpg.Connection] = None) -> Optional[asyncpg.Record]:
        """Fetch single row"""
        async with self._connection(conn) as c:
            return await c.fetchrow(query, *args)

    async def fetchval(self, query: str, *args, conn: Optional[asyncpg.Connection] = None) -> Any:
        """Fetch single value"""
        async with self._connection(conn) as c:
            return await c.fetchval(query, *args)

    async def ping(self) -> bool:
        """Check database connectivity"""
        if not self.pg_pool:
            return False
        try:
            return await self.fetchval("SELECT 1") == 1
        except (OSError, asyncpg.PostgresError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False
