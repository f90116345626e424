"""Database connection pool management for PostgreSQL."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import asyncpg
from asyncpg.pool import Pool

from vitals_monitor.settings import Settings, load_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


class DatabasePool:
    """Manages PostgreSQL connection pool."""

    def __init__(self, database_url: Optional[str] = None, settings: Optional[Settings] = None):
        """
        Initialize database pool.

        Args:
            database_url: PostgreSQL connection URL (optional, loads from settings if not provided)
            settings: Settings to read URL, pool sizes and timeout from
        """
        if database_url is None:
            settings = settings or load_settings()
            database_url = settings.database_url

        self.database_url = database_url
        self.min_size = settings.db_pool_min_size if settings else 2
        self.max_size = settings.db_pool_max_size if settings else 10
        self.command_timeout = settings.db_command_timeout if settings else 10.0

        self.pool: Optional[Pool] = None

    async def initialize(self):
        """Create connection pool."""
        if not self.pool:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.min_size,
                max_size=self.max_size,
                max_inactive_connection_lifetime=300,
                command_timeout=self.command_timeout
            )
            logger.info("Database connection pool initialized")

    async def close(self):
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """Acquire a connection from the pool."""
        if not self.pool:
            await self.initialize()

        async with self.pool.acquire() as connection:
            yield connection


async def apply_schema(db_pool: DatabasePool) -> None:
    """Run every migration script in order. Scripts are idempotent."""
    async with db_pool.acquire() as conn:
        for script in sorted(MIGRATIONS_DIR.glob("*.sql")):
            await conn.execute(script.read_text())
            logger.info(f"Applied schema {script.name}")

