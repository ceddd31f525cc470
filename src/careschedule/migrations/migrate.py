"""
Database Migration Runner

Applies the SQL migrations of the scheduling schema in file-name order.
Run with: python -m src.careschedule.migrations.migrate
"""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import asyncpg

from ..config import Config

logger = logging.getLogger("careschedule.migrations")


async def run_migrations(dsn: Optional[str] = None, migrations_dir: Optional[Path] = None) -> int:
    """Run all SQL migrations in order; returns the number that failed"""
    migrations_dir = Path(migrations_dir or Config.MIGRATIONS_DIR)
    dsn = dsn or Config.get_postgres_dsn()

    logger.info(f"Connecting to database {Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}...")
    conn = await asyncpg.connect(dsn)
    failed = 0

    try:
        # Get all SQL files sorted by name
        sql_files = sorted(migrations_dir.glob("*.sql"))

        for sql_file in sql_files:
            logger.info(f"Running migration: {sql_file.name}")
            sql = sql_file.read_text()

            try:
                await conn.execute(sql)
                logger.info(f"  {sql_file.name} completed")
            except asyncpg.PostgresError as e:
                logger.error(f"  Error in {sql_file.name}: {e}")
                failed += 1
    finally:
        await conn.close()

    logger.info(f"Migrations complete ({len(sql_files)} files, {failed} failed)")
    return failed


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    try:
        failed = asyncio.run(run_migrations())
    except (OSError, asyncpg.PostgresError) as e:
        logger.error(f"Connection failed: {e}")
        sys.exit(1)
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
