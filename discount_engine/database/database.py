# discount_engine/database/database.py
import asyncpg
import logging
from pathlib import Path
from typing import List, Optional, Set
from ..config import Config

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# several bot processes may start at once; only one of them migrates
MIGRATION_LOCK_ID = 7241

def migration_files(directory: Path = MIGRATIONS_DIR) -> List[Path]:
    """``NNN_name.sql`` files in apply order"""
    return sorted(directory.glob("*.sql"), key=lambda p: p.name)

class Database:
    """asyncpg pool plus the discount schema"""

    def __init__(self, dsn: Optional[str] = None, migrations_dir: Path = MIGRATIONS_DIR):
        self.dsn = dsn or Config.DATABASE_URL
        self.migrations_dir = migrations_dir
        self.pool: Optional[asyncpg.Pool] = None
        self.logger = logging.getLogger(__name__)

    async def connect(self):
        """Open the pool and bring the schema up to date"""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=Config.DB_POOL_MIN_SIZE,
                max_size=Config.DB_POOL_MAX_SIZE
            )
            await self.migrate()
            self.logger.info("Database connection established")
        except Exception as e:
            self.logger.error(f"Database connection failed: {e}")
            raise

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Database connection closed")

    async def migrate(self) -> List[str]:
        """Apply every migration file not yet recorded; returns the names applied"""
        applied_now = []
        async with self.pool.acquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", MIGRATION_LOCK_ID)
            try:
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS schema_migrations (
                        name VARCHAR(255) PRIMARY KEY,
                        applied_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                done = await self._applied(conn)

                for path in migration_files(self.migrations_dir):
                    if path.name in done:
                        continue
                    await self._apply(conn, path)
                    applied_now.append(path.name)
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", MIGRATION_LOCK_ID)

        if applied_now:
            self.logger.info(f"Schema migrated: {', '.join(applied_now)}")
        return applied_now

    @staticmethod
    async def _applied(conn) -> Set[str]:
        rows = await conn.fetch("SELECT name FROM schema_migrations")
        return {r['name'] for r in rows}

    async def _apply(self, conn, path: Path):
        try:
            async with conn.transaction():
                await conn.execute(path.read_text())
                await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", path.name)
        except asyncpg.PostgresError as e:
            self.logger.error(f"Migration {path.name} failed: {e}")
            raise
