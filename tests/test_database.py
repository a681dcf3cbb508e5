from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from discount_engine.database.database import MIGRATIONS_DIR, Database, migration_files


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])

    @asynccontextmanager
    async def transaction():
        yield

    conn.transaction = transaction
    return conn


@pytest.fixture
def database(conn, tmp_path):
    (tmp_path / "002_second.sql").write_text("CREATE TABLE second (id INT);")
    (tmp_path / "001_first.sql").write_text("CREATE TABLE first (id INT);")
    (tmp_path / "notes.txt").write_text("not a migration")

    db = Database(dsn="postgresql://test", migrations_dir=tmp_path)

    @asynccontextmanager
    async def acquire():
        yield conn

    db.pool = MagicMock()
    db.pool.acquire = acquire
    return db


def executed(conn):
    return [c.args[0] for c in conn.execute.await_args_list]


def test_shipped_migrations_are_ordered():
    names = [p.name for p in migration_files(MIGRATIONS_DIR)]
    assert names == ["001_discount_codes.sql", "002_discount_reservations.sql"]


async def test_migrate_applies_files_in_order(database, conn):
    assert await database.migrate() == ["001_first.sql", "002_second.sql"]

    sql = executed(conn)
    assert sql.index("CREATE TABLE first (id INT);") < sql.index("CREATE TABLE second (id INT);")
    assert "pg_advisory_unlock" in sql[-1]


async def test_migrate_skips_recorded_files(database, conn):
    conn.fetch.return_value = [{'name': "001_first.sql"}]

    assert await database.migrate() == ["002_second.sql"]
    assert "CREATE TABLE first (id INT);" not in executed(conn)


async def test_failed_migration_releases_lock(database, conn):
    async def execute(sql, *args):
        if sql.startswith("CREATE TABLE first"):
            raise asyncpg.SyntaxOrAccessError("bad sql")

    conn.execute.side_effect = execute

    with pytest.raises(asyncpg.SyntaxOrAccessError):
        await database.migrate()
    assert "pg_advisory_unlock" in executed(conn)[-1]
