"""Forward-only migration runner and schema version helper."""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

import asyncpg

from lumera.db.models import Table
from lumera.db.pool import close_pool, get_pool

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# Advisory lock key shared by every process that runs migrations.
_MIGRATION_LOCK_ID = 720_451


async def _ensure_migrations_table(conn: asyncpg.Connection) -> None:
    await conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {Table.SCHEMA_MIGRATIONS} (
            version INTEGER PRIMARY KEY,
            filename TEXT NOT NULL DEFAULT '',
            applied_at TIMESTAMPTZ DEFAULT now()
        )
    """)


def pending_migrations(migrations_dir: Path, applied: set[int]) -> list[tuple[int, Path]]:
    """
    List migration files not yet applied, ordered by version.

    Files are named ``NNN_description.sql``; files without a numeric
    prefix are ignored.
    """
    pending = []
    for sql_file in migrations_dir.glob("*.sql"):
        prefix = sql_file.stem.split("_", 1)[0]
        if not prefix.isdigit():
            continue
        version = int(prefix)
        if version not in applied:
            pending.append((version, sql_file))
    return sorted(pending)


def split_sql_statements(sql: str) -> list[str]:
    """
    Split a SQL script on top-level semicolons.

    Semicolons inside single-quoted literals or ``$$`` bodies do not end a
    statement. Comments are stripped first.
    """
    sql = re.sub(r"--.*$", "", sql, flags=re.MULTILINE)
    sql = re.sub(r"/\*.*?\*/", "", sql, flags=re.DOTALL)

    statements = []
    buf = []
    in_quote = False
    in_dollar = False
    i = 0
    while i < len(sql):
        if not in_quote and sql.startswith("$$", i):
            in_dollar = not in_dollar
            buf.append("$$")
            i += 2
            continue
        char = sql[i]
        if char == "'" and not in_dollar:
            in_quote = not in_quote
        if char == ";" and not (in_quote or in_dollar):
            statements.append("".join(buf).strip())
            buf = []
        else:
            buf.append(char)
        i += 1

    statements.append("".join(buf).strip())
    return [stmt for stmt in statements if stmt]


async def _apply_migration(conn: asyncpg.Connection, version: int, sql_path: Path) -> None:
    for statement in split_sql_statements(sql_path.read_text(encoding="utf-8")):
        await conn.execute(statement)

    await conn.execute(
        f"INSERT INTO {Table.SCHEMA_MIGRATIONS} (version, filename) VALUES ($1, $2)",
        version,
        sql_path.name,
    )


async def migrate() -> int:
    """
    Apply all pending migrations in order.

    Holds a PostgreSQL advisory lock for the duration so two service
    instances starting together cannot apply the same file twice.

    Returns:
        int: Number of migrations applied in this run

    Raises:
        FileNotFoundError: If migrations directory not found
        RuntimeError: If another process holds the migration lock
        asyncpg.PostgresError: On database errors
    """
    if not MIGRATIONS_DIR.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {MIGRATIONS_DIR}")

    pool = await get_pool()
    applied_count = 0

    async with pool.acquire() as conn:
        locked = await conn.fetchval("SELECT pg_try_advisory_lock($1)", _MIGRATION_LOCK_ID)
        if not locked:
            raise RuntimeError(
                "Another migration is currently running. "
                "Wait for it to complete and try again."
            )

        try:
            await _ensure_migrations_table(conn)
            rows = await conn.fetch(f"SELECT version FROM {Table.SCHEMA_MIGRATIONS}")
            applied = {row["version"] for row in rows}

            for version, sql_path in pending_migrations(MIGRATIONS_DIR, applied):
                async with conn.transaction():
                    await _apply_migration(conn, version, sql_path)
                applied_count += 1
                logger.info(f"Applied migration {version:03d}: {sql_path.name}")
        finally:
            await conn.execute("SELECT pg_advisory_unlock($1)", _MIGRATION_LOCK_ID)

    return applied_count


async def schema_version() -> Optional[int]:
    """Highest applied migration version, or None before the first run."""
    pool = await get_pool()

    async with pool.acquire() as conn:
        await _ensure_migrations_table(conn)
        return await conn.fetchval(f"SELECT MAX(version) FROM {Table.SCHEMA_MIGRATIONS}")


def main() -> None:
    """CLI entry point for running migrations."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    async def _run():
        try:
            applied = await migrate()
            version = await schema_version()
        finally:
            await close_pool()
        if applied == 0:
            print(f"No pending migrations. Current schema version: {version}")
        else:
            print(f"Applied {applied} migration(s). Current schema version: {version}")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
