"""Async engine, session factory and startup schema upgrades."""

import os
import logging
from sqlmodel import SQLModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

DATABASE_URL = os.getenv(
    "DATABASE_URL", "sqlite+aiosqlite:///./learning_platform.db"
)

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
if SQL_ECHO:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

logger = logging.getLogger(__name__)

engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO)

async_session = async_sessionmaker(engine, expire_on_commit=False)

# Columns added after the first release.  create_all never alters an
# existing table, so older SQLite files get them patched in on startup.
LATE_COLUMNS = [
    ("user", "refresh_token_hash", "VARCHAR"),
    ("user", "certificate_display_name", "VARCHAR"),
    ("settings", "certificate_code_prefix", "VARCHAR DEFAULT '4H'"),
    ("settings", "default_passing_score", "INTEGER DEFAULT 70"),
    ("certificate", "template_id", "INTEGER"),
]


async def _add_missing_columns(conn: AsyncConnection) -> None:
    for table, column, ddl in LATE_COLUMNS:
        result = await conn.execute(text(f"PRAGMA table_info('{table}')"))
        existing = {row[1] for row in result.fetchall()}
        if not existing or column in existing:
            continue
        await conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN {column} {ddl}'))
        logger.info("Added column %s.%s", table, column)


async def create_db_and_tables() -> None:
    from . import models  # noqa: F401  register tables on the metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        if conn.dialect.name == "sqlite":
            await _add_missing_columns(conn)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session
