from collections.abc import AsyncIterator

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from vendorflow.core.config import get_settings

settings = get_settings()

engine = create_async_engine(settings.database_url, echo=False, future=True)
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Columns added after the first release: (table, column, postgres DDL, sqlite DDL).
LATE_COLUMNS: tuple[tuple[str, str, str, str], ...] = (
    ("weddings", "wedding_date", "DATE", "DATE"),
    ("vendors", "skip_completion_prompt", "BOOLEAN NOT NULL DEFAULT FALSE", "BOOLEAN NOT NULL DEFAULT 0"),
    ("vendors", "contract_required", "BOOLEAN NOT NULL DEFAULT FALSE", "BOOLEAN NOT NULL DEFAULT 0"),
    ("users", "last_login_at", "TIMESTAMP", "DATETIME"),
)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
        await conn.run_sync(_add_late_columns)


def _add_late_columns(sync_conn) -> None:
    inspector = inspect(sync_conn)
    table_names = set(inspector.get_table_names())
    is_postgres = sync_conn.dialect.name == "postgresql"
    for table, column, postgres_ddl, sqlite_ddl in LATE_COLUMNS:
        if table not in table_names:
            continue
        column_names = {item["name"] for item in inspector.get_columns(table)}
        if column in column_names:
            continue
        ddl = postgres_ddl if is_postgres else sqlite_ddl
        sync_conn.exec_driver_sql(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")
