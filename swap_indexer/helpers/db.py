"""Database connection helpers."""

import os

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, Integer, Table, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from dotenv import load_dotenv

from swap_indexer.helpers.exceptions import SchemaVersionError


# Load environment variables from .env file
load_dotenv()

Base = declarative_base()

SCHEMA_VERSION = 1
"""Version of the table layout; changes require an explicit migration."""


class SchemaVersionDB(Base):
    """Table layout version the database was created with (single row)."""

    __tablename__ = "schema_version"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


def get_database_url() -> str:
    """Get the database URL from environment variables.

    DATABASE_URL wins when set, otherwise the PostgreSQL URL is assembled
    from the POSTGRE_* variables.

    Returns:
        str: SQLAlchemy async database URL

    Raises:
        ValueError: If required environment variables are not set
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    postgre_host = os.getenv("POSTGRE_HOST")
    if not postgre_host:
        msg = "POSTGRE_HOST is not set"
        raise ValueError(msg)

    postgre_port = os.getenv("POSTGRE_PORT", "5432")

    postgre_user = os.getenv("POSTGRE_USER")
    if not postgre_user:
        msg = "POSTGRE_USER is not set"
        raise ValueError(msg)

    postgre_password = os.getenv("POSTGRE_PASSWORD")
    if not postgre_password:
        msg = "POSTGRE_PASSWORD is not set"
        raise ValueError(msg)

    postgre_db = os.getenv("POSTGRE_DB")
    if not postgre_db:
        msg = "POSTGRE_DB is not set"
        raise ValueError(msg)

    # Use psycopg (version 3) as the async PostgreSQL driver
    return (
        "postgresql+psycopg://"
        f"{postgre_user}:{postgre_password}"
        f"@{postgre_host}:{postgre_port}"
        f"/{postgre_db}"
    )


def create_session_factory(
    database_url: str, **engine_kwargs: Any
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine and its session factory.

    The engine's connection pool is the only resource shared between sync
    workers; each worker receives the factory explicitly.

    Example:
        ```python
        engine, session_factory = create_session_factory(get_database_url())
        ```
    """
    engine = create_async_engine(database_url, echo=False, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create database tables if they don't exist and check their version.

    Only missing tables are created; existing tables are never altered. A
    fresh database records SCHEMA_VERSION, an existing one must match it.

    Raises:
        SchemaVersionError: If the database holds another layout version
    """
    # Import models so they register on Base.metadata
    import swap_indexer.data.swaps.db
    import swap_indexer.data.sync.db  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        result = await conn.execute(select(SchemaVersionDB.version))
        stored = list(result.scalars())
        if not stored:
            await conn.execute(
                insert(SchemaVersionDB).values(
                    version=SCHEMA_VERSION, created_at=datetime.now(UTC)
                )
            )
            return
        mismatched = [version for version in stored if version != SCHEMA_VERSION]
        if mismatched:
            raise SchemaVersionError(max(mismatched), SCHEMA_VERSION)


def insert_ignore(
    session: AsyncSession, table: Table | type, rows: list[dict[str, Any]]
) -> Any:
    """Build an INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    Args:
        session: Session bound to PostgreSQL or SQLite
        table: Mapped class or Table to insert into
        rows: Column dicts to insert

    Returns:
        Executable insert statement

    Raises:
        ValueError: If the dialect has no ON CONFLICT support here
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table)
    else:
        msg = f"Unsupported database dialect: {dialect}"
        raise ValueError(msg)
    return stmt.values(rows).on_conflict_do_nothing()


def upsert(
    session: AsyncSession,
    table: Table | type,
    row: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Build an INSERT ... ON CONFLICT DO UPDATE for a single row.

    All non-key columns of the row are overwritten on conflict.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table).values(row)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table).values(row)
    else:
        msg = f"Unsupported database dialect: {dialect}"
        raise ValueError(msg)

    update_dict = {
        col: stmt.excluded[col] for col in row if col not in index_elements
    }
    return stmt.on_conflict_do_update(index_elements=index_elements, set_=update_dict)


__all__ = [
    "SCHEMA_VERSION",
    "Base",
    "SchemaVersionDB",
    "create_session_factory",
    "create_tables",
    "get_database_url",
    "insert_ignore",
    "upsert",
]
