"""Tests for database helpers and column types."""

from decimal import Decimal
from pathlib import Path

import pytest

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite

from swap_indexer.helpers.db import (
    SCHEMA_VERSION,
    SchemaVersionDB,
    create_session_factory,
    create_tables,
    get_database_url,
)
from swap_indexer.helpers.exceptions import SchemaVersionError
from swap_indexer.helpers.db_types import SQLITE_OFFSET, BigNumeric


POSTGRE_KEYS = (
    "DATABASE_URL",
    "POSTGRE_HOST",
    "POSTGRE_PORT",
    "POSTGRE_USER",
    "POSTGRE_PASSWORD",
    "POSTGRE_DB",
)


@pytest.fixture
def clean_db_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove database settings from the environment."""
    for key in POSTGRE_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestGetDatabaseUrl:
    """Tests for get_database_url."""

    def test_database_url_wins(self, clean_db_env: pytest.MonkeyPatch) -> None:
        """Test that DATABASE_URL is used as-is."""
        clean_db_env.setenv("DATABASE_URL", "sqlite+aiosqlite:///indexer.db")
        clean_db_env.setenv("POSTGRE_HOST", "db")

        assert get_database_url() == "sqlite+aiosqlite:///indexer.db"

    def test_builds_postgres_url(self, clean_db_env: pytest.MonkeyPatch) -> None:
        """Test the psycopg URL assembled from POSTGRE_* variables."""
        clean_db_env.setenv("POSTGRE_HOST", "db")
        clean_db_env.setenv("POSTGRE_USER", "indexer")
        clean_db_env.setenv("POSTGRE_PASSWORD", "secret")
        clean_db_env.setenv("POSTGRE_DB", "swaps")

        assert (
            get_database_url()
            == "postgresql+psycopg://indexer:secret@db:5432/swaps"
        )

    def test_missing_host_raises(self, clean_db_env: pytest.MonkeyPatch) -> None:
        """Test that missing settings are reported."""
        with pytest.raises(ValueError, match="POSTGRE_HOST is not set"):
            get_database_url()


class TestBigNumeric:
    """Tests for the 256-bit integer column type."""

    def test_postgres_binds_exact_decimal(self) -> None:
        """Test that PostgreSQL receives an exact NUMERIC value."""
        column_type = BigNumeric()
        dialect = postgresql.dialect()
        value = -(2**255)

        bound = column_type.process_bind_param(value, dialect)

        assert bound == Decimal(value)
        assert column_type.process_result_value(bound, dialect) == value

    def test_sqlite_round_trips_extremes(self) -> None:
        """Test that int256 extremes survive text storage."""
        column_type = BigNumeric()
        dialect = sqlite.dialect()

        for value in (-(2**255), -1, 0, 1, 2**255 - 1, 2**160 - 1):
            bound = column_type.process_bind_param(value, dialect)
            assert column_type.process_result_value(bound, dialect) == value

    def test_sqlite_text_order_matches_numeric_order(self) -> None:
        """Test that string comparison in SQLite orders values correctly."""
        column_type = BigNumeric()
        dialect = sqlite.dialect()
        values = [2**200, -5, 0, -(2**255), 1_800_000_000, -500_000_000_000_000_000]

        encoded = [column_type.process_bind_param(v, dialect) for v in values]

        assert all(len(text) == len(encoded[0]) for text in encoded)
        assert sorted(encoded) == [
            column_type.process_bind_param(v, dialect) for v in sorted(values)
        ]

    def test_sqlite_offset_is_applied(self) -> None:
        """Test that zero is stored at the offset."""
        bound = BigNumeric().process_bind_param(0, sqlite.dialect())
        assert int(bound) == SQLITE_OFFSET

    def test_none_passes_through(self) -> None:
        """Test nullable handling."""
        assert BigNumeric().process_bind_param(None, sqlite.dialect()) is None
        assert BigNumeric().process_result_value(None, sqlite.dialect()) is None


class TestCreateTables:
    """Tests for table creation and the schema version check."""

    @pytest.mark.asyncio
    async def test_fresh_database_records_version(self, tmp_path: Path) -> None:
        """Test that a new database stores the current version exactly once."""
        engine, _ = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'v.db'}")
        try:
            await create_tables(engine)
            await create_tables(engine)
            async with engine.connect() as conn:
                result = await conn.execute(select(SchemaVersionDB.version))
                versions = list(result.scalars())
        finally:
            await engine.dispose()

        assert versions == [SCHEMA_VERSION]

    @pytest.mark.asyncio
    async def test_mismatched_version_is_refused(self, tmp_path: Path) -> None:
        """Test that a database from another layout version is not used."""
        engine, _ = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'v.db'}")
        try:
            await create_tables(engine)
            async with engine.begin() as conn:
                await conn.execute(
                    update(SchemaVersionDB).values(version=SCHEMA_VERSION + 1)
                )

            with pytest.raises(SchemaVersionError, match="does not match") as info:
                await create_tables(engine)
        finally:
            await engine.dispose()

        assert info.value.stored == SCHEMA_VERSION + 1
        assert info.value.expected == SCHEMA_VERSION
