"""Tests for Alembic migrations."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from sqlalchemy import create_engine, inspect

from src.db.models import Base

EXPECTED_TABLES = {"products", "product_demand", "shopify_queue"}


def _package_dir() -> Path:
    import src

    return Path(src.__file__).parent.parent


def _reset_session_globals() -> None:
    import src.db.session as session_module

    session_module._engine = None
    session_module._session_factory = None


class TestMigrations:
    """Tests for database migration functionality."""

    def test_migration_files_exist(self):
        package_dir = _package_dir()
        assert (package_dir / "migrations" / "versions" / "001_initial_schema.py").exists()
        assert (package_dir / "alembic.ini").exists()
        assert (package_dir / "migrations" / "env.py").exists()

    def test_migration_has_upgrade_and_downgrade(self):
        content = (_package_dir() / "migrations" / "versions" / "001_initial_schema.py").read_text()
        assert "def upgrade()" in content
        assert "def downgrade()" in content

    def test_create_all_creates_tables(self, tmp_path: Path):
        engine = create_engine(f"sqlite:///{tmp_path / 'create_all.db'}")
        Base.metadata.create_all(engine)

        tables = set(inspect(engine).get_table_names())
        assert EXPECTED_TABLES.issubset(tables), f"Missing tables: {EXPECTED_TABLES - tables}"
        engine.dispose()

    def test_init_database_with_migrations_false(self, tmp_path: Path):
        """init_database(use_migrations=False) falls back to create_all."""
        from src.db.session import close_database, get_engine, init_database

        with patch("src.db.session.get_db_path", return_value=tmp_path / "plain.db"):
            _reset_session_globals()
            init_database(use_migrations=False)
            tables = inspect(get_engine()).get_table_names()
            close_database()

        assert EXPECTED_TABLES.issubset(set(tables))

    def test_upgrade_matches_models(self, tmp_path: Path):
        """The migrated schema has the same tables and indexes as the ORM models."""
        from src.db.session import close_database, get_engine, init_database

        with patch("src.db.session.get_db_path", return_value=tmp_path / "migrated.db"):
            _reset_session_globals()
            init_database(use_migrations=True)
            inspector = inspect(get_engine())
            tables = set(inspector.get_table_names())
            migrated_indexes = {
                table: {index["name"] for index in inspector.get_indexes(table)}
                for table in EXPECTED_TABLES
            }
            close_database()

        assert EXPECTED_TABLES.issubset(tables)
        assert "alembic_version" in tables

        model_engine = create_engine(f"sqlite:///{tmp_path / 'models.db'}")
        Base.metadata.create_all(model_engine)
        model_inspector = inspect(model_engine)
        for table in EXPECTED_TABLES:
            model_indexes = {index["name"] for index in model_inspector.get_indexes(table)}
            assert migrated_indexes[table] == model_indexes, table
        model_engine.dispose()

    def test_existing_database_is_stamped(self, tmp_path: Path):
        """A database built by create_all is stamped instead of re-created."""
        from src.db.session import close_database, get_engine, init_database

        with patch("src.db.session.get_db_path", return_value=tmp_path / "legacy.db"):
            _reset_session_globals()
            init_database(use_migrations=False)
            init_database(use_migrations=True)
            tables = inspect(get_engine()).get_table_names()
            close_database()

        assert "alembic_version" in tables
