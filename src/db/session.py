"""Database engine and session handling for the dropship dashboard."""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import get_db_path

from .models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_database_url() -> str:
    return f"sqlite:///{get_db_path()}"


def get_engine() -> Engine:
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is None:
        url = get_database_url()
        logger.debug(f"Opening database {url}")
        _engine = create_engine(
            url,
            echo=False,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

        # SQLite leaves foreign keys off per connection; queue and demand rows cascade on delete
        @event.listens_for(_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return _engine


def get_session() -> Session:
    """Create a new database session."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back on any error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(use_migrations: bool = True) -> None:
    """Bring the schema up to date, via Alembic or plain create_all()."""
    engine = get_engine()
    if use_migrations:
        _run_migrations(engine)
    else:
        Base.metadata.create_all(engine)


def _run_migrations(engine: Engine) -> None:
    """Upgrade to the Alembic head revision."""
    from alembic import command
    from alembic.config import Config
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    alembic_ini = PROJECT_ROOT / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning(f"alembic.ini not found at {alembic_ini}, falling back to create_all()")
        Base.metadata.create_all(engine)
        return

    alembic_cfg = Config(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))
    alembic_cfg.attributes["skip_logging"] = True

    with engine.connect() as connection:
        current_rev = MigrationContext.configure(connection).get_current_revision()
    head_rev = ScriptDirectory.from_config(alembic_cfg).get_current_head()

    if current_rev == head_rev:
        logger.debug("Database schema is current")
        return

    tables = inspect(engine).get_table_names()
    if current_rev is None and "products" in tables:
        # Created by create_all() before migrations were used
        logger.info("Stamping existing database with the head revision")
        command.stamp(alembic_cfg, "head")
        return

    logger.info(f"Migrating database from {current_rev or 'empty'} to {head_rev}")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def close_database() -> None:
    """Dispose of the engine so the next call reopens it."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        _engine = None
    _session_factory = None
