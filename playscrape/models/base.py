"""Base database configuration, mixins and session bootstrap."""

import logging
from datetime import datetime, timezone
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy import Column, DateTime, func, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


def run_migrations(connection, database_url: str) -> None:
    """Upgrade the schema on an open connection to the latest revision."""
    config = AlembicConfig()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    config.attributes["connection"] = connection
    command.upgrade(config, "head")


def init_db(database_url: str, debug: bool = False) -> Session:
    """Open the content store, migrating it first, and return a session."""
    engine = create_engine(database_url, echo=debug)

    with engine.begin() as connection:
        run_migrations(connection, database_url)

    logger.debug(f"Database ready: {engine.url.render_as_string(hide_password=True)}")

    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
    )
    return SessionLocal()
