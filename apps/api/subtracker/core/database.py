from __future__ import annotations

import logging
from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from subtracker.core.config import get_settings


logger = logging.getLogger("subtracker.database")

ALEMBIC_INI_PATH = Path(__file__).resolve().parents[2] / "alembic.ini"


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str) -> Engine:
    settings = get_settings()
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
        pool_pre_ping=True,
    )


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def run_migrations(database_url: str | None = None) -> None:
    from alembic import command
    from alembic.config import Config

    config = Config(str(ALEMBIC_INI_PATH))
    config.set_main_option("script_location", str(ALEMBIC_INI_PATH.parent / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url or get_settings().database_url)
    # keep the application log handlers in place
    config.attributes["configure_logger"] = False

    logger.info("migrations.started")
    command.upgrade(config, "head")
    logger.info("migrations.finished")
