import logging
import os
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

from gateway_indexer.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(database_url: str, **engine_kwargs: Any) -> Engine:
    """
    Build an engine for either SQLite (local runs, tests) or PostgreSQL.

    The poller and the webhook dispatcher run on separate threads against
    the same engine, so SQLite connections are opened with
    check_same_thread=False and WAL journaling.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)
        connect_args = engine_kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine = create_engine(url, echo=False, connect_args=connect_args, **engine_kwargs)
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine

    return create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,
        pool_timeout=30,
        **engine_kwargs,
    )


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Enable WAL and foreign keys on every new SQLite connection."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
    except Exception as e:
        logger.warning(f"Could not set SQLite pragmas: {e}")
    finally:
        cursor.close()


engine = make_engine(settings.DATABASE_URL)


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables(bind: Engine | None = None):
    # Import models so every table is registered on the metadata
    import gateway_indexer.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
