"""SQL engine setup for the document store.

SQLite is the local default; any SQLAlchemy URL (e.g. PostgreSQL) can be
supplied through ``DATABASE_URL``.
"""

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tasklanes.db")

Base = declarative_base()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "False").lower() == "true"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def is_sqlite(url: Optional[str]) -> bool:
    return (url or "").startswith("sqlite")


def engine_options(url: str) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine``, read from the environment.

    Kept separate from engine creation so it can be checked without a database.
    """
    options: Dict[str, Any] = {"echo": _env_flag("DEBUG"), "pool_pre_ping": True}
    if is_sqlite(url):
        # Sessions run on the store's worker thread, not the creating thread.
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(
            pool_size=_env_int("DB_POOL_SIZE", 5),
            max_overflow=_env_int("DB_MAX_OVERFLOW", 5),
            pool_timeout=_env_int("DB_POOL_TIMEOUT_SEC", 30),
        )
    return options


def make_engine(url: str = DATABASE_URL) -> Engine:
    engine = create_engine(url, **engine_options(url))
    if is_sqlite(url):
        event.listen(engine, "connect", _sqlite_on_connect)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _sqlite_on_connect(dbapi_conn, _record) -> None:
    # WAL lets snapshot reads proceed while a batch is being written.
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def upgrade_schema(url: str) -> None:
    """Bring the schema at ``url`` to the latest alembic revision."""
    from alembic import command
    from alembic.config import Config

    config = Config(os.getenv("ALEMBIC_INI", "alembic.ini"))
    config.set_main_option("sqlalchemy.url", url)
    # Tells alembic/env.py not to replace the URL from the environment
    config.attributes["sqlalchemy.url"] = url
    logger.info("Running alembic migrations to head")
    command.upgrade(config, "head")


def init_db(engine: Engine) -> None:
    """Create the documents table on ``engine``.

    With ``RUN_MIGRATIONS=true`` a non-SQLite database is migrated through
    alembic instead of ``create_all``.
    """
    from tasklanes.database import models  # noqa: F401  registers tables on Base

    url = engine.url.render_as_string(hide_password=False)
    if _env_flag("RUN_MIGRATIONS") and not is_sqlite(url):
        upgrade_schema(url)
        return
    Base.metadata.create_all(bind=engine)
