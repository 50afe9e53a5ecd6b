"""
Engine and session handling for the dApp Stats store.

SQLite by default; PostgreSQL when DATABASE_URL points at it. Repositories take
a Database and open short sessions through session_scope().
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend_dappstats.config.env import mask_db_url
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.database.models import Base

logger = get_logger(__name__)


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        if not url.strip():
            raise ValueError("database url must be non-empty")
        self.url = url.strip()
        connect_args = {}
        if self.url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(
            self.url,
            connect_args=connect_args,
            pool_pre_ping=True,
            echo=echo,
        )
        if self.dialect == "sqlite":
            event.listen(self.engine, "connect", _sqlite_pragmas)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info("database_engine_created", url=mask_db_url(self.url), dialect=self.dialect)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def ensure_schema(self) -> None:
        """Create all tables if missing. Safe on every startup."""
        Base.metadata.create_all(self.engine)
        logger.info("database_schema_ready", tables=sorted(Base.metadata.tables))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def get_database(url: str | None = None) -> Database:
    """
    Return a Database with the schema ensured.

    url: SQLAlchemy URL. Default: Settings.database_url from the environment.
    """
    if url is None:
        from backend_dappstats.config import get_settings

        url = get_settings().database_url
    db = Database(url)
    db.ensure_schema()
    return db
