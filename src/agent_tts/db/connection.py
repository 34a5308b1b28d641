"""
Database connection management for agent-tts.

Provides the engine, session factory and transaction scope for the embedded
state store. A Database instance is created once at startup and handed to
every component that needs it.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agent_tts.exceptions import StoreInitError
from agent_tts.models.db import Base

logger = logging.getLogger(__name__)


def _ensure_sqlite_parent(database_url: str) -> None:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        return
    db_path = database_url[len(prefix) :]
    if db_path and db_path != ":memory:":
        Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)


class Database:
    """
    Engine and session factory for the state store.

    Example:
        >>> db = Database("sqlite:///:memory:")
        >>> db.init()
        >>> with db.session() as session:
        >>>     session.execute(text("SELECT 1"))
    """

    def __init__(self, database_url: str, echo: bool = False, engine: Optional[Engine] = None):
        self.database_url = database_url
        if engine is None:
            engine = self._create_engine(database_url, echo)
        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    @staticmethod
    def _create_engine(database_url: str, echo: bool) -> Engine:
        if not database_url.startswith("sqlite"):
            return create_engine(database_url, echo=echo, pool_pre_ping=True)

        _ensure_sqlite_parent(database_url)
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every thread sees the same in-memory db
            kwargs["poolclass"] = StaticPool

        engine = create_engine(database_url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # pragma: no cover
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

        return engine

    def init(self) -> None:
        """
        Create tables and verify the store is usable.

        Raises:
            StoreInitError: If the store cannot be opened or created
        """
        try:
            Base.metadata.create_all(bind=self.engine)
            with self.session() as session:
                session.execute(text("SELECT 1"))
        except Exception as e:
            raise StoreInitError(self.database_url, e) from e
        logger.info(f"✓ State store ready: {self.database_url}")

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions with automatic cleanup.

        Commits on success, rolls back on exception.

        Yields:
            Session: A SQLAlchemy session
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Check if database connection is working.

        Returns:
            bool: True if connection successful, False otherwise
        """
        try:
            with self.session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
