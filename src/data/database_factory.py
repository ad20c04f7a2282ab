"""
Database factory for QSTUDY.
Owns the single engine and session factory used by the SQL persistence gateway.
"""

import logging
import re
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config.config import DatabaseConfig, config

logger = logging.getLogger(__name__)


class DatabaseFactory:
    """Lazily builds one engine/session factory per process."""

    _instance: Optional["DatabaseFactory"] = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs) -> "DatabaseFactory":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, database_config: DatabaseConfig | None = None):
        if getattr(self, "_initialized", False):
            return
        self.database_config = database_config or config.database
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    def initialize(self) -> None:
        """Create the engine and session factory (idempotent)."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            dsn = self.database_config.dsn
            engine_kwargs = {
                "pool_size": self.database_config.pool_size,
                "max_overflow": self.database_config.max_overflow,
                "echo": self.database_config.echo,
                "pool_pre_ping": True,
            }
            if dsn.startswith("sqlite"):
                engine_kwargs = {
                    "echo": self.database_config.echo,
                    "poolclass": StaticPool,
                    "connect_args": {"check_same_thread": False},
                }

            try:
                self._engine = create_engine(dsn, **engine_kwargs)
            except Exception as e:
                logger.error("Failed to create database engine: %s", e)
                raise
            self._setup_connection_events(dsn)
            self._session_factory = sessionmaker(
                bind=self._engine, autocommit=False, autoflush=False, expire_on_commit=False
            )
            self._initialized = True
            logger.info("Database factory initialized with DSN: %s", self._mask_dsn(dsn))

    def _setup_connection_events(self, dsn: str) -> None:
        @event.listens_for(self._engine, "connect")
        def set_connection_settings(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            if dsn.startswith("sqlite"):
                cursor.execute("PRAGMA foreign_keys=ON")
            elif dsn.startswith("postgresql"):
                cursor.execute("SET timezone TO 'UTC'")
            cursor.close()

    @staticmethod
    def _mask_dsn(dsn: str) -> str:
        """Mask password in DSN for logging"""
        return re.sub(r"(://[^:]+:)([^@]+)(@)", r"\1****\3", dsn)

    @property
    def engine(self) -> Engine:
        self.initialize()
        return self._engine

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session scope that commits on success and rolls back on error."""
        self.initialize()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database session error: %s", e)
            raise
        finally:
            session.close()

    def get_session_sync(self) -> Session:
        """Session for synchronous use (caller must close)."""
        self.initialize()
        return self._session_factory()

    def health_check(self) -> bool:
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return False

    def create_all_tables(self) -> None:
        from .models import Base

        Base.metadata.create_all(bind=self.engine)
        logger.info("All database tables created successfully")

    def close(self) -> None:
        """Dispose the engine and allow re-initialization."""
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Database connections closed")
        self._engine = None
        self._session_factory = None
        self._initialized = False


_db_factory = DatabaseFactory()


def get_session():
    """Get database session context manager"""
    return _db_factory.get_session()


def get_session_sync() -> Session:
    return _db_factory.get_session_sync()


def setup_database() -> None:
    """Create tables and verify connectivity at application startup."""
    _db_factory.create_all_tables()
    if not _db_factory.health_check():
        raise RuntimeError("Database health check failed")
    logger.info("Database setup completed successfully")


def close_database() -> None:
    _db_factory.close()
