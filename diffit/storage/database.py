"""
SQLite database connection and session management
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from diffit.core.config import get_settings
from diffit.storage.models import Base

logger = logging.getLogger(__name__)


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints on SQLite connections"""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Database connection manager

    Handles SQLite connection, session management, and table creation.
    """

    def __init__(self, database_path: Path | None = None):
        """
        Initialize database connection

        Args:
            database_path: Path to SQLite database file. If None, uses the configured path
        """
        if database_path is None:
            database_path = get_settings().database_path

        self.database_path = Path(database_path)

        # Ensure data directory exists
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.database_path}",
            echo=False,
            pool_pre_ping=True,
        )

        # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let
        # SQLAlchemy emit BEGIN so nested transactions work
        @event.listens_for(self.engine, "connect")
        def disable_pysqlite_transactions(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None

        @event.listens_for(self.engine, "begin")
        def emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

        self.create_tables()

        logger.info(f"Database initialized: {self.database_path}")

    def create_tables(self) -> None:
        """Create all database tables"""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created/verified")

    def verify_schema(self) -> bool:
        """
        Verify database schema is valid

        Returns:
            True if the core tables exist, False otherwise
        """
        try:
            with self.session_scope() as session:
                tables = session.execute(
                    text(
                        "SELECT name FROM sqlite_master WHERE type='table' "
                        "AND name IN ('projects', 'builds', 'snapshots', 'baselines')"
                    )
                ).fetchall()
                found_tables = {row[0] for row in tables}
                return {"projects", "builds", "snapshots", "baselines"}.issubset(found_tables)

        except Exception as e:
            logger.error(f"Schema verification failed: {e}")
            return False

    def get_session(self) -> Session:
        """
        Get a new database session

        Returns:
            SQLAlchemy Session object; the caller closes it
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for database operations

        Usage:
            with db.session_scope() as session:
                ...
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

    def dispose(self) -> None:
        """Release pooled connections"""
        self.engine.dispose()


# Global database instance (singleton)
_database: Database | None = None


def get_database(database_path: Path | None = None) -> Database:
    """
    Get the global database instance (singleton pattern)

    Args:
        database_path: Path to database file (only used on first call)
    """
    global _database
    if _database is None:
        _database = Database(database_path)
    return _database
