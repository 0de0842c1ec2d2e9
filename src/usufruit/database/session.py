"""
Store handle for usufruit.

``DatabaseManager`` owns the SQLAlchemy engine and hands out short-lived
sessions, one per core operation. It also reports what the store can do
(``supports_case_insensitive_contains``) so callers never branch on dialect
names themselves.

``safe_commit`` and ``safe_query`` are the only places driver exceptions are
caught; they re-raise them as ``ConflictError`` or ``DependencyError``.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..errors import ConflictError, DependencyError
from .schema import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ILIKE is native or emulated with lower() on these
_CASE_INSENSITIVE_DIALECTS = frozenset({"sqlite", "postgresql", "mysql", "mariadb"})

SQLITE_BUSY_TIMEOUT = 30


def _is_memory_sqlite(url: str) -> bool:
    return url == "sqlite://" or ":memory:" in url


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: str) -> Engine:
    """
    Create an engine suited to the URL.

    In-memory SQLite must share a single connection or every session would
    see its own empty database. File SQLite waits on the file lock instead
    of failing at once, so concurrent borrows serialize.
    """
    options: dict[str, Any] = {"echo": False}
    if url.startswith("sqlite"):
        if _is_memory_sqlite(url):
            options.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        else:
            options["connect_args"] = {
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT,
            }
        engine = create_engine(url, **options)
        _enable_sqlite_foreign_keys(engine)
        return engine

    return create_engine(url, pool_size=10, max_overflow=20, pool_pre_ping=True, **options)


class DatabaseManager:
    """
    Engine and session factory for one store.

    Repositories and ``LibraryService`` receive an instance; nothing in the
    core reaches for a global one.
    """

    def __init__(
        self,
        database_url: str | None = None,
        supports_case_insensitive_contains: bool | None = None,
    ):
        """
        Args:
            database_url: SQLAlchemy URL; the configured store when omitted
            supports_case_insensitive_contains: Force the lexical-search
                capability flag instead of deriving it from the dialect
        """
        if database_url is None:
            database_url = get_config().get_database_url()
            if database_url.startswith("sqlite:///") and not _is_memory_sqlite(database_url):
                db_file = Path(database_url.removeprefix("sqlite:///"))
                db_file.parent.mkdir(parents=True, exist_ok=True)
                logger.info("SQLite store at %s", db_file)

        self.database_url = database_url
        self._case_insensitive_override = supports_case_insensitive_contains
        self._engine: Engine | None = None
        self._sessions: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self.database_url)
            safe_url = self._engine.url.render_as_string(hide_password=True)
            logger.info("Engine ready for %s", safe_url)
        return self._engine

    @property
    def supports_case_insensitive_contains(self) -> bool:
        if self._case_insensitive_override is not None:
            return self._case_insensitive_override
        return self.engine.dialect.name in _CASE_INSENSITIVE_DIALECTS

    def create_session(self) -> Session:
        """A new session; the caller closes it."""
        if self._sessions is None:
            # Returned models are built after commit, so attributes must stay loaded
            self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        return self._sessions()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Commit on success, roll back on any exception, always close."""
        session = self.create_session()
        try:
            yield session
            session.commit()
        except Exception:
            logger.debug("Transaction rolled back")
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """Create every table (and the active-loan index) that is missing."""
        if drop_existing:
            logger.warning("Dropping all usufruit tables")
            Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)
        logger.info("Schema ready")

    def verify_connection(self) -> bool:
        """Round-trip a trivial statement; used by the health check."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Store unreachable")
            return False
        return True

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Engine disposed")
        self._engine = None
        self._sessions = None


def safe_commit(session: Session, operation: str) -> None:
    """
    Commit, translating store failures into typed errors.

    The driver message is never copied into the error: statement parameters
    can include secret keys.

    Raises:
        ConflictError: A constraint rejected the change
        DependencyError: The store failed for any other reason
    """
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.debug("Constraint violation during %s: %s", operation, type(e.orig).__name__)
        raise ConflictError(f"Cannot {operation}: it conflicts with existing data") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Store failure during %s", operation)
        raise DependencyError(f"Cannot {operation}: the store is unavailable") from e


def safe_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """Run ``query_func(session)``; store failures become DependencyError."""
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed: %s", error_msg)
        raise DependencyError(f"{error_msg}: the store is unavailable") from e
