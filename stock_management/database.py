import logging
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from stock_management.config import get_settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

# Execution option read by the SQLite "begin" hook to pick the BEGIN mode
SQLITE_BEGIN_MODE = "sqlite_begin_mode"


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _configure_sqlite(engine: Engine) -> None:
    """
    Take transaction control away from pysqlite so BEGIN is ours to emit.

    Needed for ``BEGIN IMMEDIATE`` (see utils/transactions.py) and for
    ``ON DELETE CASCADE``, which SQLite only honours with foreign keys on.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN_MODE)
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")


class Database:
    """
    Explicit handle on the relational store.

    Owns the SQLAlchemy engine (and its connection pool) and the session
    factory. Nothing is connected until ``open()``; ``close()`` disposes the
    pool. The application opens one at startup and closes it at shutdown.
    """

    def __init__(self, url: str, **engine_options):
        self.url = url
        self._engine_options = engine_options
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def open(self) -> "Database":
        if self.engine is not None:
            return self

        options = dict(self._engine_options)
        if self.url.startswith("sqlite"):
            options.setdefault("connect_args", {"check_same_thread": False})
            if _is_memory_sqlite(self.url):
                options.setdefault("poolclass", StaticPool)
        else:
            settings = get_settings()
            options.setdefault("pool_size", settings.DB_POOL_SIZE)
            options.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
            options.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
            options.setdefault("pool_pre_ping", True)

        self.engine = create_engine(self.url, **options)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)

        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info(f"Database handle opened ({self.engine.dialect.name})")
        return self

    def close(self) -> None:
        if self.engine is None:
            return
        self.engine.dispose()
        self.engine = None
        self._session_factory = None
        logger.info("Database handle closed")

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database handle is not open")
        return self._session_factory()

    def create_tables(self) -> None:
        # Model modules must be imported for their tables to be registered
        from stock_management.models import product, sale  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self) -> None:
        from stock_management.models import product, sale  # noqa: F401

        Base.metadata.drop_all(bind=self.engine)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def get_db(request: Request) -> Iterator[Session]:
    """
    Dependency to get database session.
    Yields a session from the application's database handle and closes it after use.
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
