"""SQLAlchemy engine and transaction management.

SQLite connections open every transaction with ``BEGIN IMMEDIATE`` so that
concurrent writers queue on the database lock instead of failing at commit,
and so SAVEPOINTs behave. Other engines rely on ``SELECT ... FOR UPDATE``
row locks taken by the callers.
"""

from contextlib import contextmanager
from typing import Iterator

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import StorageError
from .tables import Base

logger = structlog.get_logger()


def _create_sqlite_engine(url: str, timeout: float) -> Engine:
    engine = create_engine(
        url,
        connect_args={"timeout": timeout, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={int(timeout * 1000)}")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def server_connect_args(url: str, timeout: float) -> dict:
    """Per-connection limits so a statement or row lock cannot wait forever."""
    ms = int(timeout * 1000)
    if url.startswith(("postgresql", "postgres")):
        return {"options": f"-c statement_timeout={ms} -c lock_timeout={ms}"}
    if url.startswith("mysql"):
        return {"init_command": f"SET SESSION innodb_lock_wait_timeout={max(1, int(timeout))}"}
    return {}


def create_db_engine(url: str, timeout: float = 8.0) -> Engine:
    if url.startswith("sqlite"):
        return _create_sqlite_engine(url, timeout)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args=server_connect_args(url, timeout),
    )


class Storage:
    def __init__(self, url: str, timeout: float = 8.0):
        self.url = url
        self.engine = create_db_engine(url, timeout)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def init_schema(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as exc:
            logger.error("storage_error", operation="init_schema", error=str(exc))
            raise StorageError("Could not initialize schema") from exc

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One unit of work: commit on success, roll back on any error."""
        try:
            with self._session_factory.begin() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.error("storage_error", error=str(exc))
            raise StorageError("Storage operation failed") from exc

    def dispose(self) -> None:
        self.engine.dispose()
