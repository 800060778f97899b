"""Connection management for the SQLite asset database.

:class:`ConnectionManager` owns exactly one SQLAlchemy engine and, while
open, one checked out :class:`~sqlalchemy.engine.Connection`.  It moves
through a small state machine::

    CLOSED --connect--> IDLE --open--> OPEN --close--> IDLE ... --shutdown--> DISPOSED

Every public method acquires the manager's re-entrant lock, so a caller that
needs several statements to run back to back (open, begin, insert, commit,
close) holds :attr:`ConnectionManager.lock` or uses
:meth:`ConnectionManager.transaction`, which does it for them.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Connection, Engine, RootTransaction
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from .config import AppConfig, get_config
from .errors import AssetConnectionError, ConnectionStateError
from .utils.paths import MEMORY_DATABASE, resolve_database_path

__all__ = ["ConnectionManager", "ConnectionState", "create_sqlite_engine"]

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CLOSED = "closed"
    IDLE = "idle"
    OPEN = "open"
    DISPOSED = "disposed"


def _configure_sqlite_pragma(engine: Engine) -> None:
    """Ensure SQLite connections enforce foreign key constraints."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


def create_sqlite_engine(database: str, *, busy_timeout: float = 5.0) -> Engine:
    """Return an engine for the SQLite file (or ``:memory:``) at *database*.

    In-memory databases use a :class:`~sqlalchemy.pool.StaticPool` so every
    thread shares the same store.
    """

    connect_args = {"check_same_thread": False, "timeout": busy_timeout}
    if database == MEMORY_DATABASE:
        engine = create_engine(
            "sqlite+pysqlite://",
            poolclass=StaticPool,
            connect_args=connect_args,
        )
    else:
        url = URL.create("sqlite+pysqlite", database=database)
        engine = create_engine(url, connect_args=connect_args)
    _configure_sqlite_pragma(engine)
    return engine


class ConnectionManager:
    """Own a single database handle and its transaction lifecycle."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or get_config()
        self._lock = threading.RLock()
        self._engine: Engine | None = None
        self._connection: Connection | None = None
        self._transaction: RootTransaction | None = None
        self._database: str | None = None
        self._state = ConnectionState.CLOSED

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def lock(self) -> threading.RLock:
        """Return the lock serializing every use of the connection."""

        return self._lock

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def database(self) -> str | None:
        """Return the resolved database location once connected."""

        return self._database

    @property
    def connection_opened(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    def connect(self, database: str | Path) -> None:
        """Create the engine for *database*, replacing any previous one.

        Relative paths are resolved against the configured data directory.
        """

        with self._lock:
            self._ensure_usable()
            if self._engine is not None:
                self._teardown()

            resolved = resolve_database_path(database, data_dir=self._config.data_dir)
            self._engine = create_sqlite_engine(resolved)
            self._database = resolved
            self._state = ConnectionState.IDLE
            logger.debug("Connected to asset database %s", resolved)

    def open(self) -> None:
        """Check out the connection, retrying transient failures."""

        with self._lock:
            self._ensure_usable()
            if self._engine is None:
                raise ConnectionStateError("connect() must be called before open()")
            if self._state is ConnectionState.OPEN:
                raise ConnectionStateError("The connection is already open")

            attempt = 0
            while True:
                try:
                    self._connection = self._engine.connect()
                    break
                except OperationalError as exc:
                    if attempt >= self._config.open_retries:
                        raise AssetConnectionError(
                            f"Unable to open asset database {self._database}: {exc}"
                        ) from exc
                    delay = self._config.retry_backoff * (2**attempt)
                    logger.warning(
                        "Opening %s failed (attempt %d), retrying in %.2fs: %s",
                        self._database,
                        attempt + 1,
                        delay,
                        exc,
                    )
                    time.sleep(delay)
                    attempt += 1
            self._state = ConnectionState.OPEN

    def close(self) -> None:
        """Return the connection to the pool; pairs with :meth:`open`."""

        with self._lock:
            if self._state is not ConnectionState.OPEN or self._connection is None:
                raise ConnectionStateError("The connection is not open")
            if self._transaction is not None:
                logger.warning("Closing connection with an open transaction; rolling back")
                self._finish_transaction(commit=False)
            self._connection.close()
            self._connection = None
            self._state = ConnectionState.IDLE

    def shutdown(self) -> None:
        """Release the handle and any open transaction; the manager is unusable afterwards."""

        with self._lock:
            if self._state is ConnectionState.DISPOSED:
                return
            self._teardown()
            self._state = ConnectionState.DISPOSED
            logger.debug("Connection manager for %s disposed", self._database)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def begin_transaction(self) -> None:
        with self._lock:
            connection = self._require_open()
            if self._transaction is not None:
                raise ConnectionStateError("A transaction is already in progress")
            if connection.in_transaction():
                # Close the implicit transaction left behind by a plain statement.
                connection.commit()
            self._transaction = connection.begin()

    def commit(self) -> None:
        with self._lock:
            self._finish_transaction(commit=True)

    def rollback(self) -> None:
        with self._lock:
            self._finish_transaction(commit=False)

    @contextmanager
    def transaction(self) -> Iterator[ConnectionManager]:
        """Run the enclosed statements in one transaction while holding the lock.

        The connection is opened if needed and closed again afterwards; the
        transaction commits on success and rolls back if the block raises.
        """

        with self._lock:
            opened_here = self._state is ConnectionState.IDLE
            if opened_here:
                self.open()
            try:
                self.begin_transaction()
                try:
                    yield self
                except BaseException:
                    self.rollback()
                    raise
                self.commit()
            finally:
                if opened_here and self._state is ConnectionState.OPEN:
                    self.close()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------
    def execute_command(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Execute a non-query statement and return the affected row count.

        The connection is opened and closed around the call when it is not
        already open.  Outside an explicit transaction the statement is
        committed immediately.
        """

        with self._lock, self._auto_open() as connection:
            logger.debug("Executing command: %s", sql)
            result = self._run(connection, sql, params)
            return result.rowcount

    def execute_query(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Execute a query and return every row as a column → value mapping."""

        with self._lock, self._auto_open() as connection:
            logger.debug("Executing query: %s", sql)
            return self._run(connection, sql, params, fetch=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(
        self,
        connection: Connection,
        sql: str,
        params: Mapping[str, Any] | None,
        *,
        fetch: bool = False,
    ) -> Any:
        implicit = self._transaction is None
        try:
            if params is None:
                # Raw text is handed to the driver so literal colons are not
                # mistaken for bind parameters.
                result = connection.exec_driver_sql(sql)
            else:
                result = connection.execute(text(sql), dict(params))
            outcome = [dict(row) for row in result.mappings()] if fetch else result
            if implicit:
                connection.commit()
            return outcome
        except BaseException:
            if implicit and connection.in_transaction():
                connection.rollback()
            raise

    @contextmanager
    def _auto_open(self) -> Iterator[Connection]:
        self._ensure_usable()
        opened_here = self._state is ConnectionState.IDLE
        if opened_here:
            self.open()
        try:
            yield self._require_open()
        finally:
            if opened_here and self._state is ConnectionState.OPEN:
                self.close()

    def _require_open(self) -> Connection:
        self._ensure_usable()
        if self._state is not ConnectionState.OPEN or self._connection is None:
            raise ConnectionStateError("The connection is not open")
        return self._connection

    def _ensure_usable(self) -> None:
        if self._state is ConnectionState.DISPOSED:
            raise ConnectionStateError("The connection manager has been shut down")

    def _finish_transaction(self, *, commit: bool) -> None:
        transaction = self._transaction
        if transaction is None:
            raise ConnectionStateError("No transaction is in progress")
        try:
            if commit:
                transaction.commit()
            else:
                transaction.rollback()
        finally:
            self._transaction = None

    def _teardown(self) -> None:
        if self._transaction is not None:
            self._finish_transaction(commit=False)
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._state = ConnectionState.CLOSED
