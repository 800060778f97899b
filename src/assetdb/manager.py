"""Asset manager orchestrating table creation, writes and lookups.

The manager is an explicit object created by the application and passed to
whoever needs it.  :meth:`AssetManager.initialize` connects to the database
and starts two background threads:

* a schema thread that creates one table per registered descriptor variant
  and then sets the one-shot readiness event;
* a single writer thread that consumes enqueued writes in FIFO order, waits
  for readiness and runs every insert in its own transaction.

Because every write goes through the one writer and every statement through
the connection manager's lock, the connection is never used by two parties
at once.  :meth:`AssetManager.shutdown` drains (or cancels) the queue before
the connection is released.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import AppConfig, get_config
from .connection import ConnectionManager
from .descriptors import AssetDescriptor
from .errors import (
    AssetConnectionError,
    AssetLookupTimeout,
    AssetNotFoundError,
    AssetWriteError,
    ConnectionStateError,
    DuplicateAssetError,
    WriteCancelledError,
    WriteQueueFullError,
)
from .registry import DescriptorRegistry
from .schema import build_create_table, build_insert, build_select, descriptor_from_row

__all__ = ["AssetManager", "WriteTask"]

logger = logging.getLogger(__name__)

DescriptorT = TypeVar("DescriptorT", bound=AssetDescriptor)

_STOP = object()


@dataclass(eq=False)
class WriteTask:
    """A pending write of one descriptor.

    The task completes once the writer has either committed the row (the
    result is the new ``rowid``) or recorded why it could not.
    """

    descriptor: AssetDescriptor
    future: Future[int] = field(default_factory=Future, repr=False)

    @property
    def task_complete(self) -> bool:
        return self.future.done()

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when the write completed and committed."""

        return (
            self.future.done()
            and not self.future.cancelled()
            and self.future.exception() is None
        )

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the task completes; return ``False`` on timeout."""

        done, _ = wait_futures([self.future], timeout=timeout)
        return bool(done)

    def result(self, timeout: float | None = None) -> int:
        """Return the ``rowid`` of the inserted row or raise the write error."""

        return self.future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self.future.exception(timeout)


class AssetManager:
    """Persist descriptors and look them up again.

    Parameters
    ----------
    database:
        Database file, relative to the configured data directory unless
        absolute.  ``":memory:"`` selects a private in-memory store.  Defaults
        to :attr:`AppConfig.database_name`.
    registry:
        Descriptor variants handled by this manager.  Defaults to every
        built-in variant; see :meth:`for_variant` for a single-variant manager.
    config:
        Configuration used for connection retries, lookup timeouts and the
        write queue bound.  Defaults to :func:`~assetdb.config.get_config`.
    max_pending_writes:
        Maximum number of queued writes; ``None`` means unbounded.  When the
        queue is full :meth:`add_asset_async` raises
        :class:`~assetdb.errors.WriteQueueFullError` instead of blocking.
    """

    def __init__(
        self,
        database: str | Path | None = None,
        *,
        registry: DescriptorRegistry | None = None,
        config: AppConfig | None = None,
        max_pending_writes: int | None = None,
        reader_threads: int = 2,
    ) -> None:
        self._config = config or get_config()
        self._database = database if database is not None else self._config.database_name
        self._registry = registry or DescriptorRegistry()
        self._connection = ConnectionManager(self._config)

        bound = max_pending_writes if max_pending_writes is not None else self._config.max_pending_writes
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=bound or 0)
        self._reader_threads = reader_threads

        self._tables_ready = threading.Event()
        self._schema_done = threading.Event()
        self._cancel_schema = threading.Event()
        self._schema_error: BaseException | None = None

        self._state_lock = threading.Lock()
        self._pending: set[Future[int]] = set()
        self._initialized = False
        self._shut_down = False
        self._schema_thread: threading.Thread | None = None
        self._writer_thread: threading.Thread | None = None
        self._readers: ThreadPoolExecutor | None = None

    @classmethod
    def for_variant(
        cls,
        variant: type[AssetDescriptor],
        database: str | Path | None = None,
        **kwargs: Any,
    ) -> AssetManager:
        """Return a manager that owns the table of a single *variant*."""

        return cls(database, registry=DescriptorRegistry([variant]), **kwargs)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def registry(self) -> DescriptorRegistry:
        return self._registry

    @property
    def connection(self) -> ConnectionManager:
        """Return the connection manager owned by this instance."""

        return self._connection

    @property
    def database_path(self) -> str | None:
        return self._connection.database

    @property
    def tables_ready(self) -> bool:
        return self._tables_ready.is_set()

    @property
    def pending_writes(self) -> int:
        with self._state_lock:
            return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Connect and start building tables in the background.

        Returns immediately; use :meth:`wait_until_ready` to block until the
        tables exist.
        """

        with self._state_lock:
            if self._shut_down:
                raise ConnectionStateError("The asset manager has been shut down")
            if self._initialized:
                raise ConnectionStateError("The asset manager is already initialized")

            self._connection.connect(self._database)
            self._tables_ready.clear()
            self._schema_done.clear()
            self._schema_error = None

            self._schema_thread = threading.Thread(
                target=self._construct_tables, name="assetdb-schema", daemon=True
            )
            self._writer_thread = threading.Thread(
                target=self._write_loop, name="assetdb-writer", daemon=True
            )
            self._readers = ThreadPoolExecutor(
                max_workers=self._reader_threads, thread_name_prefix="assetdb-reader"
            )
            self._initialized = True
            self._schema_thread.start()
            self._writer_thread.start()

        logger.info(
            "Started table construction for %d descriptor variants in %s",
            len(self._registry),
            self._connection.database,
        )

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until the tables exist; return ``False`` on timeout.

        Re-raises the error that aborted table construction, if any.
        """

        if not self._initialized:
            raise ConnectionStateError("initialize() must be called first")
        if not self._schema_done.wait(timeout):
            return False
        if self._schema_error is not None:
            raise self._schema_error
        return self._tables_ready.is_set()

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every enqueued write has completed.

        Returns ``False`` if writes were still pending when *timeout* expired.
        """

        with self._state_lock:
            pending = list(self._pending)
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, *, cancel_pending: bool = False, timeout: float | None = None) -> None:
        """Stop the background threads and release the connection.

        Queued writes are completed first unless *cancel_pending* is set, in
        which case they fail with :class:`~assetdb.errors.WriteCancelledError`.
        When *timeout* expires while draining, the remaining queued writes are
        cancelled; the write in flight always finishes before the connection
        is released.  Calling this more than once is harmless.
        """

        with self._state_lock:
            if self._shut_down:
                return
            self._shut_down = True
            started = self._initialized

        if cancel_pending or not started:
            self._cancel_schema.set()
            self._cancel_queued_writes()

        if started:
            self._queue.put(_STOP)
            assert self._writer_thread is not None
            self._writer_thread.join(timeout)
            if self._writer_thread.is_alive():
                logger.warning("Write queue not drained after %ss; cancelling queued writes", timeout)
                self._cancel_queued_writes()
                # The sentinel may have been discarded with the queued writes.
                self._queue.put(_STOP)
                self._writer_thread.join()

            self._cancel_schema.set()
            assert self._schema_thread is not None
            self._schema_thread.join()
            if self._readers is not None:
                self._readers.shutdown(wait=True)

        self._connection.shutdown()
        logger.info("Asset manager for %s shut down", self._connection.database)

    def __enter__(self) -> AssetManager:
        if not self._initialized:
            self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def add_asset_async(self, descriptor: AssetDescriptor) -> WriteTask:
        """Enqueue *descriptor* for insertion and return immediately.

        May be called before the tables are ready (or before
        :meth:`initialize`); the writer waits for readiness, not the caller.
        """

        if not isinstance(descriptor, AssetDescriptor):
            raise TypeError(f"Expected an AssetDescriptor, got {type(descriptor).__name__}")
        self._registry.lookup(descriptor)

        task = WriteTask(descriptor)
        with self._state_lock:
            if self._shut_down:
                raise ConnectionStateError("The asset manager has been shut down")
            try:
                self._queue.put_nowait(task)
            except queue.Full:
                raise WriteQueueFullError(
                    f"Write queue is full ({self._queue.maxsize} pending writes)"
                ) from None
            self._pending.add(task.future)
        task.future.add_done_callback(self._forget)

        logger.debug("Queued write of %s %r", type(descriptor).__name__, descriptor.name)
        return task

    def add_assets_async(self, descriptors: Iterable[AssetDescriptor]) -> list[WriteTask]:
        return [self.add_asset_async(descriptor) for descriptor in descriptors]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_assets(
        self,
        descriptor: DescriptorT,
        count: int,
        timeout: float | None = None,
    ) -> list[DescriptorT]:
        """Return *count* stored assets matching *descriptor*.

        Fields of *descriptor* that differ from the variant defaults must all
        match (conjunctive equality).  Results come back in insertion order.
        Raises :class:`~assetdb.errors.AssetNotFoundError` when fewer than
        *count* assets match and :class:`~assetdb.errors.AssetLookupTimeout`
        when the tables are not ready within *timeout* seconds (defaults to
        :attr:`AppConfig.read_timeout`).
        """

        if count < 1:
            raise ValueError("count must be at least 1")
        entry = self._registry.lookup(descriptor)
        wait_for = self._config.read_timeout if timeout is None else timeout
        if not self.wait_until_ready(wait_for):
            raise AssetLookupTimeout(
                f"Tables were not ready after {wait_for}s; cannot look up {entry.tag}"
            )

        sql, params = build_select(descriptor, count)
        rows = self._connection.execute_query(sql, params)
        found = [descriptor_from_row(entry.variant, row) for row in rows]
        if len(found) < count:
            raise AssetNotFoundError(
                f"Requested {count} {entry.table_name} assets matching {params or 'any'}, found {len(found)}",
                requested=count,
                found=len(found),
            )
        return found

    def get_asset(self, descriptor: DescriptorT, timeout: float | None = None) -> DescriptorT:
        """Return the first stored asset matching *descriptor*."""

        return self.get_assets(descriptor, 1, timeout)[0]

    def get_asset_async(
        self, descriptor: DescriptorT, timeout: float | None = None
    ) -> Future[DescriptorT]:
        return self._require_readers().submit(self.get_asset, descriptor, timeout)

    def get_assets_async(
        self, descriptor: DescriptorT, count: int, timeout: float | None = None
    ) -> Future[list[DescriptorT]]:
        return self._require_readers().submit(self.get_assets, descriptor, count, timeout)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------
    def _construct_tables(self) -> None:
        built: list[str] = []
        try:
            with self._connection.transaction():
                for entry in self._registry:
                    if self._cancel_schema.is_set():
                        logger.info("Table construction cancelled after %s", built or "no tables")
                        return
                    self._connection.execute_command(build_create_table(entry.variant))
                    built.append(entry.table_name)
            self._tables_ready.set()
            logger.info("Finished building tables: %s", ", ".join(built))
        except Exception as exc:
            self._schema_error = exc
            logger.exception("Failed to build asset tables")
        finally:
            self._schema_done.set()

    def _write_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            self._process(item)

    def _process(self, task: WriteTask) -> None:
        if not task.future.set_running_or_notify_cancel():
            return

        self._schema_done.wait()
        if not self._tables_ready.is_set():
            error = self._schema_error or WriteCancelledError(
                "Table construction was cancelled before the write could run"
            )
            task.future.set_exception(error)
            return

        descriptor = task.descriptor
        table = type(descriptor).__name__
        try:
            builder = build_insert(descriptor)
            table = builder.table_name
            sql, params = builder.build_parameterized()
            with self._connection.transaction():
                self._connection.execute_command(sql, params)
                rows = self._connection.execute_query("SELECT last_insert_rowid() AS rowid")
        except IntegrityError as exc:
            error_cls = DuplicateAssetError if "UNIQUE" in str(exc.orig) else AssetWriteError
            logger.warning("Rejected write of %r to %s: %s", descriptor.path, table, exc.orig)
            self._fail(task, error_cls(f"Cannot add {descriptor.path!r} to {table}: {exc.orig}"), exc)
        except (SQLAlchemyError, AssetConnectionError, ConnectionStateError) as exc:
            logger.warning("Write of %r to %s failed: %s", descriptor.path, table, exc)
            self._fail(task, AssetWriteError(f"Cannot add {descriptor.path!r} to {table}: {exc}"), exc)
        except Exception as exc:
            logger.exception("Unexpected error while writing %r to %s", descriptor.path, table)
            task.future.set_exception(exc)
        else:
            task.future.set_result(int(rows[0]["rowid"]))
            logger.debug("Added %s to the %s table", descriptor.name, table)

    @staticmethod
    def _fail(task: WriteTask, error: BaseException, cause: BaseException) -> None:
        error.__cause__ = cause
        task.future.set_exception(error)

    def _cancel_queued_writes(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is _STOP:
                continue
            if item.future.set_running_or_notify_cancel():
                item.future.set_exception(
                    WriteCancelledError(f"Write of {item.descriptor.path!r} cancelled by shutdown")
                )

    def _forget(self, future: Future[int]) -> None:
        with self._state_lock:
            self._pending.discard(future)

    def _require_readers(self) -> ThreadPoolExecutor:
        if self._readers is None or self._shut_down:
            raise ConnectionStateError("The asset manager is not running")
        return self._readers
