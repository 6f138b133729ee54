"""SchemaCatalog backed by a SQLAlchemy engine.

Relations are reflected with :func:`sqlalchemy.inspect`; statements run as
raw driver SQL on a worker thread so a timeout can be enforced regardless of
driver support.  A statement that times out is also cancelled through its
driver connection so the worker is freed.

Example::

    from sqlalchemy import create_engine
    from guardql.catalog.sqlalchemy_catalog import SQLAlchemyCatalog

    engine = create_engine("mssql+pyodbc://user:pw@dsn")
    catalog = SQLAlchemyCatalog(engine, lambda: policy_store.current)
    snapshot = catalog.describe()
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine, inspect
from sqlalchemy.exc import SQLAlchemyError

from guardql.catalog.base import SchemaCatalog
from guardql.errors import ExecutionError, ProbeTimeoutError
from guardql.policy.config import PolicyConfig
from guardql.schema.catalog import CatalogSnapshot, ColumnInfo, ExecutionResult, RelationInfo

logger = logging.getLogger(__name__)


class SQLAlchemyCatalog(SchemaCatalog):
    """Reflects and queries a database through SQLAlchemy.

    Args:
        engine: A :class:`sqlalchemy.engine.Engine`.
        policy: Zero-argument callable returning the policy in force (e.g.
            ``PolicyStore``'s ``current`` via ``lambda: store.current``).
            Used to drop excluded relations from :meth:`describe`.
        schema: Optional database schema to reflect (e.g. ``"dbo"``).
        include_views: Whether views are listed alongside tables.
        max_workers: Size of the worker pool used for timed execution.
    """

    def __init__(
        self,
        engine: Engine,
        policy: Callable[[], PolicyConfig] | None = None,
        *,
        schema: str | None = None,
        include_views: bool = True,
        max_workers: int = 4,
    ) -> None:
        self._engine = engine
        self._policy = policy or PolicyConfig
        self._schema = schema
        self._include_views = include_views
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="guardql-probe"
        )

    def describe(self) -> CatalogSnapshot:
        policy = self._policy()
        try:
            inspector = inspect(self._engine)
            names = list(inspector.get_table_names(schema=self._schema))
            if self._include_views:
                names.extend(inspector.get_view_names(schema=self._schema))
            relations = [
                RelationInfo(
                    name=name,
                    columns=[
                        ColumnInfo(name=col["name"], type=str(col["type"]))
                        for col in inspector.get_columns(name, schema=self._schema)
                    ],
                )
                for name in names
                if not policy.is_excluded(name)
            ]
        except SQLAlchemyError as exc:
            raise ExecutionError(_database_message(exc)) from exc
        return CatalogSnapshot(relations=relations)

    def execute(self, sql: str, timeout: float | None = None) -> ExecutionResult:
        statement = _Statement(sql, timeout)
        future = self._executor.submit(self._run, statement)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError as exc:
            future.cancel()
            statement.cancel()
            logger.warning("Statement exceeded %.1fs timeout", timeout)
            raise ProbeTimeoutError(f"Statement exceeded {timeout}s timeout.", sql) from exc

    def close(self) -> None:
        """Shut down the worker pool without waiting for running statements."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _run(self, statement: _Statement) -> ExecutionResult:
        started = time.perf_counter()
        try:
            with self._engine.connect() as conn:
                with statement.attached(conn.connection.dbapi_connection):
                    result = conn.exec_driver_sql(statement.sql)
                    if result.returns_rows:
                        columns = list(result.keys())
                        rows = [dict(row._mapping) for row in result]
                    else:
                        columns, rows = [], []
        except SQLAlchemyError as exc:
            raise ExecutionError(_database_message(exc), statement.sql) from exc
        elapsed = int((time.perf_counter() - started) * 1000)
        return ExecutionResult(
            columns=columns, rows=rows, total_count=len(rows), execution_time_ms=elapsed
        )


@dataclass
class _Statement:
    """A statement handed to a worker, cancellable from the calling thread.

    A timed-out statement is stopped in the database: ``interrupt()``
    (sqlite3) or ``cancel()`` (psycopg, oracledb) is called on the driver
    connection running it.  Drivers with a connection-level ``timeout``
    attribute (pyodbc) also get the timeout as their own query timeout.
    """

    sql: str
    timeout: float | None = None
    cancelled: bool = False
    _dbapi_connection: Any = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @contextmanager
    def attached(self, dbapi_connection: Any) -> Iterator[None]:
        with self._lock:
            if self.cancelled:
                raise ProbeTimeoutError("Statement was cancelled before it started.", self.sql)
            self._dbapi_connection = dbapi_connection
        previous = getattr(dbapi_connection, "timeout", None)
        driver_timeout = isinstance(previous, int) and self.timeout is not None
        if driver_timeout:
            dbapi_connection.timeout = math.ceil(self.timeout)
        try:
            yield
        finally:
            with self._lock:
                self._dbapi_connection = None
            if driver_timeout:
                dbapi_connection.timeout = previous

    def cancel(self) -> None:
        with self._lock:
            self.cancelled = True
            dbapi_connection = self._dbapi_connection
        if dbapi_connection is None:
            return
        for name in ("interrupt", "cancel"):
            stop = getattr(dbapi_connection, name, None)
            if callable(stop):
                logger.debug("Calling %s() on the driver connection", name)
                stop()
                return


def _database_message(exc: SQLAlchemyError) -> str:
    """The driver's own message, without SQLAlchemy's statement echo."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)
