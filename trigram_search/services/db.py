# trigram_search/services/db.py
# Responsibility: Async data-store interface and its PostgreSQL implementation.

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import psycopg2
from psycopg2.extensions import QueryCanceledError
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from trigram_search.config.settings import settings
from trigram_search.services.cancellation import CancellationToken, run_cancellable
from trigram_search.services.errors import SearchCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
Row = Dict[str, Any]


class DataStore(ABC):
    """
    What the search engine needs from a database.

    Implementations must be safe for concurrent use by many searches at once.
    Every call accepts an optional cancellation token; when it fires before
    the call completes, the call raises SearchCancelled.
    """

    @abstractmethod
    async def query(self, statement: str, params: Optional[Sequence[Any]] = None,
                    cancellation: Optional[CancellationToken] = None) -> List[Row]:
        """Runs a statement and returns its rows as dicts."""

    @abstractmethod
    async def execute(self, statement: str, params: Optional[Sequence[Any]] = None,
                      cancellation: Optional[CancellationToken] = None) -> None:
        """Runs a statement, discarding any rows."""

    @abstractmethod
    async def transaction(self, body: Callable[["DataStore"], Awaitable[T]],
                          cancellation: Optional[CancellationToken] = None) -> T:
        """
        Runs `body` with a handle scoped to one transaction. Commits when
        `body` returns, rolls back when it raises.
        """


def _run_statement(conn, statement: str, params: Optional[Sequence[Any]], fetch: bool) -> Optional[List[Row]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(statement, tuple(params) if params is not None else None)
        if fetch:
            return [dict(row) for row in cur.fetchall()]
    return None


async def _run_on_connection(conn, statement: str, params: Optional[Sequence[Any]], fetch: bool,
                             cancellation: Optional[CancellationToken]) -> Optional[List[Row]]:
    """
    Runs one statement on a worker thread. A fired token asks the server to
    cancel the running statement, so the thread (and the connection) is freed
    before SearchCancelled is raised.
    """
    if cancellation is None:
        return await asyncio.to_thread(_run_statement, conn, statement, params, fetch)

    cancellation.raise_if_cancelled()
    loop = asyncio.get_running_loop()
    cancel_requests: List["asyncio.Future[None]"] = []

    def request_cancel() -> None:
        # connection.cancel() opens its own socket to the server; keep it off the loop
        cancel_requests.append(loop.run_in_executor(None, conn.cancel))

    remove = cancellation.on_cancel(request_cancel)
    try:
        return await asyncio.to_thread(_run_statement, conn, statement, params, fetch)
    except QueryCanceledError as e:
        if cancellation.cancelled:
            raise SearchCancelled() from e
        raise
    finally:
        remove()
        for outcome in await asyncio.gather(*cancel_requests, return_exceptions=True):
            if isinstance(outcome, Exception):
                logger.warning("[DB] Cancel request failed: %r", outcome)


class _ConnectionHandle(DataStore):
    """A DataStore bound to a single connection inside an open transaction."""

    def __init__(self, conn):
        self.conn = conn

    async def query(self, statement, params=None, cancellation=None):
        return await _run_on_connection(self.conn, statement, params, True, cancellation)

    async def execute(self, statement, params=None, cancellation=None):
        await _run_on_connection(self.conn, statement, params, False, cancellation)

    async def transaction(self, body, cancellation=None):
        # Already inside one; nested bodies share it
        return await body(self)


class PostgresDataStore(DataStore):
    """
    psycopg2-backed data store.

    psycopg2 is blocking, so statements run on worker threads while the event
    loop keeps serving other searches. Connections come from a thread-safe pool.
    The pool raises instead of blocking when it is exhausted, so callers
    queue on a semaphore sized to the pool until a connection is free.

    Usage:
        store = PostgresDataStore()
        rows = await store.query("SELECT * FROM t WHERE id = %s", [1])
    """

    def __init__(self, dsn: Optional[str] = None, min_connections: Optional[int] = None,
                 max_connections: Optional[int] = None):
        max_connections = max_connections or settings.DB.POOL_MAX_CONNECTIONS
        self.pool = ThreadedConnectionPool(
            min_connections or settings.DB.POOL_MIN_CONNECTIONS,
            max_connections,
            dsn or settings.DB.URL,
        )
        self._slots = asyncio.Semaphore(max_connections)

    def _acquire(self):
        conn = self.pool.getconn()
        conn.autocommit = False  # Explicit transaction management
        return conn

    def _release(self, conn, broken: bool = False) -> None:
        self.pool.putconn(conn, close=broken or conn.closed != 0)

    async def query(self, statement, params=None, cancellation=None):
        return await self.transaction(lambda tx: tx.query(statement, params, cancellation), cancellation)

    async def execute(self, statement, params=None, cancellation=None):
        await self.transaction(lambda tx: tx.execute(statement, params, cancellation), cancellation)

    async def transaction(self, body, cancellation=None):
        # Waiting for a free connection is abandoned as soon as the token fires
        await run_cancellable(self._slots.acquire(), cancellation)
        try:
            conn = await asyncio.to_thread(self._acquire)
            broken = False
            try:
                result = await body(_ConnectionHandle(conn))
                await asyncio.to_thread(conn.commit)
                return result
            except BaseException as e:
                try:
                    await asyncio.to_thread(conn.rollback)
                    logger.debug("[DB] Transaction rolled back due to error: %r", e)
                except psycopg2.Error:
                    broken = True
                    logger.warning("[DB] Rollback failed; discarding connection", exc_info=True)
                raise
            finally:
                self._release(conn, broken)
        finally:
            self._slots.release()

    def close(self) -> None:
        self.pool.closeall()
