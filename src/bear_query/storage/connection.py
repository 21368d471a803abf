"""Short-lived, read-only connections to Bear's database.

Bear writes to its database while we read it, and it does not run SQLite in
WAL mode, so a reader holding the file open also holds Bear's writers off.
Every query therefore gets its own connection, opened immediately before the
work and closed right after it:

1. The file is opened in URI mode with ``mode=ro``.
2. A bounded busy wait (``PRAGMA busy_timeout``) rides out Bear's brief
   write locks instead of failing at once or blocking forever.
3. ``PRAGMA query_only = ON`` makes SQLite itself refuse writes, even if a
   statement slips past the read-only open mode.
4. ``NullPool`` keeps SQLAlchemy from holding idle connections, so closing
   the connection really closes the file handle.
"""
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar, Union

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError
from sqlalchemy.pool import NullPool

from bear_query.config import DEFAULT_BUSY_TIMEOUT_MS
from bear_query.exceptions import (
    BearQueryError,
    DatabaseBusyError,
    DatabaseNotFoundError,
    ErrorCode,
    QueryExecutionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BUSY_MARKERS = ("database is locked", "database table is locked", "database is busy")


def is_busy_error(error: BaseException) -> bool:
    """Check whether an engine error means the file was locked by a writer."""
    orig = getattr(error, "orig", None) or error
    if isinstance(orig, sqlite3.OperationalError):
        message = str(orig).lower()
        return any(marker in message for marker in _BUSY_MARKERS)
    return False


def engine_message(error: BaseException) -> str:
    """Return SQLite's own message for an error, without SQLAlchemy's wrapping."""
    orig = getattr(error, "orig", None)
    return str(orig if orig is not None else error)


def translate_engine_error(
    error: Union[DBAPIError, sqlite3.Error],
    sql: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> BearQueryError:
    """Map an engine failure raised while running a statement to our taxonomy.

    Args:
        error: The SQLAlchemy (or raw sqlite3) exception.
        sql: The statement that failed, for diagnostics.
        timeout_ms: The busy bound that was in effect.

    Returns:
        DatabaseBusyError for lock timeouts, QueryExecutionError otherwise.
    """
    message = engine_message(error)
    if is_busy_error(error):
        return DatabaseBusyError(
            f"Database stayed locked for longer than {timeout_ms} ms",
            timeout_ms=timeout_ms,
            original_error=error,
        )
    return QueryExecutionError(
        f"Query execution failed: {message}",
        engine_message=message,
        sql=sql,
        code=ErrorCode.QUERY_FAILED,
        original_error=error,
    )


class ConnectionGuard:
    """The only way to get a connection to the database file.

    The guard keeps a connection *factory*, never a connection: each
    ``with_connection`` call opens one, hands it to the operation and closes
    it before returning, whether the operation succeeds or raises.

    Attributes:
        opened: Number of connections opened over the guard's lifetime.
        closed: Number of connections closed over the guard's lifetime.
    """

    def __init__(
        self,
        database_path: Union[str, Path],
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        """Initialize the guard. No file is opened here.

        Args:
            database_path: Filesystem path to the SQLite database.
            busy_timeout_ms: Upper bound on waiting for a locked file.
        """
        self.database_path = Path(database_path).expanduser().absolute()
        self.busy_timeout_ms = busy_timeout_ms
        self._uri = f"{self.database_path.as_uri()}?mode=ro"
        self._lock = threading.Lock()
        self.opened = 0
        self.closed = 0

        self._engine = create_engine(
            "sqlite://",
            creator=self._open_dbapi_connection,
            poolclass=NullPool,
        )

        # Apply the read-only safeguards on every new connection
        @event.listens_for(self._engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            cursor.execute("PRAGMA query_only = ON")
            cursor.close()

    def _open_dbapi_connection(self) -> sqlite3.Connection:
        """Open the raw DB-API connection (engine ``creator`` callback)."""
        # check_same_thread=False: the connection never outlives the call that
        # opened it, so it cannot be shared between threads anyway
        return sqlite3.connect(
            self._uri,
            uri=True,
            timeout=self.busy_timeout_ms / 1000.0,
            check_same_thread=False,
        )

    def resolve_path(self) -> Path:
        """Resolve the database file, requiring that it exists.

        Raises:
            DatabaseNotFoundError: If the path cannot be resolved.
        """
        try:
            resolved = self.database_path.resolve(strict=True)
        except OSError as e:
            raise DatabaseNotFoundError(
                f"Could not resolve database path '{self.database_path}': {e}",
                path=str(self.database_path),
                code=ErrorCode.DATABASE_NOT_FOUND,
                original_error=e,
            ) from e
        if not resolved.is_file():
            raise DatabaseNotFoundError(
                f"Database path '{resolved}' is not a file",
                path=str(resolved),
                code=ErrorCode.DATABASE_NOT_FOUND,
            )
        return resolved

    def _connect(self) -> Connection:
        """Open a connection, mapping open failures to our error kinds."""
        resolved = self.resolve_path()
        try:
            connection = self._engine.connect()
        except DBAPIError as e:
            if is_busy_error(e):
                raise DatabaseBusyError(
                    f"Database stayed locked for longer than {self.busy_timeout_ms} ms",
                    timeout_ms=self.busy_timeout_ms,
                    original_error=e,
                ) from e
            raise DatabaseNotFoundError(
                f"Failed to open database at '{resolved}': {engine_message(e)}",
                path=str(resolved),
                code=ErrorCode.DATABASE_UNREADABLE,
                original_error=e,
            ) from e

        with self._lock:
            self.opened += 1
        logger.debug(f"Opened read-only connection to {resolved.name}")
        return connection

    def _release(self, connection: Connection) -> None:
        """Close a connection; with NullPool this closes the file handle too."""
        try:
            connection.close()
        finally:
            with self._lock:
                self.closed += 1
            logger.debug("Closed read-only connection")

    def with_connection(self, operation: Callable[[Connection], T]) -> T:
        """Run one unit of work on a fresh read-only connection.

        The connection is closed before this method returns, on success and
        on failure alike. Failures raised by ``operation`` propagate unchanged.

        Args:
            operation: Callable receiving the live connection. Whatever it
                returns must not depend on the connection staying open.

        Returns:
            The operation's result.

        Raises:
            DatabaseNotFoundError: If the file is missing or cannot be opened.
            DatabaseBusyError: If the file stays locked past the busy bound
                while opening.
        """
        connection = self._connect()
        try:
            return operation(connection)
        finally:
            self._release(connection)

    @property
    def open_connections(self) -> int:
        """Connections currently open through this guard (0 between calls)."""
        with self._lock:
            return self.opened - self.closed

    def dispose(self) -> None:
        """Release the engine. NullPool holds no connections, so none close here."""
        self._engine.dispose()
