"""Custom exceptions for bear-query.

Provides a structured exception hierarchy with error codes and
machine-readable error information so callers can tell environment,
connection, schema and execution failures apart.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Environment errors (1xxx)
    NO_HOME_DIRECTORY = 1001

    # Connection errors (2xxx)
    DATABASE_NOT_FOUND = 2001
    DATABASE_UNREADABLE = 2002
    DATABASE_BUSY = 2003

    # Schema errors (3xxx)
    JUNCTION_TABLE_NOT_FOUND = 3001
    JUNCTION_COLUMNS_MISSING = 3002
    JUNCTION_COLUMNS_AMBIGUOUS = 3003

    # Execution errors (4xxx)
    QUERY_FAILED = 4001
    ROW_MAPPING_FAILED = 4002
    MATERIALIZATION_FAILED = 4003

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class BearQueryError(Exception):
    """Base exception for all bear-query errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.QUERY_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class NoHomeDirectoryError(BearQueryError):
    """Raised when the user's home directory cannot be determined."""

    def __init__(self, message: str = "Unable to load the user's home directory"):
        super().__init__(message, code=ErrorCode.NO_HOME_DIRECTORY)


class DatabaseNotFoundError(BearQueryError):
    """Raised when the database file is missing or cannot be opened."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.DATABASE_NOT_FOUND,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if path:
            # Only the file name; the full path includes the user's home
            details["path_hint"] = path.replace("\\", "/").split("/")[-1]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = path
        self.original_error = original_error


class DatabaseBusyError(BearQueryError):
    """Raised when the database stays locked past the busy-wait bound."""

    def __init__(
        self,
        message: str,
        timeout_ms: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if timeout_ms is not None:
            details["timeout_ms"] = timeout_ms
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.DATABASE_BUSY, details=details)
        self.timeout_ms = timeout_ms
        self.original_error = original_error


class SchemaDiscoveryError(BearQueryError):
    """Raised when the physical schema does not have the expected shape.

    Attributes:
        table: The junction table being inspected, if known
        columns: The columns found on that table, if any
    """

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        columns: Optional[list] = None,
        code: ErrorCode = ErrorCode.JUNCTION_COLUMNS_AMBIGUOUS
    ):
        details: Dict[str, Any] = {}
        if table:
            details["table"] = table
        if columns is not None:
            details["columns"] = list(columns)

        super().__init__(message, code=code, details=details)
        self.table = table
        self.columns = list(columns) if columns is not None else []


class QueryExecutionError(BearQueryError):
    """Raised when SQLite rejects or fails a statement.

    The engine's own message is kept in ``engine_message`` for diagnosis.
    """

    def __init__(
        self,
        message: str,
        engine_message: Optional[str] = None,
        sql: Optional[str] = None,
        code: ErrorCode = ErrorCode.QUERY_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if engine_message:
            details["engine_message"] = engine_message
        if sql:
            details["sql"] = " ".join(sql.split())[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.engine_message = engine_message
        self.sql = sql
        self.original_error = original_error


class QueryMaterializationError(BearQueryError):
    """Raised when a generic query result cannot be turned into a table."""

    def __init__(self, message: str, column: Optional[str] = None):
        details = {}
        if column:
            details["column"] = column

        super().__init__(message, code=ErrorCode.MATERIALIZATION_FAILED, details=details)
        self.column = column


class ConfigurationError(BearQueryError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
