"""
bear-query - read-only, minimal-contention access to Bear's SQLite database.

Bear keeps its notes in a Core Data store whose table and column names shift
between releases. This package discovers the physical layout at startup,
layers stable logical relations (notes, tags, note_tags, note_links) over it,
and runs every query on a short-lived read-only connection so Bear's own
writes are never held up for longer than a single query.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bear-query")
except PackageNotFoundError:
    __version__ = "0.3.0"

from bear_query.db import BearDb
from bear_query.exceptions import (
    BearQueryError,
    ConfigurationError,
    DatabaseBusyError,
    DatabaseNotFoundError,
    ErrorCode,
    NoHomeDirectoryError,
    QueryExecutionError,
    QueryMaterializationError,
    SchemaDiscoveryError,
)
from bear_query.models.schema import Note, NoteId, Tag, TagCollection, TagId
from bear_query.queries import (
    NotesQuery,
    QueryBody,
    SearchQuery,
    SearchScope,
    SortDirection,
    SortField,
)

__all__ = [
    "__version__",
    "BearDb",
    "BearQueryError",
    "ConfigurationError",
    "DatabaseBusyError",
    "DatabaseNotFoundError",
    "ErrorCode",
    "NoHomeDirectoryError",
    "Note",
    "NoteId",
    "NotesQuery",
    "QueryBody",
    "QueryExecutionError",
    "QueryMaterializationError",
    "SchemaDiscoveryError",
    "SearchQuery",
    "SearchScope",
    "SortDirection",
    "SortField",
    "Tag",
    "TagCollection",
    "TagId",
]
