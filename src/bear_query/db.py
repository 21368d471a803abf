"""Read-only query API over Bear's database.

Every public method follows the same pattern: build a query body, open a
connection through the ``ConnectionGuard``, run the cached normalizing
preamble plus the body with bound parameters, map the rows, and close the
connection before returning a fully materialized result.

Two calls see two independent snapshots of the file; Bear may write in
between, so e.g. ``note_tags()`` can mention a note that ``notes()`` no longer
returns.
"""
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Set, TypeVar, Union

import pandas as pd
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError

from bear_query.config import BearQueryConfig, config
from bear_query.exceptions import ConfigurationError, ErrorCode, QueryExecutionError
from bear_query.models.schema import Note, NoteId, Tag, TagCollection, TagId
from bear_query.observability import traced
from bear_query.queries import (
    NotesQuery,
    QueryBody,
    SearchQuery,
    note_columns,
    visibility_predicates,
    where_clause,
)
from bear_query.storage.connection import ConnectionGuard, translate_engine_error
from bear_query.storage.schema_discovery import SchemaLayout, discover_schema_layout
from bear_query.storage.tabular import read_frame
from bear_query.storage.views import compose_sql, generate_preamble

logger = logging.getLogger(__name__)

T = TypeVar("T")

NoteRef = Union[NoteId, int]
TagRef = Union[TagId, int]


class BearDb:
    """Handle to Bear's database.

    Creating a handle discovers the physical schema once (on a connection
    that is closed again immediately) and caches the normalizing preamble.
    No connection is kept between calls.

    Example:
        db = BearDb()
        tags = db.tags()
        for note in db.notes(NotesQuery().with_limit(5)):
            print(note.title, tags.names(db.note_tags(note.id)))
    """

    def __init__(
        self,
        database_path: Optional[Union[str, Path]] = None,
        busy_timeout_ms: Optional[int] = None,
        junction_table: Optional[str] = None,
        settings: Optional[BearQueryConfig] = None,
    ) -> None:
        """Create a handle and discover the schema.

        Args:
            database_path: Database file; defaults to the configured path or
                Bear's standard location under the home directory.
            busy_timeout_ms: Busy-wait bound; defaults to the configured value.
            junction_table: Known notes-to-tags junction table name, skipping
                table discovery.
            settings: Configuration to read defaults from (global ``config``
                when omitted).

        Raises:
            NoHomeDirectoryError: If the default location is needed and the
                home directory cannot be determined.
            DatabaseNotFoundError: If the file is missing or unreadable.
            DatabaseBusyError: If the file stays locked past the busy bound.
            SchemaDiscoveryError: If the junction table cannot be understood.
            ConfigurationError: If ``busy_timeout_ms`` is not positive.
        """
        settings = settings or config
        if database_path is not None:
            path = Path(database_path)
        else:
            path = settings.resolve_database_path()

        timeout = busy_timeout_ms if busy_timeout_ms is not None else settings.busy_timeout_ms
        if timeout <= 0:
            raise ConfigurationError(
                "busy_timeout_ms must be > 0", config_key="busy_timeout_ms"
            )

        self._guard = ConnectionGuard(path, busy_timeout_ms=timeout)
        table = junction_table or settings.junction_table

        def discover(connection: Connection) -> SchemaLayout:
            try:
                return discover_schema_layout(connection, table)
            except DBAPIError as e:
                raise translate_engine_error(e, timeout_ms=timeout) from e

        self._layout = self._guard.with_connection(discover)
        self._preamble = generate_preamble(self._layout)

    def __repr__(self) -> str:
        return f"BearDb(database_path='{self.database_path}')"

    @property
    def database_path(self) -> Path:
        """Path of the database file this handle reads."""
        return self._guard.database_path

    @property
    def layout(self) -> SchemaLayout:
        """Junction layout discovered when the handle was created."""
        return self._layout

    @property
    def preamble(self) -> str:
        """Normalizing ``WITH`` clause prepended to every query."""
        return self._preamble

    @property
    def guard(self) -> ConnectionGuard:
        """The connection guard all queries go through."""
        return self._guard

    def close(self) -> None:
        """Release the engine. Connections are already closed after each call."""
        self._guard.dispose()

    def __enter__(self) -> "BearDb":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    def _fetch(self, body: QueryBody, mapper: Callable[[Any], T]) -> List[T]:
        """Run preamble + body on a fresh connection and map every row."""
        sql = compose_sql(self._preamble, body.sql)
        timeout = self._guard.busy_timeout_ms

        def operation(connection: Connection) -> List[T]:
            try:
                rows = connection.execute(text(sql), body.params).mappings().all()
            except DBAPIError as e:
                raise translate_engine_error(e, sql=body.sql, timeout_ms=timeout) from e
            try:
                return [mapper(row) for row in rows]
            except (ValidationError, KeyError, TypeError, ValueError) as e:
                raise QueryExecutionError(
                    f"Could not map result row: {e}",
                    engine_message=str(e),
                    sql=body.sql,
                    code=ErrorCode.ROW_MAPPING_FAILED,
                    original_error=e,
                ) from e

        return self._guard.with_connection(operation)

    # ------------------------------------------------------------------
    # Typed API
    # ------------------------------------------------------------------

    @traced("tags")
    def tags(self) -> TagCollection:
        """Retrieve every tag, keyed by id."""
        body = QueryBody("SELECT id, name, modified FROM tags ORDER BY name ASC", {})
        return TagCollection(self._fetch(body, Tag.from_row))

    @traced("note")
    def note(self, note_id: NoteRef) -> Optional[Note]:
        """Retrieve one note by id, trashed and archived notes included.

        Returns:
            The note, or None when no note has that id.
        """
        body = QueryBody(
            f"SELECT {note_columns()} FROM notes WHERE id = :note_id",
            {"note_id": int(note_id)},
        )
        notes = self._fetch(body, Note.from_row)
        return notes[0] if notes else None

    @traced("note_by_unique_id")
    def note_by_unique_id(self, unique_id: str) -> Optional[Note]:
        """Retrieve one note by Bear's UUID (as used in ``bear://`` links)."""
        body = QueryBody(
            f"SELECT {note_columns()} FROM notes WHERE unique_id = :unique_id",
            {"unique_id": unique_id},
        )
        notes = self._fetch(body, Note.from_row)
        return notes[0] if notes else None

    @traced("notes")
    def notes(self, query: Optional[NotesQuery] = None) -> List[Note]:
        """List notes, most recently modified first.

        Args:
            query: Filters and row cap; ``NotesQuery()`` (10 visible notes)
                when omitted.
        """
        query = query or NotesQuery()
        return self._fetch(query.to_sql(), Note.from_row)

    @traced("search")
    def search(self, query: SearchQuery) -> List[Note]:
        """Find notes whose title and/or content contain the search text."""
        return self._fetch(query.to_sql(), Note.from_row)

    @traced("note_links")
    def note_links(self, note_id: NoteRef) -> List[Note]:
        """Retrieve the notes the given note links to.

        Trashed and archived targets are left out.
        """
        predicates = ["nl.from_note_id = :note_id"] + visibility_predicates(
            False, False, alias="n"
        )
        body = QueryBody(
            "\n".join([
                f"SELECT {note_columns('n')}",
                "FROM note_links AS nl",
                "JOIN notes AS n ON n.id = nl.to_note_id",
                where_clause(predicates),
                "ORDER BY n.modified DESC, n.id DESC",
            ]),
            {"note_id": int(note_id)},
        )
        return self._fetch(body, Note.from_row)

    @traced("backlinks")
    def backlinks(self, note_id: NoteRef) -> List[Note]:
        """Retrieve the notes that link to the given note.

        Trashed and archived sources are left out.
        """
        predicates = ["nl.to_note_id = :note_id"] + visibility_predicates(
            False, False, alias="n"
        )
        body = QueryBody(
            "\n".join([
                f"SELECT {note_columns('n')}",
                "FROM note_links AS nl",
                "JOIN notes AS n ON n.id = nl.from_note_id",
                where_clause(predicates),
                "ORDER BY n.modified DESC, n.id DESC",
            ]),
            {"note_id": int(note_id)},
        )
        return self._fetch(body, Note.from_row)

    @traced("note_tags")
    def note_tags(self, note_id: NoteRef) -> Set[TagId]:
        """Retrieve the ids of the tags attached to a note."""
        body = QueryBody(
            "SELECT tag_id FROM note_tags WHERE note_id = :note_id",
            {"note_id": int(note_id)},
        )
        tag_ids = self._fetch(body, lambda row: row["tag_id"])
        return {TagId(tag_id) for tag_id in tag_ids if tag_id is not None}

    @traced("notes_with_tag")
    def notes_with_tag(
        self, tag_id: TagRef, query: Optional[NotesQuery] = None
    ) -> List[Note]:
        """List notes carrying a tag, filtered and capped like ``notes()``."""
        query = query or NotesQuery()
        params: dict = {"tag_id": int(tag_id)}
        parts = [
            f"SELECT DISTINCT {note_columns('n')}",
            "FROM notes AS n",
            "JOIN note_tags AS nt ON nt.note_id = n.id",
            where_clause(["nt.tag_id = :tag_id"] + query.to_where(alias="n")),
            "ORDER BY n.modified DESC, n.id DESC",
        ]
        if query.limit is not None:
            parts.append("LIMIT :limit")
            params["limit"] = query.limit
        return self._fetch(QueryBody("\n".join(parts), params), Note.from_row)

    # ------------------------------------------------------------------
    # Generic SQL
    # ------------------------------------------------------------------

    @traced("query")
    def query(self, sql: str) -> pd.DataFrame:
        """Run caller-supplied SQL against the normalized relations.

        ``sql`` may reference ``notes``, ``tags``, ``note_tags`` and
        ``note_links`` and may open with its own ``WITH`` clause. It is
        trusted and not inspected: anything that tries to write fails when
        SQLite executes it (``query_only``), raising QueryExecutionError.

        Returns:
            Every result row in a DataFrame, one column per result column.

        Raises:
            QueryExecutionError: If SQLite rejects or fails the statement.
            QueryMaterializationError: If two result columns share a name.
        """
        full_sql = compose_sql(self._preamble, sql)
        timeout = self._guard.busy_timeout_ms

        def operation(connection: Connection) -> pd.DataFrame:
            try:
                return read_frame(connection, full_sql)
            except DBAPIError as e:
                raise translate_engine_error(e, sql=sql, timeout_ms=timeout) from e

        return self._guard.with_connection(operation)
