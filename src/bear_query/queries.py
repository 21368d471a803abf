"""Query builders for the notes listing and text search.

Both builders are immutable: every builder method returns a new
configuration. ``to_sql()`` turns a configuration into a ``QueryBody``, the
SQL text to run after the normalizing preamble plus its bound parameters.
No I/O happens here.
"""
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field

from bear_query.utils import contains_pattern

NOTE_COLUMNS = (
    "id",
    "unique_id",
    "title",
    "content",
    "created",
    "modified",
    "is_pinned",
    "is_trashed",
    "is_archived",
)


def note_columns(alias: Optional[str] = None) -> str:
    """Select list for the ``notes`` relation, optionally table-qualified."""
    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{column}" for column in NOTE_COLUMNS)


class QueryBody(NamedTuple):
    """SQL text to append to the preamble, with its bound parameters."""

    sql: str
    params: Dict[str, Any]


def visibility_predicates(
    include_trashed: bool, include_archived: bool, alias: Optional[str] = None
) -> List[str]:
    """Predicates hiding trashed/archived notes unless they were asked for."""
    prefix = f"{alias}." if alias else ""
    predicates = []
    if not include_trashed:
        predicates.append(f"{prefix}is_trashed = 0")
    if not include_archived:
        predicates.append(f"{prefix}is_archived = 0")
    return predicates


def where_clause(predicates: List[str]) -> str:
    if not predicates:
        return ""
    return "WHERE " + " AND ".join(predicates)


class NotesQuery(BaseModel):
    """Which notes ``BearDb.notes()`` lists.

    Defaults: the 10 most recently modified notes that are neither trashed
    nor archived.
    """

    limit: Optional[int] = Field(default=10, ge=0, description="Row cap; None for all")
    include_trashed: bool = Field(default=False)
    include_archived: bool = Field(default=False)

    model_config = {"frozen": True, "extra": "forbid"}

    def _replace(self, **changes: Any) -> "NotesQuery":
        return type(self)(**{**self.model_dump(), **changes})

    def with_limit(self, limit: int) -> "NotesQuery":
        """Return at most ``limit`` notes."""
        return self._replace(limit=limit)

    def no_limit(self) -> "NotesQuery":
        """Return every matching note."""
        return self._replace(limit=None)

    def with_trashed(self) -> "NotesQuery":
        """Also return trashed notes."""
        return self._replace(include_trashed=True)

    def with_archived(self) -> "NotesQuery":
        """Also return archived notes."""
        return self._replace(include_archived=True)

    def include_all(self) -> "NotesQuery":
        """Return trashed and archived notes as well."""
        return self._replace(include_trashed=True, include_archived=True)

    def to_where(self, alias: Optional[str] = None) -> List[str]:
        """Filter predicates for this configuration."""
        return visibility_predicates(self.include_trashed, self.include_archived, alias)

    def to_sql(self) -> QueryBody:
        """Compose the query body."""
        params: Dict[str, Any] = {}
        parts = [f"SELECT {note_columns()}", "FROM notes"]
        where = where_clause(self.to_where())
        if where:
            parts.append(where)
        parts.append("ORDER BY modified DESC, id DESC")
        if self.limit is not None:
            parts.append("LIMIT :limit")
            params["limit"] = self.limit
        return QueryBody("\n".join(parts), params)


class SearchScope(str, Enum):
    """Which note fields a search looks at."""

    TITLE = "title"
    CONTENT = "content"
    BOTH = "both"

    @property
    def columns(self) -> List[str]:
        if self is SearchScope.TITLE:
            return ["title"]
        if self is SearchScope.CONTENT:
            return ["content"]
        return ["title", "content"]


class SortField(str, Enum):
    """Column search results are ordered by."""

    MODIFIED = "modified"
    CREATED = "created"
    TITLE = "title"


class SortDirection(str, Enum):
    """Ordering direction."""

    ASC = "asc"
    DESC = "desc"


class SearchQuery(BaseModel):
    """Text search over note titles and/or content.

    Matching is a substring test. Case-insensitive matching uses SQLite's
    ``LIKE``, which folds ASCII letters only. An empty ``text`` matches every
    note that passes the trashed/archived filters.
    """

    text: str = Field(default="", description="Text to look for")
    scope: SearchScope = Field(default=SearchScope.BOTH)
    case_sensitive: bool = Field(default=False)
    limit: Optional[int] = Field(default=50, ge=0, description="Row cap; None for all")
    sort_field: SortField = Field(default=SortField.MODIFIED)
    sort_direction: SortDirection = Field(default=SortDirection.DESC)
    include_trashed: bool = Field(default=False)
    include_archived: bool = Field(default=False)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def for_text(cls, text: str) -> "SearchQuery":
        """Start a search for ``text`` with default options."""
        return cls(text=text)

    def _replace(self, **changes: Any) -> "SearchQuery":
        return type(self)(**{**self.model_dump(), **changes})

    def in_title(self) -> "SearchQuery":
        """Match against titles only."""
        return self._replace(scope=SearchScope.TITLE)

    def in_content(self) -> "SearchQuery":
        """Match against note bodies only."""
        return self._replace(scope=SearchScope.CONTENT)

    def in_both(self) -> "SearchQuery":
        """Match against titles and bodies (the default)."""
        return self._replace(scope=SearchScope.BOTH)

    def with_case_sensitive(self, case_sensitive: bool = True) -> "SearchQuery":
        """Switch between exact-case matching and ASCII case folding."""
        return self._replace(case_sensitive=case_sensitive)

    def with_limit(self, limit: int) -> "SearchQuery":
        """Return at most ``limit`` notes."""
        return self._replace(limit=limit)

    def no_limit(self) -> "SearchQuery":
        """Return every matching note."""
        return self._replace(limit=None)

    def sort_by(
        self, field: SortField, direction: SortDirection = SortDirection.DESC
    ) -> "SearchQuery":
        """Order results by ``field``; ties fall back to the note id."""
        return self._replace(sort_field=SortField(field), sort_direction=SortDirection(direction))

    def with_trashed(self) -> "SearchQuery":
        """Also search trashed notes."""
        return self._replace(include_trashed=True)

    def with_archived(self) -> "SearchQuery":
        """Also search archived notes."""
        return self._replace(include_archived=True)

    def include_all(self) -> "SearchQuery":
        """Search trashed and archived notes as well."""
        return self._replace(include_trashed=True, include_archived=True)

    def match_predicate(self) -> QueryBody:
        """The text-matching predicate alone, with its parameters."""
        if not self.text:
            return QueryBody("1 = 1", {})

        if self.case_sensitive:
            matches = [f"instr({column}, :text) > 0" for column in self.scope.columns]
            params = {"text": self.text}
        else:
            matches = [f"{column} LIKE :pattern ESCAPE '\\'" for column in self.scope.columns]
            params = {"pattern": contains_pattern(self.text)}

        if len(matches) == 1:
            return QueryBody(matches[0], params)
        return QueryBody("(" + " OR ".join(matches) + ")", params)

    def to_sql(self) -> QueryBody:
        """Compose the query body."""
        match = self.match_predicate()
        params = dict(match.params)
        predicates = [match.sql] + visibility_predicates(
            self.include_trashed, self.include_archived
        )
        direction = self.sort_direction.value.upper()
        parts = [
            f"SELECT {note_columns()}",
            "FROM notes",
            where_clause(predicates),
            f"ORDER BY {self.sort_field.value} {direction}, id {direction}",
        ]
        if self.limit is not None:
            parts.append("LIMIT :limit")
            params["limit"] = self.limit
        return QueryBody("\n".join(parts), params)
