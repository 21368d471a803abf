"""Data models for Bear's notes and tags.

Identifiers wrap Core Data primary keys (``Z_PK``). Timestamps arrive from
the normalizing relations as calendar text and leave this module only as
timezone-aware UTC datetimes.
"""

import datetime
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator

# Core Data stores seconds relative to 2001-01-01T00:00:00Z
CORE_DATA_EPOCH = datetime.datetime(2001, 1, 1, tzinfo=timezone.utc)
UNIX_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=timezone.utc)

# Host epoch minus Unix epoch in seconds (978307200), computed once
CORE_DATA_EPOCH_OFFSET = int((CORE_DATA_EPOCH - UNIX_EPOCH).total_seconds())


def from_core_data_timestamp(seconds: float) -> datetime.datetime:
    """Convert a raw Core Data timestamp to a UTC datetime.

    Args:
        seconds: Seconds since 2001-01-01T00:00:00Z, as Bear stores them.

    Returns:
        The corresponding timezone-aware datetime.
    """
    return CORE_DATA_EPOCH + datetime.timedelta(seconds=seconds)


def to_core_data_timestamp(value: datetime.datetime) -> float:
    """Convert a datetime to Core Data seconds. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - CORE_DATA_EPOCH).total_seconds()


def parse_calendar_time(value: Any) -> Optional[datetime.datetime]:
    """Parse a calendar timestamp rendered by SQLite's ``strftime()``.

    SQLite renders ``YYYY-MM-DD HH:MM:SS.SSS`` in UTC without an offset; the
    result is returned timezone-aware. Numbers are rejected so that a raw
    epoch-relative value can never be mistaken for calendar time.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.datetime.fromisoformat(value.strip().replace(" ", "T", 1))
    else:
        raise ValueError(
            f"Expected calendar time text, got {type(value).__name__}: {value!r}"
        )
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True, order=True)
class NoteId:
    """Identity of a Bear note.

    Wraps the note's primary key. The note's UUID (``ZUNIQUEIDENTIFIER``,
    used by Bear's x-callback-url scheme) rides along when known but does not
    take part in equality, ordering or hashing.
    """

    value: int
    unique_id: Optional[str] = field(default=None, compare=False)

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, order=True)
class TagId:
    """Identity of a Bear tag (its primary key)."""

    value: int

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


class Note(BaseModel):
    """Immutable snapshot of one row of the ``notes`` relation."""

    id: NoteId = Field(..., description="Primary key, plus UUID when known")
    title: Optional[str] = Field(default=None, description="Note title")
    content: Optional[str] = Field(default=None, description="Markdown body")
    created: datetime.datetime = Field(..., description="Creation time (UTC)")
    modified: datetime.datetime = Field(..., description="Last modification (UTC)")
    is_pinned: bool = Field(default=False)
    is_trashed: bool = Field(default=False)
    is_archived: bool = Field(default=False)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("created", "modified", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> Optional[datetime.datetime]:
        """Accept only calendar time, never raw epoch numbers."""
        return parse_calendar_time(v)

    @property
    def unique_id(self) -> Optional[str]:
        """Bear's UUID for the note, if it was selected."""
        return self.id.unique_id

    @classmethod
    def from_row(cls, row: Mapping) -> "Note":
        """Build a note from a row of the ``notes`` relation."""
        return cls(
            id=NoteId(row["id"], row.get("unique_id")),
            title=row["title"],
            content=row["content"],
            created=row["created"],
            modified=row["modified"],
            is_pinned=row["is_pinned"],
            is_trashed=row["is_trashed"],
            is_archived=row["is_archived"],
        )


class Tag(BaseModel):
    """Immutable snapshot of one row of the ``tags`` relation.

    Tag names are hierarchical, using ``/`` as separator
    (``work``, ``work/projects``).
    """

    id: TagId = Field(..., description="Primary key")
    name: Optional[str] = Field(default=None, description="Tag path")
    modified: Optional[datetime.datetime] = Field(
        default=None, description="Last modification (UTC), if recorded"
    )

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("modified", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> Optional[datetime.datetime]:
        """Accept only calendar time, never raw epoch numbers."""
        return parse_calendar_time(v)

    @property
    def path(self) -> Tuple[str, ...]:
        """Segments of the tag name; empty for an unnamed tag."""
        if not self.name:
            return ()
        return tuple(part for part in self.name.split("/") if part)

    @property
    def parent_name(self) -> Optional[str]:
        """Name of the enclosing tag, or None for a top-level tag."""
        segments = self.path
        if len(segments) < 2:
            return None
        return "/".join(segments[:-1])

    @classmethod
    def from_row(cls, row: Mapping) -> "Tag":
        """Build a tag from a row of the ``tags`` relation."""
        return cls(id=TagId(row["id"]), name=row["name"], modified=row["modified"])

    def __str__(self) -> str:
        return self.name or ""


class TagCollection(Mapping):
    """Read-only mapping of tag ids to tags, built fresh by each ``tags()`` call."""

    def __init__(self, tags: Iterable[Tag]):
        by_id: Dict[TagId, Tag] = {tag.id: tag for tag in tags}
        self._tags = MappingProxyType(by_id)

    def __getitem__(self, tag_id: TagId) -> Tag:
        return self._tags[tag_id]

    def __iter__(self) -> Iterator[TagId]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"TagCollection({len(self._tags)} tags)"

    def names(self, tag_ids: Iterable[TagId]) -> Set[str]:
        """Return the names of the given tags.

        Unknown ids and tags without a name are skipped.
        """
        result = set()
        for tag_id in tag_ids:
            tag = self._tags.get(tag_id)
            if tag is not None and tag.name is not None:
                result.add(tag.name)
        return result

    def by_name(self, name: str) -> Optional[Tag]:
        """Find a tag by its exact name."""
        for tag in self._tags.values():
            if tag.name == name:
                return tag
        return None
