# tests/test_models.py
"""Tests for the identifier, timestamp and value models."""
import datetime
from datetime import timezone

import pytest
from pydantic import ValidationError

from bear_query.models.schema import (
    CORE_DATA_EPOCH,
    CORE_DATA_EPOCH_OFFSET,
    Note,
    NoteId,
    Tag,
    TagCollection,
    TagId,
    from_core_data_timestamp,
    parse_calendar_time,
    to_core_data_timestamp,
)


def make_note(**overrides):
    values = dict(
        id=NoteId(1, "uuid-1"),
        title="Title",
        content="Body",
        created="2001-01-01 00:00:00",
        modified="2001-01-01 00:01:40",
    )
    values.update(overrides)
    return Note(**values)


class TestIdentifiers:
    """Tests for NoteId and TagId."""

    def test_note_id_equality_ignores_unique_id(self):
        """Two ids with the same key are equal whatever UUID they carry."""
        assert NoteId(42) == NoteId(42, "ABC-123")
        assert hash(NoteId(42)) == hash(NoteId(42, "ABC-123"))
        assert NoteId(42) != NoteId(43)

    def test_note_id_in_set(self):
        ids = {NoteId(1, "a"), NoteId(1, "b"), NoteId(2)}
        assert len(ids) == 2
        assert NoteId(1) in ids

    def test_ids_round_trip_through_int(self):
        assert int(NoteId(12345)) == 12345
        assert int(TagId(7)) == 7
        assert NoteId(int(NoteId(9, "x"))) == NoteId(9)

    def test_ids_are_immutable(self):
        note_id = NoteId(1)
        with pytest.raises(Exception):
            note_id.value = 2  # type: ignore[misc]

    def test_tag_id_equality_and_ordering(self):
        assert TagId(3) == TagId(3)
        assert TagId(3) != TagId(4)
        assert sorted([TagId(5), TagId(1), TagId(3)]) == [TagId(1), TagId(3), TagId(5)]

    def test_note_and_tag_ids_are_distinct_types(self):
        assert NoteId(1) != TagId(1)


class TestTimestamps:
    """Tests for Core Data epoch conversion."""

    def test_epoch_offset(self):
        """The host epoch is 978307200 seconds after the Unix epoch."""
        assert CORE_DATA_EPOCH_OFFSET == 978307200

    def test_zero_is_host_epoch(self):
        assert from_core_data_timestamp(0) == datetime.datetime(
            2001, 1, 1, tzinfo=timezone.utc
        )

    def test_offset_seconds(self):
        assert from_core_data_timestamp(100) == CORE_DATA_EPOCH + datetime.timedelta(
            seconds=100
        )
        assert from_core_data_timestamp(31536000) == datetime.datetime(
            2002, 1, 1, tzinfo=timezone.utc
        )

    def test_to_core_data_timestamp(self):
        value = datetime.datetime(2001, 1, 1, 0, 1, 40, tzinfo=timezone.utc)
        assert to_core_data_timestamp(value) == 100.0
        # Naive values are read as UTC
        assert to_core_data_timestamp(value.replace(tzinfo=None)) == 100.0

    def test_parse_sqlite_calendar_text(self):
        parsed = parse_calendar_time("2001-01-01 00:01:40")
        assert parsed == datetime.datetime(2001, 1, 1, 0, 1, 40, tzinfo=timezone.utc)
        assert parsed.tzinfo is not None

    def test_parse_milliseconds(self):
        parsed = parse_calendar_time("2001-01-01 00:01:40.700")
        assert parsed == datetime.datetime(2001, 1, 1, 0, 1, 40, 700000, tzinfo=timezone.utc)

    def test_parse_none(self):
        assert parse_calendar_time(None) is None

    def test_parse_rejects_raw_numbers(self):
        """Epoch-relative numbers never pass for calendar time."""
        with pytest.raises(ValueError):
            parse_calendar_time(100)
        with pytest.raises(ValueError):
            parse_calendar_time(100.5)


class TestNoteModel:
    """Tests for the Note model."""

    def test_note_creation(self):
        note = make_note()
        assert note.id == NoteId(1)
        assert note.unique_id == "uuid-1"
        assert note.modified == CORE_DATA_EPOCH + datetime.timedelta(seconds=100)
        assert note.created == CORE_DATA_EPOCH
        assert note.is_pinned is False

    def test_flags_normalize_to_bool(self):
        note = make_note(is_pinned=1, is_trashed=0, is_archived=1)
        assert note.is_pinned is True
        assert note.is_trashed is False
        assert note.is_archived is True

    def test_nullable_title_and_content(self):
        note = make_note(title=None, content=None)
        assert note.title is None
        assert note.content is None

    def test_raw_timestamp_is_rejected(self):
        with pytest.raises(ValidationError):
            make_note(modified=100)

    def test_note_is_frozen(self):
        note = make_note()
        with pytest.raises(ValidationError):
            note.title = "Changed"

    def test_from_row(self):
        row = {
            "id": 5,
            "unique_id": "uuid-5",
            "title": "Row",
            "content": None,
            "created": "2001-01-01 00:00:00",
            "modified": "2001-01-02 00:00:00",
            "is_pinned": 1,
            "is_trashed": 0,
            "is_archived": 0,
        }
        note = Note.from_row(row)
        assert note.id == NoteId(5)
        assert note.unique_id == "uuid-5"
        assert note.is_pinned is True
        assert note.modified.day == 2


class TestTagModel:
    """Tests for Tag and TagCollection."""

    def test_tag_path(self):
        tag = Tag(id=TagId(1), name="work/projects/bear")
        assert tag.path == ("work", "projects", "bear")
        assert tag.parent_name == "work/projects"
        assert str(tag) == "work/projects/bear"

    def test_top_level_tag_has_no_parent(self):
        assert Tag(id=TagId(1), name="work").parent_name is None

    def test_unnamed_tag(self):
        tag = Tag(id=TagId(1), name=None)
        assert tag.path == ()
        assert str(tag) == ""

    def test_modified_is_optional(self):
        assert Tag(id=TagId(1), name="x", modified=None).modified is None

    def test_collection_lookup(self):
        tags = TagCollection([
            Tag(id=TagId(1), name="work"),
            Tag(id=TagId(2), name="personal"),
            Tag(id=TagId(3), name=None),
        ])
        assert len(tags) == 3
        assert tags[TagId(1)].name == "work"
        assert tags.get(TagId(99)) is None
        assert tags.by_name("personal").id == TagId(2)
        assert tags.by_name("missing") is None

    def test_names_skips_unknown_and_unnamed(self):
        tags = TagCollection([
            Tag(id=TagId(1), name="work"),
            Tag(id=TagId(3), name=None),
        ])
        assert tags.names({TagId(1), TagId(3), TagId(99)}) == {"work"}

    def test_collection_is_read_only(self):
        tags = TagCollection([Tag(id=TagId(1), name="work")])
        with pytest.raises(TypeError):
            tags[TagId(2)] = Tag(id=TagId(2), name="new")  # type: ignore[index]
