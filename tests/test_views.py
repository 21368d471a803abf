"""Tests for the normalizing preamble and SQL composition."""
import sqlite3

import pytest

from bear_query.storage.schema_discovery import SchemaLayout
from bear_query.storage.views import (
    LOGICAL_RELATIONS,
    compose_sql,
    generate_preamble,
    quote_identifier,
)
from tests.bear_fixtures import create_bear_database, create_sample_database

LAYOUT = SchemaLayout("Z_5TAGS", "Z_5NOTES", "Z_13TAGS")


@pytest.fixture
def sample_connection(tmp_path):
    connection = sqlite3.connect(str(create_sample_database(tmp_path / "db.sqlite")))
    yield connection
    connection.close()


def run(connection, body, layout=LAYOUT):
    return connection.execute(compose_sql(generate_preamble(layout), body)).fetchall()


class TestGeneratePreamble:
    """Tests for the generated WITH clause."""

    def test_deterministic(self):
        assert generate_preamble(LAYOUT) == generate_preamble(
            SchemaLayout("Z_5TAGS", "Z_5NOTES", "Z_13TAGS")
        )

    def test_defines_every_relation(self):
        preamble = generate_preamble(LAYOUT)
        assert preamble.startswith("WITH")
        for relation in LOGICAL_RELATIONS:
            assert f"{relation} AS (" in preamble

    def test_uses_discovered_names(self):
        preamble = generate_preamble(SchemaLayout("Z_7TAGS", "Z_7NOTES", "Z_15TAGS"))
        assert '"Z_7TAGS"' in preamble
        assert 'nt."Z_7NOTES" AS note_id' in preamble
        assert 'nt."Z_15TAGS" AS tag_id' in preamble
        assert "Z_5TAGS" not in preamble

    def test_no_trailing_comma(self):
        assert not generate_preamble(LAYOUT).rstrip().endswith(",")

    def test_quote_identifier(self):
        assert quote_identifier("Z_5TAGS") == '"Z_5TAGS"'
        assert quote_identifier('odd"name') == '"odd""name"'


class TestNormalization:
    """The preamble run against a real Bear-shaped file."""

    def test_timestamps_become_calendar_text(self, sample_connection):
        rows = run(sample_connection, "SELECT modified, created FROM notes WHERE id = 2")
        assert rows == [("2002-01-01 00:00:00.000", "2002-01-01 00:00:00.000")]

    def test_zero_is_2001(self, sample_connection):
        rows = run(sample_connection, "SELECT modified FROM notes WHERE id = 1")
        assert rows == [("2001-01-01 00:00:00.000",)]

    def test_fractional_seconds_kept(self, tmp_path):
        path = create_bear_database(
            tmp_path / "frac.sqlite",
            notes=[(1, "u", "t", "c", 100.7, 0.5, 0, 0, 0), (2, "v", "t", "c", 100.1, 0, 0, 0, 0)],
        )
        connection = sqlite3.connect(str(path))
        try:
            rows = run(connection, "SELECT id, modified, created FROM notes ORDER BY modified DESC")
        finally:
            connection.close()
        assert rows == [
            (1, "2001-01-01 00:01:40.700", "2001-01-01 00:00:00.500"),
            (2, "2001-01-01 00:01:40.100", "2001-01-01 00:00:00.000"),
        ]

    def test_null_tag_timestamp_stays_null(self, sample_connection):
        rows = run(sample_connection, "SELECT modified FROM tags WHERE id = 3")
        assert rows == [(None,)]

    def test_flags_are_zero_or_one(self, sample_connection):
        rows = run(
            sample_connection,
            "SELECT id, is_pinned, is_trashed, is_archived FROM notes ORDER BY id",
        )
        assert rows == [
            (1, 0, 0, 0),
            (2, 1, 0, 0),
            (3, 0, 1, 0),
            (4, 0, 0, 1),
        ]

    def test_null_and_large_flags_normalize(self, tmp_path):
        path = create_bear_database(
            tmp_path / "flags.sqlite",
            notes=[(1, "u", "t", "c", 0, 0, None, 2, None)],
        )
        connection = sqlite3.connect(str(path))
        try:
            rows = run(connection, "SELECT is_pinned, is_trashed, is_archived FROM notes")
        finally:
            connection.close()
        assert rows == [(0, 1, 0)]

    def test_note_tags_and_links(self, sample_connection):
        assert run(
            sample_connection, "SELECT note_id, tag_id FROM note_tags ORDER BY note_id, tag_id"
        ) == [(1, 1), (2, 2), (2, 3)]
        assert run(
            sample_connection,
            "SELECT from_note_id, to_note_id FROM note_links ORDER BY from_note_id, to_note_id",
        ) == [(1, 2), (1, 3), (2, 1)]

    def test_other_junction_numbers(self, tmp_path):
        layout = SchemaLayout("Z_7TAGS", "Z_7NOTES", "Z_15TAGS")
        path = create_bear_database(
            tmp_path / "other.sqlite",
            notes=[(1, "u", "t", "c", 0, 0, 0, 0, 0)],
            tags=[(9, "tag", 0)],
            note_tags=[(1, 9)],
            junction="Z_7TAGS",
            notes_column="Z_7NOTES",
            tags_column="Z_15TAGS",
        )
        connection = sqlite3.connect(str(path))
        try:
            assert run(connection, "SELECT note_id, tag_id FROM note_tags", layout) == [(1, 9)]
        finally:
            connection.close()


class TestComposeSql:
    """Tests for joining caller SQL onto the preamble."""

    def test_plain_select(self):
        sql = compose_sql("WITH\n  a AS (SELECT 1)\n", "  SELECT * FROM a  ")
        assert sql == "WITH\n  a AS (SELECT 1)\nSELECT * FROM a"

    def test_caller_with_clause_is_merged(self, sample_connection):
        body = """
            WITH pinned AS (SELECT id FROM notes WHERE is_pinned)
            SELECT n.title FROM notes AS n JOIN pinned USING (id)
        """
        sql = compose_sql(generate_preamble(LAYOUT), body)
        assert sql.count("WITH") == 1
        assert sample_connection.execute(sql).fetchall() == [("Second Note",)]

    def test_lowercase_with_is_merged(self, sample_connection):
        rows = run(sample_connection, "with x as (select count(*) as c from tags) select c from x")
        assert rows == [(3,)]

    def test_recursive_with_clause(self, sample_connection):
        body = """
            WITH RECURSIVE counter(n) AS (
                SELECT 1 UNION ALL SELECT n + 1 FROM counter WHERE n < 3
            )
            SELECT n FROM counter
        """
        sql = compose_sql(generate_preamble(LAYOUT), body)
        assert sql.startswith("WITH RECURSIVE")
        assert sample_connection.execute(sql).fetchall() == [(1,), (2,), (3,)]

    def test_column_named_with_is_not_a_clause(self, sample_connection):
        rows = run(sample_connection, "SELECT 1 AS withheld")
        assert rows == [(1,)]

    def test_block_comment_before_with(self, sample_connection):
        rows = run(
            sample_connection,
            "/* visible */ WITH v AS (SELECT id FROM notes) SELECT COUNT(*) AS c FROM v",
        )
        assert rows == [(4,)]

    def test_line_comments_before_with(self, sample_connection):
        body = """
            -- pinned notes only
            -- (one per line)
            WITH pinned AS (SELECT id FROM notes WHERE is_pinned)
            SELECT COUNT(*) FROM pinned
        """
        sql = compose_sql(generate_preamble(LAYOUT), body)
        assert sql.count("WITH") == 1
        assert sample_connection.execute(sql).fetchall() == [(1,)]

    def test_comment_before_recursive_with(self, sample_connection):
        body = """/* counts */
            WITH RECURSIVE counter(n) AS (
                SELECT 1 UNION ALL SELECT n + 1 FROM counter WHERE n < 2
            )
            SELECT n FROM counter
        """
        sql = compose_sql(generate_preamble(LAYOUT), body)
        assert sql.startswith("WITH RECURSIVE")
        assert sample_connection.execute(sql).fetchall() == [(1,), (2,)]

    def test_comment_before_plain_select(self, sample_connection):
        rows = run(sample_connection, "-- just a count\nSELECT COUNT(*) FROM tags")
        assert rows == [(3,)]
