"""Normalizing relations layered over Bear's Core Data tables.

``generate_preamble`` renders a ``WITH`` clause defining four logical
relations that the rest of the package queries instead of the physical
tables:

    notes(id, unique_id, title, content, created, modified,
          is_pinned, is_trashed, is_archived)
    tags(id, name, modified)
    note_tags(note_id, tag_id)
    note_links(from_note_id, to_note_id)

Timestamps are shifted from the Core Data epoch (2001-01-01) to Unix time
and rendered as UTC calendar text with milliseconds
(``YYYY-MM-DD HH:MM:SS.SSS``), which sorts chronologically as text. Flags
are folded to 0/1.
"""
import re

from bear_query.models.schema import CORE_DATA_EPOCH_OFFSET
from bear_query.storage.schema_discovery import SchemaLayout

NOTES_TABLE = "ZSFNOTE"
TAGS_TABLE = "ZSFNOTETAG"
BACKLINKS_TABLE = "ZSFNOTEBACKLINK"

# Names the preamble defines; caller SQL refers to these
LOGICAL_RELATIONS = ("notes", "tags", "note_tags", "note_links")

# Whitespace and comments SQLite skips before the first keyword
_LEADING_TRIVIA = re.compile(r"(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/)*", re.DOTALL)
_WITH_CLAUSE = re.compile(r"WITH(\s+RECURSIVE)?\s+", re.IGNORECASE)


def quote_identifier(name: str) -> str:
    """Quote an SQLite identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def _timestamp(column: str) -> str:
    return f"strftime('%Y-%m-%d %H:%M:%f', {column} + cd.epoch, 'unixepoch')"


def _flag(column: str) -> str:
    return f"(COALESCE({column}, 0) <> 0)"


def generate_preamble(layout: SchemaLayout) -> str:
    """Render the normalizing ``WITH`` clause for a discovered layout.

    Pure and deterministic: equal layouts give byte-identical text. The
    clause ends without a trailing comma, ready for a ``SELECT`` body.
    """
    junction = quote_identifier(layout.junction_table)
    notes_column = quote_identifier(layout.notes_column)
    tags_column = quote_identifier(layout.tags_column)

    return f"""WITH
  core_data AS (
    SELECT {CORE_DATA_EPOCH_OFFSET} AS epoch
  ),
  notes AS (
    SELECT
      n.Z_PK AS id,
      n.ZUNIQUEIDENTIFIER AS unique_id,
      n.ZTITLE AS title,
      n.ZTEXT AS content,
      {_timestamp("n.ZCREATIONDATE")} AS created,
      {_timestamp("n.ZMODIFICATIONDATE")} AS modified,
      {_flag("n.ZPINNED")} AS is_pinned,
      {_flag("n.ZTRASHED")} AS is_trashed,
      {_flag("n.ZARCHIVED")} AS is_archived
    FROM {NOTES_TABLE} AS n, core_data AS cd
  ),
  tags AS (
    SELECT
      t.Z_PK AS id,
      t.ZTITLE AS name,
      {_timestamp("t.ZMODIFICATIONDATE")} AS modified
    FROM {TAGS_TABLE} AS t, core_data AS cd
  ),
  note_tags AS (
    SELECT
      nt.{notes_column} AS note_id,
      nt.{tags_column} AS tag_id
    FROM {junction} AS nt
  ),
  note_links AS (
    SELECT
      nl.ZLINKEDBY AS from_note_id,
      nl.ZLINKINGTO AS to_note_id
    FROM {BACKLINKS_TABLE} AS nl
  )
"""


def compose_sql(preamble: str, body: str) -> str:
    """Prepend the preamble to a query body.

    A body that opens with its own ``WITH`` (or ``WITH RECURSIVE``) clause has
    its common table expressions appended to the preamble's, since SQLite
    allows only one ``WITH`` per statement. Whitespace and comments ahead of
    the body's ``WITH`` are dropped.
    """
    start = _LEADING_TRIVIA.match(body).end()
    match = _WITH_CLAUSE.match(body, start)
    if not match:
        return f"{preamble}{body.strip()}"

    rest = body[match.end():].strip()
    head = preamble
    if match.group(1):
        # RECURSIVE has to follow the first WITH keyword
        head = _WITH_CLAUSE.sub("WITH RECURSIVE\n", preamble, count=1)
    return f"{head.rstrip()},\n  {rest}"
