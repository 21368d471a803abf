"""Schema discovery for Bear's Core Data SQLite database.

Core Data names many-to-many junction tables and their columns after
internal entity numbers (``Z_5TAGS`` with columns ``Z_5NOTES`` and
``Z_13TAGS``), and the numbers change between Bear releases. This module
finds the junction table and works out which column points at notes and
which at tags, so nothing else in the package has to know the numbers.

The column heuristic (name suffix, then position) can misassign roles on a
naming scheme it has never seen; no stronger guarantee is claimed.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Connection

from bear_query.exceptions import ErrorCode, SchemaDiscoveryError

logger = logging.getLogger(__name__)

# Junction tables follow Z_<entity number>TAGS
JUNCTION_TABLE_PATTERN = re.compile(r"^Z_\d+TAGS$", re.IGNORECASE)

NOTES_FRAGMENT = "NOTES"
TAGS_FRAGMENT = "TAGS"


@dataclass(frozen=True)
class SchemaLayout:
    """Physical names of the notes-to-tags junction, discovered once per handle.

    Attributes:
        junction_table: Junction table name (e.g. ``Z_5TAGS``).
        notes_column: Column referencing the note (e.g. ``Z_5NOTES``).
        tags_column: Column referencing the tag (e.g. ``Z_13TAGS``).
    """

    junction_table: str
    notes_column: str
    tags_column: str


def find_junction_table(connection: Connection) -> str:
    """Find the notes-to-tags junction table.

    Returns:
        The first table (by name) matching ``Z_<digits>TAGS``.

    Raises:
        SchemaDiscoveryError: If no such table exists.
    """
    table_names = inspect(connection).get_table_names()
    for name in table_names:
        if JUNCTION_TABLE_PATTERN.match(name):
            return name
    raise SchemaDiscoveryError(
        "No notes-to-tags junction table (Z_<n>TAGS) found",
        code=ErrorCode.JUNCTION_TABLE_NOT_FOUND,
    )


def assign_junction_roles(table: str, columns: List[str]) -> SchemaLayout:
    """Decide which junction column refers to notes and which to tags.

    Columns ending in ``NOTES`` / ``TAGS`` claim the matching role. If only one
    role is claimed and exactly one other column remains, that column takes the
    other role. If nothing is claimed and there are exactly two columns, the
    first is taken as notes and the second as tags. Everything else is
    ambiguous.

    Raises:
        SchemaDiscoveryError: If there are fewer than two columns or the roles
            cannot be told apart.
    """
    if len(columns) < 2:
        raise SchemaDiscoveryError(
            f"Junction table '{table}' has fewer than two columns",
            table=table,
            columns=columns,
            code=ErrorCode.JUNCTION_COLUMNS_MISSING,
        )

    notes_candidates = [c for c in columns if c.upper().endswith(NOTES_FRAGMENT)]
    tags_candidates = [c for c in columns if c.upper().endswith(TAGS_FRAGMENT)]

    if len(notes_candidates) > 1 or len(tags_candidates) > 1:
        raise SchemaDiscoveryError(
            f"Junction table '{table}' has several candidate columns for one role",
            table=table,
            columns=columns,
        )

    notes_column = notes_candidates[0] if notes_candidates else None
    tags_column = tags_candidates[0] if tags_candidates else None

    if notes_column and tags_column:
        return SchemaLayout(table, notes_column, tags_column)

    if notes_column or tags_column:
        claimed = notes_column or tags_column
        remaining = [c for c in columns if c != claimed]
        if len(remaining) != 1:
            raise SchemaDiscoveryError(
                f"Cannot pick the second junction column of '{table}'",
                table=table,
                columns=columns,
            )
        if notes_column:
            return SchemaLayout(table, notes_column, remaining[0])
        return SchemaLayout(table, remaining[0], tags_column)

    if len(columns) == 2:
        logger.debug(
            f"No recognizable column names on {table}; using column order {columns}"
        )
        return SchemaLayout(table, columns[0], columns[1])

    raise SchemaDiscoveryError(
        f"Cannot tell the note and tag columns of '{table}' apart",
        table=table,
        columns=columns,
    )


def discover_junction_columns(connection: Connection, table: str) -> SchemaLayout:
    """Inspect the junction table's columns and assign their roles.

    Args:
        connection: A live read-only connection.
        table: The junction table name.

    Raises:
        SchemaDiscoveryError: If the table is missing or its columns are
            ambiguous.
    """
    inspector = inspect(connection)
    if not inspector.has_table(table):
        raise SchemaDiscoveryError(
            f"Junction table '{table}' does not exist",
            table=table,
            code=ErrorCode.JUNCTION_TABLE_NOT_FOUND,
        )
    columns = [column["name"] for column in inspector.get_columns(table)]
    return assign_junction_roles(table, columns)


def discover_schema_layout(
    connection: Connection, junction_table: Optional[str] = None
) -> SchemaLayout:
    """Discover the junction layout, optionally with a known table name.

    Args:
        connection: A live read-only connection.
        junction_table: Skip table discovery and inspect this table.

    Returns:
        The discovered SchemaLayout.
    """
    table = junction_table or find_junction_table(connection)
    layout = discover_junction_columns(connection, table)
    logger.debug(
        f"Discovered junction {layout.junction_table}: "
        f"notes={layout.notes_column}, tags={layout.tags_column}"
    )
    return layout
