"""Storage layer: connections, schema discovery and normalizing relations."""

from bear_query.storage.connection import ConnectionGuard
from bear_query.storage.schema_discovery import SchemaLayout, discover_schema_layout
from bear_query.storage.tabular import read_frame
from bear_query.storage.views import compose_sql, generate_preamble

__all__ = [
    "ConnectionGuard",
    "read_frame",
    "SchemaLayout",
    "compose_sql",
    "discover_schema_layout",
    "generate_preamble",
]
