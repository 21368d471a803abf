"""Value types for Bear notes, tags and their identifiers."""
