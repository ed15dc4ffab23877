"""
app/ingestion package marker.
"""

from app.ingestion.source_reader import (
    COLUMN_RULES,
    ColumnSelection,
    SourceFileError,
    detect_columns,
    read_source_file,
    read_source_records,
)

__all__ = [
    "COLUMN_RULES",
    "ColumnSelection",
    "SourceFileError",
    "detect_columns",
    "read_source_file",
    "read_source_records",
]
