"""
Normalization of raw registry batches.

Column alias renaming, date parsing and physical type adaptation applied
before field extraction.
"""

from registerdata.normalization.adapter import (
    ColumnCompatibility,
    CompatibilityReport,
    SchemaAdapter,
    check_compatibility,
)
from registerdata.normalization.columns import (
    normalize_columns,
    validate_required_columns,
)
from registerdata.normalization.dates import (
    detect_date_format,
    parse_compact_dates,
    parse_date_strings,
)

__all__ = [
    "ColumnCompatibility",
    "CompatibilityReport",
    "SchemaAdapter",
    "check_compatibility",
    "detect_date_format",
    "normalize_columns",
    "parse_compact_dates",
    "parse_date_strings",
    "validate_required_columns",
]
