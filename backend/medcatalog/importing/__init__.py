"""CSV import building blocks: parsing, column mapping, validation, duplicates."""
from .columns import canonicalize_row, map_columns, missing_required_columns
from .duplicates import DuplicateCheck, DuplicateIndex
from .parser import iter_csv_rows, parse_csv, read_headers
from .validator import ValidationResult, validate_row

__all__ = [
    "canonicalize_row",
    "map_columns",
    "missing_required_columns",
    "DuplicateCheck",
    "DuplicateIndex",
    "iter_csv_rows",
    "parse_csv",
    "read_headers",
    "ValidationResult",
    "validate_row",
]
