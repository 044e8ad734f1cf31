"""Input parsers."""

from .csv_parser import CSVParseResult
from .csv_parser import ResolveResult
from .csv_parser import RowIssue
from .csv_parser import count_data_rows
from .csv_parser import find_closest_matches
from .csv_parser import get_supported_columns
from .csv_parser import is_valid_column
from .csv_parser import parse_csv
from .csv_parser import resolve_references
from .csv_parser import validate_row

__all__ = [
    "CSVParseResult",
    "ResolveResult",
    "RowIssue",
    "count_data_rows",
    "find_closest_matches",
    "get_supported_columns",
    "is_valid_column",
    "parse_csv",
    "resolve_references",
    "validate_row",
]
