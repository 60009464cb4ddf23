from .reader import (
    CsvReadError,
    iter_csv_rows,
    preview_csv,
    sanitize_name,
    sanitize_names,
    scan_csv_files,
    table_name_for,
)

__all__ = [
    "CsvReadError",
    "iter_csv_rows",
    "preview_csv",
    "sanitize_name",
    "sanitize_names",
    "scan_csv_files",
    "table_name_for",
]
