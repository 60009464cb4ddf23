from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

import pandas as pd

"""CSV reading helpers.

The first line of a file is always the header; every following non-blank line
is a data row. Rows are streamed one at a time so that files of any size can
be imported with constant memory (the batch writer bounds what is buffered).
"""

__all__ = [
    "CsvReadError",
    "sanitize_name",
    "sanitize_names",
    "table_name_for",
    "scan_csv_files",
    "iter_csv_rows",
    "preview_csv",
]

CSV_SUFFIX = ".csv"
ENCODING = "utf-8-sig"  # BOM 付き UTF-8 も許容

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")


class CsvReadError(Exception):
    """Raised when a CSV file cannot be opened or parsed."""
    error_type = "READ_ERROR"


def sanitize_name(name: str, position: int = 0) -> str:
    """Turn a header cell or file name into a safe identifier.

    Every character outside [A-Za-z0-9_] becomes "_". A name that is empty
    after trimming becomes ``column_<position>``.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name.strip())
    if not cleaned:
        return f"column_{position}"
    return cleaned


def sanitize_names(names: Iterable[str]) -> list[str]:
    return [sanitize_name(n, i + 1) for i, n in enumerate(names)]


def table_name_for(path: Path) -> str:
    """Default destination table: the sanitized file base name."""
    return sanitize_name(path.stem)


def scan_csv_files(directory: Path) -> list[Path]:
    """Scan directory for .csv files (non-recursive, case-insensitive suffix).

    Raises:
        CsvReadError: If directory doesn't exist or can't be read
    """
    if not directory.exists():
        raise CsvReadError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise CsvReadError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == CSV_SUFFIX
        )
    except OSError as e:
        raise CsvReadError(f"Error reading directory {directory}: {e}") from e


def iter_csv_rows(path: Path, delimiter: str = ";") -> Iterator[list[str]]:
    """Yield the rows of a CSV file, header first. Blank lines are skipped.

    Raises:
        CsvReadError: If the file can't be opened or is malformed
    """
    try:
        with path.open("r", encoding=ENCODING, newline="") as f:
            reader = csv.reader(f, delimiter=delimiter)
            try:
                for row in reader:
                    if not row:
                        continue
                    yield row
            except csv.Error as e:
                raise CsvReadError(f"{path.name} line {reader.line_num}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise CsvReadError(f"cannot read {path.name}: {e}") from e


def preview_csv(path: Path, delimiter: str = ";", rows: int = 3) -> pd.DataFrame:
    """Read the header and first rows of a CSV file as raw strings.

    Used by ``--inspect-data``; values are kept verbatim (no NaN conversion).
    """
    return pd.read_csv(
        path,
        sep=delimiter,
        nrows=rows,
        dtype=str,
        keep_default_na=False,
        encoding=ENCODING,
    )
