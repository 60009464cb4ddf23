from __future__ import annotations

import re
from enum import Enum

__all__ = [
    "SemanticColumnType",
    "resolve_column_type",
]


class SemanticColumnType(Enum):
    """Kind of a destination column as understood by the value coercer."""
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "dateTime"


# Checked in order: "datetime" must win over "date", and "int" must win over
# everything else since e.g. "INT UNSIGNED" never holds dates or floats.
_TYPE_PATTERNS: tuple[tuple[re.Pattern[str], SemanticColumnType], ...] = (
    (re.compile(r"int|unsigned|bit|tinyint|smallint|mediumint", re.IGNORECASE), SemanticColumnType.INT),
    (re.compile(r"float|double|decimal|numeric|real", re.IGNORECASE), SemanticColumnType.FLOAT),
    (re.compile(r"datetime|timestamp", re.IGNORECASE), SemanticColumnType.DATETIME),
    (re.compile(r"date", re.IGNORECASE), SemanticColumnType.DATE),
)


def resolve_column_type(definition: str | None) -> SemanticColumnType:
    """Map a column DDL type text (e.g. "DATE NULL") to a SemanticColumnType.

    Anything that matches no pattern, including an empty definition, is STRING.
    """
    if not definition:
        return SemanticColumnType.STRING
    for pattern, column_type in _TYPE_PATTERNS:
        if pattern.search(definition):
            return column_type
    return SemanticColumnType.STRING
