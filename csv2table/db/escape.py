from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

"""MySQL escape routines.

Identifiers cannot be bound as query parameters, so table and column names are
embedded in generated statements after escaping. Literal values go through the
same substitution when a row literal is rendered.

escape_string is NOT idempotent: escaping an escaped string escapes it again.
Each raw input must be escaped exactly once.
"""

__all__ = [
    "escape_string",
    "escape_strings",
    "quote_identifier",
    "quote_literal",
    "row_literal",
    "like_pattern",
    "NULL_LITERAL",
]

NULL_LITERAL = "NULL"

# str.translate は 1 パスで置換するため、置換結果が再置換されることはない
_ESCAPE_TABLE = str.maketrans({
    "\x00": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
    "'": "\\'",
    '"': '\\"',
    "\\": "\\\\",
})


def escape_string(value: str) -> str:
    """Escape a string by adding backslashes before special characters.

    NUL, LF, CR and CTRL-Z become ``\\0``, ``\\n``, ``\\r`` and ``\\Z``;
    single quote, double quote and backslash get a leading backslash.
    """
    return value.translate(_ESCAPE_TABLE)


def escape_strings(values: Iterable[str]) -> list[str]:
    """Apply escape_string over a sequence of strings."""
    return [escape_string(v) for v in values]


def quote_identifier(escaped_name: str) -> str:
    """Wrap an already escaped identifier in backticks."""
    return f"`{escaped_name}`"


def quote_literal(value: str | None) -> str:
    """Render a raw value as a SQL literal: NULL or a quoted, escaped string."""
    if value is None:
        return NULL_LITERAL
    return f"'{escape_string(value)}'"


def row_literal(values: Sequence[str | None]) -> str:
    """Render one row as a VALUES tuple, e.g. ``('a',NULL,'1.5')``."""
    return "(" + ",".join(quote_literal(v) for v in values) + ")"


# escape_string の出力単位: バックスラッシュ付きの 2 文字、または LIKE のワイルドカード
_LIKE_TOKEN = re.compile(r"\\.|[_%]", re.DOTALL)


def _like_token(match: re.Match[str]) -> str:
    token = match.group(0)
    if token == "\\\\":
        return "\\\\\\\\"
    if token in ("_", "%"):
        return "\\" + token
    return token


def like_pattern(escaped_value: str) -> str:
    """Turn an escaped string into a LIKE pattern matching it literally.

    ``_`` and ``%`` get a leading backslash. An escaped backslash is doubled
    once more, since LIKE consumes a second level of backslashes.

    >>> like_pattern("my_data")
    'my\\\\_data'
    """
    return _LIKE_TOKEN.sub(_like_token, escaped_value)
