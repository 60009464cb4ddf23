from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ..models.column_type import SemanticColumnType
from ..models.config_models import ColumnMapping
from .errors import FormatError

"""Value coercion: raw CSV text -> MySQL-ready string or NULL.

Coercion is driven by the column's semantic type (resolved from its DDL) and
the mapping's format hint:

- date / dateTime: the hint is a date layout. Either a reference-date layout
  (the reference time is Mon Jan 2 15:04:05 MST 2006, e.g. "02.01.2006") or a
  strptime pattern containing "%". Output is YYYY-MM-DD / YYYY-MM-DD HH:MM:SS.
  Zero-padded layout tokens ("01", "02", "15:04") require both digits.
- float: the hint is a sample literal such as "1.2" or "1.234,5". Its last
  non-digit character is the decimal separator, every other non-digit in a
  value is a thousands separator.
- int / string: no transformation.

Parsers are memoized per format string on the ValueCoercer instance, since the
same format recurs on every row of a column. Each import session owns its own
coercer, so there is no process-wide state.
"""

__all__ = [
    "ValueCoercer",
    "FloatParser",
    "apply_null",
    "layout_to_strptime",
    "layout_to_regex",
    "DATE_OUTPUT_FORMAT",
    "DATETIME_OUTPUT_FORMAT",
]

DATE_OUTPUT_FORMAT = "%Y-%m-%d"
DATETIME_OUTPUT_FORMAT = "%Y-%m-%d %H:%M:%S"

# Reference-layout tokens. Alternation order matters: longer tokens sharing a
# prefix ("2006" / "2", "15" / "1", "January" / "Jan") come first.
_LAYOUT_TOKEN = re.compile(
    r"January|Jan|Monday|Mon|MST|2006|Z07:00|Z0700|-07:00|-0700"
    r"|\.0+(?!\d)|\.9+(?!\d)"
    r"|01|02|03|04|05|06|_2|15|PM|pm|1|2|3|4|5"
)

_LAYOUT_DIRECTIVES = {
    "January": "%B",
    "Jan": "%b",
    "Monday": "%A",
    "Mon": "%a",
    "MST": "%Z",
    "2006": "%Y",
    "06": "%y",
    "01": "%m",
    "1": "%m",
    "02": "%d",
    "_2": "%d",
    "2": "%d",
    "15": "%H",
    "03": "%I",
    "3": "%I",
    "04": "%M",
    "4": "%M",
    "05": "%S",
    "5": "%S",
    "PM": "%p",
    "pm": "%p",
    "Z07:00": "%z",
    "Z0700": "%z",
    "-07:00": "%z",
    "-0700": "%z",
}

# Digit-width shape of each token. strptime accepts "5" for %m, the zero-padded
# tokens do not.
_LAYOUT_SHAPES = {
    "January": r"[A-Za-z]+",
    "Jan": r"[A-Za-z]{3}",
    "Monday": r"[A-Za-z]+",
    "Mon": r"[A-Za-z]{3}",
    "MST": r"[A-Za-z]+",
    "2006": r"\d{4}",
    "06": r"\d{2}",
    "01": r"\d{2}",
    "02": r"\d{2}",
    "03": r"\d{2}",
    "04": r"\d{2}",
    "05": r"\d{2}",
    "1": r"\d{1,2}",
    "2": r"\d{1,2}",
    "3": r"\d{1,2}",
    "4": r"\d{1,2}",
    "5": r"\d{1,2}",
    "15": r"\d{1,2}",
    "_2": r"(?: \d|\d{1,2})",
    "PM": r"[AaPp][Mm]",
    "pm": r"[AaPp][Mm]",
    "Z07:00": r"(?:Z|[+-]\d{2}:\d{2})",
    "Z0700": r"(?:Z|[+-]\d{4})",
    "-07:00": r"[+-]\d{2}:\d{2}",
    "-0700": r"[+-]\d{4}",
}

_NON_DIGIT = re.compile(r"[^0-9]")


def _layout_directive(match: re.Match[str]) -> str:
    token = match.group(0)
    if token.startswith("."):
        return ".%f"  # 小数秒
    return _LAYOUT_DIRECTIVES[token]


def layout_to_strptime(layout: str) -> str:
    """Translate a date layout into a strptime pattern.

    Layouts that already contain "%" are taken as strptime patterns as-is.

    >>> layout_to_strptime("02.01.2006 15:04:05")
    '%d.%m.%Y %H:%M:%S'
    """
    if "%" in layout:
        return layout
    return _LAYOUT_TOKEN.sub(_layout_directive, layout)


def _layout_shape(token: str) -> str:
    if token.startswith(".0"):
        return rf"\.\d{{{len(token) - 1}}}"
    if token.startswith(".9"):
        return r"\.\d+"
    return _LAYOUT_SHAPES[token]


def layout_to_regex(layout: str) -> re.Pattern[str] | None:
    """Build a regex checking the digit widths a layout prescribes.

    Returns None for strptime patterns ("%" layouts), which keep strptime's
    own leniency.

    >>> bool(layout_to_regex("2006-01-02").fullmatch("2019-5-21"))
    False
    """
    if "%" in layout:
        return None
    parts = []
    position = 0
    for match in _LAYOUT_TOKEN.finditer(layout):
        parts.append(re.escape(layout[position:match.start()]))
        parts.append(_layout_shape(match.group(0)))
        position = match.end()
    parts.append(re.escape(layout[position:]))
    return re.compile("".join(parts))


def apply_null(null_if: Iterable[str], value: str) -> bool:
    """Return True if the raw value matches one of the null_if values."""
    return any(value == null_match for null_match in null_if)


@dataclass(frozen=True)
class FloatParser:
    """Locale-aware float normalizer built from a sample literal."""
    sample: str
    decimal_separator: str | None

    @classmethod
    def from_sample(cls, sample: str) -> FloatParser:
        body = sample.strip().lstrip("+-")
        non_digits = _NON_DIGIT.findall(body)
        return cls(sample=sample, decimal_separator=non_digits[-1] if non_digits else None)

    def parse(self, value: str) -> str:
        """Normalize value to a dot-decimal literal without thousands separators.

        Raises:
            FormatError: If the value holds no digits at all
        """
        if self.decimal_separator is None:
            return value

        text = value.strip()
        sign = ""
        if text[:1] in ("+", "-"):
            sign = "-" if text[0] == "-" else ""
            text = text[1:]

        whole, separator, fraction = text.rpartition(self.decimal_separator)
        if not separator:
            whole, fraction = text, ""
        whole = _NON_DIGIT.sub("", whole)
        fraction = _NON_DIGIT.sub("", fraction)

        if not whole and not fraction:
            raise FormatError(value, self.sample, reason="no digits")
        if fraction:
            return f"{sign}{whole or '0'}.{fraction}"
        return f"{sign}{whole}"


class ValueCoercer:
    """Converts raw cell values per column type, mapping and format hint."""

    def __init__(self) -> None:
        self._float_parsers: dict[str, FloatParser] = {}
        self._date_patterns: dict[str, str] = {}
        self._date_shapes: dict[str, re.Pattern[str] | None] = {}

    def coerce(
        self,
        column_type: SemanticColumnType,
        mapping: ColumnMapping | None,
        value: str,
    ) -> str | None:
        """Coerce one raw value.

        Args:
            column_type: Semantic type of the destination column
            mapping: Column mapping (None = no rules, pass-through)
            value: Raw text from the CSV cell

        Returns:
            The storage value (unescaped), or None for SQL NULL

        Raises:
            FormatError: If the value does not fit the column's format hint
        """
        if mapping is None:
            return value

        if mapping.null_if_empty and value == "":
            return None
        if mapping.null_if and apply_null(mapping.null_if, value):
            return None

        if not mapping.format:
            return value
        return self.parse_value(column_type, mapping.format, value)

    def parse_value(self, column_type: SemanticColumnType, fmt: str, value: str) -> str:
        if column_type is SemanticColumnType.DATE:
            return self._parse_datetime(fmt, value, DATE_OUTPUT_FORMAT)
        if column_type is SemanticColumnType.DATETIME:
            return self._parse_datetime(fmt, value, DATETIME_OUTPUT_FORMAT)
        if column_type is SemanticColumnType.FLOAT:
            return self.float_parser(fmt).parse(value)
        return value

    def float_parser(self, fmt: str) -> FloatParser:
        parser = self._float_parsers.get(fmt)
        if parser is None:
            parser = FloatParser.from_sample(fmt)
            self._float_parsers[fmt] = parser
        return parser

    def strptime_pattern(self, layout: str) -> str:
        pattern = self._date_patterns.get(layout)
        if pattern is None:
            pattern = layout_to_strptime(layout)
            self._date_patterns[layout] = pattern
        return pattern

    def layout_shape(self, layout: str) -> re.Pattern[str] | None:
        if layout not in self._date_shapes:
            self._date_shapes[layout] = layout_to_regex(layout)
        return self._date_shapes[layout]

    def _parse_datetime(self, layout: str, value: str, output_format: str) -> str:
        shape = self.layout_shape(layout)
        if shape is not None and not shape.fullmatch(value):
            raise FormatError(value, layout, reason="value does not match layout")
        try:
            parsed = datetime.strptime(value, self.strptime_pattern(layout))
        except ValueError as e:
            raise FormatError(value, layout, reason=str(e)) from e
        return parsed.strftime(output_format)
