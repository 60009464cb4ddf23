from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the CSV -> MySQL import tool.

These are the typed, immutable counterparts of the YAML documents handled by
csv2table.config.loader. A merged document is turned into an ImportConfig once
per file, before its import session starts.
"""

DEFAULT_PORT = 3306
DEFAULT_HOST = "localhost"
DEFAULT_BULK_INSERT_SIZE = 5000
DEFAULT_COL_TYPE = "VARCHAR(255) NULL DEFAULT NULL"
DEFAULT_TABLE_OPTIONS = "COLLATE='utf8_general_ci' ENGINE=InnoDB"
DEFAULT_DELIMITER = ";"


@dataclass(frozen=True)
class DatabaseConfig:
    """MySQL connection parameters.

    Values missing from every config file are filled from MYSQL_* environment
    variables by the loader.
    """
    db: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class ColumnMapping:
    """Per-column import policy.

    type: column DDL text, e.g. "VARCHAR(100) NULL" (None = default column type)
    index: build a secondary index on the column
    format: date layout or numeric sample used to coerce raw values
    null_if: raw values stored as NULL (exact, case-sensitive match)
    null_if_empty: store empty strings as NULL
    """
    type: str | None = None
    index: bool = False
    format: str | None = None
    null_if: tuple[str, ...] = ()
    null_if_empty: bool = False


@dataclass(frozen=True)
class ImportConfig:
    """Effective configuration of a single file import (global + file merged)."""
    table: str  # 出力先テーブル名 (未エスケープ)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    mapping: dict[str, ColumnMapping] = field(default_factory=dict)
    drop: bool = False
    truncate: bool = False
    auto_pk: bool = False
    default_col_type: str = DEFAULT_COL_TYPE
    table_options: str = DEFAULT_TABLE_OPTIONS
    bulk_insert_size: int = DEFAULT_BULK_INSERT_SIZE
    verbose: bool = False
    delimiter: str = DEFAULT_DELIMITER

    def column_mapping(self, column: str) -> ColumnMapping:
        """Return the mapping for a sanitized column name with its type resolved."""
        return self.effective_mapping(self.mapping.get(column))

    def effective_mapping(self, mapping: ColumnMapping | None) -> ColumnMapping:
        """Fill in the default column type.

        Columns without a mapping, or whose mapping leaves ``type`` unset, get
        the default column type.
        """
        if mapping is None:
            return ColumnMapping(type=self.default_col_type)
        if not mapping.type:
            return ColumnMapping(
                type=self.default_col_type,
                index=mapping.index,
                format=mapping.format,
                null_if=mapping.null_if,
                null_if_empty=mapping.null_if_empty,
            )
        return mapping


@dataclass(frozen=True)
class PlainAuth:
    identity: str = ""
    username: str = ""
    password: str = ""
    host: str = ""


@dataclass(frozen=True)
class EmailConfig:
    """Notification settings, read from the global config only."""
    send_on_success: bool = True
    send_on_error: bool = True
    success_subject: str | None = None  # None = built-in template
    success_body: str | None = None
    error_subject: str | None = None
    error_body: str | None = None
    from_addr: str = ""
    to: tuple[str, ...] = ()
    cc: tuple[str, ...] = ()
    bcc: tuple[str, ...] = ()
    smtp_server: str = ""  # host:port, e.g. smtp.example.com:587
    plain_auth: PlainAuth = field(default_factory=PlainAuth)
