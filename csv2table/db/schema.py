from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import pymysql

from ..models.column_type import SemanticColumnType, resolve_column_type
from ..models.config_models import ColumnMapping, ImportConfig
from .errors import SchemaError
from .escape import like_pattern, quote_identifier

"""Destination table management.

ensure_table() decides between DROP / TRUNCATE / CREATE for the destination
table, then resolves the semantic type of every column from the DDL that is
actually in effect. CREATE only fires when the table is absent; an existing
table is never altered to match the header.

A failure after a successful DROP (e.g. CREATE rejected) leaves the table
missing. Nothing is rolled back, the next run creates it again.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "SchemaManager",
    "TableSchema",
    "AUTO_PK_COLUMN",
]

AUTO_PK_COLUMN = "`id` INT(11) NOT NULL AUTO_INCREMENT"
AUTO_PK_INDEX = "PRIMARY KEY(`id`)"


@dataclass(frozen=True)
class TableSchema:
    """Resolved destination table of one import.

    Attributes:
        table: Escaped table name
        columns: Escaped column names in header order
        column_types: Column name -> semantic type used for value coercion
        created: True if the table was created by this import
    """
    table: str
    columns: list[str]
    column_types: dict[str, SemanticColumnType]
    created: bool


class SchemaManager:
    """Creates, drops or truncates the destination table of a file."""

    def __init__(self, connection: Any, config: ImportConfig) -> None:
        self._connection = connection
        self._config = config
        self._step_level = logging.INFO if config.verbose else logging.DEBUG

    def ensure_table(
        self, table: str, columns: Sequence[tuple[str, ColumnMapping | None]]
    ) -> TableSchema:
        """Make sure the destination table exists and resolve column types.

        Args:
            table: Escaped table name
            columns: (escaped column name, mapping) pairs in header order

        Returns:
            TableSchema with the semantic type of every column

        Raises:
            SchemaError: If any statement fails
        """
        names = [name for name, _ in columns]
        mappings = {name: self._config.effective_mapping(mapping) for name, mapping in columns}

        exists = self.table_exists(table)

        if exists and self._config.drop:
            logger.log(self._step_level, f"Dropping table {table}")
            self._execute(f"DROP TABLE {quote_identifier(table)}")
            exists = False

        if exists and self._config.truncate:
            logger.log(self._step_level, f"Truncating table {table}")
            self._execute(f"TRUNCATE TABLE {quote_identifier(table)}")

        created = False
        if not exists:
            logger.log(self._step_level, f"Creating table {table}")
            self._execute(self.create_table_sql(table, columns))
            created = True

        # 既存テーブルは実際の列定義を優先 (設定上の type は CREATE 時のみ有効)
        definitions = {name: mappings[name].type for name in names}
        if not created:
            definitions.update(
                {name: col_type for name, col_type in self.existing_column_types(table).items() if name in definitions}
            )

        column_types = {name: resolve_column_type(definitions[name]) for name in names}
        return TableSchema(table=table, columns=names, column_types=column_types, created=created)

    def table_exists(self, table: str) -> bool:
        row = self._fetchone(f"SHOW TABLES LIKE '{like_pattern(table)}'")
        return row is not None

    def existing_column_types(self, table: str) -> dict[str, str]:
        """Return column name -> DDL type text of an existing table."""
        rows = self._fetchall(f"SHOW COLUMNS FROM {quote_identifier(table)}")
        types: dict[str, str] = {}
        for row in rows:
            name, col_type = row[0], row[1]
            if isinstance(col_type, bytes):
                col_type = col_type.decode("utf-8")
            types[str(name)] = str(col_type)
        return types

    def create_table_sql(self, table: str, columns: Sequence[tuple[str, ColumnMapping | None]]) -> str:
        """Build the CREATE TABLE statement for the given header columns."""
        clauses: list[str] = []
        indexes: list[str] = []

        if self._config.auto_pk:
            clauses.append(AUTO_PK_COLUMN)

        for name, mapping in columns:
            effective = self._config.effective_mapping(mapping)
            clauses.append(f"{quote_identifier(name)} {effective.type}")
            if effective.index:
                indexes.append(f"INDEX {quote_identifier(name)} ({quote_identifier(name)})")

        if self._config.auto_pk:
            clauses.append(AUTO_PK_INDEX)
        clauses.extend(indexes)

        body = ",\n".join(clauses)
        return f"CREATE TABLE {quote_identifier(table)} (\n{body}\n)\n{self._config.table_options}"

    def _execute(self, sql: str) -> None:
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
        except pymysql.MySQLError as e:
            raise SchemaError(f"{sql.splitlines()[0]}: {e}") from e

    def _fetchone(self, sql: str) -> Any:
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
                return cursor.fetchone()
        except pymysql.MySQLError as e:
            raise SchemaError(f"{sql}: {e}") from e

    def _fetchall(self, sql: str) -> list[Any]:
        try:
            with self._connection.cursor() as cursor:
                cursor.execute(sql)
                return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise SchemaError(f"{sql}: {e}") from e
