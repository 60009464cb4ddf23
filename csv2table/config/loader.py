from __future__ import annotations

import json
import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..csvfile.reader import sanitize_name, table_name_for
from ..models.config_models import (
    DEFAULT_BULK_INSERT_SIZE,
    DEFAULT_COL_TYPE,
    DEFAULT_DELIMITER,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TABLE_OPTIONS,
    ColumnMapping,
    DatabaseConfig,
    EmailConfig,
    ImportConfig,
    PlainAuth,
)

"""Config loading and merging.

Responsibilities:
- Load YAML documents: the global <directory>/csv2table.yml and the per-file
  <directory>/<name>.yml next to <name>.csv
- Validate each document against config_schema.json
- Merge them, file values winning key by key (nested mappings field by field)
- Build the typed ImportConfig / EmailConfig, applying defaults and MYSQL_*
  environment fallbacks for connection fields no document sets
"""

__all__ = [
    "ConfigError",
    "GLOBAL_CONFIG_NAME",
    "load_document",
    "load_global_document",
    "merge_documents",
    "build_import_config",
    "build_email_config",
    "file_config_path",
    "load_file_config",
]

GLOBAL_CONFIG_NAME = "csv2table.yml"
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")

# 設定ファイルに無い接続情報のみ環境変数で補完
ENV_FALLBACKS = {
    "db": "MYSQL_DATABASE",
    "host": "MYSQL_HOST",
    "port": "MYSQL_PORT",
    "username": "MYSQL_USER",
    "password": "MYSQL_PASSWORD",
}


class ConfigError(Exception):
    error_type = "CONFIG_ERROR"


@lru_cache(maxsize=1)
def _schema() -> dict[str, Any]:
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e


def validate_document(data: Any, source: str) -> None:
    """Validate a config document against the JSON schema.

    Raises:
        ConfigError: If the document violates the schema (unknown keys,
            wrong types, out of range values)
    """
    try:
        jsonschema.validate(data, _schema())
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        where = f" at {location}" if location else ""
        raise ConfigError(f"{source}: config validation failed{where}: {e.message}") from e


def load_document(path: Path) -> dict[str, Any]:
    """Load and validate one YAML config file.

    An empty file is a valid, empty document.
    """
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path.name}: invalid yaml: {e}") from e
    except OSError as e:
        raise ConfigError(f"{path.name}: cannot read: {e}") from e
    validate_document(data, path.name)
    return data


def load_global_document(directory: Path, name: str = GLOBAL_CONFIG_NAME) -> dict[str, Any] | None:
    """Load the global config of a directory, None if there is none."""
    path = directory / name
    if not path.exists():
        return None
    return load_document(path)


def merge_documents(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge two config documents; override wins key by key.

    Nested mappings (e.g. ``mapping.<column>``) are merged recursively, all
    other values (including lists such as ``nullIf``) are replaced.
    """
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_documents(current, value)
        else:
            merged[key] = value
    return merged


def file_config_path(csv_path: Path) -> Path:
    return csv_path.with_suffix(".yml")


def load_file_config(
    csv_path: Path,
    global_document: Mapping[str, Any] | None,
    env: Mapping[str, str] | None = None,
) -> ImportConfig:
    """Build the effective ImportConfig of one CSV file.

    Raises:
        ConfigError: If neither a global nor a file config exists, or if a
            document is invalid
    """
    path = file_config_path(csv_path)
    file_document = load_document(path) if path.exists() else None

    if global_document is None and file_document is None:
        raise ConfigError(f"no configuration files found for {csv_path.name}")

    document = merge_documents(global_document or {}, file_document or {})
    document.pop("email", None)  # email はグローバル設定のみ
    return build_import_config(document, csv_path.name, env=env)


def _pick(document: Mapping[str, Any], key: str, env: Mapping[str, str]) -> Any:
    if document.get(key) is not None:
        return document[key]
    env_key = ENV_FALLBACKS.get(key)
    if env_key and env.get(env_key):
        return env[env_key]
    return None


def _build_database(document: Mapping[str, Any], env: Mapping[str, str]) -> DatabaseConfig:
    port_raw = _pick(document, "port", env)
    try:
        port = int(port_raw) if port_raw is not None else DEFAULT_PORT
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid port: {port_raw!r}") from e
    password = _pick(document, "password", env)
    return DatabaseConfig(
        db=_pick(document, "db", env),
        host=_pick(document, "host", env) or DEFAULT_HOST,
        port=port,
        username=_pick(document, "username", env),
        password=str(password) if password is not None else None,
    )


def _build_mapping(raw: Mapping[str, Any] | None) -> dict[str, ColumnMapping]:
    mapping: dict[str, ColumnMapping] = {}
    for column, spec in (raw or {}).items():
        spec = spec or {}
        mapping[sanitize_name(str(column))] = ColumnMapping(
            type=spec.get("type") or None,
            index=bool(spec.get("index", False)),
            format=spec.get("format") or None,
            null_if=tuple(spec.get("nullIf") or ()),
            null_if_empty=bool(spec.get("nullIfEmpty", False)),
        )
    return mapping


def build_import_config(
    document: Mapping[str, Any],
    file_name: str,
    env: Mapping[str, str] | None = None,
) -> ImportConfig:
    """Turn a merged config document into an ImportConfig.

    Args:
        document: Merged (global + file) document, already validated
        file_name: CSV file name; its sanitized base name is the default table
        env: Environment used for connection fallbacks (default: os.environ)
    """
    env = os.environ if env is None else env
    return ImportConfig(
        table=document.get("table") or table_name_for(Path(file_name)),
        database=_build_database(document, env),
        mapping=_build_mapping(document.get("mapping")),
        drop=bool(document.get("drop", False)),
        truncate=bool(document.get("truncate", False)),
        auto_pk=bool(document.get("autoPk", False)),
        default_col_type=document.get("defaultColType") or DEFAULT_COL_TYPE,
        table_options=document.get("tableOptions", DEFAULT_TABLE_OPTIONS),
        bulk_insert_size=int(document.get("bulkInsertSize", DEFAULT_BULK_INSERT_SIZE)),
        verbose=bool(document.get("verbose", False)),
        delimiter=document.get("delimiter") or DEFAULT_DELIMITER,
    )


def build_email_config(document: Mapping[str, Any] | None) -> EmailConfig | None:
    """Build the EmailConfig from the global document's ``email`` section."""
    if not document or not document.get("email"):
        return None
    raw = document["email"]
    auth = raw.get("plainAuth") or {}
    return EmailConfig(
        send_on_success=bool(raw.get("sendOnSuccess", True)),
        send_on_error=bool(raw.get("sendOnError", True)),
        success_subject=raw.get("successSubject"),
        success_body=raw.get("successBody"),
        error_subject=raw.get("errorSubject"),
        error_body=raw.get("errorBody"),
        from_addr=raw.get("from", ""),
        to=tuple(raw.get("to") or ()),
        cc=tuple(raw.get("cc") or ()),
        bcc=tuple(raw.get("bcc") or ()),
        smtp_server=raw.get("smtpServer", ""),
        plain_auth=PlainAuth(
            identity=auth.get("identity", ""),
            username=auth.get("username", ""),
            password=str(auth.get("password", "")),
            host=auth.get("host", ""),
        ),
    )
