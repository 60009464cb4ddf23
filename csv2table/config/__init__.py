from .loader import (
    GLOBAL_CONFIG_NAME,
    ConfigError,
    build_email_config,
    build_import_config,
    load_document,
    load_file_config,
    load_global_document,
    merge_documents,
)

__all__ = [
    "GLOBAL_CONFIG_NAME",
    "ConfigError",
    "build_email_config",
    "build_import_config",
    "load_document",
    "load_file_config",
    "load_global_document",
    "merge_documents",
]
