"""Domain models for the CSV -> MySQL import tool."""

from .column_type import SemanticColumnType, resolve_column_type
from .config_models import (
    ColumnMapping,
    DatabaseConfig,
    EmailConfig,
    ImportConfig,
    PlainAuth,
)
from .error_record import ErrorRecord
from .processing_result import BatchStatsAccumulator, ImportFileStatus, ProcessingResult

__all__ = [
    # Configuration models
    "ColumnMapping",
    "DatabaseConfig",
    "EmailConfig",
    "ImportConfig",
    "PlainAuth",
    # Column typing
    "SemanticColumnType",
    "resolve_column_type",
    # Processing models
    "ErrorRecord",
    "ImportFileStatus",
    "ProcessingResult",
    "BatchStatsAccumulator",
]
