from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from ..models.config_models import ImportConfig

__all__ = ["DbService"]


class DbService(ABC):
    """Per-file import session implemented by a storage backend.

    The driver calls start() once, process_header() once, process_line() for
    every data row in file order and finally end(). On any error it calls
    close() instead of end(), which releases resources without writing the
    pending batch.
    """

    @abstractmethod
    def start(self, file_name: str, config: ImportConfig) -> None:
        """Open the storage connection for one file."""

    @abstractmethod
    def process_header(self, header: Sequence[str]) -> None:
        """Prepare the destination table from the header row."""

    @abstractmethod
    def process_line(self, line: Sequence[str]) -> None:
        """Coerce and queue one data row."""

    @abstractmethod
    def end(self) -> None:
        """Flush outstanding rows and release the connection."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection without flushing."""

    @property
    @abstractmethod
    def row_count(self) -> int:
        """Number of data rows written so far."""
