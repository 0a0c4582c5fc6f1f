from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from rootslice.models import LoadResult, StagedTable

if TYPE_CHECKING:
    from rootslice.core.planner import SubsetQuery


class SchemaCatalog(ABC):
    """
    Foreign-key and column metadata for the tables of one schema.

    Each method returns plain tuples so that catalogs can be backed by a live
    database, a fixture or a cached export.
    """

    @abstractmethod
    def list_dependents(self, table: str) -> list[tuple[str, str, str]]:
        """
        Foreign keys in other tables that reference ``table``.

        Returns:
            List of (dependent_table, dependent_column, referenced_column)
        """
        pass

    @abstractmethod
    def list_supporters(self, table: str) -> list[tuple[str, str, str]]:
        """
        Foreign keys of ``table`` that reference other tables.

        Returns:
            List of (supporter_table, local_column, referenced_column)
        """
        pass

    @abstractmethod
    def list_columns(self, table: str) -> list[tuple[str, bool, str]]:
        """
        Columns of ``table`` in ordinal order.

        Returns:
            List of (column_name, nullable, data_type)
        """
        pass

    def quote_identifier(self, name: str) -> str:
        """
        Quote an identifier (table or column name) for safe SQL.

        Default implementation uses double quotes (SQL standard).
        """
        return '"' + name.replace('"', '""') + '"'


class DataSink(ABC):
    """
    Reads filtered rows from the source and persists them for loading.

    ``extract_rows`` is expected to stream; ``stage_rows`` consumes the
    iterator it is given exactly once.
    """

    @abstractmethod
    def extract_rows(self, query: "SubsetQuery") -> Iterator[Mapping[str, Any]]:
        """
        Yield the rows of ``query.table`` matching ``query.predicate``.

        Raises:
            ExtractionIOError: If the rows cannot be read
        """
        pass

    @abstractmethod
    def stage_rows(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> StagedTable:
        """
        Persist ``rows`` and return a handle for loading them later.

        Raises:
            ExtractionIOError: If the rows cannot be written
        """
        pass

    @contextmanager
    def snapshot_transaction(self):
        """
        Context manager wrapping every read of a run.

        Sinks reading from a live database override this so all tables are
        read from one consistent snapshot.
        """
        yield


class BulkCopier(ABC):
    """Loads staged tables into a destination database."""

    @abstractmethod
    def load_table(self, table: str, staged: StagedTable) -> LoadResult:
        """
        Insert the staged rows of ``table``, skipping rows that already exist.

        Raises:
            LoadError: If the rows cannot be loaded
        """
        pass

    def close(self) -> None:
        """Release any held connection."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
