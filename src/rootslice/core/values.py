from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from rootslice.exceptions import ExtractionIOError


class ValueStore:
    """
    Key-column values captured from extracted rows, per table and column.

    Entries are appended in extraction order and never de-duplicated. A
    table's entries are written only while that table's rows stream past
    ``capture()``; planners read them afterwards through ``values()``.
    """

    def __init__(self):
        self._values: dict[str, dict[str, list[Any]]] = {}
        self._row_counts: dict[str, int] = {}

    def register(self, table: str, columns: Sequence[str]) -> None:
        """Mark a table as extracted, even when it yields no rows."""
        store = self._values.setdefault(table, {})
        for column in columns:
            store.setdefault(column, [])
        self._row_counts.setdefault(table, 0)

    def capture(
        self,
        table: str,
        columns: Sequence[str],
        rows: Iterable[Mapping[str, Any]],
    ) -> Iterator[Mapping[str, Any]]:
        """
        Record ``columns`` of every row while passing the rows through.

        The table is registered immediately, before any row is read.

        Raises:
            ExtractionIOError: If a row lacks one of the needed columns
        """
        self.register(table, columns)
        return self._capture(table, columns, rows)

    def _capture(
        self,
        table: str,
        columns: Sequence[str],
        rows: Iterable[Mapping[str, Any]],
    ) -> Iterator[Mapping[str, Any]]:
        store = self._values[table]

        for row in rows:
            for column in columns:
                if column not in row:
                    raise ExtractionIOError(f"row is missing needed column '{column}'", table)
                store[column].append(row[column])
            self._row_counts[table] += 1
            yield row

    def values(self, table: str, column: str) -> tuple[Any, ...]:
        return tuple(self._values.get(table, {}).get(column, ()))

    def has_table(self, table: str) -> bool:
        return table in self._values

    def row_count(self, table: str) -> int:
        return self._row_counts.get(table, 0)

    def tables(self) -> list[str]:
        """Tables captured so far, in extraction order."""
        return list(self._values)

    def __contains__(self, table: str) -> bool:
        return self.has_table(table)
