import csv
import json
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from rootslice.exceptions import ExtractionIOError
from rootslice.logging import get_logger
from rootslice.models import ColumnInfo, StagedTable

logger = get_logger(__name__)


class CSVStagingArea:
    """
    Writes one CSV file per table into a staging directory.

    Files follow PostgreSQL's ``COPY ... (FORMAT csv, HEADER)`` conventions:
    every non-NULL field is quoted and NULL is an empty unquoted field, so an
    empty string and NULL survive the round trip as different values.

    Type conversions:
    - bool -> "true"/"false"
    - datetime, date, time -> ISO 8601
    - timedelta -> "<seconds> seconds" (interval input syntax)
    - bytes -> "\\x" followed by hex (bytea input syntax)
    - list -> array literal for array columns, JSON otherwise
    - dict -> JSON
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def path_for(self, table: str) -> Path:
        return self.directory / f"{table}.csv"

    def write(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
        column_info: Mapping[str, ColumnInfo] | None = None,
    ) -> StagedTable:
        """
        Stream ``rows`` into ``<directory>/<table>.csv``.

        When ``columns`` is not given the first row's keys are used.

        Raises:
            ExtractionIOError: If the file cannot be written or a row lacks a column
        """
        path = self.path_for(table)
        column_info = column_info or {}
        row_count = 0

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f, quoting=csv.QUOTE_NOTNULL, lineterminator="\n")
                header_written = False

                if columns is not None:
                    columns = list(columns)
                    writer.writerow(columns)
                    header_written = True

                for row in rows:
                    if not header_written:
                        columns = list(row.keys())
                        writer.writerow(columns)
                        header_written = True
                    assert columns is not None
                    try:
                        writer.writerow(
                            [self._format_value(row[col], column_info.get(col)) for col in columns]
                        )
                    except KeyError as e:
                        raise ExtractionIOError(f"row is missing column {e}", table) from e
                    row_count += 1
        except OSError as e:
            self._discard(path)
            raise ExtractionIOError(f"cannot write staging file '{path}': {e}", table) from e
        except Exception:
            self._discard(path)
            raise

        logger.debug("Staged table", table=table, path=str(path), row_count=row_count)
        return StagedTable(
            table=table,
            path=str(path),
            columns=tuple(columns or ()),
            row_count=row_count,
        )

    def _discard(self, path: Path) -> None:
        """Remove a partly written file so it cannot be mistaken for a staged table."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove partial staging file", path=str(path), error=str(e))

    def read(self, staged: StagedTable) -> list[dict[str, str | None]]:
        """
        Read a staged file back as text rows.

        Unquoted empty fields come back as None.
        """
        rows = []
        try:
            with open(staged.path, newline="", encoding="utf-8") as f:
                reader = csv.reader(f, quoting=csv.QUOTE_NOTNULL)
                header = next(reader, None)
                if header is None:
                    return []
                for record in reader:
                    rows.append(dict(zip(header, record)))
        except OSError as e:
            raise ExtractionIOError(f"cannot read staging file: {e}", staged.table) from e
        return rows

    def _format_value(self, value: Any, column: ColumnInfo | None = None) -> str | None:
        if value is None:
            return None

        if isinstance(value, bool):
            return "true" if value else "false"

        if isinstance(value, datetime | date | time):
            return value.isoformat()

        if isinstance(value, timedelta):
            return f"{value.total_seconds()} seconds"

        if isinstance(value, UUID):
            return str(value)

        if isinstance(value, bytes | bytearray | memoryview):
            return "\\x" + bytes(value).hex()

        if isinstance(value, list | tuple):
            if column is not None and column.is_array:
                return _array_literal(value)
            return json.dumps(value, default=str, ensure_ascii=False)

        if isinstance(value, dict):
            return json.dumps(value, default=str, ensure_ascii=False)

        if isinstance(value, Decimal | int | float):
            return str(value)

        return str(value)


def _array_literal(values: Sequence[Any]) -> str:
    """Render a (possibly nested) list as a PostgreSQL array literal."""
    parts = []
    for value in values:
        if value is None:
            parts.append("NULL")
        elif isinstance(value, list | tuple):
            parts.append(_array_literal(value))
        else:
            if isinstance(value, bool):
                text = "true" if value else "false"
            elif isinstance(value, datetime | date | time):
                text = value.isoformat()
            elif isinstance(value, dict):
                text = json.dumps(value, default=str, ensure_ascii=False)
            else:
                text = str(value)
            parts.append('"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"')
    return "{" + ",".join(parts) + "}"
