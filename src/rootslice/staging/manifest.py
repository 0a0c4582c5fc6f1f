import json
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

from rootslice.constants import MANIFEST_FILENAME
from rootslice.exceptions import ManifestError
from rootslice.models import Classification, DependencyGraph, ExtractionPlan, StagedTable

MANIFEST_VERSION = 1

STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"


class DatabaseTypeEncoder(json.JSONEncoder):
    """
    JSON encoder for values read from the database (root ids, predicate values).

    - datetime, date, time -> ISO 8601 string
    - timedelta -> total seconds
    - Decimal -> string, keeping precision
    - UUID -> string
    - bytes -> hex string
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime | date | time):
            return obj.isoformat()

        if isinstance(obj, timedelta):
            return obj.total_seconds()

        if isinstance(obj, Decimal):
            return str(obj)

        if isinstance(obj, UUID):
            return str(obj)

        if isinstance(obj, bytes):
            return obj.hex()

        if isinstance(obj, Classification):
            return obj.value

        return super().default(obj)


@dataclass
class TableEntry:
    """Manifest record for one discovered table."""

    classification: Classification
    predicate: str | None = None
    row_count: int = 0
    file: str | None = None
    columns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "classification": self.classification.value,
            "predicate": self.predicate,
            "row_count": self.row_count,
            "file": self.file,
            "columns": list(self.columns),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableEntry":
        return cls(
            classification=Classification(data["classification"]),
            predicate=data.get("predicate"),
            row_count=int(data.get("row_count", 0)),
            file=data.get("file"),
            columns=list(data.get("columns", [])),
        )


@dataclass
class Manifest:
    """
    Record of one extraction run, written next to the staged files.

    Lists every discovered table with its classification and, once extracted,
    its filter, row count and staged file. Holds the orders needed to replay
    the staged tables into another database. A run that stops partway is
    written with status ``failed`` and names the table it stopped at.
    """

    root_table: str
    root_column: str
    root_id: Any
    schema: str
    tables: dict[str, TableEntry]
    load_order: list[str]
    descendant_order: list[str]
    outside_order: list[str]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    status: str = STATUS_COMPLETE
    failed_table: str | None = None
    error: str | None = None

    @property
    def extraction_order(self) -> list[str]:
        return self.descendant_order + self.outside_order

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETE

    def mark_failed(self, table: str | None, error: str) -> None:
        """
        Record that extraction stopped at ``table``.

        Tables staged before it keep their entries; the failed table has none.
        """
        self.status = STATUS_FAILED
        self.failed_table = table
        self.error = error
        if table in self.tables:
            entry = self.tables[table]
            entry.file = None
            entry.row_count = 0

    def staged_table_names(self) -> list[str]:
        """Tables with a staged file, in extraction order."""
        return [t for t in self.extraction_order if self.tables[t].file is not None]

    @classmethod
    def from_plan(
        cls,
        graph: DependencyGraph,
        plan: ExtractionPlan,
        root_column: str,
        root_id: Any,
        schema: str,
    ) -> "Manifest":
        return cls(
            root_table=graph.root,
            root_column=root_column,
            root_id=root_id,
            schema=schema,
            tables={
                name: TableEntry(classification=node.classification)
                for name, node in graph.tables.items()
            },
            load_order=list(plan.load_order),
            descendant_order=list(plan.descendant_order),
            outside_order=list(plan.outside_order),
        )

    def record_staged(self, staged: StagedTable, predicate: str, directory: Path) -> None:
        """Store where a table was staged; the file path is kept relative to ``directory``."""
        entry = self.tables[staged.table]
        entry.predicate = predicate
        entry.row_count = staged.row_count
        entry.columns = list(staged.columns)
        try:
            entry.file = str(Path(staged.path).relative_to(directory))
        except ValueError:
            entry.file = staged.path

    def staged_tables(self, directory: str | Path) -> dict[str, StagedTable]:
        """Rebuild StagedTable handles for every table that has a staged file."""
        directory = Path(directory)
        result = {}
        for name, entry in self.tables.items():
            if entry.file is None:
                continue
            path = Path(entry.file)
            if not path.is_absolute():
                path = directory / path
            result[name] = StagedTable(
                table=name,
                path=str(path),
                columns=tuple(entry.columns),
                row_count=entry.row_count,
            )
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "created_at": self.created_at,
            "root": {
                "table": self.root_table,
                "column": self.root_column,
                "id": self.root_id,
            },
            "schema": self.schema,
            "status": self.status,
            "failed_table": self.failed_table,
            "error": self.error,
            "tables": {name: entry.to_dict() for name, entry in self.tables.items()},
            "load_order": self.load_order,
            "descendant_order": self.descendant_order,
            "outside_order": self.outside_order,
            "extraction_order": self.extraction_order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Manifest":
        root = data["root"]
        return cls(
            root_table=root["table"],
            root_column=root["column"],
            root_id=root["id"],
            schema=data.get("schema", "public"),
            tables={name: TableEntry.from_dict(entry) for name, entry in data["tables"].items()},
            load_order=list(data["load_order"]),
            descendant_order=list(data["descendant_order"]),
            outside_order=list(data["outside_order"]),
            created_at=data.get("created_at", ""),
            status=data.get("status", STATUS_COMPLETE),
            failed_table=data.get("failed_table"),
            error=data.get("error"),
        )

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), cls=DatabaseTypeEncoder, indent=indent)


def write_manifest(manifest: Manifest, directory: str | Path) -> Path:
    """
    Write ``manifest.json`` into ``directory``.

    Raises:
        ManifestError: If the file cannot be written
    """
    path = Path(directory) / MANIFEST_FILENAME
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(manifest.to_json() + "\n", encoding="utf-8")
    except OSError as e:
        raise ManifestError(str(path), f"cannot write: {e}") from e
    return path


def read_manifest(directory: str | Path) -> Manifest:
    """
    Read ``manifest.json`` from a staging directory.

    Raises:
        ManifestError: If the file is missing or malformed
    """
    path = Path(directory) / MANIFEST_FILENAME
    if not path.is_file():
        raise ManifestError(str(path), "file does not exist")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(str(path), f"cannot read: {e}") from e

    try:
        manifest = Manifest.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ManifestError(str(path), f"missing or invalid field: {e}") from e

    if data.get("version", MANIFEST_VERSION) != MANIFEST_VERSION:
        raise ManifestError(str(path), f"unsupported version {data.get('version')!r}")
    return manifest
