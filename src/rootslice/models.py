from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class Classification(Enum):
    """How a discovered table relates to the root row."""

    DIRECT_DESCENDANT = "direct_descendant"
    OUTSIDE = "outside"


@dataclass(frozen=True)
class ColumnInfo:
    """Represents a database column."""

    name: str
    data_type: str
    nullable: bool

    @property
    def is_array(self) -> bool:
        return self.data_type.upper() == "ARRAY" or self.data_type.endswith("[]")

    @property
    def is_json(self) -> bool:
        return self.data_type in ("json", "jsonb")


@dataclass(frozen=True)
class ForeignKeyEdge:
    """
    One column-level foreign key reference.

    ``dependent_table.dependent_column`` references
    ``supporter_table.supporter_column``.
    """

    dependent_table: str
    dependent_column: str
    supporter_table: str
    supporter_column: str

    def as_edge(self) -> tuple[str, str]:
        """Return as directed edge (dependent -> supporter)."""
        return (self.dependent_table, self.supporter_table)

    @property
    def is_self_referential(self) -> bool:
        return self.dependent_table == self.supporter_table

    def __str__(self) -> str:
        return (
            f"{self.dependent_table}.{self.dependent_column} -> "
            f"{self.supporter_table}.{self.supporter_column}"
        )


@dataclass(frozen=True)
class TableNode:
    """A discovered table with its columns and classification."""

    name: str
    columns: Mapping[str, ColumnInfo]
    classification: Classification

    @property
    def is_direct_descendant(self) -> bool:
        return self.classification is Classification.DIRECT_DESCENDANT

    def get_column(self, name: str) -> ColumnInfo | None:
        return self.columns.get(name)

    def get_column_names(self) -> list[str]:
        return list(self.columns)


@dataclass(frozen=True)
class DependencyGraph:
    """
    The foreign-key network around a root table.

    Built once by ``GraphBuilder`` and never mutated afterwards. ``deps`` maps
    each table to the supporters it references, ``inv`` is its exact inverse,
    and ``edges`` keeps every column-level reference per (dependent, supporter)
    pair so several foreign keys between the same two tables are all kept.
    """

    root: str
    tables: Mapping[str, TableNode]
    deps: Mapping[str, frozenset[str]]
    inv: Mapping[str, frozenset[str]]
    edges: Mapping[tuple[str, str], tuple[ForeignKeyEdge, ...]]
    needed_columns: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        # Expose read-only views of the mappings
        for name in ("tables", "deps", "inv", "edges", "needed_columns"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    @property
    def table_names(self) -> list[str]:
        """Tables in discovery order."""
        return list(self.tables)

    def get_table(self, name: str) -> TableNode | None:
        return self.tables.get(name)

    def has_table(self, name: str) -> bool:
        return name in self.tables

    def classification_of(self, table: str) -> Classification:
        return self.tables[table].classification

    def is_direct_descendant(self, table: str) -> bool:
        return self.tables[table].is_direct_descendant

    def direct_descendants(self) -> list[str]:
        return [name for name, node in self.tables.items() if node.is_direct_descendant]

    def outside_tables(self) -> list[str]:
        return [name for name, node in self.tables.items() if not node.is_direct_descendant]

    def supporters_of(self, table: str) -> frozenset[str]:
        return self.deps.get(table, frozenset())

    def dependents_of(self, table: str) -> frozenset[str]:
        return self.inv.get(table, frozenset())

    def edges_between(self, dependent: str, supporter: str) -> tuple[ForeignKeyEdge, ...]:
        return self.edges.get((dependent, supporter), ())

    def all_edges(self) -> list[ForeignKeyEdge]:
        return [edge for group in self.edges.values() for edge in group]

    def needed_columns_of(self, table: str) -> tuple[str, ...]:
        return self.needed_columns.get(table, ())


@dataclass
class ExtractionPlan:
    """
    Table orders computed from a dependency graph.

    ``load_order`` covers every table with supporters first. Direct
    descendants are extracted in ``descendant_order``; outside tables follow
    in ``outside_order``, which places each outside table after every table
    that references it.
    """

    load_order: list[str]
    descendant_order: list[str]
    outside_order: list[str]

    @property
    def extraction_order(self) -> list[str]:
        return self.descendant_order + self.outside_order


@dataclass(frozen=True)
class StagedTable:
    """Rows of one table persisted for a later load."""

    table: str
    path: str
    columns: tuple[str, ...]
    row_count: int


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one staged table into the destination."""

    table: str
    rows_staged: int
    rows_inserted: int

    @property
    def rows_skipped(self) -> int:
        """Rows that already existed in the destination."""
        return self.rows_staged - self.rows_inserted
