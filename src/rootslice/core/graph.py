from collections import deque
from collections.abc import Sequence
from typing import Any

from rootslice.adapters.base import SchemaCatalog
from rootslice.exceptions import SchemaDiscoveryError, TableNotFoundError
from rootslice.logging import get_logger
from rootslice.models import (
    Classification,
    ColumnInfo,
    DependencyGraph,
    ForeignKeyEdge,
    TableNode,
)

logger = get_logger(__name__)


class GraphBuilder:
    """
    Discovers the foreign-key network around a root table.

    Walks the catalog breadth-first from the root, following references in
    both directions. The root is a direct descendant; tables that reference
    a direct descendant become direct descendants too. Every other table is
    classified outside. The first classification a table receives is kept.
    """

    def __init__(self, catalog: SchemaCatalog):
        self.catalog = catalog

    def build(self, root: str) -> DependencyGraph:
        """
        Run discovery from ``root`` to completion.

        Raises:
            TableNotFoundError: If the root table has no columns in the catalog
            SchemaDiscoveryError: If a lookup fails or returns malformed rows
        """
        classification: dict[str, Classification] = {root: Classification.DIRECT_DESCENDANT}
        columns: dict[str, dict[str, ColumnInfo]] = {}
        deps: dict[str, set[str]] = {}
        inv: dict[str, set[str]] = {}
        edges: dict[tuple[str, str], list[ForeignKeyEdge]] = {}
        needed: dict[str, list[str]] = {}

        seen = {root}
        queue: deque[str] = deque([root])

        def visit(table: str) -> None:
            if table not in seen:
                seen.add(table)
                queue.append(table)

        def record(edge: ForeignKeyEdge) -> None:
            pair = edge.as_edge()
            bucket = edges.setdefault(pair, [])
            if edge in bucket:
                return
            bucket.append(edge)
            deps.setdefault(edge.dependent_table, set()).add(edge.supporter_table)
            inv.setdefault(edge.supporter_table, set()).add(edge.dependent_table)
            _add_needed(needed, edge.supporter_table, edge.supporter_column)
            _add_needed(needed, edge.dependent_table, edge.dependent_column)
            logger.debug("Discovered foreign key", edge=str(edge))

        while queue:
            current = queue.popleft()
            current_is_descendant = classification[current] is Classification.DIRECT_DESCENDANT

            for dependent, local_column, referenced_column in self._lookup(
                self.catalog.list_dependents, current, "dependents"
            ):
                record(ForeignKeyEdge(dependent, local_column, current, referenced_column))
                visit(dependent)
                if dependent not in classification:
                    classification[dependent] = (
                        Classification.DIRECT_DESCENDANT
                        if current_is_descendant
                        else Classification.OUTSIDE
                    )

            for supporter, local_column, referenced_column in self._lookup(
                self.catalog.list_supporters, current, "supporters"
            ):
                record(ForeignKeyEdge(current, local_column, supporter, referenced_column))
                visit(supporter)
                if supporter not in classification:
                    classification[supporter] = Classification.OUTSIDE

            columns[current] = self._columns(current)
            if current == root and not columns[current]:
                raise TableNotFoundError(root)

        order = list(columns)
        for table, table_needed in needed.items():
            for column in table_needed:
                if column not in columns.get(table, {}):
                    raise SchemaDiscoveryError(
                        f"foreign key column '{column}' is not a column of the table", table
                    )

        graph = DependencyGraph(
            root=root,
            tables={
                name: TableNode(
                    name=name,
                    columns=columns[name],
                    classification=classification[name],
                )
                for name in order
            },
            deps={name: frozenset(deps.get(name, ())) for name in order},
            inv={name: frozenset(inv.get(name, ())) for name in order},
            edges={pair: tuple(group) for pair, group in edges.items()},
            needed_columns={name: tuple(needed.get(name, ())) for name in order},
        )

        logger.info(
            "Dependency graph discovered",
            root=root,
            tables=len(order),
            direct_descendants=len(graph.direct_descendants()),
            outside=len(graph.outside_tables()),
            edges=len(graph.all_edges()),
        )
        return graph

    def _lookup(self, method, table: str, kind: str) -> list[tuple[str, str, str]]:
        rows = self._call(method, table, kind)
        result = []
        for row in rows:
            if not isinstance(row, Sequence) or isinstance(row, str) or len(row) != 3:
                raise SchemaDiscoveryError(f"malformed {kind} row {row!r}", table)
            other, local_column, referenced_column = row
            if not all(_is_name(v) for v in (other, local_column, referenced_column)):
                raise SchemaDiscoveryError(f"malformed {kind} row {row!r}", table)
            result.append((other, local_column, referenced_column))
        return result

    def _columns(self, table: str) -> dict[str, ColumnInfo]:
        result: dict[str, ColumnInfo] = {}
        for row in self._call(self.catalog.list_columns, table, "columns"):
            if not isinstance(row, Sequence) or isinstance(row, str) or len(row) != 3:
                raise SchemaDiscoveryError(f"malformed column row {row!r}", table)
            name, nullable, data_type = row
            if not _is_name(name) or not isinstance(nullable, bool):
                raise SchemaDiscoveryError(f"malformed column row {row!r}", table)
            result[name] = ColumnInfo(name=name, data_type=str(data_type), nullable=nullable)
        return result

    @staticmethod
    def _call(method, table: str, kind: str) -> list[Any]:
        try:
            return list(method(table))
        except SchemaDiscoveryError:
            raise
        except Exception as e:
            raise SchemaDiscoveryError(f"{kind} lookup failed: {e}", table) from e


def _is_name(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _add_needed(needed: dict[str, list[str]], table: str, column: str) -> None:
    bucket = needed.setdefault(table, [])
    if column not in bucket:
        bucket.append(column)
