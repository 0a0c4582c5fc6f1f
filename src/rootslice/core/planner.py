from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from rootslice.constants import DEFAULT_ROOT_COLUMN
from rootslice.core.predicates import Equals, In, Predicate, any_of, unique_values
from rootslice.core.values import ValueStore
from rootslice.logging import get_logger
from rootslice.models import Classification, DependencyGraph

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubsetQuery:
    """Rows of ``table`` selected by ``predicate``."""

    table: str
    classification: Classification
    predicate: Predicate

    @property
    def is_direct_descendant(self) -> bool:
        return self.classification is Classification.DIRECT_DESCENDANT

    def __str__(self) -> str:
        return f"{self.table}: {self.predicate}"


class SubsetQueryPlanner:
    """
    Builds the filter for each table from values captured so far.

    - The root table is filtered by equality on the root id.
    - A direct descendant is filtered by its foreign keys into direct
      descendants that have already been extracted.
    - An outside table is filtered by the non-NULL values that extracted
      tables hold in columns referencing it.

    Terms are combined with OR. A term whose value list is empty is kept as an
    always-false ``IN (NULL)`` branch.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        values: ValueStore,
        root_id: Any,
        root_column: str = DEFAULT_ROOT_COLUMN,
    ):
        self.graph = graph
        self.values = values
        self.root_id = root_id
        self.root_column = root_column

    def plan(self, table: str) -> SubsetQuery:
        node = self.graph.tables[table]

        if table == self.graph.root:
            predicate: Predicate = Equals(self.root_column, self.root_id)
        elif node.is_direct_descendant:
            predicate = any_of(self._descendant_terms(table))
        else:
            predicate = any_of(self._outside_terms(table))

        logger.debug("Planned table filter", table=table, predicate=str(predicate))
        return SubsetQuery(table=table, classification=node.classification, predicate=predicate)

    def iter_queries(self, order: Iterable[str]) -> Iterator[SubsetQuery]:
        """
        Yield one query per table, planning each only when it is requested.

        Callers must extract a table before pulling the next query, since
        later filters read the values captured from earlier tables.
        """
        for table in order:
            yield self.plan(table)

    def _descendant_terms(self, table: str) -> list[Predicate]:
        terms: list[Predicate] = []
        for supporter in self._ordered(self.graph.supporters_of(table)):
            if supporter == table or not self.graph.is_direct_descendant(supporter):
                continue
            if supporter not in self.values:
                continue
            for edge in self.graph.edges_between(table, supporter):
                captured = self.values.values(supporter, edge.supporter_column)
                terms.append(self._membership(table, edge.dependent_column, captured))
        return terms

    def _outside_terms(self, table: str) -> list[Predicate]:
        terms: list[Predicate] = []
        for dependent in self._ordered(self.graph.dependents_of(table)):
            if dependent == table or dependent not in self.values:
                continue
            for edge in self.graph.edges_between(dependent, table):
                captured = self.values.values(dependent, edge.dependent_column)
                terms.append(self._membership(table, edge.supporter_column, captured))
        return terms

    def _membership(self, table: str, column: str, captured: Iterable[Any]) -> In:
        term = In(column, unique_values(captured, skip_null=True))
        if term.is_sentinel:
            logger.debug("No candidate values, term matches nothing", table=table, column=column)
        return term

    def _ordered(self, tables: Iterable[str]) -> list[str]:
        position = {name: i for i, name in enumerate(self.graph.tables)}
        return sorted(tables, key=position.__getitem__)
