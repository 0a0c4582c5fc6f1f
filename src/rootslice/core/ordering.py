from collections import deque
from collections.abc import Iterable

from rootslice.core.cycles import describe_cycles
from rootslice.exceptions import CycleDetectedError
from rootslice.logging import get_logger
from rootslice.models import DependencyGraph, ExtractionPlan

logger = get_logger(__name__)


class TopologicalSorter:
    """
    Orders tables so every supporter precedes the tables that reference it.

    Uses Kahn's algorithm over in-degree counters private to each ``sort()``
    call; the graph itself is never modified. Ties are broken by discovery
    order, so the result is deterministic for a given graph.
    """

    def __init__(self, graph: DependencyGraph):
        self.graph = graph

    def sort(self, tables: Iterable[str] | None = None) -> list[str]:
        """
        Order ``tables`` (default: every discovered table).

        Only edges between the selected tables are considered.

        Raises:
            CycleDetectedError: If some tables can never become ready
        """
        if tables is None:
            selected = self.graph.table_names
        else:
            wanted = set(tables)
            selected = [name for name in self.graph.table_names if name in wanted]
        selected_set = set(selected)
        position = {name: i for i, name in enumerate(selected)}

        # Self references are ignored here; a row can reference a row of its own table
        remaining = {
            name: len((self.graph.supporters_of(name) & selected_set) - {name})
            for name in selected
        }

        ready = deque(name for name in selected if remaining[name] == 0)
        order: list[str] = []

        while ready:
            table = ready.popleft()
            order.append(table)

            newly_ready = []
            for dependent in self.graph.dependents_of(table):
                if dependent not in selected_set or dependent == table:
                    continue
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    newly_ready.append(dependent)
            ready.extend(sorted(newly_ready, key=position.__getitem__))

        if len(order) < len(selected):
            emitted = set(order)
            unordered = [name for name in selected if name not in emitted]
            cycles = describe_cycles(self.graph, set(unordered))
            logger.error(
                "Foreign key cycle detected",
                unordered=unordered,
                cycles=[str(c) for c in cycles],
            )
            raise CycleDetectedError(unordered, [c.tables + [c.tables[0]] for c in cycles])

        return order


def build_plan(graph: DependencyGraph) -> ExtractionPlan:
    """
    Compute load, descendant and outside orders for a graph.

    Outside tables are taken from the full order in reverse, so each one
    comes after every table that references it and can be filtered by the
    values those tables captured.
    """
    sorter = TopologicalSorter(graph)
    load_order = sorter.sort()
    descendant_order = sorter.sort(graph.direct_descendants())
    outside_order = [t for t in reversed(load_order) if not graph.is_direct_descendant(t)]

    logger.debug(
        "Computed table orders",
        load_order=load_order,
        descendant_order=descendant_order,
        outside_order=outside_order,
    )
    return ExtractionPlan(
        load_order=load_order,
        descendant_order=descendant_order,
        outside_order=outside_order,
    )
