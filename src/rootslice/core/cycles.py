from collections.abc import Mapping, Set
from dataclasses import dataclass

from rootslice.models import DependencyGraph, ForeignKeyEdge


@dataclass
class CycleInfo:
    """Information about a detected cycle."""

    tables: list[str]
    edges: list[ForeignKeyEdge]

    def __str__(self) -> str:
        return " -> ".join(self.tables + [self.tables[0]])


def find_cycles_dfs(dependencies: Mapping[str, Set[str]]) -> list[list[str]]:
    """
    Find cycles in a dependency mapping using depth-first search.

    A node met again while still on the recursion stack closes a cycle.
    Neighbours are visited in sorted order so the result is stable.

    Args:
        dependencies: Map of table -> tables it depends on

    Returns:
        List of cycles, each a list of table names in path order
    """
    cycles = []
    visited: set[str] = set()
    rec_stack: list[str] = []

    def dfs(node: str) -> None:
        if node in rec_stack:
            cycle_start = rec_stack.index(node)
            cycles.append(rec_stack[cycle_start:])
            return

        if node in visited:
            return

        visited.add(node)
        rec_stack.append(node)

        for neighbor in sorted(dependencies.get(node, ())):
            dfs(neighbor)

        rec_stack.pop()

    for node in dependencies:
        if node not in visited:
            dfs(node)

    return cycles


def describe_cycles(graph: DependencyGraph, tables: Set[str]) -> list[CycleInfo]:
    """
    Find the cycles among ``tables`` and the foreign keys forming them.

    Only edges along each cycle's path are reported, so for ``[A, B]`` the
    edges A -> B and B -> A are returned but not a self reference on A.
    """
    induced = {
        table: (graph.supporters_of(table) & tables) - {table}
        for table in graph.tables
        if table in tables
    }

    infos = []
    for cycle in find_cycles_dfs(induced):
        cycle_edges = []
        for i, dependent in enumerate(cycle):
            supporter = cycle[(i + 1) % len(cycle)]
            cycle_edges.extend(graph.edges_between(dependent, supporter))
        infos.append(CycleInfo(tables=cycle, edges=cycle_edges))
    return infos
