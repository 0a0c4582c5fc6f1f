from rootslice.core.graph import GraphBuilder
from rootslice.core.ordering import TopologicalSorter, build_plan
from rootslice.core.planner import SubsetQuery, SubsetQueryPlanner
from rootslice.core.values import ValueStore

__all__ = [
    "GraphBuilder",
    "TopologicalSorter",
    "build_plan",
    "SubsetQuery",
    "SubsetQueryPlanner",
    "ValueStore",
]
