"""Tests for topological ordering and extraction plans."""

import random

import pytest

from rootslice.core.cycles import describe_cycles, find_cycles_dfs
from rootslice.core.graph import GraphBuilder
from rootslice.core.ordering import TopologicalSorter, build_plan
from rootslice.exceptions import CycleDetectedError

from .conftest import MockCatalog


def assert_supporters_first(graph, order):
    position = {table: i for i, table in enumerate(order)}
    for edge in graph.all_edges():
        if edge.is_self_referential:
            continue
        if edge.dependent_table in position and edge.supporter_table in position:
            assert position[edge.supporter_table] < position[edge.dependent_table], str(edge)


def random_dag_catalog(seed: int, size: int) -> tuple[MockCatalog, str]:
    """
    Build a connected acyclic catalog of ``size`` tables and pick a root.

    Tables are ranked at random and a foreign key always points from a
    higher-ranked table to a lower-ranked one, so no cycle can form.
    """
    rng = random.Random(seed)
    names = [f"table_{i}" for i in range(size)]
    rng.shuffle(names)

    tables: dict[str, list[tuple[str, bool, str]]] = {
        name: [("id", False, "integer")] for name in names
    }
    foreign_keys = []

    def add_fk(dependent: str, supporter: str) -> None:
        column = f"{supporter}_id_{len(tables[dependent])}"
        tables[dependent].append((column, rng.random() < 0.5, "integer"))
        foreign_keys.append((dependent, column, supporter, "id"))

    for rank in range(1, size):
        # one link to an earlier table keeps the catalog connected
        add_fk(names[rank], names[rng.randrange(rank)])
        for _ in range(rng.randrange(3)):
            add_fk(names[rank], names[rng.randrange(rank)])

    rng.shuffle(foreign_keys)
    shuffled = dict(sorted(tables.items(), key=lambda _: rng.random()))
    return MockCatalog(shuffled, foreign_keys), rng.choice(names)


@pytest.fixture
def warehouse_catalog() -> MockCatalog:
    """
    A deeper schema rooted at regions.

    regions <- warehouses <- bins <- stock -> items -> vendors
                         \\<- staff
    """
    column = [("id", False, "integer")]
    return MockCatalog(
        {
            "regions": column,
            "warehouses": column + [("region_id", False, "integer")],
            "staff": column + [("warehouse_id", False, "integer")],
            "bins": column + [("warehouse_id", False, "integer")],
            "stock": column + [("bin_id", False, "integer"), ("item_id", False, "integer")],
            "items": column + [("vendor_id", True, "integer")],
            "vendors": column,
        },
        [
            ("warehouses", "region_id", "regions", "id"),
            ("staff", "warehouse_id", "warehouses", "id"),
            ("bins", "warehouse_id", "warehouses", "id"),
            ("stock", "bin_id", "bins", "id"),
            ("stock", "item_id", "items", "id"),
            ("items", "vendor_id", "vendors", "id"),
        ],
    )


class TestTopologicalSorter:
    """Tests for Kahn's algorithm ordering."""

    def test_shop_load_order(self, shop_catalog):
        graph = GraphBuilder(shop_catalog).build("orders")
        order = TopologicalSorter(graph).sort()

        assert order == ["customers", "products", "orders", "order_items", "shipments"]

    def test_supporters_precede_dependents(self, shop_catalog, warehouse_catalog):
        for catalog, root in ((shop_catalog, "orders"), (warehouse_catalog, "regions")):
            graph = GraphBuilder(catalog).build(root)
            order = TopologicalSorter(graph).sort()

            assert sorted(order) == sorted(graph.table_names)
            assert_supporters_first(graph, order)

    @pytest.mark.parametrize("seed", range(12))
    def test_random_acyclic_catalogs(self, seed):
        catalog, root = random_dag_catalog(seed, size=4 + seed)
        graph = GraphBuilder(catalog).build(root)
        plan = build_plan(graph)

        assert sorted(plan.load_order) == sorted(catalog.tables)
        assert_supporters_first(graph, plan.load_order)
        assert_supporters_first(graph, plan.descendant_order)

        # every table is extracted after the tables whose values filter it
        position = {table: i for i, table in enumerate(plan.extraction_order)}
        for edge in graph.all_edges():
            supporter, dependent = edge.supporter_table, edge.dependent_table
            if graph.is_direct_descendant(supporter):
                assert position[supporter] < position[dependent], str(edge)
            else:
                assert position[dependent] < position[supporter], str(edge)

    def test_sort_subset_only_uses_edges_inside_subset(self, shop_catalog):
        graph = GraphBuilder(shop_catalog).build("orders")
        order = TopologicalSorter(graph).sort(graph.direct_descendants())

        assert order == ["orders", "order_items", "shipments"]

    def test_sort_does_not_modify_graph(self, shop_catalog):
        graph = GraphBuilder(shop_catalog).build("orders")
        deps_before = dict(graph.deps)
        inv_before = dict(graph.inv)

        sorter = TopologicalSorter(graph)
        first = sorter.sort()
        second = sorter.sort()

        assert first == second
        assert dict(graph.deps) == deps_before
        assert dict(graph.inv) == inv_before

    def test_self_reference_does_not_block_ordering(self, self_referential_catalog):
        graph = GraphBuilder(self_referential_catalog).build("employees")
        assert TopologicalSorter(graph).sort() == ["employees"]

    def test_mutual_reference_raises(self, cyclic_catalog):
        graph = GraphBuilder(cyclic_catalog).build("a")

        with pytest.raises(CycleDetectedError) as exc_info:
            TopologicalSorter(graph).sort()

        assert exc_info.value.unordered == ["a", "b"]
        assert exc_info.value.cycles == [["a", "b", "a"]]
        assert "a -> b -> a" in str(exc_info.value)

    def test_cycle_reports_only_unorderable_tables(self):
        # c hangs off the a <-> b cycle, d is free
        column = [("id", False, "integer"), ("ref", True, "integer")]
        catalog = MockCatalog(
            {"a": column, "b": column, "c": column, "d": column},
            [
                ("a", "ref", "b", "id"),
                ("b", "ref", "a", "id"),
                ("c", "ref", "a", "id"),
                ("a", "ref", "d", "id"),
            ],
        )
        graph = GraphBuilder(catalog).build("d")

        with pytest.raises(CycleDetectedError) as exc_info:
            TopologicalSorter(graph).sort()
        assert "d" not in exc_info.value.unordered
        assert set(exc_info.value.unordered) == {"a", "b", "c"}


class TestBuildPlan:
    """Tests for the three orders of an extraction plan."""

    def test_shop_plan(self, shop_catalog):
        graph = GraphBuilder(shop_catalog).build("orders")
        plan = build_plan(graph)

        assert plan.load_order == ["customers", "products", "orders", "order_items", "shipments"]
        assert plan.descendant_order == ["orders", "order_items", "shipments"]
        assert plan.outside_order == ["products", "customers"]
        assert plan.extraction_order == [
            "orders",
            "order_items",
            "shipments",
            "products",
            "customers",
        ]

    def test_root_is_extracted_first(self, warehouse_catalog):
        graph = GraphBuilder(warehouse_catalog).build("regions")
        plan = build_plan(graph)

        assert plan.extraction_order[0] == "regions"
        assert_supporters_first(graph, plan.descendant_order)

    def test_outside_tables_follow_their_dependents(self, warehouse_catalog):
        graph = GraphBuilder(warehouse_catalog).build("regions")
        plan = build_plan(graph)
        position = {t: i for i, t in enumerate(plan.extraction_order)}

        # items is found through stock, vendors through items
        assert position["stock"] < position["items"] < position["vendors"]
        assert set(plan.outside_order) == {"items", "vendors"}

    def test_cycle_fails_plan(self, cyclic_catalog):
        graph = GraphBuilder(cyclic_catalog).build("a")
        with pytest.raises(CycleDetectedError):
            build_plan(graph)


class TestCycleDescription:
    """Tests for cycle detection helpers."""

    def test_find_cycles_dfs(self):
        cycles = find_cycles_dfs({"a": {"b"}, "b": {"c"}, "c": {"a"}, "d": set()})
        assert cycles == [["a", "b", "c"]]

    def test_find_cycles_dfs_acyclic(self):
        assert find_cycles_dfs({"a": {"b"}, "b": set()}) == []

    def test_describe_cycles_lists_edges(self, cyclic_catalog):
        graph = GraphBuilder(cyclic_catalog).build("a")
        (info,) = describe_cycles(graph, {"a", "b"})

        assert str(info) == "a -> b -> a"
        assert [str(e) for e in info.edges] == ["a.b_id -> b.id", "b.a_id -> a.id"]
