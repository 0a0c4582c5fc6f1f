"""Tests for per-table filter planning."""

import pytest

from rootslice.core.graph import GraphBuilder
from rootslice.core.ordering import build_plan
from rootslice.core.planner import SubsetQueryPlanner
from rootslice.core.predicates import AnyOf, Equals, In
from rootslice.core.values import ValueStore
from rootslice.models import Classification

from .conftest import MockCatalog


def extract(values, graph, table, query, rows):
    """Capture the rows a query selects, the way the runner does."""
    selected = [row for row in rows if query.predicate.matches(row)]
    return list(values.capture(table, graph.needed_columns_of(table), selected))


@pytest.fixture
def shop_graph(shop_catalog):
    return GraphBuilder(shop_catalog).build("orders")


class TestRootPredicate:
    def test_root_is_equality_on_id(self, shop_graph):
        planner = SubsetQueryPlanner(shop_graph, ValueStore(), 5)
        query = planner.plan("orders")

        assert query.predicate == Equals("id", 5)
        assert str(query) == 'orders: "id" = 5'
        assert query.is_direct_descendant

    def test_root_uses_given_column(self, shop_graph):
        planner = SubsetQueryPlanner(shop_graph, ValueStore(), "A-17", root_column="status")
        assert planner.plan("orders").predicate == Equals("status", "A-17")

    def test_root_predicate_ignores_captured_values(self, self_referential_catalog):
        graph = GraphBuilder(self_referential_catalog).build("employees")
        values = ValueStore()
        list(values.capture("employees", ["id", "manager_id"], [{"id": 3, "manager_id": 1}]))

        planner = SubsetQueryPlanner(graph, values, 3)
        assert planner.plan("employees").predicate == Equals("id", 3)


class TestDescendantPredicate:
    def test_order_items_filtered_by_order_ids(self, shop_graph, shop_data):
        values = ValueStore()
        planner = SubsetQueryPlanner(shop_graph, values, 5)
        extract(values, shop_graph, "orders", planner.plan("orders"), shop_data["orders"])

        query = planner.plan("order_items")
        assert query.classification is Classification.DIRECT_DESCENDANT
        assert query.predicate == In("order_id", (5,))
        assert str(query.predicate) == '"order_id" IN (5)'

    def test_outside_supporters_are_not_used(self, shop_graph):
        values = ValueStore()
        values.register("orders", ["id", "customer_id"])
        values.register("products", ["id"])
        planner = SubsetQueryPlanner(shop_graph, values, 5)

        # products is extracted but outside, so it does not feed order_items
        assert planner.plan("order_items").predicate == In("order_id", ())

    def test_empty_supporter_values_give_sentinel(self, shop_graph, shop_data):
        values = ValueStore()
        planner = SubsetQueryPlanner(shop_graph, values, 999)
        extract(values, shop_graph, "orders", planner.plan("orders"), shop_data["orders"])

        predicate = planner.plan("shipments").predicate
        assert predicate.is_sentinel
        assert str(predicate) == '"order_id" IN (NULL)'
        assert not any(predicate.matches(row) for row in shop_data["shipments"])

    def test_terms_for_each_descendant_supporter(self):
        # item_notes reference both orders and order_items
        catalog = MockCatalog(
            {
                "orders": [("id", False, "integer")],
                "order_items": [("id", False, "integer"), ("order_id", False, "integer")],
                "item_notes": [
                    ("id", False, "integer"),
                    ("order_id", True, "integer"),
                    ("item_id", True, "integer"),
                ],
            },
            [
                ("order_items", "order_id", "orders", "id"),
                ("item_notes", "order_id", "orders", "id"),
                ("item_notes", "item_id", "order_items", "id"),
            ],
        )
        graph = GraphBuilder(catalog).build("orders")
        values = ValueStore()
        list(values.capture("orders", ["id"], [{"id": 5}]))
        list(values.capture("order_items", ["id", "order_id"], [{"id": 1, "order_id": 5}]))

        predicate = SubsetQueryPlanner(graph, values, 5).plan("item_notes").predicate
        assert predicate == AnyOf((In("order_id", (5,)), In("item_id", (1,))))
        assert predicate.matches({"id": 9, "order_id": None, "item_id": 1})

    def test_one_term_per_foreign_key(self):
        catalog = MockCatalog(
            {
                "accounts": [("id", False, "integer")],
                "transfers": [
                    ("id", False, "integer"),
                    ("from_account", False, "integer"),
                    ("to_account", False, "integer"),
                ],
            },
            [
                ("transfers", "from_account", "accounts", "id"),
                ("transfers", "to_account", "accounts", "id"),
            ],
        )
        graph = GraphBuilder(catalog).build("accounts")
        values = ValueStore()
        list(values.capture("accounts", ["id"], [{"id": 1}]))

        predicate = SubsetQueryPlanner(graph, values, 1).plan("transfers").predicate
        assert str(predicate) == '("from_account" IN (1)) OR ("to_account" IN (1))'


class TestOutsidePredicate:
    def test_products_filtered_by_extracted_product_ids(self, shop_graph, shop_data):
        values = ValueStore()
        planner = SubsetQueryPlanner(shop_graph, values, 5)
        for table in ("orders", "order_items", "shipments"):
            extract(values, shop_graph, table, planner.plan(table), shop_data[table])

        query = planner.plan("products")
        assert query.classification is Classification.OUTSIDE
        # item 4 has no product; its NULL is not a candidate
        assert query.predicate == In("id", (10, 11))

    def test_customers_filtered_by_order_customer(self, shop_graph, shop_data):
        values = ValueStore()
        planner = SubsetQueryPlanner(shop_graph, values, 5)
        extract(values, shop_graph, "orders", planner.plan("orders"), shop_data["orders"])

        assert planner.plan("customers").predicate == In("id", (1,))

    def test_only_nulls_give_sentinel(self, shop_graph):
        values = ValueStore()
        list(values.capture("order_items", ["order_id", "product_id"], [
            {"order_id": 5, "product_id": None},
            {"order_id": 5, "product_id": None},
        ]))

        predicate = SubsetQueryPlanner(shop_graph, values, 5).plan("products").predicate
        assert predicate == In("id", ())
        assert predicate.render() == ('"id" IN (NULL)', [])

    def test_duplicates_collapsed_in_term(self, shop_graph):
        values = ValueStore()
        list(values.capture("order_items", ["order_id", "product_id"], [
            {"order_id": 5, "product_id": 10},
            {"order_id": 5, "product_id": 10},
        ]))

        predicate = SubsetQueryPlanner(shop_graph, values, 5).plan("products").predicate
        assert predicate == In("id", (10,))
        assert values.values("order_items", "product_id") == (10, 10)

    def test_no_extracted_dependents_matches_nothing(self, shop_graph):
        predicate = SubsetQueryPlanner(shop_graph, ValueStore(), 5).plan("products").predicate

        assert str(predicate) == "FALSE"
        assert not predicate.matches({"id": 10})


class TestIterQueries:
    def test_planned_lazily_in_order(self, shop_graph, shop_data):
        values = ValueStore()
        planner = SubsetQueryPlanner(shop_graph, values, 5)
        plan = build_plan(shop_graph)

        predicates = {}
        for query in planner.iter_queries(plan.extraction_order):
            extract(values, shop_graph, query.table, query, shop_data[query.table])
            predicates[query.table] = str(query.predicate)

        assert list(predicates) == plan.extraction_order
        assert predicates == {
            "orders": '"id" = 5',
            "order_items": '"order_id" IN (5)',
            "shipments": '"order_id" IN (5)',
            "products": '"id" IN (10, 11)',
            "customers": '"id" IN (1)',
        }
