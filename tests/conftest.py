"""Shared pytest fixtures for rootslice tests."""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

import pytest

from rootslice.adapters.base import BulkCopier, DataSink, SchemaCatalog
from rootslice.config import RootSpec, RunConfig
from rootslice.models import LoadResult, StagedTable
from rootslice.staging.csv_stage import CSVStagingArea

# (dependent_table, dependent_column, supporter_table, supporter_column)
ForeignKeyRow = tuple[str, str, str, str]


class MockCatalog(SchemaCatalog):
    """Catalog backed by plain column and foreign key lists."""

    def __init__(
        self,
        tables: dict[str, list[tuple[str, bool, str]]],
        foreign_keys: list[ForeignKeyRow],
    ):
        self.tables = tables
        self.foreign_keys = foreign_keys
        self.calls: list[tuple[str, str]] = []

    def list_dependents(self, table: str) -> list[tuple[str, str, str]]:
        self.calls.append(("dependents", table))
        return [
            (dependent, dependent_column, supporter_column)
            for dependent, dependent_column, supporter, supporter_column in self.foreign_keys
            if supporter == table
        ]

    def list_supporters(self, table: str) -> list[tuple[str, str, str]]:
        self.calls.append(("supporters", table))
        return [
            (supporter, dependent_column, supporter_column)
            for dependent, dependent_column, supporter, supporter_column in self.foreign_keys
            if dependent == table
        ]

    def list_columns(self, table: str) -> list[tuple[str, bool, str]]:
        self.calls.append(("columns", table))
        return list(self.tables.get(table, []))

    def list_tables(self) -> list[str]:
        return sorted(self.tables)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False


class MockDataSink(DataSink):
    """
    Sink over in-memory rows.

    Rows are filtered with the predicate's own ``matches()``, so tests check
    the same filter that would be rendered to SQL. Rows are staged as CSV when
    a staging area is given and kept in memory otherwise.
    """

    def __init__(
        self,
        data: dict[str, list[dict[str, Any]]],
        staging: CSVStagingArea | None = None,
    ):
        self.data = data
        self.staging = staging
        self.queries: list[Any] = []
        self.staged_rows: dict[str, list[Mapping[str, Any]]] = {}
        self.snapshots = 0

    def extract_rows(self, query) -> Iterator[Mapping[str, Any]]:
        self.queries.append(query)
        rows = self.data.get(query.table, [])
        return (dict(row) for row in rows if query.predicate.matches(row))

    def stage_rows(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> StagedTable:
        if self.staging is not None:
            staged = self.staging.write(table, rows, columns)
            self.staged_rows[table] = self.staging.read(staged)
            return staged

        materialized = list(rows)
        self.staged_rows[table] = materialized
        return StagedTable(
            table=table,
            path=f"memory://{table}",
            columns=tuple(columns or ()),
            row_count=len(materialized),
        )

    def snapshot_transaction(self):
        self.snapshots += 1
        return super().snapshot_transaction()

    @property
    def extracted_tables(self) -> list[str]:
        return [query.table for query in self.queries]


class MockBulkCopier(BulkCopier):
    """Copier that records load order; ``existing`` rows per table count as skipped."""

    def __init__(self, existing: dict[str, int] | None = None):
        self.existing = existing or {}
        self.loaded: list[str] = []
        self.closed = False

    def load_table(self, table: str, staged: StagedTable) -> LoadResult:
        self.loaded.append(table)
        skipped = min(self.existing.get(table, 0), staged.row_count)
        return LoadResult(
            table=table,
            rows_staged=staged.row_count,
            rows_inserted=staged.row_count - skipped,
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def shop_tables() -> dict[str, list[tuple[str, bool, str]]]:
    """Column lists for a small shop schema."""
    return {
        "orders": [
            ("id", False, "integer"),
            ("customer_id", True, "integer"),
            ("status", True, "text"),
        ],
        "order_items": [
            ("id", False, "integer"),
            ("order_id", False, "integer"),
            ("product_id", True, "integer"),
            ("quantity", False, "integer"),
        ],
        "shipments": [
            ("id", False, "integer"),
            ("order_id", False, "integer"),
            ("carrier", True, "text"),
        ],
        "customers": [
            ("id", False, "integer"),
            ("name", False, "text"),
        ],
        "products": [
            ("id", False, "integer"),
            ("name", False, "text"),
        ],
    }


@pytest.fixture
def shop_foreign_keys() -> list[ForeignKeyRow]:
    """
    Foreign keys of the shop schema.

    orders.customer_id -> customers.id
    order_items.order_id -> orders.id
    order_items.product_id -> products.id
    shipments.order_id -> orders.id
    """
    return [
        ("orders", "customer_id", "customers", "id"),
        ("order_items", "order_id", "orders", "id"),
        ("order_items", "product_id", "products", "id"),
        ("shipments", "order_id", "orders", "id"),
    ]


@pytest.fixture
def shop_catalog(shop_tables, shop_foreign_keys) -> MockCatalog:
    return MockCatalog(shop_tables, shop_foreign_keys)


@pytest.fixture
def shop_data() -> dict[str, list[dict[str, Any]]]:
    """
    Rows of the shop schema.

    Order 5 belongs to customer 1 and has three items, one without a product.
    Order 6 belongs to customer 2 and is the only order with a shipment.
    """
    return {
        "customers": [
            {"id": 1, "name": "Ada"},
            {"id": 2, "name": "Bob"},
        ],
        "orders": [
            {"id": 5, "customer_id": 1, "status": "paid"},
            {"id": 6, "customer_id": 2, "status": "new"},
        ],
        "order_items": [
            {"id": 1, "order_id": 5, "product_id": 10, "quantity": 2},
            {"id": 2, "order_id": 5, "product_id": 11, "quantity": 1},
            {"id": 3, "order_id": 6, "product_id": 12, "quantity": 1},
            {"id": 4, "order_id": 5, "product_id": None, "quantity": 1},
        ],
        "products": [
            {"id": 10, "name": "Widget"},
            {"id": 11, "name": "Gadget"},
            {"id": 12, "name": "Gizmo"},
        ],
        "shipments": [
            {"id": 1, "order_id": 6, "carrier": "UPS"},
        ],
    }


@pytest.fixture
def cyclic_catalog() -> MockCatalog:
    """Two tables referencing each other: a.b_id -> b.id and b.a_id -> a.id."""
    return MockCatalog(
        {
            "a": [("id", False, "integer"), ("b_id", True, "integer")],
            "b": [("id", False, "integer"), ("a_id", True, "integer")],
        },
        [
            ("a", "b_id", "b", "id"),
            ("b", "a_id", "a", "id"),
        ],
    )


@pytest.fixture
def self_referential_catalog() -> MockCatalog:
    """employees.manager_id -> employees.id."""
    return MockCatalog(
        {
            "employees": [
                ("id", False, "integer"),
                ("name", False, "text"),
                ("manager_id", True, "integer"),
            ],
        },
        [("employees", "manager_id", "employees", "id")],
    )


@pytest.fixture
def run_config_factory(tmp_path):
    """Build a RunConfig staging into a temporary directory."""

    def factory(table: str = "orders", root_id: Any = 5, **kwargs) -> RunConfig:
        kwargs.setdefault("staging_dir", str(tmp_path / "data"))
        return RunConfig(root=RootSpec(table=table, id=root_id), **kwargs)

    return factory
