#!/usr/bin/env python3
"""Example: Using rootslice as a Python library.

This script stages one order and everything it owns, then prints the
filters used for every table.

Usage:
    DATABASE_URL=postgres://localhost/shop python python-api-example.py
    DATABASE_URL=postgres://localhost/shop ORDER_ID=456 python python-api-example.py
"""

import os

from rootslice.adapters.postgresql import PostgreSQLAdapter, PostgreSQLDataSink
from rootslice.config import RootSpec, RunConfig
from rootslice.core.runner import RunResult, StageRunner
from rootslice.staging.csv_stage import CSVStagingArea
from rootslice.utils.connection import parse_database_url


def extract_order_subset(database_url: str, order_id: int, staging_dir: str) -> RunResult:
    """Stage an order and its related rows without loading them anywhere.

    Args:
        database_url: Source database URL
        order_id: The order ID to extract
        staging_dir: Directory that receives the CSV files and manifest

    Returns:
        The run result with per-table row counts
    """
    config = RunConfig(
        root=RootSpec(table="orders", id=order_id),
        staging_dir=staging_dir,
        load=False,
    )

    with PostgreSQLAdapter(schema=config.schema) as adapter:
        adapter.connect(parse_database_url(database_url))
        sink = PostgreSQLDataSink(adapter, CSVStagingArea(staging_dir))
        return StageRunner(adapter, sink, config).run()


def main():
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("Error: DATABASE_URL environment variable is required")
        print("")
        print("Example:")
        print("  DATABASE_URL=postgres://localhost/shop python python-api-example.py")
        return

    order_id = int(os.environ.get("ORDER_ID", "123"))
    staging_dir = os.environ.get("STAGING_DIR", "data")
    print(f"Extracting order {order_id}...")
    print("")

    result = extract_order_subset(database_url, order_id, staging_dir)

    print(f"Staged {result.total_rows()} rows from {result.table_count()} tables:")
    for query in result.queries:
        print(f"  - {query.table}: {result.stats[query.table]} rows ({query.predicate})")

    print("")
    print(f"Manifest: {result.manifest_path}")
    print(f"Load it later with: rootslice load {staging_dir} --destination <url>")


if __name__ == "__main__":
    main()
