import itertools
from contextlib import contextmanager
from collections.abc import Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psycopg2
import psycopg2.extras

from rootslice.adapters.base import BulkCopier, DataSink, SchemaCatalog
from rootslice.config import ConnectionSettings
from rootslice.constants import DEFAULT_FETCH_SIZE, DEFAULT_SCHEMA
from rootslice.exceptions import (
    ConnectionError,
    ExtractionIOError,
    LoadError,
    SchemaDiscoveryError,
)
from rootslice.logging import get_logger, log_query_execution
from rootslice.models import ColumnInfo, LoadResult, StagedTable
from rootslice.staging.csv_stage import CSVStagingArea

if TYPE_CHECKING:
    from rootslice.core.planner import SubsetQuery

logger = get_logger(__name__)

# Column pairs of every FK constraint, one row per column; composite keys are
# split into one row per column pair, in key order.
FOREIGN_KEY_COLUMNS_SQL = """
    SELECT
        source_cls.relname AS dependent_table,
        a_source.attname AS dependent_column,
        target_cls.relname AS supporter_table,
        a_target.attname AS supporter_column
    FROM pg_constraint c
    JOIN pg_class source_cls ON c.conrelid = source_cls.oid
    JOIN pg_class target_cls ON c.confrelid = target_cls.oid
    JOIN pg_namespace source_ns ON source_cls.relnamespace = source_ns.oid
    JOIN pg_namespace target_ns ON target_cls.relnamespace = target_ns.oid
    CROSS JOIN LATERAL unnest(c.conkey, c.confkey)
        WITH ORDINALITY AS u(source_attnum, target_attnum, ord)
    JOIN pg_attribute a_source
        ON a_source.attrelid = c.conrelid
        AND a_source.attnum = u.source_attnum
    JOIN pg_attribute a_target
        ON a_target.attrelid = c.confrelid
        AND a_target.attnum = u.target_attnum
    WHERE c.contype = 'f'
      AND source_ns.nspname = %(schema)s
      AND target_ns.nspname = %(schema)s
      AND {side}.relname = %(table)s
    ORDER BY c.conname, u.ord
"""


class PostgreSQLAdapter(SchemaCatalog):
    """
    PostgreSQL connection used as both schema catalog and row source.

    Reads run with autocommit outside a snapshot. Inside
    ``snapshot_transaction()`` they share one REPEATABLE READ transaction and
    stream through server-side cursors.
    """

    def __init__(self, schema: str = DEFAULT_SCHEMA, fetch_size: int = DEFAULT_FETCH_SIZE):
        self._conn: Any = None
        self.schema = schema
        self.fetch_size = fetch_size
        self._columns_cache: dict[str, dict[str, ColumnInfo]] = {}
        self._cursor_ids = itertools.count(1)

    def connect(self, settings: ConnectionSettings) -> None:
        """
        Open the connection.

        Raises:
            ConnectionError: If the server rejects the connection
        """
        logger.debug(
            "Connecting to PostgreSQL",
            host=settings.host,
            port=settings.port,
            database=settings.database,
            user=settings.username,
            ssl=settings.ssl_enabled,
        )

        try:
            self._conn = psycopg2.connect(**settings.connect_kwargs())
            self._conn.autocommit = True

            if self.schema != DEFAULT_SCHEMA:
                with self._conn.cursor() as cur:
                    cur.execute("SET search_path TO %s, public", (self.schema,))
                logger.debug("search_path set", schema=self.schema)

            logger.info(
                "PostgreSQL connection established",
                database=settings.database,
                schema=self.schema,
            )
        except psycopg2.Error as e:
            logger.error("PostgreSQL connection failed", error=str(e))
            raise ConnectionError(settings.masked_url, str(e))

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("PostgreSQL connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def list_dependents(self, table: str) -> list[tuple[str, str, str]]:
        rows = self._query_catalog(FOREIGN_KEY_COLUMNS_SQL.format(side="target_cls"), table)
        return [(dep_table, dep_col, sup_col) for dep_table, dep_col, _, sup_col in rows]

    def list_supporters(self, table: str) -> list[tuple[str, str, str]]:
        rows = self._query_catalog(FOREIGN_KEY_COLUMNS_SQL.format(side="source_cls"), table)
        return [(sup_table, dep_col, sup_col) for _, dep_col, sup_table, sup_col in rows]

    def list_columns(self, table: str) -> list[tuple[str, bool, str]]:
        rows = self._query_catalog(
            """
            SELECT column_name, is_nullable = 'YES', data_type
            FROM information_schema.columns
            WHERE table_schema = %(schema)s
              AND table_name = %(table)s
            ORDER BY ordinal_position
            """,
            table,
        )
        self._columns_cache[table] = {
            name: ColumnInfo(name=name, data_type=data_type, nullable=bool(nullable))
            for name, nullable, data_type in rows
        }
        return [(name, bool(nullable), data_type) for name, nullable, data_type in rows]

    def column_info(self, table: str) -> dict[str, ColumnInfo]:
        """Column metadata for ``table``, looked up once and cached."""
        if table not in self._columns_cache:
            self.list_columns(table)
        return self._columns_cache[table]

    def list_tables(self) -> list[str]:
        """Base tables of the schema, used for "did you mean" suggestions."""
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = %s
                  AND table_type = 'BASE TABLE'
                ORDER BY table_name
                """,
                (self.schema,),
            )
            return [row[0] for row in cur.fetchall()]

    def _query_catalog(self, query: str, table: str) -> list[tuple]:
        try:
            with self._conn.cursor() as cur:
                cur.execute(query, {"schema": self.schema, "table": table})
                return cur.fetchall()
        except psycopg2.Error as e:
            logger.error("Catalog query failed", table=table, error=str(e))
            raise SchemaDiscoveryError(str(e), table) from e

    def qualified_name(self, table: str) -> str:
        return f"{self.quote_identifier(self.schema)}.{self.quote_identifier(table)}"

    def fetch_subset(self, query: "SubsetQuery") -> Iterator[dict[str, Any]]:
        """
        Stream rows of ``query.table`` matching its predicate.

        Raises:
            ExtractionIOError: If the query fails
        """
        where, params = query.predicate.render(self.quote_identifier)
        sql = f"SELECT * FROM {self.qualified_name(query.table)} WHERE {where}"
        log_query_execution(logger, sql, params)

        try:
            if self._conn.autocommit:
                cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            else:
                # Named cursor streams from the server inside the snapshot transaction
                cursor = self._conn.cursor(
                    name=f"rootslice_{next(self._cursor_ids)}",
                    cursor_factory=psycopg2.extras.RealDictCursor,
                )
                cursor.itersize = self.fetch_size

            with cursor as cur:
                cur.execute(sql, params)
                row_count = 0
                for row in cur:
                    row_count += 1
                    yield dict(row)
                logger.debug("Fetched rows", table=query.table, row_count=row_count)
        except psycopg2.Error as e:
            logger.error("Failed to fetch rows", table=query.table, error=str(e))
            raise ExtractionIOError(f"query failed: {e}", query.table) from e

    def begin_snapshot(self) -> None:
        """Begin a snapshot transaction with REPEATABLE READ isolation."""
        if self._conn:
            self._conn.autocommit = False
            with self._conn.cursor() as cur:
                cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")

    def end_snapshot(self) -> None:
        if self._conn:
            self._conn.rollback()
            self._conn.autocommit = True

    @contextmanager
    def snapshot_transaction(self):
        """
        Context manager for consistent snapshot reads.

        Usage:
            with adapter.snapshot_transaction():
                rows = list(adapter.fetch_subset(query))
        """
        self.begin_snapshot()
        try:
            yield
        finally:
            self.end_snapshot()


class PostgreSQLDataSink(DataSink):
    """Reads rows through a PostgreSQLAdapter and stages them as CSV files."""

    def __init__(self, adapter: PostgreSQLAdapter, staging: CSVStagingArea):
        self.adapter = adapter
        self.staging = staging

    def extract_rows(self, query: "SubsetQuery") -> Iterator[dict[str, Any]]:
        return self.adapter.fetch_subset(query)

    def stage_rows(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> StagedTable:
        return self.staging.write(table, rows, columns, self.adapter.column_info(table))

    def snapshot_transaction(self):
        return self.adapter.snapshot_transaction()


class PostgreSQLBulkCopier(BulkCopier):
    """
    Loads staged CSV files into a destination database.

    Each table is copied into a temporary table with ``COPY ... FROM STDIN``
    and then inserted with ``ON CONFLICT DO NOTHING``, so rows whose keys
    already exist in the destination are skipped rather than failing the load.
    Each table is loaded in its own transaction.
    """

    def __init__(self, schema: str = DEFAULT_SCHEMA):
        self._conn: Any = None
        self.schema = schema

    def connect(self, settings: ConnectionSettings) -> None:
        """
        Raises:
            ConnectionError: If the server rejects the connection
        """
        try:
            self._conn = psycopg2.connect(**settings.connect_kwargs())
        except psycopg2.Error as e:
            logger.error("PostgreSQL connection failed", error=str(e))
            raise ConnectionError(settings.masked_url, str(e))
        logger.info("Destination connection established", database=settings.database)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("Destination connection closed")

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def load_table(self, table: str, staged: StagedTable) -> LoadResult:
        if not staged.columns:
            return LoadResult(table=table, rows_staged=staged.row_count, rows_inserted=0)

        target = f"{self.quote_identifier(self.schema)}.{self.quote_identifier(table)}"
        temp = self.quote_identifier(f"rootslice_load_{table}"[:63])
        column_list = ", ".join(self.quote_identifier(c) for c in staged.columns)

        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    f"CREATE TEMP TABLE {temp} (LIKE {target} INCLUDING DEFAULTS) ON COMMIT DROP"
                )
                with open(Path(staged.path), encoding="utf-8") as f:
                    cur.copy_expert(
                        f"COPY {temp} ({column_list}) FROM STDIN WITH (FORMAT csv, HEADER true)",
                        f,
                    )
                cur.execute(
                    f"INSERT INTO {target} ({column_list}) OVERRIDING SYSTEM VALUE "
                    f"SELECT {column_list} FROM {temp} ON CONFLICT DO NOTHING"
                )
                inserted = cur.rowcount
            self._conn.commit()
        except (psycopg2.Error, OSError) as e:
            if self._conn:
                self._conn.rollback()
            logger.error("Bulk load failed", table=table, error=str(e))
            raise LoadError(str(e), table) from e

        return LoadResult(table=table, rows_staged=staged.row_count, rows_inserted=inserted)
