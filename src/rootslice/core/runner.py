import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rootslice.adapters.base import BulkCopier, DataSink, SchemaCatalog
from rootslice.config import RunConfig
from rootslice.core.graph import GraphBuilder
from rootslice.core.ordering import build_plan
from rootslice.core.planner import SubsetQuery, SubsetQueryPlanner
from rootslice.core.values import ValueStore
from rootslice.exceptions import (
    ExtractionIOError,
    LoadError,
    NoRowsFoundError,
    RootsliceError,
    SubsetValidationError,
)
from rootslice.logging import get_logger, log_run_complete
from rootslice.models import DependencyGraph, ExtractionPlan, LoadResult, StagedTable
from rootslice.staging.manifest import Manifest, write_manifest
from rootslice.validation import SubsetValidator, ValidationResult

logger = get_logger(__name__)

# Progress callbacks receive (stage, message, current, total); current and
# total are 0 when not applicable. Stages: "discover", "plan", "extract",
# "validate", "load", "complete".
ProgressCallback = Callable[[str, str, int, int], None]


@dataclass
class RunResult:
    """
    Everything a run produced.

    Attributes:
        graph: Discovered dependency graph
        plan: Load, descendant and outside orders
        queries: Filters used, in extraction order
        staged: Staged table handles keyed by table name
        loads: Per-table load outcomes, in load order
        validation_result: Reference check outcome (None if skipped)
        manifest_path: Where the manifest was written (None for dry runs)
    """

    graph: DependencyGraph
    plan: ExtractionPlan
    queries: list[SubsetQuery] = field(default_factory=list)
    staged: dict[str, StagedTable] = field(default_factory=dict)
    loads: list[LoadResult] = field(default_factory=list)
    validation_result: ValidationResult | None = None
    manifest_path: Path | None = None

    @property
    def stats(self) -> dict[str, int]:
        return {name: staged.row_count for name, staged in self.staged.items()}

    def total_rows(self) -> int:
        return sum(self.stats.values())

    def table_count(self) -> int:
        return len(self.staged)

    def rows_inserted(self) -> int:
        return sum(load.rows_inserted for load in self.loads)

    def rows_skipped(self) -> int:
        return sum(load.rows_skipped for load in self.loads)


class StageRunner:
    """
    Runs one extraction from discovery to load.

    Flow:
    1. Discover the dependency graph around the root table
    2. Compute the load order and the direct-descendant order
    3. Inside one snapshot, for each table in extraction order: plan its
       filter, extract rows, capture key values, stage the rows
    4. Write the manifest
    5. Check the subset for orphaned references (optional)
    6. Load staged tables in full load order (optional)

    Failures stop the run. Tables staged before the failure stay on disk, and
    an extraction failure still writes the manifest, marked failed and naming
    the table it stopped at.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        sink: DataSink,
        config: RunConfig,
        copier: BulkCopier | None = None,
        progress_callback: ProgressCallback | None = None,
    ):
        self.catalog = catalog
        self.sink = sink
        self.config = config
        self.copier = copier
        self.progress_callback = progress_callback

    def _log(self, stage: str, message: str, current: int = 0, total: int = 0) -> None:
        if self.progress_callback:
            self.progress_callback(stage, message, current, total)

    def discover(self) -> tuple[DependencyGraph, ExtractionPlan]:
        """
        Build the graph and compute the orders without reading any rows.

        Raises:
            SchemaDiscoveryError: If discovery fails
            CycleDetectedError: If the tables cannot be ordered
        """
        root = self.config.root

        self._log("discover", f"Discovering foreign keys around {root.table}...")
        with logger.timed_operation("discovery", root=root.table):
            graph = GraphBuilder(self.catalog).build(root.table)
        self._log(
            "discover",
            f"Found {len(graph.tables)} tables "
            f"({len(graph.direct_descendants())} owned, {len(graph.outside_tables())} outside)",
        )

        self._log("plan", "Ordering tables by dependencies...")
        with logger.timed_operation("ordering", table_count=len(graph.tables)):
            plan = build_plan(graph)

        return graph, plan

    def run(self) -> RunResult:
        """
        Perform the run.

        Raises:
            SchemaDiscoveryError: If discovery fails (nothing is extracted)
            CycleDetectedError: If the tables cannot be ordered (nothing is extracted)
            NoRowsFoundError: If the root id matches no row
            ExtractionIOError: If reading, capturing or staging a table fails; a
                manifest with status ``failed`` is written first
            SubsetValidationError: If validation fails and the run is set to fail on it
            LoadError: If loading a staged table fails
        """
        start_time = time.perf_counter()
        graph, plan = self.discover()
        result = RunResult(graph=graph, plan=plan)

        if self.config.dry_run:
            logger.info("Dry-run complete", table_count=len(graph.tables))
            self._log("complete", "Dry-run: no rows extracted")
            return result

        values = ValueStore()
        manifest = Manifest.from_plan(
            graph, plan, self.config.root.column, self.config.root.id, self.config.schema
        )

        try:
            with self.sink.snapshot_transaction():
                self._extract_all(graph, plan, values, manifest, result)
        except ExtractionIOError as e:
            manifest.mark_failed(e.table, e.reason)
            path = write_manifest(manifest, self.config.staging_dir)
            logger.warning(
                "Partial manifest written",
                path=str(path),
                failed_table=e.table,
                staged_tables=len(result.staged),
            )
            raise

        result.manifest_path = write_manifest(manifest, self.config.staging_dir)
        logger.info("Manifest written", path=str(result.manifest_path))

        if self.config.validate:
            self._log("validate", "Checking subset for orphaned references...")
            with logger.timed_operation("validation"):
                result.validation_result = SubsetValidator(graph).validate(
                    values, plan.extraction_order
                )
            if not result.validation_result.is_valid:
                self._log(
                    "validate",
                    f"Validation found {result.validation_result.orphan_count} orphaned value(s)",
                )
                if self.config.fail_on_validation_error:
                    raise SubsetValidationError(
                        result.validation_result.orphan_count,
                        result.validation_result.format_report(),
                    )
            else:
                self._log("validate", "Validation passed: all references are inside the subset")

        if self.copier is not None and self.config.load:
            result.loads = load_staged(self.copier, plan.load_order, result.staged, self._log)

        log_run_complete(
            logger,
            total_rows=result.total_rows(),
            table_count=result.table_count(),
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        self._log(
            "complete",
            f"Extraction complete: {result.total_rows()} rows from {result.table_count()} tables",
        )
        return result

    def _extract_all(
        self,
        graph: DependencyGraph,
        plan: ExtractionPlan,
        values: ValueStore,
        manifest: Manifest,
        result: RunResult,
    ) -> None:
        root = self.config.root
        planner = SubsetQueryPlanner(graph, values, root.id, root.column)
        order = plan.extraction_order
        staging_dir = Path(self.config.staging_dir)

        for i, query in enumerate(planner.iter_queries(order)):
            table = query.table
            self._log("extract", f"Extracting {table}", i + 1, len(order))

            node = graph.tables[table]
            try:
                rows = self.sink.extract_rows(query)
                captured = values.capture(table, graph.needed_columns_of(table), rows)
                staged = self.sink.stage_rows(table, captured, node.get_column_names())
            except RootsliceError:
                raise
            except Exception as e:
                logger.error("Table extraction failed", table=table, error=str(e))
                raise ExtractionIOError(str(e), table) from e

            result.queries.append(query)
            result.staged[table] = staged
            manifest.record_staged(staged, str(query.predicate), staging_dir)

            logger.info(
                f"Extracted {table}",
                table=table,
                classification=query.classification.value,
                row_count=staged.row_count,
                progress=f"{i + 1}/{len(order)}",
            )

            if table == graph.root and staged.row_count == 0:
                raise NoRowsFoundError(table, root.column, root.id)


def load_staged(
    copier: BulkCopier,
    load_order: list[str],
    staged: dict[str, StagedTable],
    progress: ProgressCallback | None = None,
) -> list[LoadResult]:
    """
    Load staged tables in ``load_order``, supporters before dependents.

    Tables without a staged handle are skipped.

    Raises:
        LoadError: If the copier fails for a table
    """
    tables = [t for t in load_order if t in staged]
    loads = []

    for i, table in enumerate(tables):
        if progress:
            progress("load", f"Loading {table}", i + 1, len(tables))
        try:
            outcome = copier.load_table(table, staged[table])
        except RootsliceError:
            raise
        except Exception as e:
            raise LoadError(str(e), table) from e

        logger.info(
            f"Loaded {table}",
            table=table,
            inserted=outcome.rows_inserted,
            skipped=outcome.rows_skipped,
        )
        loads.append(outcome)

    return loads
