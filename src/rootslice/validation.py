"""Post-extraction check of the subset's foreign-key references.

Every foreign key between two extracted tables is checked against the values
captured while extracting: each non-NULL value in the referencing column must
appear among the values captured for the referenced column. Distinct from
input_validators.py, which checks user-provided arguments.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from rootslice.constants import MAX_ORPHANS_DISPLAY
from rootslice.core.predicates import unique_values
from rootslice.core.values import ValueStore
from rootslice.logging import get_logger
from rootslice.models import DependencyGraph, ForeignKeyEdge

logger = get_logger(__name__)


@dataclass
class OrphanedReference:
    """Values in a referencing column with no matching extracted row."""

    edge: ForeignKeyEdge
    missing_values: tuple[Any, ...]

    def __str__(self) -> str:
        shown = ", ".join(repr(v) for v in self.missing_values[:MAX_ORPHANS_DISPLAY])
        if len(self.missing_values) > MAX_ORPHANS_DISPLAY:
            shown += f", ... ({len(self.missing_values) - MAX_ORPHANS_DISPLAY} more)"
        return f"{self.edge} - referenced rows not extracted: {shown}"


@dataclass
class ValidationResult:
    """Outcome of checking the extracted subset."""

    is_valid: bool = True
    orphaned_references: list[OrphanedReference] = field(default_factory=list)
    total_edges_checked: int = 0
    total_values_checked: int = 0

    def add_orphan(self, orphan: OrphanedReference) -> None:
        self.orphaned_references.append(orphan)
        self.is_valid = False

    @property
    def orphan_count(self) -> int:
        return sum(len(o.missing_values) for o in self.orphaned_references)

    def format_report(self) -> str:
        """
        Format a human-readable validation report.

        Returns:
            Multi-line string with validation results
        """
        lines = []
        lines.append("=" * 80)
        lines.append("SUBSET VALIDATION REPORT")
        lines.append("=" * 80)
        lines.append("")

        lines.append(f"Foreign keys checked: {self.total_edges_checked}")
        lines.append(f"Reference values checked: {self.total_values_checked}")
        lines.append("")

        if self.is_valid:
            lines.append("Status: VALID")
            lines.append("All foreign key references point to extracted rows.")
        else:
            lines.append("Status: INVALID")
            lines.append(f"Found {self.orphan_count} orphaned reference value(s):")
            lines.append("")

            by_table: dict[str, list[OrphanedReference]] = {}
            for orphan in self.orphaned_references:
                by_table.setdefault(orphan.edge.dependent_table, []).append(orphan)

            for table, orphans in sorted(by_table.items()):
                lines.append(f"Table: {table}")
                for orphan in orphans:
                    lines.append(f"  - {orphan}")
                lines.append("")

        lines.append("=" * 80)
        return "\n".join(lines)


class SubsetValidator:
    """Checks captured key values for references that leave the subset."""

    def __init__(self, graph: DependencyGraph):
        self.graph = graph

    def validate(self, values: ValueStore, extracted_tables: Iterable[str]) -> ValidationResult:
        extracted = set(extracted_tables)
        result = ValidationResult()

        logger.info("Starting subset validation", table_count=len(extracted))

        for edge in self.graph.all_edges():
            if edge.dependent_table not in extracted or edge.supporter_table not in extracted:
                continue

            result.total_edges_checked += 1
            referencing = values.values(edge.dependent_table, edge.dependent_column)
            available: Any = unique_values(
                values.values(edge.supporter_table, edge.supporter_column)
            )
            try:
                available = set(available)
            except TypeError:
                # unhashable values (json columns) fall back to equality scans
                pass

            missing = []
            for value in unique_values(referencing, skip_null=True):
                result.total_values_checked += 1
                if value not in available:
                    missing.append(value)

            if missing:
                orphan = OrphanedReference(edge=edge, missing_values=tuple(missing))
                logger.debug(
                    "Orphaned references found",
                    edge=str(edge),
                    missing=len(missing),
                )
                result.add_orphan(orphan)

        if result.is_valid:
            logger.info(
                "Subset validation passed",
                edges_checked=result.total_edges_checked,
                values_checked=result.total_values_checked,
            )
        else:
            logger.warning(
                "Subset validation found orphaned references",
                orphaned_values=result.orphan_count,
                edges=len(result.orphaned_references),
            )
        return result
