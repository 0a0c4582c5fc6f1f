from rootslice.constants import MAX_SIMILAR_SUGGESTIONS

__all__ = [
    "RootsliceError",
    "ConnectionError",
    "SchemaDiscoveryError",
    "TableNotFoundError",
    "CycleDetectedError",
    "ExtractionIOError",
    "NoRowsFoundError",
    "LoadError",
    "SubsetValidationError",
    "UnsupportedDatabaseError",
    "InvalidURLError",
    "ManifestError",
]


class RootsliceError(Exception):
    """Base exception for all rootslice errors."""

    pass


class ConnectionError(RootsliceError):
    """Failed to connect to database."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        masked_url = self._mask_password(url)
        super().__init__(f"Cannot connect to {masked_url}: {reason}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """Mask password in database URL for safe display."""
        import re

        # ://user:password@host, password runs up to the last @
        return re.sub(r"(://[^:]+:)(.+)(@[^@]+)$", r"\1****\3", url)


class SchemaDiscoveryError(RootsliceError):
    """Catalog lookup failed or returned malformed metadata."""

    def __init__(self, reason: str, table: str | None = None):
        self.reason = reason
        self.table = table
        msg = f"Schema discovery failed: {reason}"
        if table:
            msg = f"Schema discovery failed for table '{table}': {reason}"
        super().__init__(msg)


class TableNotFoundError(SchemaDiscoveryError):
    """Root table does not exist in the catalog."""

    def __init__(self, table: str, available_tables: list[str] | None = None):
        self.available_tables = available_tables
        reason = "table not found in database"
        if available_tables:
            suggestions = self._find_similar(table, available_tables)
            if suggestions:
                reason += f". Did you mean: {', '.join(suggestions)}?"
        super().__init__(reason, table=table)

    @staticmethod
    def _find_similar(
        target: str, candidates: list[str], max_results: int = MAX_SIMILAR_SUGGESTIONS
    ) -> list[str]:
        """Find similar table names using simple substring matching."""
        target_lower = target.lower()
        similar = []
        for name in candidates:
            name_lower = name.lower()
            if target_lower in name_lower or name_lower in target_lower:
                similar.append(name)
            elif len(set(target_lower) & set(name_lower)) > len(target_lower) // 2:
                similar.append(name)
        return similar[:max_results]


class CycleDetectedError(RootsliceError):
    """Tables could not be ordered because their foreign keys form a cycle."""

    def __init__(self, unordered: list[str], cycles: list[list[str]] | None = None):
        self.unordered = unordered
        self.cycles = cycles or []
        msg = f"Foreign key cycle prevents ordering of tables: {', '.join(unordered)}"
        if self.cycles:
            rendered = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
            msg += f". Cycle: {rendered}"
        super().__init__(msg)


class ExtractionIOError(RootsliceError):
    """Reading, capturing or staging a table's rows failed."""

    def __init__(self, reason: str, table: str | None = None):
        self.reason = reason
        self.table = table
        msg = f"Extraction failed: {reason}"
        if table:
            msg = f"Extraction failed for table '{table}': {reason}"
        super().__init__(msg)


class NoRowsFoundError(RootsliceError):
    """Root id matched no row."""

    def __init__(self, table: str, column: str, root_id: object):
        self.table = table
        self.column = column
        self.root_id = root_id
        super().__init__(f"No rows found in table '{table}' where {column} = {root_id!r}")


class LoadError(RootsliceError):
    """Bulk loading a staged table into the destination failed."""

    def __init__(self, reason: str, table: str | None = None):
        self.reason = reason
        self.table = table
        msg = f"Load failed: {reason}"
        if table:
            msg = f"Load failed for table '{table}': {reason}"
        super().__init__(msg)


class SubsetValidationError(RootsliceError):
    """Extracted subset contains references to rows that were not extracted."""

    def __init__(self, orphan_count: int, report: str | None = None):
        self.orphan_count = orphan_count
        self.report = report
        super().__init__(f"Subset validation found {orphan_count} orphaned reference(s)")


class UnsupportedDatabaseError(RootsliceError):
    """Database type is not supported."""

    def __init__(self, db_type: str):
        self.db_type = db_type
        super().__init__(f"Unsupported database type: '{db_type}'. Supported types: postgresql")


class InvalidURLError(RootsliceError):
    """Database URL is malformed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid database URL: {reason}")


class ManifestError(RootsliceError):
    """Staging manifest is missing or unreadable."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid manifest '{path}': {reason}")
