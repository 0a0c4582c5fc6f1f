from rootslice.adapters.base import BulkCopier, DataSink, SchemaCatalog
from rootslice.adapters.postgresql import (
    PostgreSQLAdapter,
    PostgreSQLBulkCopier,
    PostgreSQLDataSink,
)

__all__ = [
    "SchemaCatalog",
    "DataSink",
    "BulkCopier",
    "PostgreSQLAdapter",
    "PostgreSQLDataSink",
    "PostgreSQLBulkCopier",
]
