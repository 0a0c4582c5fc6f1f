from rootslice.staging.csv_stage import CSVStagingArea
from rootslice.staging.manifest import Manifest, read_manifest, write_manifest

__all__ = [
    "CSVStagingArea",
    "Manifest",
    "read_manifest",
    "write_manifest",
]
