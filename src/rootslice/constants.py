DEFAULT_POSTGRESQL_PORT = 5432
"""Default port number for PostgreSQL connections."""

DEFAULT_SCHEMA = "public"
"""Schema whose foreign keys are walked during discovery."""

DEFAULT_ROOT_COLUMN = "id"
"""Column matched against the root id when none is given."""

DEFAULT_STAGING_DIR = "data"
"""Directory that receives staged CSV files and the manifest."""

MANIFEST_FILENAME = "manifest.json"
"""Name of the manifest written next to the staged tables."""

DEFAULT_FETCH_SIZE = 1000
"""Rows fetched per round trip from the server-side cursor."""

MIN_FETCH_SIZE = 1
"""Smallest accepted fetch size."""

MAX_FETCH_SIZE = 100_000
"""Largest accepted fetch size."""

MAX_SIMILAR_SUGGESTIONS = 3
"""Maximum number of similar suggestions to show in error messages."""

MAX_ORPHANS_DISPLAY = 5
"""Maximum number of orphaned values shown per edge in validation reports."""
