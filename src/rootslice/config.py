from dataclasses import dataclass, field
from typing import Any

from rootslice.constants import (
    DEFAULT_FETCH_SIZE,
    DEFAULT_POSTGRESQL_PORT,
    DEFAULT_ROOT_COLUMN,
    DEFAULT_SCHEMA,
    DEFAULT_STAGING_DIR,
)


@dataclass(repr=False)
class ConnectionSettings:
    """Connection parameters for one PostgreSQL database."""

    database: str
    host: str | None = "localhost"
    port: int = DEFAULT_POSTGRESQL_PORT
    username: str | None = None
    password: str | None = None
    ssl_enabled: bool = False
    options: dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        masked_pw = "***" if self.password else None
        return (
            f"ConnectionSettings(host={self.host!r}, port={self.port!r}, "
            f"database={self.database!r}, username={self.username!r}, "
            f"password={masked_pw!r}, ssl_enabled={self.ssl_enabled!r}, "
            f"options={self.options!r})"
        )

    @property
    def masked_url(self) -> str:
        """URL form of the settings with the password masked, for messages."""
        auth = ""
        if self.username:
            auth = self.username
            if self.password:
                auth += ":***"
            auth += "@"
        return f"postgres://{auth}{self.host or ''}:{self.port}/{self.database}"

    def connect_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``psycopg2.connect``."""
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "password": self.password,
            "dbname": self.database,
        }
        options = dict(self.options)
        if self.ssl_enabled:
            options.setdefault("sslmode", "require")
        kwargs.update(options)
        return {k: v for k, v in kwargs.items() if v is not None}


@dataclass
class RootSpec:
    """The single row every extraction starts from."""

    table: str
    id: Any
    column: str = DEFAULT_ROOT_COLUMN

    @classmethod
    def parse(cls, table: str, raw_id: str, column: str = DEFAULT_ROOT_COLUMN) -> "RootSpec":
        """
        Build a validated root from CLI strings.

        Digit-only ids become integers; quoted ids keep their text.

        Raises:
            ValueError: If the table, column or id is unsafe
        """
        from rootslice.input_validators import (
            ValidationError,
            validate_column_name,
            validate_root_id,
            validate_table_name,
        )

        table = table.strip() if table else table
        column = column.strip() if column else column
        value: Any = raw_id.strip() if isinstance(raw_id, str) else raw_id

        if isinstance(value, str):
            if value.lstrip("-").isdigit() and value not in ("-", ""):
                value = int(value)
            elif len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
                value = value[1:-1]

        try:
            validate_table_name(table)
            validate_column_name(column)
            validate_root_id(value)
        except ValidationError as e:
            raise ValueError(str(e)) from e

        return cls(table=table, id=value, column=column)

    def __str__(self) -> str:
        return f"{self.table}.{self.column}={self.id}"


@dataclass
class RunConfig:
    """Options for one extraction run."""

    root: RootSpec
    schema: str = DEFAULT_SCHEMA
    staging_dir: str = DEFAULT_STAGING_DIR
    load: bool = True
    validate: bool = True
    fail_on_validation_error: bool = False
    fetch_size: int = DEFAULT_FETCH_SIZE
    dry_run: bool = False
    verbose: bool = False
    no_progress: bool = False
