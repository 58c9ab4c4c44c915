"""
Runtime table metadata: column catalog, conflict key and a bounded cache.

Metadata is read through SQLAlchemy's ``Inspector`` so no table data is ever
selected. A :class:`TableMetadataCache` owned by the caller keeps one
immutable :class:`TableSnapshot` per table for the whole run.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import types as sa_types
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, DisconnectionError, NoSuchTableError

from dialect_upsert.infrastructure.sql.dialects import (
    Dialect,
    dialect_from_name,
    qualifier_schema,
    resolve_schema,
)
from dialect_upsert.io.loader.driver_errors import (
    driver_error_details,
    is_connectivity_error,
)
from dialect_upsert.io.loader.models import (
    ColumnMetadata,
    ConfigurationError,
    ConnectivityError,
    KeyDescriptor,
    KeyKind,
    SchemaLookupError,
    SqlType,
)
from dialect_upsert.utils.logging import get_logger

logger = get_logger(__name__)

# Binary-ish type names that SQLAlchemy reflects as generic types on some backends
_BOOLEAN_TYPE_NAMES = {"BIT", "BOOL", "BOOLEAN"}


def map_sqlalchemy_type(sa_type: Any) -> Tuple[SqlType, Optional[int]]:
    """
    Map a reflected SQLAlchemy type onto (SqlType, scale).

    Subclasses are checked before their bases: ``Float`` derives from
    ``Numeric`` and ``Text`` from ``String``. Integer types report scale 0 so
    they bind as ``int``.

    Returns:
        Tuple of (logical type, numeric scale or None); unknown types map to
        ``(SqlType.VARCHAR, None)``
    """
    if isinstance(sa_type, sa_types.JSON):
        return SqlType.JSON, None
    if isinstance(sa_type, sa_types.Boolean):
        return SqlType.BOOLEAN, None
    if isinstance(sa_type, sa_types.Integer):
        return SqlType.NUMERIC, 0
    if isinstance(sa_type, sa_types.Float):
        return SqlType.DOUBLE, None
    if isinstance(sa_type, sa_types.Numeric):
        return SqlType.NUMERIC, sa_type.scale
    # Oracle DATE reflects as a DateTime subclass and is bound as a date
    if isinstance(sa_type, sa_types.DateTime) and _type_name(sa_type) == "DATE":
        return SqlType.DATE, None
    if isinstance(sa_type, sa_types.DateTime):
        if getattr(sa_type, "timezone", False):
            return SqlType.TIMESTAMP_TZ, None
        return SqlType.TIMESTAMP, None
    if isinstance(sa_type, sa_types.Date):
        return SqlType.DATE, None
    if isinstance(sa_type, sa_types.Time):
        return SqlType.TIME, None
    if isinstance(sa_type, sa_types.Text):
        return SqlType.TEXT, None
    if isinstance(sa_type, (sa_types.String, sa_types.Uuid)):
        return SqlType.VARCHAR, None
    if isinstance(sa_type, (sa_types.LargeBinary, sa_types.BINARY, sa_types.VARBINARY)):
        return SqlType.BINARY, None
    if _type_name(sa_type) in _BOOLEAN_TYPE_NAMES:
        return SqlType.BOOLEAN, None

    logger.warning(
        "upsert.metadata.unknown_type",
        type_name=_type_name(sa_type),
        fallback=SqlType.VARCHAR.name,
    )
    return SqlType.VARCHAR, None


def _type_name(sa_type: Any) -> str:
    visit_name = getattr(sa_type, "__visit_name__", None)
    if isinstance(visit_name, str):
        return visit_name.upper()
    return type(sa_type).__name__.upper()


def _resolve_dialect(connection: Connection, dialect: Optional[Dialect]) -> Dialect:
    return dialect or dialect_from_name(connection.dialect.name)


def _raise_lookup_failure(exc: Exception, table_name: str, schema: Optional[str]):
    if is_connectivity_error(exc):
        message, _ = driver_error_details(exc)
        raise ConnectivityError(f"Connection lost reading metadata: {message}") from exc
    message, _ = driver_error_details(exc)
    raise SchemaLookupError(
        f"Metadata lookup failed for {_display_name(schema, table_name)}: {message}"
    ) from exc


def _display_name(schema: Optional[str], table_name: str) -> str:
    return f"{schema}.{table_name}" if schema else table_name


def load_columns(
    connection: Connection,
    catalog: Optional[str],
    schema: Optional[str],
    table_name: str,
    dialect: Optional[Dialect] = None,
) -> Tuple[ColumnMetadata, ...]:
    """
    Read the column catalog of a table in declared order.

    Args:
        connection: Open SQLAlchemy connection
        catalog: Catalog (database) name, may be None
        schema: Schema name, may be None
        table_name: Table name
        dialect: Dialect override; detected from the connection when omitted

    Returns:
        Tuple of ColumnMetadata in catalog order

    Raises:
        SchemaLookupError: Table absent under the resolved catalog/schema
        ConnectivityError: Connection lost while reading metadata
    """
    dialect = _resolve_dialect(connection, dialect)
    effective_schema = resolve_schema(dialect, catalog, schema)

    try:
        inspector = sa_inspect(connection)
        if not inspector.has_table(table_name, schema=effective_schema):
            raise SchemaLookupError(
                f"Table {_display_name(effective_schema, table_name)} does not exist"
            )
        reflected = inspector.get_columns(table_name, schema=effective_schema)
    except NoSuchTableError as exc:
        raise SchemaLookupError(
            f"Table {_display_name(effective_schema, table_name)} does not exist"
        ) from exc
    except (DBAPIError, DisconnectionError) as exc:
        _raise_lookup_failure(exc, table_name, effective_schema)

    columns = []
    for column in reflected:
        sql_type, scale = map_sqlalchemy_type(column["type"])
        columns.append(
            ColumnMetadata(
                name=column["name"],
                sql_type=sql_type,
                nullable=bool(column.get("nullable", True)),
                type_name=_type_name(column["type"]),
                scale=scale,
            )
        )

    if not columns:
        raise SchemaLookupError(
            f"Table {_display_name(effective_schema, table_name)} has no columns"
        )
    return tuple(columns)


def _unique_candidates(inspector: Any, table_name: str, schema: Optional[str]) -> List[Tuple[str, ...]]:
    """Unique constraints first, then unique indexes, deduplicated by column tuple."""
    candidates: List[Tuple[str, ...]] = []
    try:
        constraints = inspector.get_unique_constraints(table_name, schema=schema)
    except NotImplementedError:
        constraints = []
    try:
        indexes = [
            index
            for index in inspector.get_indexes(table_name, schema=schema)
            if index.get("unique")
        ]
    except NotImplementedError:
        indexes = []

    for entry in list(constraints) + indexes:
        names = entry.get("column_names") or []
        # Expression indexes report None for their computed members
        if not names or any(name is None for name in names):
            continue
        cols = tuple(names)
        if cols not in candidates:
            candidates.append(cols)
    return candidates


def resolve_key(
    connection: Connection,
    catalog: Optional[str],
    schema: Optional[str],
    table_name: str,
    columns: Optional[Sequence[ColumnMetadata]] = None,
    dialect: Optional[Dialect] = None,
) -> KeyDescriptor:
    """
    Determine the conflict key of a table.

    Preference order:
    1. Primary key columns in declared order
    2. First unique constraint or unique index whose columns are all NOT NULL
    3. ``KeyKind.NONE``: the engine then inserts only

    Args:
        columns: Catalog already loaded for this table; read when omitted
    """
    dialect = _resolve_dialect(connection, dialect)
    effective_schema = resolve_schema(dialect, catalog, schema)
    if columns is None:
        columns = load_columns(connection, catalog, schema, table_name, dialect)
    by_name: Dict[str, ColumnMetadata] = {col.name: col for col in columns}

    try:
        inspector = sa_inspect(connection)
        pk = inspector.get_pk_constraint(table_name, schema=effective_schema) or {}
        pk_columns = tuple(pk.get("constrained_columns") or ())
        if pk_columns and all(name in by_name for name in pk_columns):
            return KeyDescriptor(KeyKind.PRIMARY, pk_columns)
        candidates = _unique_candidates(inspector, table_name, effective_schema)
    except (DBAPIError, DisconnectionError) as exc:
        _raise_lookup_failure(exc, table_name, effective_schema)

    for candidate in candidates:
        if all(name in by_name and not by_name[name].nullable for name in candidate):
            return KeyDescriptor(KeyKind.UNIQUE, candidate)
    return KeyDescriptor.none()


@dataclass(frozen=True)
class TableSnapshot:
    """Immutable metadata of one table, valid for the rest of the run."""

    dialect: Dialect
    table_name: str
    schema: Optional[str]
    columns: Tuple[ColumnMetadata, ...]
    key: KeyDescriptor

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(col.name for col in self.columns)

    def column(self, name: str) -> Optional[ColumnMetadata]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


def load_snapshot(
    connection: Connection,
    catalog: Optional[str],
    schema: Optional[str],
    table_name: str,
    dialect: Optional[Dialect] = None,
) -> TableSnapshot:
    """Read columns and key of a table in one go."""
    dialect = _resolve_dialect(connection, dialect)
    columns = load_columns(connection, catalog, schema, table_name, dialect)
    key = resolve_key(connection, catalog, schema, table_name, columns, dialect)
    snapshot = TableSnapshot(
        dialect=dialect,
        table_name=table_name,
        schema=qualifier_schema(dialect, catalog, schema),
        columns=columns,
        key=key,
    )
    logger.info(
        "upsert.metadata.loaded",
        table=table_name,
        schema=snapshot.schema,
        dialect=dialect.value,
        columns=len(columns),
        key_kind=key.kind.value,
        key_columns=list(key.columns),
    )
    return snapshot


class TableMetadataCache:
    """
    Bounded cache of table snapshots keyed by (dialect, catalog, schema, table).

    When full, the oldest entry is evicted first. The cache is owned by the
    caller so its lifetime and size are explicit.
    """

    def __init__(self, max_entries: int = 64):
        if max_entries < 1:
            raise ConfigurationError("Metadata cache needs room for at least one table")
        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, TableSnapshot]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    @staticmethod
    def cache_key(
        dialect: Dialect,
        catalog: Optional[str],
        schema: Optional[str],
        table_name: str,
    ) -> Tuple[Dialect, Optional[str], Optional[str], str]:
        return (dialect, catalog or None, schema or None, table_name)

    def get(
        self,
        connection: Connection,
        catalog: Optional[str],
        schema: Optional[str],
        table_name: str,
        dialect: Optional[Dialect] = None,
    ) -> TableSnapshot:
        """Return the cached snapshot, loading it on first use."""
        dialect = _resolve_dialect(connection, dialect)
        key = self.cache_key(dialect, catalog, schema, table_name)

        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            logger.debug("upsert.metadata.cache_hit", table=table_name, dialect=dialect.value)
            return cached

        self.misses += 1
        snapshot = load_snapshot(connection, catalog, schema, table_name, dialect)
        self._entries[key] = snapshot
        while len(self._entries) > self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.info("upsert.metadata.evicted", table=evicted_key[3])
        return snapshot

    def clear(self) -> None:
        self._entries.clear()
