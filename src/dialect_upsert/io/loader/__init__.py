"""
Dialect-aware batch upsert loader.

This module writes streams of JSON records into relational tables through a
single upsert abstraction, discovering column types and conflict keys at
runtime and reconciling batch failures to per-record outcomes.
"""

from .coercion import CoercionFormats, ValueCoercer
from .core import UpsertEngine, upsert_records
from .dataframe import records_from_dataframe
from .executor import BatchExecutor, SqlAlchemyStatementBatch
from .metadata import TableMetadataCache, TableSnapshot, load_columns, resolve_key
from .models import (
    ApplicationError,
    BatchUpdateError,
    ColumnMetadata,
    CommitStrategy,
    ConfigurationError,
    ConnectivityError,
    InputRecord,
    KeyDescriptor,
    KeyKind,
    Outcome,
    OutcomeStatus,
    SchemaLookupError,
    SqlType,
    TypedValue,
    UpsertError,
)

__all__ = [
    "ApplicationError",
    "BatchExecutor",
    "BatchUpdateError",
    "CoercionFormats",
    "ColumnMetadata",
    "CommitStrategy",
    "ConfigurationError",
    "ConnectivityError",
    "InputRecord",
    "KeyDescriptor",
    "KeyKind",
    "Outcome",
    "OutcomeStatus",
    "SchemaLookupError",
    "SqlAlchemyStatementBatch",
    "SqlType",
    "TableMetadataCache",
    "TableSnapshot",
    "TypedValue",
    "UpsertEngine",
    "UpsertError",
    "ValueCoercer",
    "load_columns",
    "records_from_dataframe",
    "resolve_key",
    "upsert_records",
]
