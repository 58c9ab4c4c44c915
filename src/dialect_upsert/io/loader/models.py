from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

SUCCESS_STATUS_CODE = "200"
BATCH_FAILURE_STATUS_CODE = "400"
APPLICATION_ERROR_STATUS_CODE = "405"

SUCCESS_MESSAGE = "Ok"
EXECUTED_SUCCESSFULLY = "Executed Successfully"
BATCH_EXECUTED = "Batch executed successfully"
BATCH_FAILED = "Batch Failed to execute"


class UpsertError(Exception):
    """Base class for every error raised by the upsert engine."""


class ConnectivityError(UpsertError):
    """Raised when the database connection is lost or unusable (run-fatal)."""


class SchemaLookupError(UpsertError):
    """Raised when the target table cannot be found under catalog/schema (run-fatal)."""


class ConfigurationError(UpsertError):
    """Raised for an invalid commit strategy before any record is read."""


class ApplicationError(UpsertError):
    """Raised when a single record cannot be coerced; only that record fails."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.column = column


class BatchUpdateError(UpsertError):
    """
    Raised when executing a window fails.

    ``update_counts`` holds the per-statement counts of the statements that
    succeeded before the failure, in submission order, or ``None`` when the
    driver gave no positional detail.
    """

    def __init__(
        self,
        message: str,
        update_counts: Optional[List[int]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.update_counts = update_counts
        self.code = code or BATCH_FAILURE_STATUS_CODE


class SqlType(Enum):
    """Logical column types; values are the JDBC-compatible type codes."""

    NUMERIC = 2
    DOUBLE = 8
    BOOLEAN = 16
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    TIMESTAMP_TZ = 2014
    VARCHAR = 12
    TEXT = 2005
    BINARY = 2004
    JSON = 1111

    @property
    def type_code(self) -> int:
        return self.value


@dataclass(frozen=True)
class ColumnMetadata:
    """One catalog column; catalog order decides positional bind order."""

    name: str
    sql_type: SqlType
    nullable: bool = True
    type_name: str = ""
    scale: Optional[int] = None

    @property
    def integral(self) -> bool:
        """True for NUMERIC columns that hold whole numbers only."""
        return self.sql_type is SqlType.NUMERIC and self.scale == 0


class KeyKind(str, Enum):
    PRIMARY = "primary"
    UNIQUE = "unique"
    NONE = "none"


@dataclass(frozen=True)
class KeyDescriptor:
    """The conflict key used to decide between insert and update."""

    kind: KeyKind
    columns: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.kind is KeyKind.NONE and self.columns:
            raise ValueError("A NONE key cannot name columns")
        if self.kind is not KeyKind.NONE and not self.columns:
            raise ValueError(f"A {self.kind.value} key needs at least one column")

    @classmethod
    def none(cls) -> "KeyDescriptor":
        return cls(KeyKind.NONE)

    @property
    def is_usable(self) -> bool:
        return self.kind is not KeyKind.NONE


@dataclass(frozen=True)
class InputRecord:
    """One JSON document to be written; unknown field names are ignored."""

    document_id: str
    fields: Mapping[str, Any]
    unit_id: Optional[str] = None

    @property
    def unit(self) -> str:
        """Commit unit for commit-by-profile; defaults to the document itself."""
        return self.unit_id if self.unit_id is not None else self.document_id


@dataclass(frozen=True)
class TypedValue:
    """A coerced value together with the column type it binds as."""

    value: Any
    sql_type: SqlType

    @property
    def type_code(self) -> int:
        return self.sql_type.type_code


class Route(str, Enum):
    """How a record reaches the table."""

    INSERT = "insert"
    UPSERT = "upsert"
    UPDATE = "update"
    EXISTS = "exists"
    # Row already present and nothing but key columns supplied
    NOOP = "noop"


@dataclass(frozen=True)
class BoundStatement:
    """One record bound against one generated statement template."""

    sql: str
    parameters: Tuple[Tuple[str, TypedValue], ...]
    route: Route

    @property
    def values(self) -> List[TypedValue]:
        return [value for _, value in self.parameters]


class OutcomeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    APPLICATION_ERROR = "APPLICATION_ERROR"


@dataclass(frozen=True)
class Outcome:
    """The per-record result; exactly one per input record."""

    record: InputRecord
    status: OutcomeStatus
    status_code: str
    message: str
    affected_rows: int = 0
    payload: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.record.document_id,
            "status": self.status.value,
            "status_code": self.status_code,
            "message": self.message,
            "affected_rows": self.affected_rows,
            "payload": self.payload,
        }


@dataclass(frozen=True)
class CommitStrategy:
    """
    Commit-by-rows flushes every ``threshold`` records; commit-by-profile
    flushes at every unit boundary (``threshold`` is None).
    """

    threshold: Optional[int] = None

    def __post_init__(self):
        if self.threshold is not None and self.threshold < 0:
            raise ConfigurationError("Batch count cannot be negative")

    @classmethod
    def by_rows(cls, threshold: int) -> "CommitStrategy":
        """Zero rows means the same as commit-by-profile."""
        if threshold == 0:
            return cls.by_profile()
        return cls(threshold=threshold)

    @classmethod
    def by_profile(cls) -> "CommitStrategy":
        return cls(threshold=None)

    @property
    def by_profile_mode(self) -> bool:
        return self.threshold is None


class BatchResponse(BaseModel):
    """Payload attached to every record flushed under commit-by-rows."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = Field(alias="Status")
    batch_number: int = Field(alias="Batch Number")
    records_in_batch: int = Field(alias="No of records in batch")


class QueryResponse(BaseModel):
    """Payload attached to every record flushed under commit-by-profile."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(alias="Query")
    rows_affected: int = Field(alias="Rows Affected")
    status: str = Field(default=EXECUTED_SUCCESSFULLY, alias="Status")


class BatchState(str, Enum):
    """Lifecycle of a batch window."""

    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    FLUSHED = "flushed"
    PARTIALLY_FAILED = "partially_failed"


@dataclass
class FlushReport:
    """Summary of one flushed window."""

    batch_number: int
    records: int
    succeeded: int
    failed: int
    state: BatchState = BatchState.FLUSHED
    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.failed:
            return f"Batch {self.batch_number} failed, {self.failed} of {self.records} records"
        return f"Batch {self.batch_number} executed successfully, {self.records} records"
