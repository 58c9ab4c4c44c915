"""
Batch execution with per-record reconciliation.

:class:`BatchExecutor` accumulates bound statements into a window and flushes
them through a :class:`StatementBatch`. It reconciles whatever the batch
reports (full success, partial failure with counts, or failure without
positional detail) into exactly one Outcome per position.
"""

from contextlib import ExitStack
from functools import lru_cache
from itertools import groupby
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy import types as sa_types
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DisconnectionError, StatementError

from dialect_upsert.infrastructure.sql.core import (
    build_indexed_params,
    render_named_placeholders,
)
from dialect_upsert.infrastructure.sql.dialects import Dialect, rules_for
from dialect_upsert.io.loader.driver_errors import (
    driver_error_details,
    is_connectivity_error,
)
from dialect_upsert.io.loader.models import (
    BATCH_EXECUTED,
    BATCH_FAILED,
    SUCCESS_MESSAGE,
    SUCCESS_STATUS_CODE,
    BatchResponse,
    BatchState,
    BatchUpdateError,
    BoundStatement,
    CommitStrategy,
    ConnectivityError,
    FlushReport,
    InputRecord,
    Outcome,
    OutcomeStatus,
    QueryResponse,
    Route,
    SqlType,
    TypedValue,
)
from dialect_upsert.utils.logging import get_logger

logger = get_logger(__name__)


class StatementBatch(Protocol):
    """A window-scoped statement handle; released through ``__exit__``."""

    def __enter__(self) -> "StatementBatch": ...

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...

    def exists(self, statement: BoundStatement) -> bool:
        """Run an existence query and report whether it matched a row."""
        ...

    def execute(self, statements: Sequence[BoundStatement]) -> List[int]:
        """
        Execute and commit the statements in order.

        Returns one affected-row count per statement. On failure raises
        :class:`BatchUpdateError` with the counts of the statements that
        succeeded, or ``update_counts=None`` without positional detail.
        """
        ...


_BIND_TYPES = {
    SqlType.NUMERIC: sa_types.Numeric(),
    SqlType.DOUBLE: sa_types.Float(),
    SqlType.BOOLEAN: sa_types.Boolean(),
    SqlType.DATE: sa_types.Date(),
    SqlType.TIME: sa_types.Time(),
    SqlType.TIMESTAMP: sa_types.DateTime(),
    SqlType.TIMESTAMP_TZ: sa_types.DateTime(timezone=True),
    SqlType.VARCHAR: sa_types.String(),
    SqlType.TEXT: sa_types.Text(),
    SqlType.BINARY: sa_types.LargeBinary(),
    # Already serialized to JSON text by the coercer
    SqlType.JSON: sa_types.String(),
}


def bind_type(value: TypedValue) -> sa_types.TypeEngine:
    """SQLAlchemy type used to bind a TypedValue, NULL included."""
    if value.sql_type is SqlType.NUMERIC and isinstance(value.value, int):
        return sa_types.BigInteger()
    return _BIND_TYPES[value.sql_type]


@lru_cache(maxsize=256)
def _named_sql(sql: str) -> Tuple[str, Tuple[str, ...]]:
    rendered, names = render_named_placeholders(sql)
    return rendered, tuple(names)


def to_clause(statements: Sequence[BoundStatement]):
    """
    Render statements sharing one SQL text into a typed ``text()`` clause.

    Returns the clause and one parameter dict per statement. Each position is
    bound with the type of its first non-NULL value in the run.
    """
    rendered, names = _named_sql(statements[0].sql)
    rows = [statement.values for statement in statements]
    params = [build_indexed_params(names, [value.value for value in row]) for row in rows]
    bind_types = []
    for pos in range(len(names)):
        column = [row[pos] for row in rows]
        typed = next((value for value in column if value.value is not None), column[0])
        bind_types.append(bind_type(typed))
    clause = text(rendered).bindparams(
        *[bindparam(name, type_=type_) for name, type_ in zip(names, bind_types)]
    )
    return clause, params


def spread_rowcount(total: int, size: int) -> List[int]:
    """Split an executemany row count over its statements, earliest first."""
    share, extra = divmod(max(total, 0), size)
    return [share + 1 if pos < extra else share for pos in range(size)]


def _run_key(statement: BoundStatement) -> Tuple[bool, str]:
    return statement.route is Route.NOOP, statement.sql


class SqlAlchemyStatementBatch:
    """
    Execute a window on one SQLAlchemy connection and commit it.

    Consecutive statements with the same SQL text go to the driver as one
    executemany call, and the window commits once. The driver reports a single
    row count per call, which is spread over the statements of that run.

    When any call fails the transaction is rolled back and the window is
    replayed one statement at a time: the successes before the failing
    statement are committed and :class:`BatchUpdateError` reports their
    counts. Dialects whose transactions abort on the first error replay every
    statement inside a SAVEPOINT so those successes survive.
    """

    def __init__(self, connection: Connection, dialect: Dialect):
        self.connection = connection
        self.dialect = dialect
        self._use_savepoints = rules_for(dialect).savepoint_per_statement
        self._closed = False

    def __enter__(self) -> "SqlAlchemyStatementBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the handle; uncommitted work (e.g. existence queries only) is rolled back."""
        if self._closed:
            return
        self._closed = True
        if self.connection.in_transaction():
            self.connection.rollback()

    def _run(self, statement: BoundStatement):
        clause, params = to_clause([statement])
        if self._use_savepoints:
            with self.connection.begin_nested():
                return self.connection.execute(clause, params[0])
        return self.connection.execute(clause, params[0])

    def _run_many(self, statements: List[BoundStatement]) -> List[int]:
        clause, params = to_clause(statements)
        if len(params) == 1:
            result = self.connection.execute(clause, params[0])
        else:
            result = self.connection.execute(clause, params)
        return spread_rowcount(result.rowcount, len(statements))

    def exists(self, statement: BoundStatement) -> bool:
        try:
            return self._run(statement).first() is not None
        except (StatementError, DisconnectionError) as exc:
            raise self._classify(exc, None) from exc

    def execute(self, statements: Sequence[BoundStatement]) -> List[int]:
        counts: List[int] = []
        try:
            for (noop, _), run in groupby(statements, key=_run_key):
                run = list(run)
                counts.extend([0] * len(run) if noop else self._run_many(run))
        except (StatementError, DisconnectionError) as exc:
            if is_connectivity_error(exc):
                raise self._classify(exc, None) from exc
            logger.warning(
                "upsert.batch.replay",
                dialect=self.dialect.value,
                statements=len(statements),
                error=driver_error_details(exc)[0],
            )
            self._rollback()
            return self._replay(statements)

        self._commit()
        return counts

    def _replay(self, statements: Sequence[BoundStatement]) -> List[int]:
        counts: List[int] = []
        for statement in statements:
            if statement.route is Route.NOOP:
                counts.append(0)
                continue
            try:
                result = self._run(statement)
            except (StatementError, DisconnectionError) as exc:
                error = self._classify(exc, counts)
                if isinstance(error, ConnectivityError):
                    raise error from exc
                self._commit()
                raise error from exc
            counts.append(max(result.rowcount, 0))

        self._commit()
        return counts

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except (StatementError, DisconnectionError) as exc:
            raise self._classify(exc, None) from exc

    def _commit(self) -> None:
        try:
            self.connection.commit()
        except (StatementError, DisconnectionError) as exc:
            # Nothing is known to be durable once the commit itself fails
            raise self._classify(exc, None) from exc

    @staticmethod
    def _classify(exc: Exception, counts: Optional[List[int]]):
        message, code = driver_error_details(exc)
        if is_connectivity_error(exc):
            return ConnectivityError(f"Connection lost during batch: {message}")
        return BatchUpdateError(
            message,
            update_counts=list(counts) if counts is not None else None,
            code=code,
        )


class BatchExecutor:
    """
    Accumulate bound statements into windows and reconcile their outcomes.

    States: EMPTY -> ACCUMULATING -> FLUSHING -> FLUSHED | PARTIALLY_FAILED
    -> EMPTY. Under commit-by-rows ``add`` flushes the full window before
    accepting another statement. The statement handle is acquired when the
    window opens (first statement or existence query) and released on every exit path.
    """

    def __init__(
        self,
        batch_factory: Callable[[], StatementBatch],
        strategy: CommitStrategy,
    ):
        self._batch_factory = batch_factory
        self.strategy = strategy
        self.state = BatchState.EMPTY
        self.batch_number = 0
        self.reports: List[FlushReport] = []
        self._statements: List[BoundStatement] = []
        self._records: Dict[int, InputRecord] = {}
        self._stack: Optional[ExitStack] = None
        self._batch: Optional[StatementBatch] = None

    def __len__(self) -> int:
        return len(self._statements)

    @property
    def is_full(self) -> bool:
        threshold = self.strategy.threshold
        return threshold is not None and len(self._statements) >= threshold

    def _open(self) -> StatementBatch:
        if self._batch is None:
            self._stack = ExitStack()
            self._batch = self._stack.enter_context(self._batch_factory())
        return self._batch

    def _release(self) -> None:
        stack, self._stack, self._batch = self._stack, None, None
        if stack is not None:
            stack.close()

    def exists(self, statement: BoundStatement) -> bool:
        """Run an existence query on the window's statement handle."""
        return self._open().exists(statement)

    def add(self, statement: BoundStatement, record: InputRecord) -> Optional[FlushReport]:
        """
        Append a statement for ``record``.

        Returns:
            The report of the flush triggered by a full window, else None
        """
        report = self.flush() if self.is_full else None
        self._open()
        self._records[len(self._statements)] = record
        self._statements.append(statement)
        self.state = BatchState.ACCUMULATING
        return report

    def flush(self) -> Optional[FlushReport]:
        """Execute the window and map the result onto every position."""
        if not self._statements:
            self._release()
            self.state = BatchState.EMPTY
            return None

        statements, records = self._statements, self._records
        self._statements, self._records = [], {}
        self.state = BatchState.FLUSHING
        self.batch_number += 1

        try:
            counts = self._open().execute(statements)
        except BatchUpdateError as exc:
            outcomes = self._reconcile_failure(exc, statements, records)
            state = BatchState.PARTIALLY_FAILED
        else:
            outcomes = [
                self._success(statements[pos], records[pos], counts[pos], len(statements))
                for pos in range(len(statements))
            ]
            state = BatchState.FLUSHED
        finally:
            self._release()
            self.state = BatchState.EMPTY

        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        report = FlushReport(
            batch_number=self.batch_number,
            records=len(statements),
            succeeded=len(statements) - failed,
            failed=failed,
            state=state,
            outcomes=outcomes,
        )
        self.reports.append(report)
        if failed:
            logger.error(
                "upsert.batch.failed",
                batch_number=report.batch_number,
                records=report.records,
                failed=failed,
                status_code=outcomes[-1].status_code,
            )
        else:
            logger.info(
                "upsert.batch.flushed",
                batch_number=report.batch_number,
                records=report.records,
            )
        return report

    def discard(self) -> int:
        """Drop the unflushed window without executing it."""
        dropped = len(self._statements)
        self._statements, self._records = [], {}
        self._release()
        self.state = BatchState.EMPTY
        return dropped

    def _reconcile_failure(
        self,
        exc: BatchUpdateError,
        statements: List[BoundStatement],
        records: Dict[int, InputRecord],
    ) -> List[Outcome]:
        counts = exc.update_counts
        outcomes = []
        for pos, statement in enumerate(statements):
            if counts is not None and pos < len(counts):
                outcomes.append(
                    self._success(statement, records[pos], counts[pos], len(statements))
                )
            else:
                outcomes.append(self._failure(exc, records[pos], len(statements)))
        return outcomes

    def _success(
        self, statement: BoundStatement, record: InputRecord, count: int, size: int
    ) -> Outcome:
        if self.strategy.by_profile_mode:
            payload = QueryResponse(query=statement.sql, rows_affected=count)
        else:
            payload = BatchResponse(
                status=BATCH_EXECUTED,
                batch_number=self.batch_number,
                records_in_batch=size,
            )
        return Outcome(
            record=record,
            status=OutcomeStatus.SUCCESS,
            status_code=SUCCESS_STATUS_CODE,
            message=SUCCESS_MESSAGE,
            affected_rows=count,
            payload=payload.model_dump(by_alias=True),
        )

    def _failure(self, exc: BatchUpdateError, record: InputRecord, size: int) -> Outcome:
        payload = None
        if not self.strategy.by_profile_mode:
            payload = BatchResponse(
                status=BATCH_FAILED,
                batch_number=self.batch_number,
                records_in_batch=size,
            ).model_dump(by_alias=True)
        return Outcome(
            record=record,
            status=OutcomeStatus.FAILURE,
            status_code=exc.code,
            message=exc.message,
            payload=payload,
        )
