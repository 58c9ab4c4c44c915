import logging
from itertools import groupby, islice
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from sqlalchemy.engine import Connection

from dialect_upsert.config import get_settings
from dialect_upsert.infrastructure.sql.dialects import Dialect, dialect_from_name
from dialect_upsert.infrastructure.sql.operations import StatementSet, build_statements
from dialect_upsert.io.loader.coercion import ValueCoercer
from dialect_upsert.io.loader.executor import (
    BatchExecutor,
    SqlAlchemyStatementBatch,
    StatementBatch,
)
from dialect_upsert.io.loader.metadata import TableMetadataCache, TableSnapshot
from dialect_upsert.io.loader.models import (
    APPLICATION_ERROR_STATUS_CODE,
    ApplicationError,
    BatchUpdateError,
    BoundStatement,
    CommitStrategy,
    FlushReport,
    InputRecord,
    Outcome,
    OutcomeStatus,
    Route,
    TypedValue,
)
from dialect_upsert.utils.logging import bind_context

logger = logging.getLogger(__name__)

# An outcome decided before execution, or a placeholder filled by the executor
_Slot = Union[Outcome, None]


class UpsertEngine:
    """Write a stream of JSON records into one table through the upsert path."""

    def __init__(
        self,
        connection: Connection,
        table_name: str,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        strategy: Optional[CommitStrategy] = None,
        dialect: Optional[Dialect] = None,
        cache: Optional[TableMetadataCache] = None,
        coercer: Optional[ValueCoercer] = None,
        batch_factory: Optional[Callable[[], StatementBatch]] = None,
    ):
        settings = get_settings()
        self.connection = connection
        self.table_name = table_name
        self.catalog = catalog
        self.schema = schema
        self.strategy = strategy or settings.commit_strategy()
        self.dialect = dialect or dialect_from_name(connection.dialect.name)
        self.cache = cache or TableMetadataCache(settings.METADATA_CACHE_SIZE)
        self.coercer = coercer or ValueCoercer(settings.coercion_formats())
        self._batch_factory = batch_factory or (
            lambda: SqlAlchemyStatementBatch(self.connection, self.dialect)
        )
        self.reports: List[FlushReport] = []
        self._log = bind_context(table=table_name, dialect=self.dialect.value)

    def snapshot(self) -> TableSnapshot:
        """Column catalog and key of the target table (loaded once per cache)."""
        return self.cache.get(
            self.connection, self.catalog, self.schema, self.table_name, self.dialect
        )

    def run(self, records: Iterable[InputRecord]) -> Iterator[Outcome]:
        """
        Start writing ``records``.

        Table metadata is read here, so a missing table or a lost connection
        raises before any record is consumed.

        Returns:
            Iterator yielding one Outcome per record, in input order
        """
        snapshot = self.snapshot()
        self._log.info(
            "upsert.run.started",
            commit="profile" if self.strategy.by_profile_mode else "rows",
            threshold=self.strategy.threshold,
            key_kind=snapshot.key.kind.value,
        )
        return self._outcomes(snapshot, records)

    def _outcomes(
        self, snapshot: TableSnapshot, records: Iterable[InputRecord]
    ) -> Iterator[Outcome]:
        executor = BatchExecutor(self._batch_factory, self.strategy)
        totals = {status: 0 for status in OutcomeStatus}
        try:
            for window in self._windows(records):
                for outcome in self._process_window(window, snapshot, executor):
                    totals[outcome.status] += 1
                    yield outcome
        finally:
            # Closing the generator early drops whatever was not flushed
            dropped = executor.discard()
            if dropped:
                logger.info("Dropped %d unflushed statements", dropped)
            self.reports.extend(executor.reports)

        self._log.info(
            "upsert.run.completed",
            batches=executor.batch_number,
            succeeded=totals[OutcomeStatus.SUCCESS],
            failed=totals[OutcomeStatus.FAILURE],
            rejected=totals[OutcomeStatus.APPLICATION_ERROR],
        )

    def _windows(self, records: Iterable[InputRecord]) -> Iterator[List[InputRecord]]:
        """Commit-by-rows: fixed-size chunks. Commit-by-profile: runs of one unit."""
        iterator = iter(records)
        threshold = self.strategy.threshold
        if threshold is None:
            for _, unit_records in groupby(iterator, key=lambda record: record.unit):
                yield list(unit_records)
            return
        while True:
            chunk = list(islice(iterator, threshold))
            if not chunk:
                return
            yield chunk

    def _process_window(
        self,
        window: List[InputRecord],
        snapshot: TableSnapshot,
        executor: BatchExecutor,
    ) -> List[Outcome]:
        coerced: List[Union[Dict[str, TypedValue], Outcome]] = [
            self._coerce_record(record, snapshot) for record in window
        ]
        valid = [values for values in coerced if isinstance(values, dict)]
        if not valid:
            return [outcome for outcome in coerced if isinstance(outcome, Outcome)]

        active = tuple(
            col.name for col in snapshot.columns if any(col.name in values for values in valid)
        )
        statements = build_statements(
            snapshot.table_name,
            snapshot.schema,
            active,
            snapshot.key.columns,
            snapshot.dialect,
        )

        slots: List[_Slot] = []
        executed: List[Outcome] = []
        routed_keys: Set[Tuple[Any, ...]] = set()
        for record, values in zip(window, coerced):
            if isinstance(values, Outcome):
                slots.append(values)
                continue
            try:
                bound = self._bind(values, snapshot, statements, executor, routed_keys)
            except BatchUpdateError as exc:
                slots.append(
                    Outcome(
                        record=record,
                        status=OutcomeStatus.FAILURE,
                        status_code=exc.code,
                        message=exc.message,
                    )
                )
                continue
            slots.append(None)
            report = executor.add(bound, record)
            if report is not None:
                executed.extend(report.outcomes)

        report = executor.flush()
        if report is not None:
            executed.extend(report.outcomes)

        pending = iter(executed)
        return [slot if slot is not None else next(pending) for slot in slots]

    def _coerce_record(
        self, record: InputRecord, snapshot: TableSnapshot
    ) -> Union[Dict[str, TypedValue], Outcome]:
        """Coerce every matched field, or reject the record as an application error."""
        values: Dict[str, TypedValue] = {}
        try:
            matched = _match_fields(record.fields, snapshot)
            if not matched:
                raise ApplicationError(
                    f"Record has no fields matching columns of {snapshot.table_name}"
                )
            for name, raw in matched.items():
                values[name] = self.coercer.coerce(raw, snapshot.column(name))
        except ApplicationError as exc:
            self._log.warning(
                "upsert.record.rejected",
                document_id=record.document_id,
                column=exc.column,
            )
            return Outcome(
                record=record,
                status=OutcomeStatus.APPLICATION_ERROR,
                status_code=APPLICATION_ERROR_STATUS_CODE,
                message=exc.message,
            )
        return values

    def _bind(
        self,
        values: Dict[str, TypedValue],
        snapshot: TableSnapshot,
        statements: StatementSet,
        executor: BatchExecutor,
        routed_keys: Set[Tuple[Any, ...]],
    ) -> BoundStatement:
        """Route a record and bind it against the matching statement."""

        def bind(names: Tuple[str, ...]) -> Tuple[Tuple[str, TypedValue], ...]:
            return tuple(
                (name, values.get(name) or TypedValue(None, snapshot.column(name).sql_type))
                for name in names
            )

        keys = statements.key_columns
        key_present = bool(keys) and all(
            name in values and values[name].value is not None for name in keys
        )
        if not key_present:
            return BoundStatement(statements.insert_sql, bind(statements.insert_params), Route.INSERT)

        if statements.upsert_sql is not None:
            return BoundStatement(statements.upsert_sql, bind(statements.upsert_params), Route.UPSERT)

        # Lookup path; a key routed earlier in this window is not committed yet
        key_values = tuple(values[name].value for name in keys)
        lookup = BoundStatement(statements.exists_sql, bind(statements.exists_params), Route.EXISTS)
        exists = key_values in routed_keys or executor.exists(lookup)
        routed_keys.add(key_values)

        if not exists:
            return BoundStatement(statements.insert_sql, bind(statements.insert_params), Route.INSERT)
        if statements.update_sql is None:
            return BoundStatement(statements.exists_sql, lookup.parameters, Route.NOOP)
        return BoundStatement(statements.update_sql, bind(statements.update_params), Route.UPDATE)


def _match_fields(fields: Mapping[str, Any], snapshot: TableSnapshot) -> Dict[str, Any]:
    """
    Map record fields onto catalog columns.

    Exact names win; otherwise names match case-insensitively, since dialects
    that fold identifiers report them in a single case. Unknown fields are
    dropped.
    """
    exact = set(snapshot.column_names)
    folded = {name.lower(): name for name in snapshot.column_names}
    matched: Dict[str, Any] = {}
    for field_name, raw in fields.items():
        if field_name in exact:
            matched[field_name] = raw
        elif field_name.lower() in folded and folded[field_name.lower()] not in matched:
            matched[folded[field_name.lower()]] = raw
    return matched


def upsert_records(
    connection: Connection,
    table_name: str,
    records: Iterable[InputRecord],
    **engine_options: Any,
) -> List[Outcome]:
    """Run the engine to completion and collect every outcome."""
    engine = UpsertEngine(connection, table_name, **engine_options)
    return list(engine.run(records))
