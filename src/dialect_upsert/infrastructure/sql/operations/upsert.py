"""
Dialect-aware upsert statement builder.

``build_statements`` turns an active column set, the table's conflict key and
a dialect into every statement a batch window may need:

- ``insert_sql``: plain INSERT, used when a record lacks a key value or the
  table has no usable key
- ``upsert_sql``: single-statement upsert (MySQL ``ON DUPLICATE KEY UPDATE``,
  PostgreSQL/SQLite ``ON CONFLICT ... DO UPDATE``)
- ``exists_sql`` / ``update_sql``: existence query plus UPDATE for dialects
  without a single-statement form (generic, Oracle, SQL Server, Snowflake)

The function is pure and memoized, so a window with a stable column set
builds its statements once.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

from dialect_upsert.utils.logging import get_logger

from ..core.identifier import qualify_table, quote_identifier
from ..dialects.base import Dialect, UpsertStyle, rules_for
from .insert import PARAM, build_exists_query, build_insert, build_update

logger = get_logger(__name__)


@dataclass(frozen=True)
class StatementSet:
    """Generated SQL plus the column order each statement binds in."""

    dialect: Dialect
    columns: Tuple[str, ...]
    key_columns: Tuple[str, ...]
    insert_sql: str
    insert_params: Tuple[str, ...]
    upsert_sql: Optional[str] = None
    upsert_params: Tuple[str, ...] = ()
    exists_sql: Optional[str] = None
    exists_params: Tuple[str, ...] = ()
    update_sql: Optional[str] = None
    update_params: Tuple[str, ...] = ()

    @property
    def supports_upsert(self) -> bool:
        """True when records carrying a full key can take the upsert path."""
        return self.upsert_sql is not None or self.exists_sql is not None


def build_upsert(
    table_ref: str,
    columns: Sequence[str],
    key_columns: Sequence[str],
    dialect: Dialect,
) -> Tuple[str, Tuple[str, ...]]:
    """
    Build a single-statement upsert for dialects that have one.

    Args:
        table_ref: Already qualified and quoted table reference
        columns: Active columns in bind order
        key_columns: Conflict key columns (subset of ``columns``)
        dialect: MySQL-like or PostgreSQL-like dialect

    Returns:
        Tuple of (SQL, column names in bind order)

    Raises:
        ValueError: If the dialect has no single-statement upsert

    Examples:
        >>> build_upsert("T", ["name"], ["name"], Dialect.MYSQL)
        ('INSERT into T(name) values (?) ON DUPLICATE KEY UPDATE name=?', ('name', 'name'))
        >>> build_upsert("T", ["id", "name"], ["id"], Dialect.POSTGRES)[0]
        'INSERT into T(id,name) values (?,?) ON CONFLICT (id) DO UPDATE SET name=excluded.name'
    """
    insert_sql = build_insert(table_ref, columns, dialect)
    non_key = [col for col in columns if col not in key_columns]
    style = rules_for(dialect).upsert_style

    if style is UpsertStyle.ON_DUPLICATE_KEY:
        # With only key columns active the clause re-assigns them, keeping it valid
        update_cols = non_key or list(columns)
        assignments = ",".join(
            f"{quote_identifier(col, dialect)}={PARAM}" for col in update_cols
        )
        sql = f"{insert_sql} ON DUPLICATE KEY UPDATE {assignments}"
        return sql, tuple(columns) + tuple(update_cols)

    if style is UpsertStyle.ON_CONFLICT:
        conflict = ",".join(quote_identifier(col, dialect) for col in key_columns)
        if not non_key:
            return f"{insert_sql} ON CONFLICT ({conflict}) DO NOTHING", tuple(columns)
        assignments = ",".join(
            f"{quote_identifier(col, dialect)}=excluded.{quote_identifier(col, dialect)}"
            for col in non_key
        )
        sql = f"{insert_sql} ON CONFLICT ({conflict}) DO UPDATE SET {assignments}"
        return sql, tuple(columns)

    raise ValueError(f"Dialect {dialect.value} has no single-statement upsert")


@lru_cache(maxsize=256)
def build_statements(
    table: str,
    schema: Optional[str],
    columns: Tuple[str, ...],
    key_columns: Tuple[str, ...],
    dialect: Dialect,
) -> StatementSet:
    """
    Build the statement set for one active column set.

    Args:
        table: Table name as reported by metadata
        schema: Schema prefix for SQL text (already resolved for the dialect)
        columns: Active columns in catalog order
        key_columns: Conflict key columns; ignored unless all are active
        dialect: Target dialect

    Returns:
        StatementSet with every statement the window may execute
    """
    table_ref = qualify_table(table, schema, dialect)
    insert_sql = build_insert(table_ref, columns, dialect)
    usable_keys = key_columns if key_columns and set(key_columns) <= set(columns) else ()
    statements = StatementSet(
        dialect=dialect,
        columns=columns,
        key_columns=usable_keys,
        insert_sql=insert_sql,
        insert_params=columns,
    )

    if usable_keys:
        if rules_for(dialect).upsert_style is UpsertStyle.LOOKUP:
            non_key = tuple(col for col in columns if col not in usable_keys)
            update_sql = (
                build_update(table_ref, non_key, usable_keys, dialect) if non_key else None
            )
            statements = StatementSet(
                dialect=dialect,
                columns=columns,
                key_columns=usable_keys,
                insert_sql=insert_sql,
                insert_params=columns,
                exists_sql=build_exists_query(table_ref, usable_keys, dialect),
                exists_params=usable_keys,
                update_sql=update_sql,
                update_params=non_key + usable_keys if update_sql else (),
            )
        else:
            upsert_sql, upsert_params = build_upsert(
                table_ref, columns, usable_keys, dialect
            )
            statements = StatementSet(
                dialect=dialect,
                columns=columns,
                key_columns=usable_keys,
                insert_sql=insert_sql,
                insert_params=columns,
                upsert_sql=upsert_sql,
                upsert_params=upsert_params,
            )

    logger.debug(
        "upsert.statements.built",
        table=table,
        dialect=dialect.value,
        columns=len(columns),
        key_columns=list(usable_keys),
    )
    return statements
