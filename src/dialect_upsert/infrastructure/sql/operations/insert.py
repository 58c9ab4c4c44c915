"""
SQL INSERT / UPDATE / existence-query statement builders.

All builders emit ``?`` positional placeholders and take identifiers that
originate from table metadata. They are pure functions of their arguments.
"""

from typing import Sequence

from ..core.identifier import quote_identifier
from ..dialects.base import Dialect

PARAM = "?"


def _require_columns(columns: Sequence[str], what: str) -> None:
    if not columns:
        raise ValueError(f"{what} cannot be empty")


def build_insert(table_ref: str, columns: Sequence[str], dialect: Dialect) -> str:
    """
    Build a parameterized INSERT statement.

    Args:
        table_ref: Already qualified and quoted table reference
        columns: Column names in bind order
        dialect: Target dialect (drives identifier quoting)

    Returns:
        INSERT SQL statement

    Example:
        >>> build_insert("T", ["id", "name"], Dialect.MYSQL)
        'INSERT into T(id,name) values (?,?)'
    """
    _require_columns(columns, "Column list")
    quoted_cols = ",".join(quote_identifier(col, dialect) for col in columns)
    values = ",".join([PARAM] * len(columns))
    return f"INSERT into {table_ref}({quoted_cols}) values ({values})"


def build_update(
    table_ref: str,
    set_columns: Sequence[str],
    key_columns: Sequence[str],
    dialect: Dialect,
) -> str:
    """
    Build a parameterized UPDATE statement matching rows on the key columns.

    Bind order is ``set_columns`` followed by ``key_columns``.

    Example:
        >>> build_update("T", ["name"], ["id"], Dialect.ORACLE)
        'UPDATE T SET name=? WHERE id = ?'
    """
    _require_columns(set_columns, "Update column list")
    _require_columns(key_columns, "Key column list")
    set_clause = ",".join(
        f"{quote_identifier(col, dialect)}={PARAM}" for col in set_columns
    )
    return f"UPDATE {table_ref} SET {set_clause} WHERE {_key_predicate(key_columns, dialect)}"


def build_exists_query(
    table_ref: str, key_columns: Sequence[str], dialect: Dialect
) -> str:
    """
    Build the existence query used by dialects without a native upsert.

    Example:
        >>> build_exists_query("T", ["id", "region"], Dialect.GENERIC)
        'SELECT 1 FROM T WHERE id = ? AND region = ?'
    """
    _require_columns(key_columns, "Key column list")
    return f"SELECT 1 FROM {table_ref} WHERE {_key_predicate(key_columns, dialect)}"


def _key_predicate(key_columns: Sequence[str], dialect: Dialect) -> str:
    return " AND ".join(
        f"{quote_identifier(col, dialect)} = {PARAM}" for col in key_columns
    )
