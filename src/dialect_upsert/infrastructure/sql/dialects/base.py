"""
Dialect table for SQL generation.

Every supported database is one member of the closed ``Dialect`` enum. The
differences between them (identifier quoting, the single-statement upsert
form, catalog/schema resolution) are declared once in ``DIALECT_RULES`` and
consumed by pure functions, so adding a dialect means adding one table row.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Dialect(str, Enum):
    """SQL dialects understood by the statement builder."""

    GENERIC = "generic"
    MYSQL = "mysql"
    POSTGRES = "postgres"
    ORACLE = "oracle"
    MSSQL = "mssql"
    SNOWFLAKE = "snowflake"
    SQLITE = "sqlite"


class UpsertStyle(str, Enum):
    """How a dialect expresses insert-or-update."""

    ON_DUPLICATE_KEY = "on_duplicate_key"
    ON_CONFLICT = "on_conflict"
    # No single-statement form: query for existence, then INSERT or UPDATE
    LOOKUP = "lookup"


class SchemaRule(str, Enum):
    """How a (catalog, schema) pair maps onto the database's namespace."""

    SCHEMA = "schema"
    CATALOG_AS_SCHEMA = "catalog_as_schema"
    CATALOG_DOT_SCHEMA = "catalog_dot_schema"


@dataclass(frozen=True)
class DialectRules:
    """Declarative description of one dialect."""

    dialect: Dialect
    quote_open: str
    quote_close: str
    upsert_style: UpsertStyle
    schema_rule: SchemaRule
    default_schema: Optional[str] = None
    # "lower" or "upper": how the database folds unquoted identifiers
    fold_case: Optional[str] = None
    # Transactions abort on the first failed statement unless a savepoint is used
    savepoint_per_statement: bool = False


DIALECT_RULES: Dict[Dialect, DialectRules] = {
    Dialect.GENERIC: DialectRules(
        Dialect.GENERIC, '"', '"', UpsertStyle.LOOKUP, SchemaRule.SCHEMA
    ),
    Dialect.MYSQL: DialectRules(
        Dialect.MYSQL,
        "`",
        "`",
        UpsertStyle.ON_DUPLICATE_KEY,
        SchemaRule.CATALOG_AS_SCHEMA,
    ),
    Dialect.POSTGRES: DialectRules(
        Dialect.POSTGRES,
        '"',
        '"',
        UpsertStyle.ON_CONFLICT,
        SchemaRule.SCHEMA,
        default_schema="public",
        fold_case="lower",
        savepoint_per_statement=True,
    ),
    Dialect.ORACLE: DialectRules(
        Dialect.ORACLE,
        '"',
        '"',
        UpsertStyle.LOOKUP,
        SchemaRule.SCHEMA,
        fold_case="upper",
    ),
    Dialect.MSSQL: DialectRules(
        Dialect.MSSQL,
        "[",
        "]",
        UpsertStyle.LOOKUP,
        SchemaRule.CATALOG_DOT_SCHEMA,
        default_schema="dbo",
    ),
    Dialect.SNOWFLAKE: DialectRules(
        Dialect.SNOWFLAKE,
        '"',
        '"',
        UpsertStyle.LOOKUP,
        SchemaRule.CATALOG_DOT_SCHEMA,
        fold_case="upper",
    ),
    Dialect.SQLITE: DialectRules(
        Dialect.SQLITE, '"', '"', UpsertStyle.ON_CONFLICT, SchemaRule.SCHEMA
    ),
}

# SQLAlchemy dialect names -> Dialect
_SQLALCHEMY_NAMES: Dict[str, Dialect] = {
    "mysql": Dialect.MYSQL,
    "mariadb": Dialect.MYSQL,
    "postgresql": Dialect.POSTGRES,
    "oracle": Dialect.ORACLE,
    "mssql": Dialect.MSSQL,
    "snowflake": Dialect.SNOWFLAKE,
    "sqlite": Dialect.SQLITE,
}


def rules_for(dialect: Dialect) -> DialectRules:
    """Return the declared rules for ``dialect``."""
    return DIALECT_RULES[dialect]


def dialect_from_name(name: Optional[str]) -> Dialect:
    """
    Map a SQLAlchemy dialect name (``connection.dialect.name``) to a Dialect.

    Examples:
        >>> dialect_from_name("postgresql")
        <Dialect.POSTGRES: 'postgres'>
        >>> dialect_from_name("db2")
        <Dialect.GENERIC: 'generic'>
    """
    if not name:
        return Dialect.GENERIC
    return _SQLALCHEMY_NAMES.get(name.lower(), Dialect.GENERIC)


def resolve_schema(
    dialect: Dialect, catalog: Optional[str], schema: Optional[str]
) -> Optional[str]:
    """
    Resolve the schema argument used for metadata lookups.

    Args:
        dialect: Target dialect
        catalog: Caller-supplied catalog (database) name, may be empty
        schema: Caller-supplied schema name, may be empty

    Returns:
        The effective schema, or None for the connection's default

    Examples:
        >>> resolve_schema(Dialect.MYSQL, "sales", None)
        'sales'
        >>> resolve_schema(Dialect.MSSQL, "sales", "dbo")
        'sales.dbo'
        >>> resolve_schema(Dialect.POSTGRES, "ignored", "public")
        'public'
    """
    catalog = catalog or None
    schema = schema or None
    rules = rules_for(dialect)

    if rules.schema_rule is SchemaRule.CATALOG_AS_SCHEMA:
        return catalog or schema
    if rules.schema_rule is SchemaRule.CATALOG_DOT_SCHEMA and catalog:
        schema = schema or rules.default_schema
        return f"{catalog}.{schema}" if schema else catalog
    return schema


def qualifier_schema(
    dialect: Dialect, catalog: Optional[str], schema: Optional[str]
) -> Optional[str]:
    """
    Resolve the schema prefix written into SQL text.

    Identical to :func:`resolve_schema` except that a bare default schema
    (``dbo`` on SQL Server) is omitted.
    """
    effective = resolve_schema(dialect, catalog, schema)
    default = rules_for(dialect).default_schema
    if effective and default and dialect is Dialect.MSSQL and effective.lower() == default:
        return None
    return effective
