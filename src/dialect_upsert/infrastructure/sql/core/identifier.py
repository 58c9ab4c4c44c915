"""
SQL identifier handling utilities.

Provides functions for quoting and qualifying SQL identifiers (table names,
column names). Identifiers always come from database metadata, never from
caller data; they are written bare when they are plain identifiers and quoted
with the dialect's delimiters otherwise.
"""

import re
from typing import Optional

from ..dialects.base import Dialect, rules_for

PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Words that cannot appear bare as identifiers in at least one supported dialect
RESERVED_WORDS = frozenset(
    """
    add all alter and any as asc between by case check column comment
    constraint create current date default delete desc distinct drop else end
    exists foreign from grant group having in index insert interval into is
    join key level like limit not null number offset on option or order
    primary range rank references row rows select session set size start
    table then time timestamp to uid union unique update user values when
    where window
    """.split()
)


def requires_quotes(name: str, dialect: Dialect = Dialect.GENERIC) -> bool:
    """
    Decide whether an identifier must be delimited.

    Names arrive as SQLAlchemy reports them: on case-folding dialects an
    all-lowercase name is case-insensitive, anything else is case-sensitive
    and has to be delimited to keep its case.

    Examples:
        >>> requires_quotes("customer_id")
        False
        >>> requires_quotes("order")
        True
        >>> requires_quotes("CustomerId", Dialect.POSTGRES)
        True
    """
    if not PLAIN_IDENTIFIER.match(name):
        return True
    if name.lower() in RESERVED_WORDS:
        return True
    if rules_for(dialect).fold_case is not None and name != name.lower():
        return True
    return False


def quote_identifier(
    name: str, dialect: Dialect = Dialect.GENERIC, force: bool = False
) -> str:
    """
    Quote a SQL identifier (table or column name) when required.

    Upper-folding dialects (Oracle, Snowflake) store case-insensitive names in
    uppercase, so a lowercase plain name is delimited in its uppercase form.

    Args:
        name: The identifier to quote
        dialect: Target dialect
        force: Always delimit, even plain identifiers

    Returns:
        The identifier, delimited and escaped when needed

    Raises:
        ValueError: If name is empty

    Examples:
        >>> quote_identifier("name", Dialect.MYSQL)
        'name'
        >>> quote_identifier("unit price", Dialect.MYSQL)
        '`unit price`'
        >>> quote_identifier("key", Dialect.ORACLE)
        '"KEY"'
        >>> quote_identifier("a]b", Dialect.MSSQL)
        '[a]]b]'
    """
    if not name or not isinstance(name, str):
        raise ValueError("Identifier name must be non-empty string")

    if not force and not requires_quotes(name, dialect):
        return name

    rules = rules_for(dialect)
    if rules.fold_case == "upper" and name == name.lower() and PLAIN_IDENTIFIER.match(name):
        name = name.upper()
    # Escape the closing delimiter by doubling it
    escaped = name.replace(rules.quote_close, rules.quote_close * 2)
    return f"{rules.quote_open}{escaped}{rules.quote_close}"


def qualify_table(
    table: str, schema: Optional[str] = None, dialect: Dialect = Dialect.GENERIC
) -> str:
    """
    Create a table reference with an optional schema prefix.

    A dotted schema (``catalog.schema``) is quoted part by part.

    Examples:
        >>> qualify_table("orders", schema="sales", dialect=Dialect.POSTGRES)
        'sales.orders'
        >>> qualify_table("T")
        'T'
        >>> qualify_table("orders", schema="crm.dbo", dialect=Dialect.MSSQL)
        'crm.dbo.orders'
    """
    quoted_table = quote_identifier(table, dialect)
    if schema:
        parts = [quote_identifier(part, dialect) for part in schema.split(".") if part]
        return ".".join(parts + [quoted_table])
    return quoted_table
