"""
Infrastructure Layer

Reusable SQL generation utilities that carry no database I/O:

- sql.core: identifier quoting and bind-parameter rendering
- sql.dialects: the dialect table
- sql.operations: INSERT / UPDATE / existence query / upsert statement builders

Usage:
    from dialect_upsert.infrastructure.sql import Dialect, build_statements
"""

__all__: list[str] = []
