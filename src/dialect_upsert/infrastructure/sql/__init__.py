"""
SQL module for centralized SQL generation.

This module provides reusable utilities for building SQL statements with
dialect-aware identifier quoting, schema qualification and upsert syntax.
"""

from .core.identifier import qualify_table, quote_identifier
from .core.parameters import build_indexed_params, render_named_placeholders
from .dialects.base import Dialect, dialect_from_name, rules_for
from .operations.upsert import StatementSet, build_statements

__all__ = [
    "quote_identifier",
    "qualify_table",
    "build_indexed_params",
    "render_named_placeholders",
    "Dialect",
    "dialect_from_name",
    "rules_for",
    "StatementSet",
    "build_statements",
]
