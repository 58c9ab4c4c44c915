"""Dialect table and resolution helpers."""

from .base import (
    DIALECT_RULES,
    Dialect,
    DialectRules,
    SchemaRule,
    UpsertStyle,
    dialect_from_name,
    qualifier_schema,
    resolve_schema,
    rules_for,
)

__all__ = [
    "DIALECT_RULES",
    "Dialect",
    "DialectRules",
    "SchemaRule",
    "UpsertStyle",
    "dialect_from_name",
    "qualifier_schema",
    "resolve_schema",
    "rules_for",
]
