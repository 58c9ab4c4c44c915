"""Statement builders."""

from .insert import build_exists_query, build_insert, build_update
from .upsert import StatementSet, build_statements, build_upsert

__all__ = [
    "StatementSet",
    "build_exists_query",
    "build_insert",
    "build_statements",
    "build_update",
    "build_upsert",
]
