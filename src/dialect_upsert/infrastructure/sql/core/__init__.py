"""Core SQL utilities package."""

from .identifier import qualify_table, quote_identifier, requires_quotes
from .parameters import build_indexed_params, render_named_placeholders

__all__ = [
    "quote_identifier",
    "qualify_table",
    "requires_quotes",
    "build_indexed_params",
    "render_named_placeholders",
]
