"""Command-line interface for Dialect Upsert."""
