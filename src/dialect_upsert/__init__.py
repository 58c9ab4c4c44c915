"""
Dialect Upsert - JSON record upserts for heterogeneous relational databases.

Discovers a target table's columns and keys at runtime, builds the right
parameterized INSERT / UPSERT statement for the connected dialect, coerces
JSON scalars into typed bind parameters and batches the writes with
per-record outcome reporting.
"""

__version__ = "0.1.0"
