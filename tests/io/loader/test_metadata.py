"""
Tests for table metadata reflection, key resolution and the snapshot cache.
"""

import pytest
from sqlalchemy import text
from sqlalchemy import types as sa_types
from sqlalchemy.dialects import oracle

from dialect_upsert.infrastructure.sql.dialects import Dialect
from dialect_upsert.io.loader.metadata import (
    TableMetadataCache,
    load_columns,
    load_snapshot,
    map_sqlalchemy_type,
    resolve_key,
)
from dialect_upsert.io.loader.models import (
    ConfigurationError,
    KeyKind,
    SchemaLookupError,
    SqlType,
)


class TestMapSqlalchemyType:
    @pytest.mark.parametrize(
        "sa_type,expected",
        [
            (sa_types.Integer(), (SqlType.NUMERIC, 0)),
            (sa_types.BigInteger(), (SqlType.NUMERIC, 0)),
            (sa_types.Numeric(12, 4), (SqlType.NUMERIC, 4)),
            (sa_types.Float(), (SqlType.DOUBLE, None)),
            (sa_types.Boolean(), (SqlType.BOOLEAN, None)),
            (sa_types.Date(), (SqlType.DATE, None)),
            (sa_types.Time(), (SqlType.TIME, None)),
            (sa_types.DateTime(), (SqlType.TIMESTAMP, None)),
            (sa_types.DateTime(timezone=True), (SqlType.TIMESTAMP_TZ, None)),
            (sa_types.String(20), (SqlType.VARCHAR, None)),
            (sa_types.Text(), (SqlType.TEXT, None)),
            (sa_types.LargeBinary(), (SqlType.BINARY, None)),
            (sa_types.JSON(), (SqlType.JSON, None)),
        ],
    )
    def test_known_types(self, sa_type, expected):
        assert map_sqlalchemy_type(sa_type) == expected

    def test_unknown_type_falls_back_to_varchar(self):
        assert map_sqlalchemy_type(sa_types.NullType()) == (SqlType.VARCHAR, None)

    def test_oracle_date_binds_as_date(self):
        """Oracle DATE subclasses DateTime in SQLAlchemy but is handled as a date."""
        assert map_sqlalchemy_type(oracle.DATE()) == (SqlType.DATE, None)
        assert map_sqlalchemy_type(oracle.TIMESTAMP()) == (SqlType.TIMESTAMP, None)


class TestLoadColumns:
    def test_columns_in_catalog_order(self, sqlite_connection, orders_table):
        columns = load_columns(sqlite_connection, None, None, orders_table)

        assert [c.name for c in columns] == [
            "id",
            "customer",
            "amount",
            "quantity",
            "shipped",
            "order_date",
            "notes",
        ]
        by_name = {c.name: c for c in columns}
        assert by_name["id"].sql_type is SqlType.NUMERIC and by_name["id"].integral
        assert by_name["amount"].scale == 2 and not by_name["amount"].integral
        assert by_name["customer"].sql_type is SqlType.VARCHAR
        assert not by_name["customer"].nullable
        assert by_name["shipped"].sql_type is SqlType.BOOLEAN
        assert by_name["order_date"].sql_type is SqlType.DATE
        assert by_name["notes"].sql_type is SqlType.TEXT

    def test_missing_table_is_a_lookup_error(self, sqlite_connection):
        with pytest.raises(SchemaLookupError, match="does not exist"):
            load_columns(sqlite_connection, None, None, "no_such_table")


class TestResolveKey:
    def test_primary_key(self, sqlite_connection, orders_table):
        key = resolve_key(sqlite_connection, None, None, orders_table)
        assert key.kind is KeyKind.PRIMARY
        assert key.columns == ("id",)

    def test_not_null_unique_constraint_without_primary_key(self, sqlite_connection, tags_table):
        key = resolve_key(sqlite_connection, None, None, tags_table)
        assert key.kind is KeyKind.UNIQUE
        assert key.columns == ("name",)

    def test_nullable_unique_is_not_a_key(self, sqlite_connection):
        sqlite_connection.execute(
            text("CREATE TABLE aliases (alias VARCHAR(20) UNIQUE, target VARCHAR(20))")
        )
        sqlite_connection.commit()

        key = resolve_key(sqlite_connection, None, None, "aliases")

        assert key.kind is KeyKind.NONE
        assert not key.is_usable

    def test_unique_index_counts_as_key(self, sqlite_connection):
        sqlite_connection.execute(
            text("CREATE TABLE skus (code VARCHAR(20) NOT NULL, title VARCHAR(50))")
        )
        sqlite_connection.execute(text("CREATE UNIQUE INDEX ix_skus_code ON skus (code)"))
        sqlite_connection.commit()

        key = resolve_key(sqlite_connection, None, None, "skus")

        assert key.kind is KeyKind.UNIQUE
        assert key.columns == ("code",)


class TestSnapshot:
    def test_snapshot_detects_dialect(self, sqlite_connection, orders_table):
        snapshot = load_snapshot(sqlite_connection, None, None, orders_table)

        assert snapshot.dialect is Dialect.SQLITE
        assert snapshot.schema is None
        assert snapshot.column("amount").scale == 2
        assert snapshot.column("missing") is None

    def test_dialect_override(self, sqlite_connection, orders_table):
        snapshot = load_snapshot(
            sqlite_connection, None, None, orders_table, dialect=Dialect.GENERIC
        )
        assert snapshot.dialect is Dialect.GENERIC


class TestTableMetadataCache:
    def test_second_lookup_is_a_hit(self, sqlite_connection, orders_table):
        cache = TableMetadataCache()

        first = cache.get(sqlite_connection, None, None, orders_table)
        second = cache.get(sqlite_connection, None, None, orders_table)

        assert first is second
        assert (cache.hits, cache.misses) == (1, 1)
        assert cache.cache_key(Dialect.SQLITE, None, None, orders_table) in cache

    def test_oldest_entry_evicted_when_full(
        self, sqlite_connection, orders_table, contacts_table, tags_table
    ):
        cache = TableMetadataCache(max_entries=2)
        for table in (orders_table, contacts_table, tags_table):
            cache.get(sqlite_connection, None, None, table)

        assert len(cache) == 2
        assert cache.cache_key(Dialect.SQLITE, None, None, orders_table) not in cache
        assert cache.cache_key(Dialect.SQLITE, None, None, tags_table) in cache

    def test_dialect_is_part_of_the_key(self, sqlite_connection, orders_table):
        cache = TableMetadataCache()
        cache.get(sqlite_connection, None, None, orders_table)
        cache.get(sqlite_connection, None, None, orders_table, dialect=Dialect.GENERIC)
        assert cache.misses == 2

    def test_empty_strings_share_an_entry_with_none(self, sqlite_connection, orders_table):
        cache = TableMetadataCache()
        cache.get(sqlite_connection, "", "", orders_table)
        cache.get(sqlite_connection, None, None, orders_table)
        assert cache.hits == 1

    def test_clear(self, sqlite_connection, orders_table):
        cache = TableMetadataCache()
        cache.get(sqlite_connection, None, None, orders_table)
        cache.clear()
        assert len(cache) == 0

    def test_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            TableMetadataCache(max_entries=0)
