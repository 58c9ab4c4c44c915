"""
Unit tests for the dialect table and catalog/schema resolution.
"""

import pytest

from dialect_upsert.infrastructure.sql.dialects import (
    DIALECT_RULES,
    Dialect,
    UpsertStyle,
    dialect_from_name,
    qualifier_schema,
    resolve_schema,
    rules_for,
)


class TestDialectTable:
    """Every dialect is declared exactly once."""

    def test_every_dialect_has_rules(self):
        assert set(DIALECT_RULES) == set(Dialect)

    @pytest.mark.parametrize(
        "dialect,style",
        [
            (Dialect.MYSQL, UpsertStyle.ON_DUPLICATE_KEY),
            (Dialect.POSTGRES, UpsertStyle.ON_CONFLICT),
            (Dialect.SQLITE, UpsertStyle.ON_CONFLICT),
            (Dialect.GENERIC, UpsertStyle.LOOKUP),
            (Dialect.ORACLE, UpsertStyle.LOOKUP),
            (Dialect.MSSQL, UpsertStyle.LOOKUP),
            (Dialect.SNOWFLAKE, UpsertStyle.LOOKUP),
        ],
    )
    def test_upsert_styles(self, dialect, style):
        assert rules_for(dialect).upsert_style is style

    def test_only_postgres_uses_savepoints(self):
        using = {d for d, rules in DIALECT_RULES.items() if rules.savepoint_per_statement}
        assert using == {Dialect.POSTGRES}


class TestDialectFromName:
    """SQLAlchemy dialect names map onto the closed enum."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("mysql", Dialect.MYSQL),
            ("mariadb", Dialect.MYSQL),
            ("postgresql", Dialect.POSTGRES),
            ("sqlite", Dialect.SQLITE),
            ("oracle", Dialect.ORACLE),
            ("mssql", Dialect.MSSQL),
            ("snowflake", Dialect.SNOWFLAKE),
            ("db2", Dialect.GENERIC),
            (None, Dialect.GENERIC),
        ],
    )
    def test_mapping(self, name, expected):
        assert dialect_from_name(name) is expected


class TestResolveSchema:
    """Catalog/schema resolution per dialect."""

    def test_mysql_catalog_is_the_schema(self):
        assert resolve_schema(Dialect.MYSQL, "sales", None) == "sales"
        assert resolve_schema(Dialect.MYSQL, None, "sales") == "sales"
        assert resolve_schema(Dialect.MYSQL, "sales", "other") == "sales"

    def test_postgres_ignores_catalog(self):
        assert resolve_schema(Dialect.POSTGRES, "warehouse", "public") == "public"
        assert resolve_schema(Dialect.POSTGRES, "warehouse", None) is None

    def test_mssql_catalog_dot_schema(self):
        assert resolve_schema(Dialect.MSSQL, "crm", "sales") == "crm.sales"
        assert resolve_schema(Dialect.MSSQL, "crm", None) == "crm.dbo"
        assert resolve_schema(Dialect.MSSQL, None, "sales") == "sales"

    def test_snowflake_catalog_dot_schema(self):
        assert resolve_schema(Dialect.SNOWFLAKE, "analytics", "raw") == "analytics.raw"
        assert resolve_schema(Dialect.SNOWFLAKE, None, "raw") == "raw"

    def test_empty_strings_count_as_missing(self):
        assert resolve_schema(Dialect.GENERIC, "", "") is None

    def test_mssql_default_schema_omitted_from_sql(self):
        assert qualifier_schema(Dialect.MSSQL, None, "dbo") is None
        assert qualifier_schema(Dialect.MSSQL, "crm", None) == "crm.dbo"
        assert qualifier_schema(Dialect.POSTGRES, None, "public") == "public"
