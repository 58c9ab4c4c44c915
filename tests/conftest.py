"""Pytest configuration and shared SQLite fixtures.

An optional ``.upsert_test_env`` file at the project root is loaded FIRST with
override=True so local runs can point settings at a known configuration.
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

_TEST_ENV_FILE = Path(__file__).parent.parent / ".upsert_test_env"
if _TEST_ENV_FILE.exists():
    load_dotenv(_TEST_ENV_FILE, override=True)

import os
from typing import Generator

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

# Keep test output readable; structlog reads the level once on import
os.environ.setdefault("UPSERT_LOG_LEVEL", "WARNING")

from dialect_upsert.config import get_settings  # noqa: E402

ORDERS_DDL = """
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer VARCHAR(50) NOT NULL,
    amount NUMERIC(10, 2),
    quantity INTEGER,
    shipped BOOLEAN,
    order_date DATE,
    notes TEXT
)
"""

CONTACTS_DDL = """
CREATE TABLE contacts (
    id INTEGER PRIMARY KEY,
    email VARCHAR(100) UNIQUE,
    full_name VARCHAR(100)
)
"""

TAGS_DDL = """
CREATE TABLE tags (
    name VARCHAR(30) NOT NULL,
    label VARCHAR(30),
    CONSTRAINT uq_tags_name UNIQUE (name)
)
"""


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Every test sees settings rebuilt from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sqlite_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite database shared by every connection of the engine."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def sqlite_connection(sqlite_engine: Engine) -> Generator[Connection, None, None]:
    with sqlite_engine.connect() as connection:
        yield connection


def _create(connection: Connection, ddl: str) -> None:
    connection.execute(text(ddl))
    connection.commit()


@pytest.fixture
def orders_table(sqlite_connection: Connection) -> str:
    """Table with an INTEGER primary key and one column per common type."""
    _create(sqlite_connection, ORDERS_DDL)
    return "orders"


@pytest.fixture
def contacts_table(sqlite_connection: Connection) -> str:
    """Primary key plus a nullable UNIQUE column for real constraint violations."""
    _create(sqlite_connection, CONTACTS_DDL)
    return "contacts"


@pytest.fixture
def tags_table(sqlite_connection: Connection) -> str:
    """No primary key; a NOT NULL unique constraint serves as the key."""
    _create(sqlite_connection, TAGS_DDL)
    return "tags"


def fetch_all(connection: Connection, sql: str) -> list:
    """Read rows back for assertions."""
    rows = connection.execute(text(sql)).fetchall()
    connection.commit()
    return [tuple(row) for row in rows]


@pytest.fixture
def fetch():
    return fetch_all
