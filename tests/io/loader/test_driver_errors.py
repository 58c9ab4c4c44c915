"""
Tests for driver exception classification.
"""

import pytest
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
)

from dialect_upsert.io.loader.driver_errors import driver_error_details, is_connectivity_error


class PgError(Exception):
    """Stand-in for a psycopg2 error carrying ``pgcode``."""

    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class TestIsConnectivityError:
    def test_invalidated_connection(self):
        exc = OperationalError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
        assert is_connectivity_error(exc)

    def test_interface_error(self):
        assert is_connectivity_error(InterfaceError("SELECT 1", {}, Exception("closed")))

    def test_disconnection_error(self):
        assert is_connectivity_error(DisconnectionError("pool"))

    def test_constraint_violation_is_not_connectivity(self):
        assert not is_connectivity_error(IntegrityError("INSERT", {}, Exception("dup")))

    def test_plain_exception(self):
        assert not is_connectivity_error(ValueError("x"))


class TestDriverErrorDetails:
    def test_mysql_errno_and_message(self):
        orig = Exception(1062, "Duplicate entry 'x' for key 'PRIMARY'")
        message, code = driver_error_details(IntegrityError("INSERT", {}, orig))
        assert message == "Duplicate entry 'x' for key 'PRIMARY'"
        assert code == "1062"

    def test_postgres_pgcode(self):
        orig = PgError('duplicate key value violates unique constraint "t_pkey"\n', "23505")
        message, code = driver_error_details(IntegrityError("INSERT", {}, orig))
        assert message == 'duplicate key value violates unique constraint "t_pkey"'
        assert code == "23505"

    def test_message_without_statement_decoration(self):
        orig = Exception("UNIQUE constraint failed: contacts.email")
        message, code = driver_error_details(IntegrityError("INSERT INTO contacts", {"a": 1}, orig))
        assert message == "UNIQUE constraint failed: contacts.email"
        assert "INSERT INTO" not in message
        assert code == "400"

    @pytest.mark.parametrize("exc", [RuntimeError("boom"), DisconnectionError("boom")])
    def test_non_driver_exception(self, exc):
        assert driver_error_details(exc) == ("boom", "400")
