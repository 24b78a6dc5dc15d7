"""Tests for translating store failures into the error taxonomy."""

import pytest
from sqlalchemy import exc as sa_exc

from cadence.core.errors import (
    DatabaseConnectionError,
    DatabaseTimeoutError,
    NotFoundError,
    QueryError,
    translate_error,
)


class PgLockTimeout(Exception):
    sqlstate = "55P03"


class PgStatementTimeout(Exception):
    pgcode = "57014"


class TestTranslateError:
    def test_pool_timeout(self):
        err = translate_error(sa_exc.TimeoutError("QueuePool limit reached"), "claim_due")
        assert isinstance(err, DatabaseTimeoutError)
        assert err.retryable
        assert err.operation == "claim_due"

    @pytest.mark.parametrize("orig", [PgLockTimeout("lock"), PgStatementTimeout("stmt")])
    def test_postgres_timeouts(self, orig):
        err = translate_error(sa_exc.DBAPIError("SELECT 1", {}, orig))
        assert isinstance(err, DatabaseTimeoutError)

    def test_sqlite_busy(self):
        err = translate_error(sa_exc.OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")))
        assert isinstance(err, DatabaseTimeoutError)

    def test_invalidated_connection(self):
        err = translate_error(
            sa_exc.DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
        )
        assert isinstance(err, DatabaseConnectionError)
        assert err.retryable

    def test_interface_error(self):
        err = translate_error(sa_exc.InterfaceError("SELECT 1", {}, Exception("closed")))
        assert isinstance(err, DatabaseConnectionError)

    def test_os_error(self):
        err = translate_error(ConnectionRefusedError("refused"), "view_schedule", schedule_id="s1")
        assert isinstance(err, DatabaseConnectionError)
        assert err.context == {"schedule_id": "s1"}

    def test_integrity_error(self):
        err = translate_error(
            sa_exc.IntegrityError("INSERT", {}, Exception("CHECK constraint failed")),
            "create_schedule",
        )
        assert isinstance(err, QueryError)
        assert not err.retryable

    def test_other_sqlalchemy_error(self):
        assert isinstance(translate_error(sa_exc.InvalidRequestError("bad")), QueryError)

    def test_existing_error_keeps_identity(self):
        original = NotFoundError("schedule not found", schedule_id="s1")
        err = translate_error(original, "view_schedule")
        assert err is original
        assert err.operation == "view_schedule"

    def test_application_errors_pass_through(self):
        assert translate_error(ValueError("nope")) is None
        assert translate_error(RuntimeError("dispatch failed")) is None


class TestErrorFormatting:
    def test_str_includes_context(self):
        err = NotFoundError("schedule not found", "update_schedule", schedule_id="s1")
        assert str(err) == "schedule not found | operation=update_schedule | schedule_id=s1"

    def test_kinds(self):
        assert DatabaseTimeoutError("x").kind == "timeout"
        assert DatabaseConnectionError("x").kind == "connection"
        assert QueryError("x").kind == "query"
        assert NotFoundError("x").kind == "not_found"
