"""Column types and SQL expressions shared by the models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp that always round-trips as an aware UTC datetime.

    SQLite stores naive text, so values are normalised to UTC before binding
    and tagged as UTC again on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        value = as_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        return as_utc(value)


class due_at(FunctionElement):
    """``timestamp + interval_seconds`` rendered for the active dialect.

    Usage::

        due_at(Schedule.updated_at, Schedule.update_interval) <= now
    """

    type = UTCDateTime()
    inherit_cache = True
    name = "due_at"


@compiles(due_at)
def _compile_due_at(element: due_at, compiler, **kw) -> str:
    timestamp, interval_seconds = list(element.clauses)
    return "(%s + %s * interval '1 second')" % (
        compiler.process(timestamp, **kw),
        compiler.process(interval_seconds, **kw),
    )


@compiles(due_at, "sqlite")
def _compile_due_at_sqlite(element: due_at, compiler, **kw) -> str:
    # Same text layout SQLAlchemy uses for stored DATETIME values, so the
    # result compares correctly against bound timestamps.
    timestamp, interval_seconds = list(element.clauses)
    return "strftime('%%Y-%%m-%%d %%H:%%M:%%f', %s, '+' || %s || ' seconds')" % (
        compiler.process(timestamp, **kw),
        compiler.process(interval_seconds, **kw),
    )
