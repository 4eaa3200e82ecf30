"""Portable SQL building blocks for KPI aggregates."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Date, Float, case, cast, func
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import ColumnElement, FunctionElement


class hours_between(FunctionElement):
    """``hours_between(end, start)``: elapsed hours between two timestamps."""

    type = Float()
    name = "hours_between"
    inherit_cache = True


@compiles(hours_between)
def _hours_between_default(element: hours_between, compiler: Any, **kw: Any) -> str:
    end, start = list(element.clauses)
    return "(EXTRACT(EPOCH FROM (%s - %s)) / 3600.0)" % (
        compiler.process(end, **kw),
        compiler.process(start, **kw),
    )


@compiles(hours_between, "sqlite")
def _hours_between_sqlite(element: hours_between, compiler: Any, **kw: Any) -> str:
    end, start = list(element.clauses)
    return "((julianday(%s) - julianday(%s)) * 24.0)" % (
        compiler.process(end, **kw),
        compiler.process(start, **kw),
    )


class day_bucket(FunctionElement):
    """Truncate a timestamp to its calendar day."""

    type = Date()
    name = "day_bucket"
    inherit_cache = True


@compiles(day_bucket)
def _day_bucket_default(element: day_bucket, compiler: Any, **kw: Any) -> str:
    (value,) = list(element.clauses)
    return "CAST(%s AS DATE)" % compiler.process(value, **kw)


@compiles(day_bucket, "sqlite")
def _day_bucket_sqlite(element: day_bucket, compiler: Any, **kw: Any) -> str:
    (value,) = list(element.clauses)
    return "date(%s)" % compiler.process(value, **kw)


def as_float(expression: Any) -> ColumnElement[float]:
    return cast(expression, Float)


def rate(condition: ColumnElement[bool]) -> ColumnElement[float]:
    """Percentage of rows matching ``condition``; NULL when there are no rows."""

    hits = func.sum(case((condition, 1), else_=0))
    return 100.0 * as_float(hits) / func.nullif(func.count(), 0)


__all__ = ["as_float", "day_bucket", "hours_between", "rate"]
