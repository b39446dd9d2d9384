"""
Async database access (raw SQL) using asyncpg.

This module owns the process-wide connection pool. It is created lazily on
first use (or eagerly by the FastAPI lifespan, see `docservice/main.py`) and
closed on shutdown.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
- build them with `core.params.ParameterBuilder`
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Sequence

import asyncpg

from .context import OperationContext
from .errors import classify_error
from .params import ParameterBuilder
from .settings import get_settings

_pool: asyncpg.Pool | None = None
_pool_lock: asyncio.Lock | None = None


@dataclass
class QueryResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    affected_rows: int = 0
    out_values: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class RawResult:
    """
    Driver-level result, untouched: records as asyncpg returned them and the
    command status tag (e.g. "INSERT 0 1").
    """

    records: list[Any]
    status: str | None


async def get_pool() -> asyncpg.Pool:
    global _pool, _pool_lock
    if _pool is not None:
        return _pool
    # Created on the running loop; close_pool drops it with the pool.
    if _pool_lock is None:
        _pool_lock = asyncio.Lock()
    async with _pool_lock:
        # Another task may have finished creating it while we waited.
        if _pool is None:
            settings = get_settings()
            _pool = await asyncpg.create_pool(
                dsn=settings.dsn(),
                min_size=settings.pool_min,
                max_size=settings.pool_max,
            )
    return _pool


async def init_pool() -> None:
    await get_pool()


async def close_pool() -> None:
    global _pool, _pool_lock
    if _pool is None:
        return None
    await _pool.close()
    _pool = None
    _pool_lock = None


def _affected_rows(status: str | None) -> int:
    # Status tags end with the row count: "INSERT 0 3", "UPDATE 1", "SELECT 7".
    if not status:
        return 0
    tail = status.rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _lowercase_columns(records: Sequence[Any]) -> list[dict[str, Any]]:
    return [{str(k).lower(): v for k, v in record.items()} for record in records]


async def execute(
    ctx: OperationContext,
    sql: str,
    params: ParameterBuilder | Sequence[Any] | None = None,
    *,
    raw: bool = False,
    log_errors: bool = True,
) -> QueryResult | RawResult:
    """
    Run one statement on a pooled connection.

    Normalized mode (default) lower-cases column names and reports rows or an
    affected-row count. `raw=True` returns the driver result as is.

    Errors are classified (see `core.errors`) and raised; `log_errors=False`
    silences the log line for failures the caller expects and handles.
    """
    # Never let string-built SQL smuggle a second statement in.
    sql_text = sql.replace(";", "")
    builder = params if isinstance(params, ParameterBuilder) else None
    args = list(builder.values) if builder is not None else list(params or [])

    try:
        pool = await get_pool()
        async with pool.acquire(timeout=get_settings().acquire_timeout_s) as conn:  # type: asyncpg.Connection
            stmt = await conn.prepare(sql_text)
            records = await stmt.fetch(*args)
            status = stmt.get_statusmsg()
            returns_rows = bool(stmt.get_attributes())
    except Exception as exc:
        error = classify_error(exc)
        if log_errors:
            ctx.logger.error("execute error sql: %s: %s", sql_text, error, exc_info=exc)
        if error is exc:
            raise
        raise error from exc

    if raw:
        return RawResult(records=list(records), status=status)

    result = QueryResult(affected_rows=_affected_rows(status))
    if returns_rows:
        result.rows = _lowercase_columns(records)
    if builder is not None:
        result.out_values = builder.out_values(records)
    return result


async def fetch_all(ctx: OperationContext, sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts with lower-case keys.
    """
    result = await execute(ctx, sql, list(args))
    return result.rows


def returned_value(result: RawResult, params: ParameterBuilder) -> Any:
    """
    The last output-bound value of a raw result, or None when nothing came
    back.
    """
    values = params.out_values(result.records)
    return values[-1] if values else None
