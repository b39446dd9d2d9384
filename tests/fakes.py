# tests/fakes.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable

import asyncpg


@dataclass
class Reply:
    records: list[dict[str, Any]] = field(default_factory=list)
    status: str = "SELECT 0"
    columns: tuple[str, ...] = ()


Handler = Callable[[str, list[Any]], Reply]


class FakeStatement:
    """
    Stands in for asyncpg.prepared_stmt.PreparedStatement.
    """

    def __init__(self, conn: FakeConnection, sql: str) -> None:
        self.conn = conn
        self.sql = sql
        self._reply = Reply()

    async def fetch(self, *args: Any) -> list[dict[str, Any]]:
        self.conn.calls.append((self.sql, list(args)))
        self._reply = self.conn.handler(self.sql, list(args))
        return self._reply.records

    def get_statusmsg(self) -> str:
        return self._reply.status

    def get_attributes(self) -> tuple[str, ...]:
        return self._reply.columns


class FakeConnection:
    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.calls: list[tuple[str, list[Any]]] = []

    async def prepare(self, sql: str) -> FakeStatement:
        return FakeStatement(self, sql)


class _Acquire:
    def __init__(self, pool: FakePool) -> None:
        self.pool = pool

    async def __aenter__(self) -> FakeConnection:
        if self.pool.fail_acquire is not None:
            raise self.pool.fail_acquire
        self.pool.acquired += 1
        return self.pool.connection

    async def __aexit__(self, *exc: Any) -> None:
        self.pool.released += 1


class FakePool:
    """
    In-memory asyncpg.Pool: one connection, counts checkouts and returns.
    """

    def __init__(self, handler: Handler, *, fail_acquire: BaseException | None = None) -> None:
        self.connection = FakeConnection(handler)
        self.fail_acquire = fail_acquire
        self.acquired = 0
        self.released = 0
        self.timeouts: list[float | None] = []
        self.closed = False

    def acquire(self, *, timeout: float | None = None) -> _Acquire:
        self.timeouts.append(timeout)
        return _Acquire(self)

    async def close(self) -> None:
        self.closed = True

    @property
    def calls(self) -> list[tuple[str, list[Any]]]:
        return self.connection.calls


def _arg(args: list[Any], pattern: str, sql: str) -> Any:
    match = re.search(pattern, sql)
    assert match is not None, f"{pattern!r} not in {sql!r}"
    return args[int(match.group(1)) - 1]


class FakeResultTable:
    """
    The task result table, keyed by (tenant, id) like the real unique index.

    Understands exactly the INSERT and UPDATE statements the tasks repository
    builds.
    """

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], dict[str, Any]] = {}

    def __call__(self, sql: str, args: list[Any]) -> Reply:
        if sql.startswith("INSERT INTO"):
            match = re.search(r"\(([^)]*)\) VALUES", sql)
            assert match is not None
            row = dict(zip(match.group(1).split(", "), args))
            key = (row["tenant"], row["id"])
            if key in self.rows:
                raise asyncpg.exceptions.UniqueViolationError(
                    'duplicate key value violates unique constraint "task_result_pkey"'
                )
            self.rows[key] = row
            return Reply([{"out_0": row["user_index"]}], "INSERT 0 1", ("out_0",))

        if sql.startswith("UPDATE"):
            key = (_arg(args, r"tenant = \$(\d+)", sql), _arg(args, r"AND id = \$(\d+)", sql))
            row = self.rows.get(key)
            if row is None:
                return Reply([], "UPDATE 0", ("out_0",))

            old_index = row["user_index"]
            row["last_open_date"] = _arg(args, r"last_open_date = \$(\d+)", sql)
            callback = re.search(
                r"callback = concat\(callback, \$(\d+)::text, \(user_index \+ 1\)::text, \$(\d+)::text\)",
                sql,
            )
            if callback is not None:
                prefix = args[int(callback.group(1)) - 1]
                suffix = args[int(callback.group(2)) - 1]
                row["callback"] = (row["callback"] or "") + prefix + str(old_index + 1) + suffix
            if "baseurl = $" in sql:
                row["baseurl"] = _arg(args, r"baseurl = \$(\d+)", sql)
            if "user_index = user_index + 1" in sql:
                row["user_index"] = old_index + 1
            return Reply([{"out_0": row["user_index"]}], "UPDATE 1", ("out_0",))

        raise AssertionError(f"unexpected statement: {sql}")


class FakeChangesTable:
    """
    The change history table. `fail_on` makes the n-th statement (1-based)
    fail with a driver error.
    """

    width = 8

    def __init__(self, fail_on: int | None = None) -> None:
        self.fail_on = fail_on
        self.statements: list[list[tuple[Any, ...]]] = []

    def __call__(self, sql: str, args: list[Any]) -> Reply:
        assert sql.startswith("INSERT INTO")
        if self.fail_on is not None and len(self.statements) + 1 == self.fail_on:
            raise asyncpg.exceptions.StringDataRightTruncationError("value too long for type")
        rows = [tuple(args[i : i + self.width]) for i in range(0, len(args), self.width)]
        self.statements.append(rows)
        return Reply([], f"INSERT 0 {len(rows)}", ())

    @property
    def rows(self) -> list[tuple[Any, ...]]:
        return [row for statement in self.statements for row in statement]
