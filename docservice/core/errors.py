"""
Persistence error taxonomy.

Driver exceptions are classified exactly once, at the executor boundary, by
`classify_error`. Upper layers only ever see the types below.
"""

from __future__ import annotations

import asyncio

import asyncpg

UNIQUE_VIOLATION_SQLSTATE = "23505"
CONNECTION_SQLSTATE_CLASS = "08"


class PersistenceError(RuntimeError):
    def __init__(self, message: str, *, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


# Pool/network level; never retried here.
class ConnectionFailure(PersistenceError):
    pass


# The only error recovered locally (upsert falls back to UPDATE).
class ConstraintViolation(PersistenceError):
    pass


class StatementFailure(PersistenceError):
    pass


class BatchAbort(PersistenceError):
    """
    A statement failed in the middle of a batch insert.

    Statements issued before the failure stay committed: `affected_rows` says
    how many rows made it, `failed_index` is the first change not persisted.
    """

    def __init__(
        self,
        message: str,
        *,
        affected_rows: int,
        failed_index: int,
        sqlstate: str | None = None,
    ) -> None:
        super().__init__(message, sqlstate=sqlstate)
        self.affected_rows = affected_rows
        self.failed_index = failed_index


_CONNECTION_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    asyncpg.exceptions.TooManyConnectionsError,
    asyncpg.exceptions.CannotConnectNowError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)


def classify_error(exc: BaseException) -> PersistenceError:
    """
    Map a driver/pool exception onto the persistence taxonomy.

    Already-classified errors are returned unchanged.
    """
    if isinstance(exc, PersistenceError):
        return exc

    sqlstate = getattr(exc, "sqlstate", None)
    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, asyncpg.exceptions.UniqueViolationError) or sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return ConstraintViolation(message, sqlstate=UNIQUE_VIOLATION_SQLSTATE)
    # Other InterfaceErrors are client-side statement problems (argument
    # count, encoding), not a broken connection.
    if isinstance(exc, _CONNECTION_ERRORS) or str(sqlstate or "").startswith(CONNECTION_SQLSTATE_CLASS):
        return ConnectionFailure(message, sqlstate=sqlstate)
    return StatementFailure(message, sqlstate=sqlstate)
