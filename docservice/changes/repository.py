"""
Change history persistence (raw SQL).

A save session can carry thousands of changes, and a single statement must
stay under the server's packet limit. `insert_changes` therefore splits the
changes into several multi-row INSERTs, each sized by a worst-case byte
estimate, and runs them one after another.

Statements are not wrapped in a transaction: if one fails, the ones before it
stay committed and the caller gets a `BatchAbort` saying how far it got.
"""

from __future__ import annotations

from typing import Callable, Sequence

from docservice.core import db
from docservice.core.context import OperationContext
from docservice.core.errors import BatchAbort, PersistenceError
from docservice.core.params import ParameterBuilder
from docservice.core.settings import get_settings

from .models import ChangeAuthor, ChangeRecord

CHANGES_COLUMNS_SQL = "(tenant, id, change_id, user_id, user_id_original, user_name, change_data, change_date)"

# asyncpg refuses statements with more bind arguments than this.
MAX_QUERY_ARGS = 32767
ROW_ARGS = 8
MAX_ROWS_PER_STATEMENT = MAX_QUERY_ARGS // ROW_ARGS

# Widest placeholder tuple a row can render to.
ROW_CLAUSE_TEMPLATE = "($32760,$32761,$32762,$32763,$32764,$32765,$32766,$32767),"
INDEX_BYTES = 4
TIME_BYTES = 8
# Worst case for one character in UTF-8.
MAX_BYTES_PER_CHAR = 4

InsertCallback = Callable[[Exception | None, db.QueryResult | None, bool], None]


def statement_overhead(table: str) -> int:
    return len(f"INSERT INTO {table} {CHANGES_COLUMNS_SQL} VALUES ")


def estimate_row_bytes(tenant: str, doc_id: str, author: ChangeAuthor, change: ChangeRecord) -> int:
    text_length = (
        len(tenant)
        + len(doc_id)
        + len(author.id)
        + len(author.id_original)
        + len(author.username)
        + len(change.change)
    )
    return len(ROW_CLAUSE_TEMPLATE) + INDEX_BYTES + TIME_BYTES + MAX_BYTES_PER_CHAR * text_length


def split_point(
    row_costs: Sequence[int],
    start: int,
    overhead: int,
    max_bytes: int,
    max_rows: int = MAX_ROWS_PER_STATEMENT,
) -> int:
    """
    Index of the first row that does not fit in the statement starting at
    `start`.

    A row is left out when it would bring the estimate to `max_bytes` or
    beyond, except the first row of a statement: an oversized row still gets
    a statement of its own, so every call advances. A statement also never
    holds more than `max_rows` rows.
    """
    total = overhead
    end = start
    while end < len(row_costs):
        cost = row_costs[end]
        if end > start and (total + cost >= max_bytes or end - start >= max_rows):
            break
        total += cost
        end += 1
    return end


def plan_batches(
    row_costs: Sequence[int],
    start: int,
    overhead: int,
    max_bytes: int,
    max_rows: int = MAX_ROWS_PER_STATEMENT,
) -> list[tuple[int, int]]:
    """
    [start, end) ranges, one per statement, covering row_costs[start:].
    """
    batches: list[tuple[int, int]] = []
    index = start
    while index < len(row_costs):
        end = split_point(row_costs, index, overhead, max_bytes, max_rows)
        batches.append((index, end))
        index = end
    return batches


def make_insert_sql(
    table: str,
    tenant: str,
    doc_id: str,
    seq_index: int,
    author: ChangeAuthor,
    changes: Sequence[ChangeRecord],
    params: ParameterBuilder,
) -> str:
    rows: list[str] = []
    for offset, change in enumerate(changes):
        placeholders = [
            params.append(tenant),
            params.append(doc_id),
            params.append(seq_index + offset),
            params.append(author.id),
            params.append(author.id_original),
            params.append(author.username),
            params.append(change.change),
            params.append(change.time),
        ]
        rows.append(f"({','.join(placeholders)})")
    return f"INSERT INTO {table} {CHANGES_COLUMNS_SQL} VALUES {','.join(rows)}"


async def _insert_batch(
    ctx: OperationContext,
    table: str,
    changes: Sequence[ChangeRecord],
    doc_id: str,
    seq_index: int,
    author: ChangeAuthor,
    affected_total: int,
) -> int:
    params = ParameterBuilder()
    sql = make_insert_sql(table, ctx.tenant, doc_id, seq_index, author, changes, params)
    result = await db.execute(ctx, sql, params)
    return affected_total + result.affected_rows


async def insert_all(
    ctx: OperationContext,
    table: str,
    start_index: int,
    changes: Sequence[ChangeRecord],
    doc_id: str,
    seq_index: int,
    author: ChangeAuthor,
) -> db.QueryResult:
    """
    Persist changes[start_index:] with sequence numbers from `seq_index`.

    Raises BatchAbort on the first failed statement.
    """
    max_bytes = get_settings().max_packet_bytes
    overhead = statement_overhead(table)
    row_costs = [estimate_row_bytes(ctx.tenant, doc_id, author, change) for change in changes]

    affected_total = 0
    for start, end in plan_batches(row_costs, start_index, overhead, max_bytes):
        ctx.logger.debug("insert_changes: rows %d..%d of %d", start, end - 1, len(changes))
        try:
            affected_total = await _insert_batch(
                ctx,
                table,
                changes[start:end],
                doc_id,
                seq_index + (start - start_index),
                author,
                affected_total,
            )
        except PersistenceError as e:
            raise BatchAbort(
                str(e),
                affected_rows=affected_total,
                failed_index=start,
                sqlstate=e.sqlstate,
            ) from e

    return db.QueryResult(affected_rows=affected_total)


async def insert_changes(
    ctx: OperationContext,
    table: str,
    start_index: int,
    changes: Sequence[ChangeRecord],
    doc_id: str,
    seq_index: int,
    author: ChangeAuthor,
    callback: InsertCallback | None = None,
) -> db.QueryResult | None:
    """
    Callback-style front end of `insert_all`.

    `callback(error, result, is_final)` is called exactly once. With a
    callback, a BatchAbort is handed to it instead of being raised and None
    is returned.
    """
    try:
        result = await insert_all(ctx, table, start_index, changes, doc_id, seq_index, author)
    except BatchAbort as e:
        if callback is None:
            raise
        callback(e, None, True)
        return None

    if callback is not None:
        callback(None, result, True)
    return result
