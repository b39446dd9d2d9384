"""
Live table metadata, used to check that the tables we write to have the
columns the repositories expect.
"""

from __future__ import annotations

from .context import OperationContext
from . import db

RESULT_COLUMNS = (
    "tenant",
    "id",
    "status",
    "status_info",
    "last_open_date",
    "user_index",
    "change_id",
    "callback",
    "baseurl",
)

CHANGES_COLUMNS = (
    "tenant",
    "id",
    "change_id",
    "user_id",
    "user_id_original",
    "user_name",
    "change_data",
    "change_date",
)


async def get_table_columns(ctx: OperationContext, table: str) -> list[str]:
    """
    Column names of `table`, lower-cased, in table order. Not cached.
    """
    rows = await db.fetch_all(
        ctx,
        """
        SELECT lower(column_name) AS column_name
        FROM information_schema.columns
        WHERE table_schema = current_schema()
          AND table_name = lower($1)
        ORDER BY ordinal_position
        """,
        table,
    )
    return [str(row["column_name"]) for row in rows]


async def missing_columns(ctx: OperationContext, table: str, required: tuple[str, ...] | list[str]) -> list[str]:
    present = set(await get_table_columns(ctx, table))
    return [column for column in required if column not in present]
