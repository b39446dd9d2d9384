"""
Task result persistence (raw SQL).

`upsert` is insert-first: a new document costs one round trip, and an
existing (tenant, id) row is detected by the table's unique constraint rather
than by reading it first.
"""

from __future__ import annotations

from datetime import datetime, timezone

from docservice.core import db
from docservice.core.context import OperationContext
from docservice.core.errors import ConstraintViolation, PersistenceError
from docservice.core.params import OutBind, ParameterBuilder, concat_params
from docservice.core.settings import get_settings

from .callbacks import callback_entry_parts, format_callback_entry
from .models import Task, UpsertResult


def _utc_now() -> datetime:
    # last_open_date is `timestamp without time zone`, stored as UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_insert_sql(table: str, task: Task, now: datetime, params: ParameterBuilder) -> str:
    callback = task.callback
    if task.callback:
        callback = format_callback_entry(task.user_index, task.callback)

    placeholders = [
        params.append(task.tenant),
        params.append(task.key),
        params.append(task.status),
        params.append(task.status_info),
        params.append(now),
        params.append(task.user_index),
        params.append(task.change_id),
        params.append(callback),
        params.append(task.baseurl),
    ]
    returning = params.append(OutBind("user_index"))
    return (
        f"INSERT INTO {table} "
        "(tenant, id, status, status_info, last_open_date, user_index, change_id, callback, baseurl) "
        f"VALUES ({', '.join(placeholders)}) RETURNING {returning}"
    )


def make_update_sql(
    table: str,
    task: Task,
    now: datetime,
    params: ParameterBuilder,
    update_user_index: bool = False,
) -> str:
    last_open_date = params.append(now)

    callback = ""
    if task.callback:
        # SET expressions see the old row, so user_index + 1 is the index the
        # row is about to get.
        prefix, suffix = callback_entry_parts(task.callback)
        appended = concat_params(
            "callback",
            f"{params.append(prefix)}::text",
            "(user_index + 1)::text",
            f"{params.append(suffix)}::text",
        )
        callback = f", callback = {appended}"

    baseurl = ""
    if task.baseurl:
        baseurl = f", baseurl = {params.append(task.baseurl)}"

    user_index = ""
    if update_user_index:
        user_index = ", user_index = user_index + 1"

    tenant = params.append(task.tenant)
    key = params.append(task.key)
    returning = params.append(OutBind("user_index"))
    return (
        f"UPDATE {table} SET last_open_date = {last_open_date}{callback}{baseurl}{user_index} "
        f"WHERE tenant = {tenant} AND id = {key} RETURNING {returning}"
    )


async def upsert(ctx: OperationContext, task: Task, update_user_index: bool = False) -> UpsertResult:
    """
    Insert the task row, or update it when (tenant, id) already exists.

    Returns affected_rows=1 for an insert and 2 for an update; insert_id is
    the row's user_index after the write.
    """
    settings = get_settings()
    now = _utc_now()
    task = task.with_defaults(settings.default_tenant, now)
    table = settings.table_result

    insert_params = ParameterBuilder()
    insert_sql = make_insert_sql(table, task, now, insert_params)
    try:
        # A duplicate key is the expected way into the update path, so the
        # executor does not log it.
        inserted = await db.execute(ctx, insert_sql, insert_params, raw=True, log_errors=False)
    except ConstraintViolation:
        ctx.logger.debug("upsert: %s already exists, updating", task.key)
    except PersistenceError as e:
        ctx.logger.error("upsert insert error sql: %s: %s", insert_sql, e)
        raise
    else:
        return UpsertResult(affected_rows=1, insert_id=db.returned_value(inserted, insert_params))

    update_params = ParameterBuilder()
    update_sql = make_update_sql(table, task, now, update_params, update_user_index)
    updated = await db.execute(ctx, update_sql, update_params, raw=True)
    return UpsertResult(affected_rows=2, insert_id=db.returned_value(updated, update_params))
