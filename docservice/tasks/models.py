"""
Task result row model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

FILE_STATUS_NONE = 0
NO_ERROR = 0


class Task(BaseModel):
    tenant: str | None = None
    key: str | None = None
    status: int | None = None
    status_info: int | None = None
    last_open_date: datetime | None = None
    user_index: int | None = None
    change_id: int | None = None
    callback: str | None = None
    baseurl: str | None = None

    def with_defaults(self, default_tenant: str, now: datetime) -> Task:
        """
        Copy of this task with every unset (or falsy) field filled in.
        """
        return self.model_copy(
            update={
                "tenant": self.tenant or default_tenant,
                "key": self.key or "",
                "status": self.status or FILE_STATUS_NONE,
                "status_info": self.status_info or NO_ERROR,
                "last_open_date": self.last_open_date or now,
                "user_index": self.user_index or 1,
                "change_id": self.change_id or 0,
                "callback": self.callback or "",
                "baseurl": self.baseurl or "",
            }
        )


@dataclass(frozen=True)
class UpsertResult:
    # 1 when the row was inserted, 2 when an existing row was updated.
    affected_rows: int
    insert_id: Any
