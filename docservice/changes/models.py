"""
Change history models.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, field_validator


class ChangeAuthor(BaseModel):
    id: str
    id_original: str
    username: str


class ChangeRecord(BaseModel):
    change: str
    time: datetime

    @field_validator("time")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        # change_date is `timestamp without time zone`, stored as UTC.
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
