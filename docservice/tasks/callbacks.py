r"""
Callback accumulator helpers.

The `callback` column keeps every callback URL a document was opened with,
one entry per user, appended and never rewritten:

    \x05{"userIndex":1,"callback":"https://a"}\x05{"userIndex":2,"callback":"https://b"}

Old rows may still hold a bare URL (no delimiter), or a bare URL followed by
delimited entries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

CALLBACK_DELIMITER = "\x05"

_USER_INDEX_PREFIX = '{"userIndex":'


@dataclass(frozen=True)
class CallbackEntry:
    user_index: int
    callback: str


def format_callback_entry(user_index: int, callback: str) -> str:
    payload = json.dumps({"userIndex": user_index, "callback": callback}, separators=(",", ":"))
    return CALLBACK_DELIMITER + payload


def callback_entry_parts(callback: str) -> tuple[str, str]:
    """
    The text around the user index of an entry, for building the entry in
    SQL when the index is only known server-side:

        prefix + str(user_index) + suffix == format_callback_entry(user_index, callback)
    """
    prefix = CALLBACK_DELIMITER + _USER_INDEX_PREFIX
    suffix = ',"callback":' + json.dumps(callback) + "}"
    return prefix, suffix


def append_callback_entry(accumulated: str | None, user_index: int, callback: str) -> str:
    return (accumulated or "") + format_callback_entry(user_index, callback)


def parse_callback_entries(accumulated: str | None) -> list[CallbackEntry]:
    if not accumulated:
        return []
    start = accumulated.find(CALLBACK_DELIMITER)
    if start == -1:
        return []

    entries: list[CallbackEntry] = []
    for chunk in accumulated[start:].split(CALLBACK_DELIMITER)[1:]:
        if not chunk:
            continue
        data = json.loads(chunk)
        entries.append(CallbackEntry(user_index=int(data["userIndex"]), callback=data["callback"]))
    return entries


def get_callback_by_user_index(accumulated: str | None, user_index: int | None = None) -> str:
    """
    Callback URL registered by `user_index`.

    Falls back to the most recent entry when the index is unknown or not
    given. A legacy bare URL is returned as is.
    """
    if not accumulated:
        return ""
    if CALLBACK_DELIMITER not in accumulated:
        return accumulated

    callback_url = ""
    for entry in parse_callback_entries(accumulated):
        callback_url = entry.callback
        if entry.user_index == user_index:
            break
    return callback_url
