"""
Database settings read from the environment.

The pool, the table names and the statement size budget are all configured
here; nothing else in the package reads `os.environ` directly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

# Matches the server-side max_allowed_packet default of the document service.
DEFAULT_MAX_PACKET_BYTES = 1048575


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    # asyncpg rejects libpq-only options such as sslmode.
    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass(frozen=True)
class DbSettings:
    user: str
    password: str
    host: str
    port: int
    name: str
    pool_min: int
    pool_max: int
    table_result: str
    table_changes: str
    max_packet_bytes: int
    default_tenant: str
    acquire_timeout_s: float | None = None
    url: str | None = None

    @property
    def endpoint(self) -> str:
        return f"{self.host}:{self.port}/{self.name}"

    def dsn(self) -> str:
        """
        Connection string for asyncpg.

        An explicit DATABASE_URL wins over the individual DB_* parts.
        """
        if self.url:
            return _sanitize_database_url(self.url)
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.endpoint}"


def load_settings() -> DbSettings:
    pool_min = max(0, _env_int("DB_POOL_MIN", 0))
    pool_max = max(1, _env_int("DB_POOL_MAX", 10))
    return DbSettings(
        user=_env_str("DB_USER", "onlyoffice"),
        password=_env_str("DB_PASSWORD", "onlyoffice"),
        host=_env_str("DB_HOST", "localhost"),
        port=_env_int("DB_PORT", 5432),
        name=_env_str("DB_NAME", "onlyoffice"),
        pool_min=min(pool_min, pool_max),
        pool_max=pool_max,
        table_result=_env_str("DB_TABLE_RESULT", "task_result"),
        table_changes=_env_str("DB_TABLE_CHANGES", "doc_changes"),
        max_packet_bytes=_env_int("DB_MAX_PACKET_BYTES", DEFAULT_MAX_PACKET_BYTES),
        default_tenant=_env_str("DEFAULT_TENANT", "localhost"),
        acquire_timeout_s=_env_float("DB_ACQUIRE_TIMEOUT_S"),
        url=os.environ.get("DATABASE_URL", "").strip() or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> DbSettings:
    return load_settings()
