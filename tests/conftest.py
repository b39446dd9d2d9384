# tests/conftest.py

from __future__ import annotations

from typing import Callable

import pytest

from docservice.core import db
from docservice.core.context import OperationContext
from docservice.core.settings import get_settings

from .fakes import FakePool, Handler

_DB_ENV = (
    "DATABASE_URL",
    "DB_USER",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_POOL_MIN",
    "DB_POOL_MAX",
    "DB_TABLE_RESULT",
    "DB_TABLE_CHANGES",
    "DB_MAX_PACKET_BYTES",
    "DB_ACQUIRE_TIMEOUT_S",
    "DEFAULT_TENANT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """
    Every test starts from default settings and without a pool.
    """
    for name in _DB_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(db, "_pool", None)
    monkeypatch.setattr(db, "_pool_lock", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def set_env(monkeypatch: pytest.MonkeyPatch) -> Callable[..., None]:
    def _set(**values: object) -> None:
        for name, value in values.items():
            monkeypatch.setenv(name, str(value))
        get_settings.cache_clear()

    return _set


@pytest.fixture()
def install_pool(monkeypatch: pytest.MonkeyPatch) -> Callable[..., FakePool]:
    def _install(handler: Handler, **kwargs) -> FakePool:
        pool = FakePool(handler, **kwargs)
        monkeypatch.setattr(db, "_pool", pool)
        return pool

    return _install


@pytest.fixture()
def ctx() -> OperationContext:
    return OperationContext(tenant="tenant-a", doc_id="doc-1")
