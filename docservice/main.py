from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from docservice.core import db, schema
from docservice.core.context import OperationContext
from docservice.core.errors import PersistenceError
from docservice.core.settings import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Check that the result and changes tables have every column we write.
    """
    settings = get_settings()
    ctx = OperationContext(tenant=settings.default_tenant)
    try:
        missing = {
            settings.table_result: await schema.missing_columns(ctx, settings.table_result, schema.RESULT_COLUMNS),
            settings.table_changes: await schema.missing_columns(ctx, settings.table_changes, schema.CHANGES_COLUMNS),
        }
    except PersistenceError as e:
        return JSONResponse(
            status_code=503,
            content={"status": "db_unavailable", "missing_columns": {}, "detail": str(e)},
        )
    ok = not any(missing.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "schema_mismatch", "missing_columns": missing},
    )
