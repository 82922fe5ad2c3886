# venmito/main.py
from __future__ import annotations

# Stdlib
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

# FastAPI
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Internal modules
from .cache import delete_prefix, get_json, key, redis_client, set_json
from .dashboard import router as dashboard_router
from .db import Database
from .db_bootstrap import ensure_schema, wipe_all_data
from .deps import get_cache, get_database, get_db, get_settings
from .errors import UnknownFamilyError, UploadParseError
from .logging_config import configure_logging
from .parsers import detect_format, parse_records
from .queries import q_people, q_promotions, q_transactions, q_transfers
from .registry import RECONCILERS, get_reconciler
from .seed import load_sample_data
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

LISTINGS = {
    "people": q_people,
    "promotions": q_promotions,
    "transfers": q_transfers,
    "transactions": q_transactions,
}

api = APIRouter()


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------
def _invalidate(app: FastAPI) -> None:
    # listings and dashboards are both derived from the tables
    prefix = app.state.settings.CACHE_PREFIX
    delete_prefix(app.state.cache, key(prefix, "list", ""))
    delete_prefix(app.state.cache, key(prefix, "dashboard", ""))


def _rows_from_json(body: bytes) -> List[Dict[str, Any]]:
    try:
        payload = json.loads(body or b"null")
    except ValueError as e:
        raise UploadParseError(f"Request body is not valid JSON: {e}") from e
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    if not isinstance(payload, list):
        raise UploadParseError("Expected a JSON array of records")
    return payload


def _run_batch(app: FastAPI, family: str, rows: List[Any], diagnostics: bool):
    settings: Settings = app.state.settings
    reconciler_cls = get_reconciler(family)
    if not rows:
        raise HTTPException(status_code=400, detail="No records to upload")
    if len(rows) > settings.MAX_UPLOAD_ITEMS:
        raise HTTPException(
            status_code=413,
            detail=f"Too many records: {len(rows)} > {settings.MAX_UPLOAD_ITEMS}",
        )

    with app.state.db.session() as session:
        report = reconciler_cls(session).run(rows)

    if report.rejected:
        body = report.as_dict() if diagnostics else {"data": "", "error": report.message}
        return JSONResponse(status_code=422, content=body)

    if report.successes:
        _invalidate(app)
    return report.as_dict() if diagnostics else report.successes


# -------------------------------------------------------
# Health
# -------------------------------------------------------
@api.get("/health")
def health():
    return {"status": "ok"}


# -------------------------------------------------------
# Listings (cached)
# -------------------------------------------------------
def _listing(family: str, db: Session, r, settings: Settings):
    ck = key(settings.CACHE_PREFIX, "list", family)
    cached = get_json(r, ck)
    if cached is not None:
        return cached
    rows = LISTINGS[family](db)
    set_json(r, ck, rows, ttl=settings.CACHE_TTL_SECONDS)
    return rows


@api.get("/people")
def list_people(db: Session = Depends(get_db), r=Depends(get_cache), settings: Settings = Depends(get_settings)):
    return _listing("people", db, r, settings)


@api.get("/promotions")
def list_promotions(db: Session = Depends(get_db), r=Depends(get_cache), settings: Settings = Depends(get_settings)):
    return _listing("promotions", db, r, settings)


@api.get("/transfers")
def list_transfers(db: Session = Depends(get_db), r=Depends(get_cache), settings: Settings = Depends(get_settings)):
    return _listing("transfers", db, r, settings)


@api.get("/transactions")
def list_transactions(db: Session = Depends(get_db), r=Depends(get_cache), settings: Settings = Depends(get_settings)):
    return _listing("transactions", db, r, settings)


# -------------------------------------------------------
# Uploads
# -------------------------------------------------------
@api.post("/{family}/upload")
async def upload(family: str, request: Request, diagnostics: bool = False):
    get_reconciler(family)
    rows = _rows_from_json(await request.body())
    return await run_in_threadpool(_run_batch, request.app, family, rows, diagnostics)


@api.post("/{family}/upload-file")
async def upload_file(
    family: str,
    request: Request,
    fmt: Optional[str] = Query(None, alias="format"),
    filename: Optional[str] = None,
    diagnostics: bool = False,
):
    get_reconciler(family)
    fmt = detect_format(filename=filename, content_type=request.headers.get("content-type"), explicit=fmt)
    rows = parse_records(await request.body(), fmt)
    return await run_in_threadpool(_run_batch, request.app, family, rows, diagnostics)


# -------------------------------------------------------
# Sample data / reset  (admin UI buttons)
# -------------------------------------------------------
@api.post("/api/load-sample-data")
def load_sample(
    request: Request,
    payload: Optional[dict] = Body(None),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
):
    body = payload or {}
    data_dir = body.get("data_dir") or settings.SAMPLE_DATA_DIR
    reset = bool(body.get("reset", True))
    try:
        stats = load_sample_data(db, data_dir, reset=reset)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    _invalidate(request.app)
    loaded = ", ".join(f"{n} {family}" for family, n in stats["totals"].items()) or "nothing"
    return {"success": True, "message": f"Sample load complete. Loaded {loaded}.", "stats": stats}


@api.post("/api/clear-data")
def clear_data(request: Request, db: Database = Depends(get_database), settings: Settings = Depends(get_settings)):
    wipe_all_data(db)
    deleted = delete_prefix(request.app.state.cache, f"{settings.CACHE_PREFIX}:")
    return {"success": True, "message": "All data cleared.", "cache_keys_deleted": deleted}


# -------------------------------------------------------
# App setup
# -------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    db = Database(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    ensure_schema(db)
    app.state.db = db
    app.state.cache = redis_client(settings)
    logger.info("Serving families: %s", ", ".join(RECONCILERS))
    try:
        yield
    finally:
        if app.state.cache is not None:
            app.state.cache.close()
        db.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    app = FastAPI(title="Venmito Admin API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.cache = None

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UploadParseError)
    async def _parse_error(request: Request, exc: UploadParseError):
        logger.warning("Upload rejected: %s", exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(UnknownFamilyError)
    async def _unknown_family(request: Request, exc: UnknownFamilyError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def _storage_error(request: Request, exc: SQLAlchemyError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"data": "", "error": str(exc).splitlines()[0] if str(exc) else "storage error"})

    app.include_router(dashboard_router)
    app.include_router(api)
    return app


app = create_app()
