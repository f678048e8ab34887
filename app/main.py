"""FastAPI app exposing list view orchestration."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import asdict
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time

from app.data_source_http import HttpDataSource, http_source_enabled
from app.db import get_db_ms, reset_db_ms
from app.stores import MemoryUserPreferenceStore
from app.stores_db import DbPreferenceStore, reset_user_id, set_user_id
from data_sources import MemoryDataSource
from formatting_eval import format_records
from list_session import ListViewSession, ViewQuery
from navigation import NavigationController
from view_prefs import ViewPreferences, view_pref_key
from view_schema import ViewType, list_view_chain, named_views_from_config, resolve_view_schema
from vista.query_key import query_key


app = FastAPI(title="Vista")
logger = logging.getLogger("vista")
logging.basicConfig(level=logging.INFO)
_LOCAL_CORS_REGEX = re.compile(r"^http://(localhost|127\.0\.0\.1):\d+$")
_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("VISTA_CORS_ORIGINS", "").split(",")
    if origin.strip()
}

USE_DB = os.getenv("USE_DB", "").strip() == "1"
VIEW_PREFS_ENABLED = os.getenv("VISTA_VIEW_PREFS_ENABLED", "1").strip().lower() in ("1", "true", "yes")
REQ_SLOW_MS = float(os.getenv("VISTA_REQ_SLOW_MS", "250"))

if USE_DB:
    pref_store = DbPreferenceStore()
else:
    pref_store = MemoryUserPreferenceStore()
preferences = ViewPreferences(pref_store, enabled=VIEW_PREFS_ENABLED)
data_source = HttpDataSource() if http_source_enabled() else MemoryDataSource()


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(_CORS_ORIGINS),
    allow_origin_regex=_LOCAL_CORS_REGEX.pattern,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def user_context_middleware(request: Request, call_next):
    token = set_user_id(request.headers.get("x-user-id") or "default")
    try:
        return await call_next(request)
    finally:
        reset_user_id(token)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_ms()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    db_ms = get_db_ms()
    logger.info(
        "%s %s %s total_ms=%.1f db_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        db_ms,
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning("slow_request method=%s path=%s total_ms=%.1f", request.method, request.url.path, total_ms)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _issue(code: str, message: str, path: str | None = None) -> dict:
    return {"code": code, "message": message, "path": path}


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _dict_field(body: dict, key: str) -> dict:
    value = body.get(key)
    return value if isinstance(value, dict) else {}


def _query_from_body(body: dict) -> ViewQuery:
    query = ViewQuery.from_config(_dict_field(body, "config"))
    if isinstance(body.get("user_filter"), dict):
        query = query.with_user_filter(body["user_filter"])
    active = body.get("active_quick_filters")
    if isinstance(active, list):
        for qf in query.quick_filters:
            query = query.with_quick_filter(qf.get("id"), qf.get("id") in active)
    if isinstance(body.get("search"), str):
        query = query.with_search(body["search"])
    if isinstance(body.get("sort"), list):
        query = query.with_sort(body["sort"])
    return query


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/prefs/{object_name}/view")
async def get_view_pref(object_name: str, view_id: str | None = None) -> JSONResponse:
    key = view_pref_key(object_name, view_id)
    view_type = preferences.load(key)
    warnings = [] if preferences.enabled else [_issue("VIEW_PREFS_DISABLED", "View preferences are disabled")]
    return _ok_response({"key": key, "view_type": view_type.value if view_type else None}, warnings)


@app.put("/prefs/{object_name}/view")
async def put_view_pref(object_name: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    raw = body.get("view_type")
    if ViewType.parse(raw) is None:
        return _error_response("VIEW_TYPE_INVALID", f"Unknown view type: {raw}", "view_type")
    view_id = body.get("view_id") if isinstance(body.get("view_id"), str) else None
    key = view_pref_key(object_name, view_id)
    if not preferences.enabled:
        return _ok_response({"key": key, "saved": False}, [_issue("VIEW_PREFS_DISABLED", "View preferences are disabled")])
    saved = preferences.save(key, raw)
    if not saved:
        return _error_response("VIEW_PREFS_UNAVAILABLE", "Preference store unavailable", "view_type", status=503)
    return _ok_response({"key": key, "saved": True})


@app.post("/views/{object_name}/query")
async def build_view_query(object_name: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    params = _query_from_body(body).to_params()
    return _ok_response({"object": object_name, "query": params, "key": query_key(object_name, params)})


@app.post("/views/{object_name}/resolve")
async def resolve_view(object_name: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    config = _dict_field(body, "config")
    named = named_views_from_config(config.get("listViews"))
    view_key = body.get("view") or config.get("defaultView")
    named_view = named.get(view_key) if isinstance(view_key, str) else None
    if isinstance(view_key, str) and named_view is None:
        return _error_response("VIEW_NOT_FOUND", f"Unknown view: {view_key}", "view", status=404)
    view_type = body.get("view_type") or (named_view.type if named_view else config.get("viewType")) or "grid"
    chain = list_view_chain(config, named_view, _dict_field(body, "defaults") or None)
    resolved = resolve_view_schema(view_type, chain, object_name=object_name)
    return _ok_response({"schema": resolved.to_dict()}, resolved.warnings)


@app.post("/views/format")
async def format_view_rows(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    records = body.get("records")
    if not isinstance(records, list):
        return _error_response("RECORDS_REQUIRED", "records must be a list", "records")
    styles = format_records(records, body.get("rules") if isinstance(body.get("rules"), list) else [])
    return _ok_response({"styles": styles})


@app.post("/views/{object_name}/records")
async def load_view_records(object_name: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    config = dict(_dict_field(body, "config"))
    view_key = body.get("view")
    if isinstance(view_key, str):
        if view_key not in named_views_from_config(config.get("listViews")):
            return _error_response("VIEW_NOT_FOUND", f"Unknown view: {view_key}", "view", status=404)
        config["defaultView"] = view_key
    session = ListViewSession(
        object_name,
        config,
        data_source,
        preferences=preferences,
        view_id=body.get("view_id") if isinstance(body.get("view_id"), str) else None,
    )
    session.query = _query_from_body({**body, "config": config})
    if session.active_view is not None:
        session.query = session.query.with_view(session.active_view)
    await session.refresh()
    payload = session.render_payload()
    warnings = payload.pop("warnings")
    return _ok_response(payload, warnings)


@app.post("/views/{object_name}/click")
async def click_record(object_name: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    record = body.get("record")
    if not isinstance(record, dict):
        return _error_response("RECORD_REQUIRED", "record must be an object", "record")
    controller = NavigationController(
        object_name,
        body.get("navigation") if isinstance(body.get("navigation"), dict) else None,
        operations=_dict_field(body, "operations"),
    )
    outcome = controller.record_click(record)
    return _ok_response({"outcome": asdict(outcome), "open": controller.is_open})
