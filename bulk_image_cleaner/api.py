from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from bulk_image_cleaner.config.settings import Settings, get_settings
from bulk_image_cleaner.errors import ApiProblem, InvalidJson, PayloadTooLarge
from bulk_image_cleaner.logging_utils import RequestLoggingMiddleware, setup_logging
from bulk_image_cleaner.models.messages import ErrorBody, HealthResponse
from bulk_image_cleaner.routers import oauth as oauth_router
from bulk_image_cleaner.routers import sites as sites_router
from bulk_image_cleaner.services.session_store import (
    MemorySessionStore,
    SessionMiddleware,
    SessionStore,
    SupabaseSessionStore,
)
from bulk_image_cleaner.services.webflow_service import WebflowClient, WebflowError

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024

# Any localhost dev server may call the API with credentials.
LOCALHOST_ORIGIN_RE = r"https?://(?:localhost|127\.0\.0\.1)(?::\d+)?"

CORS_ALLOWED_HEADERS = [
    "Authorization",
    "Content-Type",
    "Accept",
    "X-Requested-With",
    "X-Webflow-Id-Token",
]
CORS_ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def guard_json_body(request: Request) -> None:
    """Reject oversized or malformed JSON bodies before any route sees them."""
    if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
        return
    body = await request.body()
    if len(body) > MAX_BODY_BYTES:
        raise PayloadTooLarge()
    ctype = (request.headers.get("content-type") or "").lower()
    if "json" in ctype and body.strip():
        try:
            json.loads(body)
        except ValueError:
            raise InvalidJson()


def build_session_store(settings: Settings) -> SessionStore:
    if settings.SESSION_STORE.strip().lower() == "supabase":
        from bulk_image_cleaner.services.supabase_service import assert_supabase_ready, supabase

        assert_supabase_ready()
        return SupabaseSessionStore(supabase, table=settings.SESSION_TABLE)
    return MemorySessionStore()


def create_app(
    settings: Optional[Settings] = None,
    webflow: Optional[WebflowClient] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(json_lines=settings.LOG_JSON)

    app = FastAPI(
        title="Bulk Image Cleaner API",
        version=settings.VERSION,
        dependencies=[Depends(guard_json_body)],
    )
    app.state.settings = settings
    app.state.webflow = webflow or WebflowClient(settings)

    # ---------------------------
    # Middleware (last added runs first)
    # ---------------------------
    app.add_middleware(
        SessionMiddleware,
        store=session_store or build_session_store(settings),
        secret=settings.SESSION_SECRET,
        cookie_name=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        secure_mode=settings.cookie_secure_mode,
    )
    app.add_middleware(RequestLoggingMiddleware, log_requests=settings.LOG_REQUESTS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=LOCALHOST_ORIGIN_RE,
        allow_credentials=True,
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    # ---------------------------
    # Error handlers
    # ---------------------------
    @app.exception_handler(WebflowError)
    async def _webflow_error(_request: Request, exc: WebflowError):
        body = exc.body if isinstance(exc.body, dict) else {}
        payload = ErrorBody(
            message=exc.message,
            code=body.get("code"),
            details=body.get("details"),
            retryAfter=exc.retry_after,
        )
        logger.warning("Webflow error %s: %s", exc.status, exc.message)
        return JSONResponse(payload.model_dump(), status_code=exc.status)

    @app.exception_handler(ApiProblem)
    async def _api_problem(_request: Request, exc: ApiProblem):
        return JSONResponse({"message": exc.message}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"message": "Server error"}, status_code=500)

    # ---------------------------
    # Health / banner
    # ---------------------------
    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(ok=True)

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root() -> str:
        return "Bulk Image Cleaner backend is running"

    app.include_router(oauth_router.router)
    app.include_router(sites_router.router)

    logger.info(
        "app ready: origins=%s cookie_secure=%s store=%s",
        settings.allowed_origins,
        settings.cookie_secure_mode,
        settings.SESSION_STORE,
    )
    return app
