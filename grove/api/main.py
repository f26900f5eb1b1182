"""
grove.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn grove.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from grove.api.deps import get_config, get_engine  # noqa: E402
from grove.api.routes.admin import router as admin_router  # noqa: E402
from grove.api.routes.notifications import router as notifications_router  # noqa: E402
from grove.api.routes.profile import router as profile_router  # noqa: E402
from grove.database.engine import init_db  # noqa: E402
from grove.errors import (  # noqa: E402
    AuthorizationError,
    ConflictError,
    GroveError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[GroveError], int] = {
    ValidationError: 422,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    UpstreamError: 503,
}


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and register seed admins."""
    engine = get_engine()
    cfg = get_config()
    init_db(engine, cfg)
    logger.info("%s API started — engine ready (%s)", cfg.community_name, engine.url.database)
    yield
    logger.info("%s API shutting down", cfg.community_name)


app = FastAPI(
    title="Grove Community API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GroveError)
async def grove_error_handler(request: Request, exc: GroveError) -> JSONResponse:
    code = next(
        (status_code for cls, status_code in _ERROR_STATUS.items() if isinstance(exc, cls)),
        500,
    )
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


# Mount routers
app.include_router(profile_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
