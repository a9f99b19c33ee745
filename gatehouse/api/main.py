"""
gatehouse.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn gatehouse.api.main:app --reload --port 8000

or ``python -m gatehouse``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.staticfiles import StaticFiles

load_dotenv()

from gatehouse.api.auth import router as auth_router  # noqa: E402
from gatehouse.api.deps import get_audio_store, get_engine  # noqa: E402
from gatehouse.api.routes.admin import router as admin_router  # noqa: E402
from gatehouse.api.routes.apply import router as apply_router  # noqa: E402
from gatehouse.api.routes.cleanup import router as cleanup_router  # noqa: E402
from gatehouse.api.routes.public import router as public_router  # noqa: E402
from gatehouse.database.engine import init_db  # noqa: E402
from gatehouse.services.audio_store import UPLOAD_DIR  # noqa: E402

logger = logging.getLogger(__name__)


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
    """Startup/shutdown lifecycle — ensure tables and the audio directory."""
    get_audio_store().ensure_dir()

    engine = get_engine()
    init_db(engine)
    logger.info("Gatehouse API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Gatehouse API shutting down")


app = FastAPI(
    title="Gatehouse Whitelist API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error envelope: every failure is {"error": "<message>"}
# ---------------------------------------------------------------------------
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(apply_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(cleanup_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


# Uploaded audio answers (``/api/uploads/audio/<id>``)
app.mount(
    "/api/uploads",
    StaticFiles(directory=str(UPLOAD_DIR), check_dir=False),
    name="uploads",
)
