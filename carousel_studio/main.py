"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from carousel_studio.api.router import api_router
from carousel_studio.config import get_settings
from carousel_studio.core.errors import StudioError
from carousel_studio.db.client import get_supabase_client
from carousel_studio.utils.logging import setup_logging

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("studio.starting", port=settings.port, bg_overlay=settings.enable_bg_overlay)

    get_supabase_client()
    logger.info("studio.supabase_connected")

    yield

    logger.info("studio.shutdown")


app = FastAPI(
    title="Carousel Studio",
    description="AI content pipeline for branded social media carousels",
    version=VERSION,
    lifespan=lifespan,
)


def _stage(request: Request) -> str:
    return request.url.path.rstrip("/").rsplit("/", 1)[-1] or "root"


# Registered before CORS so it sits inside it: unexpected failures still get CORS headers.
@app.middleware("http")
async def unhandled_error_middleware(request: Request, call_next):
    """Turn any exception the handlers below do not cover into ``{"error": msg}`` with 500."""
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error("request.failed", stage=_stage(request), status=500, error=str(exc))
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(StudioError)
async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("request.failed", stage=_stage(request), status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    logger.warning("request.invalid", stage=_stage(request), error=message)
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning("request.http_error", stage=_stage(request), status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.options("/{rest_of_path:path}", include_in_schema=False)
async def preflight(rest_of_path: str) -> Response:
    """Answer bare OPTIONS requests; real CORS preflights are handled by the middleware."""
    return Response(status_code=204)


@app.get("/")
async def root():
    """Service info endpoint."""
    return {"service": "carousel-studio", "version": VERSION}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "carousel-studio", "version": VERSION}
