"""
Main FastAPI application
"""
import contextvars
import logging
import uuid
from contextlib import asynccontextmanager

import httpx
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pythonjsonlogger import json as jsonlogger
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from mediahub.config import settings
from mediahub.database import Database, create_storage_client
from mediahub.metrics import metrics
from mediahub.routes import glide, media, queue, telegram
from mediahub.services import build_services

# Request correlation ID, set per request and readable from any async code
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class _RequestIdFilter(logging.Filter):
    """Inject the current request_id into every log record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def configure_logging(environment: str) -> None:
    rid_filter = _RequestIdFilter()
    if environment != "development":
        # Structured JSON logging for production (parseable by ELK, Datadog, etc.)
        handler = logging.StreamHandler()
        handler.setFormatter(jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        ))
        handler.addFilter(rid_filter)
        logging.basicConfig(level=logging.INFO, handlers=[handler])
    else:
        # Human-readable format for development
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s")
        logging.getLogger().handlers[0].addFilter(rid_filter)


configure_logging(settings.ENVIRONMENT)
logger = logging.getLogger(__name__)

# Initialize Sentry if DSN is provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
        integrations=[AsyncioIntegration()],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = Database(settings.DATABASE_URL, command_timeout=settings.DB_COMMAND_TIMEOUT)
    await db.connect()

    # One pooled HTTP client shared by the Telegram, Glide and OpenAI adapters
    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    try:
        storage_client = create_storage_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        app.state.services = build_services(settings, db, storage_client, http_client)
        logger.info("Media hub started (environment=%s)", settings.ENVIRONMENT)
        yield
    finally:
        await http_client.aclose()
        await db.close()


# Create FastAPI app
app = FastAPI(
    title="Telegram Media Hub API",
    description="Telegram channel media ingestion, storage and Glide sync",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)


# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if settings.ENVIRONMENT != "development":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

app.add_middleware(SecurityHeadersMiddleware)


# Request correlation ID middleware, generates X-Request-ID for tracing
class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(rid)
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

app.add_middleware(RequestIdMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# Include routers
app.include_router(telegram.router, prefix="/api")
app.include_router(queue.router, prefix="/api")
app.include_router(media.router, prefix="/api")
app.include_router(glide.router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": "Telegram Media Hub API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    db_ok = False
    try:
        await app.state.services.db.fetchval("SELECT 1")
        db_ok = True
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", e)

    return JSONResponse(
        status_code=200 if db_ok else 503,
        content={
            "status": "healthy" if db_ok else "degraded",
            "database": "connected" if db_ok else "unreachable",
        },
    )


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus-compatible metrics endpoint."""
    return PlainTextResponse(
        content=metrics.render(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mediahub.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development"
    )
