"""
main.py
FastAPI application entry point.
Registers all routers, middleware, startup/shutdown events.

- Structured JSON logging with per-request IDs
- Fixed-window rate limiting for unauthenticated traffic (fails open)
- Domain exceptions mapped to HTTP responses in one place
- Prometheus metrics
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from config.database import Database
from config.redis_client import RedisCache, close_redis, get_redis, init_redis
from config.settings import settings
from services.situation.dependencies import build_openai_client
from shared.utils.errors import GuidanceGenerationError, ModerationUnavailable

# Service routers
from services.auth.router import router as auth_router
from services.prayer.router import router as prayer_router
from services.rating.router import router as rating_router
from services.situation.router import router as situation_router
from services.user.router import router as user_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)

    database = Database.from_settings(settings)
    await database.connect()
    await database.create_all()
    app.state.database = database
    logger.info("Database connected")

    app.state.openai = build_openai_client()

    try:
        await init_redis()
        logger.info("Redis connected")
    except Exception as e:
        # Deny-list and rate limiter both fail open without Redis
        logger.warning("Redis unavailable, continuing without it: %s", e)
        await close_redis()

    yield

    await close_redis()
    await app.state.openai.close()
    await database.disconnect()
    logger.info("Server shutdown complete")


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## WWJD Guidance API

Community guidance for real-life situations:
- **Situations**: submit a situation, get biblically grounded guidance; browse, search and sort
- **Ratings**: 1-5 stars with an optional comment
- **Users**: saved guidance, followed topics, email digest settings
- **Prayer wall**: post prayer requests and pray for others

### Authentication
User-scoped endpoints require `Authorization: Bearer <access_token>`.
Get a token via the `/auth/google` OAuth flow.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (last added runs outermost) ─────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # Session (needed for OAuth state parameter)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY,
        session_cookie="wwjd_session",
        same_site="lax",
        https_only=settings.is_production,
    )

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Unauthenticated clients get RATE_LIMIT_UNAUTH_PER_MINUTE requests per
        IP per minute. Bearer-token traffic and ops endpoints are not limited.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        if request.url.path in skip_paths:
            return await call_next(request)
        if request.headers.get("Authorization", "").startswith("Bearer "):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        allowed = await RedisCache(get_redis()).check_rate_limit(
            f"rate:unauth:{client_ip}",
            limit=settings.RATE_LIMIT_UNAUTH_PER_MINUTE,
        )
        if not allowed:
            logger.warning("Rate limit exceeded for IP %s", client_ip)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Please slow down."},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for log correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ── Exception Handlers ─────────────────────────────────────────

    def _request_id(request: Request):
        return getattr(request.state, "request_id", None)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(GuidanceGenerationError)
    async def guidance_exception_handler(request: Request, exc: GuidanceGenerationError):
        request_id = _request_id(request)
        logger.error("[%s] Guidance generation failed: %s", request_id, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Failed to process situation", "request_id": request_id},
        )

    @app.exception_handler(ModerationUnavailable)
    async def moderation_exception_handler(request: Request, exc: ModerationUnavailable):
        request_id = _request_id(request)
        logger.error("[%s] Moderation unavailable: %s", request_id, exc)
        return JSONResponse(
            status_code=503,
            content={
                "detail": "Content moderation is temporarily unavailable. Please try again later.",
                "request_id": request_id,
            },
            headers={"Retry-After": "30"},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        request_id = _request_id(request)
        logger.error("[%s] Database error: %s", request_id, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Failed to save changes", "request_id": request_id},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        request_id = _request_id(request)
        logger.error("[%s] Exception: %s", request_id, exc, exc_info=exc)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        return JSONResponse(
            status_code=500,
            content={"detail": detail, "request_id": request_id},
        )

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check(request: Request):
        checks = {"status": "ok", "version": settings.APP_VERSION}

        # DB check
        try:
            await request.app.state.database.ping()
            checks["database"] = "ok"
        except Exception:
            logger.exception("Health check: database unreachable")
            checks["database"] = "error"
            checks["status"] = "degraded"

        # Redis check
        redis = get_redis()
        if redis is None:
            checks["redis"] = "disabled"
        else:
            try:
                await redis.ping()
                checks["redis"] = "ok"
            except Exception:
                logger.exception("Health check: redis unreachable")
                checks["redis"] = "error"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    # Register all service routers
    app.include_router(auth_router)
    app.include_router(situation_router)
    app.include_router(rating_router)
    app.include_router(user_router)
    app.include_router(prayer_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
