"""
main.py
FastAPI application entry point.
Registers all routers, middleware, startup/shutdown events.

Production-ready features:
- Multiple instances behind NGINX load balancer
- Circuit breaker on the upstream backend API
- Request IDs and timing headers on every response
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
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from config.database import close_db, init_db
from config.redis_client import close_redis, init_redis
from config.settings import settings
from shared.clients import backend as backend_module
from shared.clients.backend import UpstreamError, close_backend, init_backend
from shared.utils.fetching import RequestSuperseded

# Service routers
from services.auth.router import router as auth_router
from services.slots.router import router as slots_router
from services.reports.router import router as reports_router
from services.logs.router import router as logs_router
from services.puja.router import router as puja_router
from services.astrologer.router import router as astrologer_router
from services.sidebar.router import router as sidebar_router
from services.admin.router import router as admin_router


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


# Configure structured logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(message)s"
)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
logging.getLogger().handlers = [handler]
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME}...")

    await init_db()
    logger.info("Database connected")

    await init_redis()
    logger.info("Redis connected")

    await init_backend()
    logger.info(f"Backend client ready ({settings.BACKEND_API_URL})")

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    # Cleanup
    await close_backend()
    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Astro Admin Console API

Back-office API for the astrology platform admin team:
- **Slots**: Report slot availability, blocking, bulk blocking, time-range blocks
- **Reports**: Automation queue, batch re-processing, report orders
- **Logs**: Consultation logs and consultation bookings with CSV export
- **Pujas**: Puja bookings and the multi-tab puja editor
- **Astrologers**: Verification, profile/KYC, consultation and first-time offer pricing
- **Admin**: Admin accounts, sidebar routes and the console audit log

### Authentication
Requests are authenticated by the backend. Send the backend's
`Authorization: Bearer <token>` header or its session cookies;
both are forwarded upstream unchanged.

### Roles
- `ADMIN`: Day-to-day operations
- `SUPER_ADMIN`: Admin accounts, sidebar routes and audit log
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Middleware (outermost first) ────────────────────────────
    # Trust NGINX forwarded headers
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["*"]
    )
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "Content-Disposition"],
    )

    # GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request for distributed tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    # ── Exception Handlers ─────────────────────────────────────────

    @app.exception_handler(UpstreamError)
    async def upstream_exception_handler(request: Request, exc: UpstreamError):
        """
        Backend failures surfaced by ApiResult.unwrap().
        Backend 4xx pass through, an open breaker is 503, anything else 502.
        """
        code = exc.status_code
        if not (400 <= code < 500 or code == 503):
            code = 502
        request_id = getattr(request.state, "request_id", None)
        logger.warning(f"[{request_id}] Upstream error {code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=code, content={"detail": exc.message, "request_id": request_id})

    @app.exception_handler(RequestSuperseded)
    async def superseded_exception_handler(request: Request, exc: RequestSuperseded):
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=409,
            content={"detail": "Superseded by a newer request", "key": exc.key, "request_id": request_id},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler. Never expose stack traces in production."""
        request_id = getattr(request.state, "request_id", None)
        detail = str(exc) if settings.DEBUG else "An internal server error occurred"
        logger.error(f"[{request_id}] Exception: {str(exc)}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={
                "detail": detail,
                "request_id": request_id,
            },
        )

    # ── Routes ────────────────────────────────────────────────────

    # Health check (public)
    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check():
        from config import redis_client as redis_module
        from sqlalchemy import text
        from config.database import AsyncSessionLocal

        checks = {"status": "ok", "version": settings.APP_VERSION}

        # DB check
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception:
            logger.warning("Health check: database unreachable", exc_info=True)
            checks["database"] = "error"
            checks["status"] = "degraded"

        # Redis check
        try:
            if redis_module.redis_client:
                await redis_module.redis_client.ping()
            checks["redis"] = "ok"
        except Exception:
            logger.warning("Health check: redis unreachable", exc_info=True)
            checks["redis"] = "error"
            checks["status"] = "degraded"

        # Backend breaker
        client = backend_module.backend_client
        breaker_state = client.breaker.current_state if client else "uninitialized"
        checks["backend"] = "ok" if breaker_state == "closed" else breaker_state
        if breaker_state == "open":
            checks["status"] = "degraded"

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
    app.include_router(slots_router)
    app.include_router(reports_router)
    app.include_router(logs_router)
    app.include_router(puja_router)
    app.include_router(astrologer_router)
    app.include_router(sidebar_router)
    app.include_router(admin_router)

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
