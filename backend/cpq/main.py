"""
CPQ Pricing API v1.0
FastAPI service around the quotation pricing, currency normalization and
statistics engines, with per-team pricing defaults in async PostgreSQL.
"""
import os
import logging
import time
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from cpq.services.errors import PricingError
from cpq.services.logging_config import setup_logging
from cpq.services.middleware import RequestTimingMiddleware
from cpq.services.perf_monitor import tracker as perf_tracker

# Load .env in dev (no-op when the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("cpq-api")

API_VERSION = "1.0.0"

_PROCESS_START = time.monotonic()

if not os.getenv("DATABASE_URL"):
    logger.warning("MISSING env var: DATABASE_URL — team settings fall back to defaults (dev mode)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from cpq.db import init_db
    app.state.db_ready = await init_db()
    yield


app = FastAPI(
    title="CPQ Pricing API",
    version=API_VERSION,
    description="Quotation pricing & currency normalization engine",
    lifespan=lifespan,
)


@app.exception_handler(PricingError)
async def pricing_error_handler(request: Request, exc: PricingError):
    logger.warning(
        f"pricing request rejected: {exc.message}",
        extra={"error_type": exc.error_type, "http_path": request.url.path},
    )
    return JSONResponse(status_code=422, content=exc.to_dict())


# ---------------------------------------------------------------------------
# CORS: restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:5173"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from cpq.api.pricing_routes import router as pricing_router  # noqa: E402
from cpq.api.settings_routes import router as settings_router  # noqa: E402

app.include_router(pricing_router)
app.include_router(settings_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": API_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


@app.get("/metrics")
async def metrics():
    """
    Engine timing metrics from the in-process PerformanceTracker: calls and
    average duration per operation, slowest operation, error counts.
    """
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **perf_tracker.get_metrics(),
    }
