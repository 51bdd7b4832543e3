"""
BCA Report Snapshot API v1.0
FastAPI backend that freezes portfolio dashboard data for report previews,
keeps it in a session-scoped store (in-process or Redis) and reports when the
live dashboard has drifted from the frozen view.
"""
import time
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware, SecurityHeadersMiddleware
from app.services.perf_monitor import snapshot_metrics
from app.services.snapshot_store import create_backend
from app.api.snapshot_routes import router as snapshot_router

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = logging.getLogger("bca-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may pre-seed a backend on app.state before startup
    if getattr(app.state, "snapshot_backend", None) is None:
        app.state.snapshot_backend = create_backend(
            config.SNAPSHOT_STORE_BACKEND,
            config.REDIS_URL,
            config.SNAPSHOT_SESSION_TTL_SECONDS,
        )
    logger.info(
        f"Snapshot store ready (backend={config.SNAPSHOT_STORE_BACKEND}, "
        f"ttl={config.SNAPSHOT_SESSION_TTL_SECONDS}s)"
    )
    yield
    try:
        app.state.snapshot_backend.close()
    except Exception as e:
        logger.warning(f"Snapshot store close failed: {e}")


app = FastAPI(
    title="BCA Report Snapshot API",
    version=config.API_VERSION,
    description="Frozen, fingerprinted dashboard snapshots for building condition assessment reports",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", config.SESSION_HEADER],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

app.include_router(snapshot_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": config.API_VERSION,
        "snapshot_store": config.SNAPSHOT_STORE_BACKEND,
        "session_ttl_seconds": config.SNAPSHOT_SESSION_TTL_SECONDS,
    }


@app.get("/metrics")
async def metrics():
    """
    Snapshot operation counters plus process uptime. Sourced entirely from
    the in-process SnapshotMetrics singleton.
    """
    return {
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
        **snapshot_metrics.get_metrics(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
