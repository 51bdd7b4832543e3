"""
Service configuration — single source of truth for snapshot store settings,
logging and HTTP options.

Import from here in routes and services rather than reading the environment
directly.
"""
from __future__ import annotations

import os

# Load .env file automatically in dev (no-op if the file is missing)
from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        return default


# ── Snapshot store ─────────────────────────────────────────────────────────────

# "memory" keeps snapshots in-process (single worker, dev/tests).
# "redis" shares them across workers and survives restarts of the API.
SNAPSHOT_STORE_BACKEND: str = os.getenv("SNAPSHOT_STORE_BACKEND", "memory").strip().lower()

REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Idle lifetime of a browsing session. Every read or write slides the window.
SNAPSHOT_SESSION_TTL_SECONDS: int = _env_int("SNAPSHOT_SESSION_TTL_SECONDS", 8 * 3600)

# Namespace for store keys: <prefix>:<session_id>:<snapshot key>
SNAPSHOT_KEY_PREFIX: str = os.getenv("SNAPSHOT_KEY_PREFIX", "report-snapshot")

SESSION_HEADER: str = "X-Session-ID"


# ── Dashboard payload keys ─────────────────────────────────────────────────────
# Conventional sub-fields of the portfolio dashboard payload captured into a
# snapshot. Missing entries default to an empty mapping or sequence.
OVERVIEW_KEY = "overview"
BUILDING_COMPARISON_KEY = "buildingComparison"
CATEGORY_BREAKDOWN_KEY = "categoryCostBreakdown"
CAPITAL_FORECAST_KEY = "capitalForecast"


# ── Logging ────────────────────────────────────────────────────────────────────

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"


# ── HTTP ───────────────────────────────────────────────────────────────────────

_cors_default = "http://localhost:3000,http://localhost:8000"
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()
]

API_VERSION = "1.0.0"
