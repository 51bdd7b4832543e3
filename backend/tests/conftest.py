"""
conftest.py — Shared pytest fixtures for the BCA report snapshot test suite.

No Redis or network fixtures are defined here. Store tests run against the
in-memory backend (or a stub Redis client defined in the test module), and
route tests drive the FastAPI app through ``TestClient``.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from datetime import datetime, timezone

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Metrics isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_snapshot_metrics():
    """Every test starts with zeroed snapshot counters."""
    from app.services.perf_monitor import snapshot_metrics
    snapshot_metrics.reset()
    yield
    snapshot_metrics.reset()


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

@pytest.fixture
def capture_time():
    """Fixed capture moment used for deterministic snapshots."""
    return datetime(2026, 10, 18, 9, 5, 30, 250000, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock stand-in for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Dashboard payloads
# ---------------------------------------------------------------------------

@pytest.fixture
def minimal_dashboard():
    """The smallest payload that yields a valid snapshot."""
    return {
        "overview": {"portfolioFCI": 12.5},
        "buildingComparison": [{"id": 1}],
        "categoryCostBreakdown": [],
        "capitalForecast": [],
    }


@pytest.fixture
def portfolio_dashboard():
    """
    Realistic portfolio analytics payload: two buildings, UNIFORMAT category
    breakdown, two forecast years, plus dashboard fields that are NOT captured
    into a snapshot (conditionDistribution, deficiencyTrends, generatedAt).
    """
    return {
        "overview": {
            "totalBuildings": 2,
            "totalDeferredMaintenance": 150_000.0,
            "totalCurrentReplacementValue": 2_000_000.0,
            "portfolioFCI": 0.075,
            "totalDeficiencies": 14,
            "criticalDeficiencies": 2,
        },
        "buildingComparison": [
            {
                "assetId": 1,
                "name": "Main Hall",
                "deferredMaintenanceCost": 100_000.0,
                "currentReplacementValue": 1_200_000.0,
                "fci": 0.0833,
                "fciRating": "Fair",
            },
            {
                "assetId": 2,
                "name": "Science Wing",
                "deferredMaintenanceCost": 50_000.0,
                "currentReplacementValue": 800_000.0,
                "fci": 0.0625,
                "fciRating": "Fair",
            },
        ],
        "categoryCostBreakdown": [
            {"categoryCode": "B", "category": "Shell", "totalRepairCost": 90_000.0},
            {"categoryCode": "D", "category": "Services", "totalRepairCost": 60_000.0},
        ],
        "capitalForecast": [
            {"year": 2027, "totalProjectedCost": 80_000.0},
            {"year": 2028, "totalProjectedCost": 70_000.0},
        ],
        "conditionDistribution": [{"condition": "good", "count": 50}],
        "deficiencyTrends": [{"period": "2026-09", "totalDeficiencies": 10}],
        "generatedAt": "2026-10-18T09:00:00Z",
    }


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_backend(fake_clock):
    """In-memory backend with a 1-hour idle TTL on a controllable clock."""
    from app.services.snapshot_store import InMemorySessionStore
    return InMemorySessionStore(ttl_seconds=3600, clock=fake_clock)


@pytest.fixture
def snapshot_store(memory_backend):
    from app.services.snapshot_store import SnapshotStore
    return SnapshotStore(memory_backend, session_id="sess-alpha-0001")
