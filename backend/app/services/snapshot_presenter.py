"""
Snapshot presentation helpers — what the report preview shows about a
frozen snapshot: how old it is, when it was taken, whether it is complete
enough to render, and whether the live dashboard has moved on ("stale").
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.services.perf_monitor import snapshot_metrics
from app.services.snapshot_engine import DataSnapshot, has_changed

STATUS_LOCKED = "locked"
STATUS_STALE = "stale"


@dataclass
class SnapshotValidation:
    is_valid: bool
    missing_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"isValid": self.is_valid, "missingFields": list(self.missing_fields)}


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def age_in_minutes(snapshot: DataSnapshot, now: Optional[datetime] = None) -> int:
    """Whole minutes since capture, rounded down (90 seconds -> 1)."""
    current = _utc(now) if now is not None else datetime.now(timezone.utc)
    elapsed = (current - _utc(snapshot.timestamp)).total_seconds()
    return math.floor(elapsed / 60)


def format_timestamp(snapshot: DataSnapshot) -> str:
    """Human-readable capture time, e.g. ``Oct 18, 2026, 09:05 AM UTC``."""
    ts = _utc(snapshot.timestamp).astimezone(timezone.utc)
    return f"{ts:%b} {ts.day}, {ts.year}, {ts:%I:%M %p} UTC"


def validate_snapshot(snapshot: DataSnapshot) -> SnapshotValidation:
    """
    Minimum completeness check before a report is rendered from the snapshot.

    Only the portfolio metrics and the building list are required. Empty
    UNIFORMAT or forecast data still renders (those sections are optional in
    the report).
    """
    missing = []
    if not snapshot.portfolio_metrics:
        missing.append("portfolioMetrics")
    if not snapshot.building_data:
        missing.append("buildingData")
    return SnapshotValidation(is_valid=not missing, missing_fields=missing)


def describe_snapshot(
    snapshot: DataSnapshot,
    current_data: Any = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Status block consumed by the report preview banner.

    Staleness is only evaluated when ``current_data`` is supplied; otherwise
    the snapshot is reported as locked.
    """
    stale = current_data is not None and has_changed(snapshot, current_data)
    if stale:
        snapshot_metrics.record_stale()
    return {
        "status": STATUS_STALE if stale else STATUS_LOCKED,
        "isStale": stale,
        "ageMinutes": age_in_minutes(snapshot, now),
        "capturedAt": _utc(snapshot.timestamp).isoformat(),
        "capturedAtDisplay": format_timestamp(snapshot),
        "dataHash": snapshot.data_hash,
        "validation": validate_snapshot(snapshot).to_dict(),
    }
