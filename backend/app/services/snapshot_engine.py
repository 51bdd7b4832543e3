"""
Snapshot Engine — freezes a portfolio dashboard payload for report rendering.

A report preview must show one consistent view of the dashboard even while
assessments keep changing underneath it. ``build_snapshot`` captures the
metrics the report needs plus a fingerprint of the full payload;
``has_changed`` later tells the preview whether the live dashboard has moved
on since the snapshot was taken.

Note the deliberate asymmetry: the fingerprint covers the ENTIRE dashboard
payload while only four sub-fields are captured. A change to any other
dashboard field (condition distribution, trends, ...) therefore marks the
snapshot stale even though the captured subset is unaffected.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.config import (
    BUILDING_COMPARISON_KEY,
    CAPITAL_FORECAST_KEY,
    CATEGORY_BREAKDOWN_KEY,
    OVERVIEW_KEY,
)
from app.services.perf_monitor import snapshot_metrics
from app.services.snapshot_hasher import fingerprint

logger = logging.getLogger("bca-api.snapshot")

# Field names of the serialized form (session store value / API payloads).
SERIALIZED_FIELDS = (
    "timestamp",
    "dataHash",
    "portfolioMetrics",
    "buildingData",
    "uniformatData",
    "capitalForecastData",
)


_DATA_FIELDS = ("portfolio_metrics", "building_data", "uniformat_data", "capital_forecast_data")


def _freeze(value: Any) -> Any:
    """Read-only copy of a JSON-like value (new containers, shared scalars)."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    """Mutable copy of a frozen value: mappings back to dicts, tuples to lists."""
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(v) for v in value]
    return value


class SnapshotFormatError(ValueError):
    """Raised when a serialized snapshot cannot be turned back into a DataSnapshot."""


@dataclass(frozen=True)
class DataSnapshot:
    """
    Immutable point-in-time capture of portfolio dashboard metrics.

    Attributes:
        timestamp: capture moment (aware UTC datetime), set once at build time
        data_hash: fingerprint of the full dashboard payload at capture time
        portfolio_metrics: aggregate metric name -> value (``overview``)
        building_data: per-building records (``buildingComparison``)
        uniformat_data: per-UNIFORMAT-category records (``categoryCostBreakdown``)
        capital_forecast_data: forecast rows (``capitalForecast``)

    The captured data is frozen all the way down: mappings become read-only
    ``MappingProxyType`` views and sequences become tuples, so in-place edits
    raise ``TypeError``. ``to_dict`` hands back plain dicts and lists.

    Refreshing never edits a snapshot: a new one is built and replaces the
    old one in the store.
    """

    timestamp: datetime
    data_hash: str
    portfolio_metrics: Mapping[str, Any] = field(default_factory=dict)
    building_data: Tuple[Any, ...] = field(default_factory=tuple)
    uniformat_data: Tuple[Any, ...] = field(default_factory=tuple)
    capital_forecast_data: Tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self):
        for name in _DATA_FIELDS:
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    def to_dict(self) -> Dict[str, Any]:
        """Serialized form with an ISO-8601 timestamp. Returns copies of the data."""
        return {
            "timestamp": _as_utc(self.timestamp).isoformat(),
            "dataHash": self.data_hash,
            "portfolioMetrics": _thaw(self.portfolio_metrics),
            "buildingData": _thaw(self.building_data),
            "uniformatData": _thaw(self.uniformat_data),
            "capitalForecastData": _thaw(self.capital_forecast_data),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "DataSnapshot":
        """
        Rebuild a snapshot from its serialized form.

        Raises SnapshotFormatError when a field is missing, has the wrong
        shape, or the timestamp is not a parsable ISO-8601 string.
        """
        if not isinstance(raw, dict):
            raise SnapshotFormatError(f"expected an object, got {type(raw).__name__}")
        missing = [name for name in SERIALIZED_FIELDS if name not in raw]
        if missing:
            raise SnapshotFormatError(f"missing fields: {', '.join(missing)}")

        data_hash = raw["dataHash"]
        if not isinstance(data_hash, str) or not data_hash:
            raise SnapshotFormatError("dataHash must be a non-empty string")
        if not isinstance(raw["portfolioMetrics"], dict):
            raise SnapshotFormatError("portfolioMetrics must be an object")
        for name in ("buildingData", "uniformatData", "capitalForecastData"):
            if not isinstance(raw[name], list):
                raise SnapshotFormatError(f"{name} must be an array")

        return cls(
            timestamp=parse_timestamp(raw["timestamp"]),
            data_hash=data_hash,
            portfolio_metrics=raw["portfolioMetrics"],
            building_data=raw["buildingData"],
            uniformat_data=raw["uniformatData"],
            capital_forecast_data=raw["capitalForecastData"],
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix accepted) into an aware UTC datetime."""
    if not isinstance(value, str) or not value:
        raise SnapshotFormatError("timestamp must be an ISO-8601 string")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise SnapshotFormatError(f"unparsable timestamp {value!r}: {e}") from e
    return _as_utc(parsed)


def _mapping_or_empty(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _sequence_or_empty(value: Any) -> List[Any]:
    return value if isinstance(value, (list, tuple)) else []


def build_snapshot(dashboard_data: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> DataSnapshot:
    """
    Capture the current dashboard view.

    Missing (or null) sub-fields become an empty mapping / sequence. The
    captured data is copied and frozen, so mutating the caller's payload
    afterwards does not affect the snapshot. Nothing is persisted here.
    """
    data = dashboard_data if isinstance(dashboard_data, dict) else {}
    snapshot = DataSnapshot(
        timestamp=_as_utc(now) if now is not None else datetime.now(timezone.utc),
        data_hash=fingerprint(dashboard_data),
        portfolio_metrics=_mapping_or_empty(data.get(OVERVIEW_KEY)),
        building_data=_sequence_or_empty(data.get(BUILDING_COMPARISON_KEY)),
        uniformat_data=_sequence_or_empty(data.get(CATEGORY_BREAKDOWN_KEY)),
        capital_forecast_data=_sequence_or_empty(data.get(CAPITAL_FORECAST_KEY)),
    )
    snapshot_metrics.record_build()
    logger.debug(
        "snapshot built",
        extra={"data_hash": snapshot.data_hash, "buildings": len(snapshot.building_data)},
    )
    return snapshot


def has_changed(snapshot: DataSnapshot, current_data: Any) -> bool:
    """
    True iff the fingerprint of ``current_data`` differs from the snapshot's.

    ``current_data`` must have the same full shape as the payload the snapshot
    was built from; passing a subset (or a superset) reports a change.
    """
    return fingerprint(current_data) != snapshot.data_hash
