"""
test_snapshot_engine.py — Unit tests for snapshot capture and change detection.

Tests cover:
  - build_snapshot: sub-field extraction, empty defaults, full-payload hash
  - Immutability: frozen dataclass, read-only nested data, isolation from
    later caller mutation
  - has_changed: unchanged data, any-field change, subset/superset payloads
  - to_dict / from_dict: serialized shape, timestamp parsing, malformed input

All tests are pure unit tests; no external services required.
"""

import copy
import dataclasses
from datetime import datetime, timezone

import pytest

from app.services.snapshot_engine import (
    DataSnapshot,
    SnapshotFormatError,
    build_snapshot,
    has_changed,
    parse_timestamp,
)
from app.services.snapshot_hasher import fingerprint


# ===========================================================================
# Class 1: build_snapshot
# ===========================================================================

class TestBuildSnapshot:

    def test_minimal_scenario(self, minimal_dashboard):
        snap = build_snapshot(minimal_dashboard)
        assert snap.portfolio_metrics["portfolioFCI"] == 12.5
        assert len(snap.building_data) == 1
        assert isinstance(snap.data_hash, str) and snap.data_hash

    def test_fields_map_to_dashboard_keys(self, portfolio_dashboard):
        data = build_snapshot(portfolio_dashboard).to_dict()
        assert data["portfolioMetrics"] == portfolio_dashboard["overview"]
        assert data["buildingData"] == portfolio_dashboard["buildingComparison"]
        assert data["uniformatData"] == portfolio_dashboard["categoryCostBreakdown"]
        assert data["capitalForecastData"] == portfolio_dashboard["capitalForecast"]

    def test_hash_covers_entire_payload(self, portfolio_dashboard):
        """The hash includes dashboard fields that are not captured."""
        snap = build_snapshot(portfolio_dashboard)
        assert snap.data_hash == fingerprint(portfolio_dashboard)

        captured_only = {
            "overview": portfolio_dashboard["overview"],
            "buildingComparison": portfolio_dashboard["buildingComparison"],
            "categoryCostBreakdown": portfolio_dashboard["categoryCostBreakdown"],
            "capitalForecast": portfolio_dashboard["capitalForecast"],
        }
        assert snap.data_hash != fingerprint(captured_only)

    def test_missing_subfields_default_to_empty(self):
        snap = build_snapshot({"overview": {"portfolioFCI": 0.2}})
        assert snap.building_data == ()
        assert snap.uniformat_data == ()
        assert snap.capital_forecast_data == ()

    def test_null_subfields_default_to_empty(self):
        snap = build_snapshot({
            "overview": None,
            "buildingComparison": None,
            "categoryCostBreakdown": None,
            "capitalForecast": None,
        })
        assert snap.portfolio_metrics == {}
        assert snap.building_data == ()

    def test_none_payload_builds_empty_snapshot(self):
        snap = build_snapshot(None)
        assert snap.portfolio_metrics == {}
        assert snap.building_data == ()
        assert snap.data_hash == fingerprint(None)

    def test_timestamp_is_capture_moment(self, capture_time):
        snap = build_snapshot({}, now=capture_time)
        assert snap.timestamp == capture_time

    def test_default_timestamp_is_now_utc(self):
        before = datetime.now(timezone.utc)
        snap = build_snapshot({})
        after = datetime.now(timezone.utc)
        assert before <= snap.timestamp <= after
        assert snap.timestamp.tzinfo is not None

    def test_build_records_metric(self, minimal_dashboard):
        from app.services.perf_monitor import snapshot_metrics
        build_snapshot(minimal_dashboard)
        build_snapshot(minimal_dashboard)
        assert snapshot_metrics.get_metrics()["built"] == 2


# ===========================================================================
# Class 2: Immutability
# ===========================================================================

class TestImmutability:

    def test_fields_cannot_be_reassigned(self, minimal_dashboard):
        snap = build_snapshot(minimal_dashboard)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.data_hash = "other"
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.timestamp = datetime.now(timezone.utc)

    def test_later_mutation_of_source_does_not_leak(self, portfolio_dashboard):
        snap = build_snapshot(portfolio_dashboard)
        portfolio_dashboard["overview"]["portfolioFCI"] = 0.99
        portfolio_dashboard["buildingComparison"].append({"assetId": 3})
        assert snap.portfolio_metrics["portfolioFCI"] == 0.075
        assert len(snap.building_data) == 2

    def test_top_level_data_cannot_be_edited_in_place(self, minimal_dashboard):
        snap = build_snapshot(minimal_dashboard)
        with pytest.raises(TypeError):
            snap.portfolio_metrics["portfolioFCI"] = 99.0
        with pytest.raises(AttributeError):
            snap.building_data.clear()
        assert snap.portfolio_metrics["portfolioFCI"] == 12.5
        assert len(snap.building_data) == 1

    def test_nested_rows_are_frozen(self, portfolio_dashboard):
        snap = build_snapshot(portfolio_dashboard)
        with pytest.raises(TypeError):
            snap.building_data[0]["name"] = "Renamed"
        with pytest.raises(TypeError):
            snap.capital_forecast_data[0]["totalProjectedCost"] = 0
        assert snap.to_dict()["buildingData"] == portfolio_dashboard["buildingComparison"]

    def test_directly_constructed_snapshot_is_frozen(self):
        rows = [{"assetId": 1}]
        snap = DataSnapshot(
            timestamp=datetime(2026, 10, 18, tzinfo=timezone.utc),
            data_hash="abc",
            portfolio_metrics={"portfolioFCI": 0.1},
            building_data=rows,
        )
        rows.append({"assetId": 2})
        assert len(snap.building_data) == 1
        with pytest.raises(TypeError):
            snap.building_data[0]["assetId"] = 3

    def test_to_dict_returns_copies(self, portfolio_dashboard):
        snap = build_snapshot(portfolio_dashboard)
        exported = snap.to_dict()
        assert isinstance(exported["buildingData"], list)
        assert isinstance(exported["buildingData"][0], dict)
        exported["buildingData"][0]["name"] = "Edited"
        exported["buildingData"].clear()
        assert len(snap.building_data) == 2
        assert snap.building_data[0]["name"] == portfolio_dashboard["buildingComparison"][0]["name"]


# ===========================================================================
# Class 3: has_changed
# ===========================================================================

class TestHasChanged:

    def test_same_data_is_not_changed(self, portfolio_dashboard):
        snap = build_snapshot(portfolio_dashboard)
        assert has_changed(snap, copy.deepcopy(portfolio_dashboard)) is False

    @pytest.mark.parametrize("mutate", [
        lambda d: d["overview"].__setitem__("portfolioFCI", 0.076),
        lambda d: d["buildingComparison"][0].__setitem__("name", "Main Hall (East)"),
        lambda d: d["categoryCostBreakdown"].pop(),
        lambda d: d["capitalForecast"][1].__setitem__("totalProjectedCost", 70_500.0),
        lambda d: d.__setitem__("generatedAt", "2026-10-18T09:01:00Z"),
    ])
    def test_any_field_change_is_detected(self, portfolio_dashboard, mutate):
        snap = build_snapshot(portfolio_dashboard)
        current = copy.deepcopy(portfolio_dashboard)
        mutate(current)
        assert has_changed(snap, current) is True

    def test_subset_payload_reports_change(self, portfolio_dashboard):
        """Passing only the captured subset is a shape mismatch -> stale."""
        snap = build_snapshot(portfolio_dashboard)
        subset = {k: portfolio_dashboard[k] for k in ("overview", "buildingComparison")}
        assert has_changed(snap, subset) is True

    def test_has_changed_leaves_metrics_untouched(self, minimal_dashboard):
        from app.services.perf_monitor import snapshot_metrics
        snap = build_snapshot(minimal_dashboard)
        before = snapshot_metrics.get_metrics()
        assert has_changed(snap, {}) is True
        assert snapshot_metrics.get_metrics() == before


# ===========================================================================
# Class 4: Serialized form
# ===========================================================================

class TestSerializedForm:

    def test_to_dict_shape(self, portfolio_dashboard, capture_time):
        data = build_snapshot(portfolio_dashboard, now=capture_time).to_dict()
        assert set(data) == {
            "timestamp", "dataHash", "portfolioMetrics",
            "buildingData", "uniformatData", "capitalForecastData",
        }
        assert data["timestamp"] == "2026-10-18T09:05:30.250000+00:00"

    def test_from_dict_restores_every_field(self, portfolio_dashboard, capture_time):
        snap = build_snapshot(portfolio_dashboard, now=capture_time)
        assert DataSnapshot.from_dict(snap.to_dict()) == snap

    def test_parse_timestamp_accepts_z_suffix(self):
        parsed = parse_timestamp("2026-10-18T09:05:30.250Z")
        assert parsed == datetime(2026, 10, 18, 9, 5, 30, 250000, tzinfo=timezone.utc)

    def test_parse_timestamp_naive_is_utc(self):
        assert parse_timestamp("2026-10-18T09:05:30").tzinfo == timezone.utc

    def test_parse_timestamp_converts_offsets_to_utc(self):
        parsed = parse_timestamp("2026-10-18T13:05:30+04:00")
        assert parsed == datetime(2026, 10, 18, 9, 5, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("bad", ["", "yesterday", None, 1729242330])
    def test_parse_timestamp_rejects_garbage(self, bad):
        with pytest.raises(SnapshotFormatError):
            parse_timestamp(bad)

    def test_from_dict_missing_field(self, minimal_dashboard):
        data = build_snapshot(minimal_dashboard).to_dict()
        del data["uniformatData"]
        with pytest.raises(SnapshotFormatError, match="uniformatData"):
            DataSnapshot.from_dict(data)

    def test_from_dict_wrong_types(self, minimal_dashboard):
        data = build_snapshot(minimal_dashboard).to_dict()
        data["buildingData"] = {"id": 1}
        with pytest.raises(SnapshotFormatError):
            DataSnapshot.from_dict(data)

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(SnapshotFormatError):
            DataSnapshot.from_dict(["not", "a", "snapshot"])
