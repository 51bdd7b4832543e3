"""
Report Snapshot Routes — freeze dashboard data for a report preview.

POST   /api/reports/snapshots/{key}             — capture + store a snapshot
GET    /api/reports/snapshots/{key}             — reload the stored snapshot
POST   /api/reports/snapshots/{key}/status      — compare against live dashboard data
POST   /api/reports/snapshots/{key}/refresh     — replace with a fresh capture
GET    /api/reports/snapshots/{key}/validation  — completeness check
DELETE /api/reports/snapshots/{key}             — discard the preview's snapshot
GET    /api/reports/snapshots                   — keys held by this session
DELETE /api/reports/snapshots                   — end the session (drop all)
POST   /api/reports/validation/portfolio        — reconcile portfolio report data
POST   /api/reports/validation/asset            — reconcile asset report data

Handlers are plain ``def``: every operation is synchronous and FastAPI runs
them in its threadpool. Store failures never surface as 5xx; a snapshot that
could not be stored is still returned with ``persisted: false``.
"""
import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status

from app.api.deps import SNAPSHOT_KEY_PATTERN, get_snapshot_store
from app.models.snapshot_models import (
    DashboardPayload,
    ReportValidationModel,
    SessionKeysModel,
    SnapshotEnvelope,
    SnapshotStatusModel,
    SnapshotValidationModel,
)
from app.services.report_validation import (
    format_validation_report,
    validate_asset_report,
    validate_portfolio_report,
)
from app.services.snapshot_engine import DataSnapshot, build_snapshot
from app.services.snapshot_presenter import describe_snapshot, validate_snapshot
from app.services.snapshot_store import SnapshotStore

router = APIRouter(prefix="/api/reports", tags=["Report Snapshots"])
logger = logging.getLogger("bca-snapshot-routes")

SnapshotKey = Annotated[str, Path(pattern=SNAPSHOT_KEY_PATTERN, description="One key per report/preview context")]


def _envelope(key: str, snapshot: DataSnapshot, persisted: bool = True, current_data: Any = None) -> SnapshotEnvelope:
    return SnapshotEnvelope(
        key=key,
        persisted=persisted,
        snapshot=snapshot.to_dict(),
        status=SnapshotStatusModel(**describe_snapshot(snapshot, current_data)),
    )


def _load_or_404(store: SnapshotStore, key: str) -> DataSnapshot:
    snapshot = store.load(key)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No snapshot stored for '{key}'")
    return snapshot


def _capture(store: SnapshotStore, key: str, payload: DashboardPayload) -> SnapshotEnvelope:
    snapshot = build_snapshot(payload.dashboard_data)
    persisted = store.save(key, snapshot)
    logger.info(
        f"Snapshot captured for '{key}' (persisted={persisted})",
        extra={"session_id": store.session_id, "snapshot_key": key, "data_hash": snapshot.data_hash},
    )
    return _envelope(key, snapshot, persisted)


@router.get("/snapshots", response_model=SessionKeysModel)
def list_snapshots(store: SnapshotStore = Depends(get_snapshot_store)):
    """Snapshot keys currently held by this browsing session."""
    return SessionKeysModel(session_id=store.session_id, keys=store.list_keys())


@router.delete("/snapshots", status_code=status.HTTP_204_NO_CONTENT)
def end_session(store: SnapshotStore = Depends(get_snapshot_store)):
    """Drop every snapshot of the session (logout / explicit session end)."""
    store.clear_session()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/snapshots/{key}", response_model=SnapshotEnvelope, status_code=status.HTTP_201_CREATED)
def create_snapshot(
    payload: DashboardPayload,
    key: SnapshotKey,
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """Freeze the current dashboard view for the preview identified by ``key``."""
    return _capture(store, key, payload)


@router.get("/snapshots/{key}", response_model=SnapshotEnvelope)
def get_snapshot(key: SnapshotKey, store: SnapshotStore = Depends(get_snapshot_store)):
    """Reload a stored snapshot (e.g. after a page refresh)."""
    return _envelope(key, _load_or_404(store, key))


@router.post("/snapshots/{key}/status", response_model=SnapshotStatusModel)
def snapshot_status(
    payload: DashboardPayload,
    key: SnapshotKey,
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """
    Locked / stale state of the stored snapshot against the live dashboard.

    ``dashboardData`` must be the same full payload the snapshot was built
    from; a partial payload is reported as stale. Omit it to skip the check.
    """
    snapshot = _load_or_404(store, key)
    return SnapshotStatusModel(**describe_snapshot(snapshot, payload.dashboard_data))


@router.post("/snapshots/{key}/refresh", response_model=SnapshotEnvelope)
def refresh_snapshot(
    payload: DashboardPayload,
    key: SnapshotKey,
    store: SnapshotStore = Depends(get_snapshot_store),
):
    """Discard the old snapshot and capture a new one from ``dashboardData``."""
    store.clear(key)
    return _capture(store, key, payload)


@router.get("/snapshots/{key}/validation", response_model=SnapshotValidationModel)
def snapshot_validation(key: SnapshotKey, store: SnapshotStore = Depends(get_snapshot_store)):
    snapshot = _load_or_404(store, key)
    return SnapshotValidationModel(**validate_snapshot(snapshot).to_dict())


@router.delete("/snapshots/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_snapshot(key: SnapshotKey, store: SnapshotStore = Depends(get_snapshot_store)):
    """Discard the preview's snapshot. Idempotent."""
    store.clear(key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/validation/portfolio", response_model=ReportValidationModel)
def validate_portfolio(data: Dict[str, Any] = Body(...)):
    """Reconcile portfolio report data before export."""
    result = validate_portfolio_report(data)
    return ReportValidationModel(**result.to_dict(), summary=format_validation_report(result))


@router.post("/validation/asset", response_model=ReportValidationModel)
def validate_asset(data: Dict[str, Any] = Body(...)):
    """Reconcile single-asset report data before export."""
    result = validate_asset_report(data)
    return ReportValidationModel(**result.to_dict(), summary=format_validation_report(result))
