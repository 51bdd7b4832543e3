"""
Request / response contracts for the report snapshot API.

Snapshot bodies use the same camelCase shape that is written to the session
store, so the preview can treat "fresh from POST" and "reloaded from GET"
identically.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DashboardPayload(BaseModel):
    """Full portfolio dashboard payload as returned by the analytics endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    dashboard_data: Optional[Dict[str, Any]] = Field(default=None, alias="dashboardData")


class SnapshotValidationModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")


class SnapshotStatusModel(BaseModel):
    """Banner state for the report preview."""
    model_config = ConfigDict(populate_by_name=True)

    status: str                                   # "locked" | "stale"
    is_stale: bool = Field(alias="isStale")
    age_minutes: int = Field(alias="ageMinutes")
    captured_at: str = Field(alias="capturedAt")  # ISO-8601
    captured_at_display: str = Field(alias="capturedAtDisplay")
    data_hash: str = Field(alias="dataHash")
    validation: SnapshotValidationModel


class SnapshotEnvelope(BaseModel):
    """A snapshot plus its preview status."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "key": "portfolio-report-42",
                "persisted": True,
                "snapshot": {
                    "timestamp": "2026-10-18T09:05:00+00:00",
                    "dataHash": "-1x9k2a",
                    "portfolioMetrics": {"portfolioFCI": 0.125},
                    "buildingData": [{"assetId": 1, "name": "Main Hall"}],
                    "uniformatData": [],
                    "capitalForecastData": [],
                },
                "status": {
                    "status": "locked",
                    "isStale": False,
                    "ageMinutes": 0,
                    "capturedAt": "2026-10-18T09:05:00+00:00",
                    "capturedAtDisplay": "Oct 18, 2026, 09:05 AM UTC",
                    "dataHash": "-1x9k2a",
                    "validation": {"isValid": True, "missingFields": []},
                },
            }
        },
    )

    key: str
    persisted: bool = True
    snapshot: Dict[str, Any]
    status: SnapshotStatusModel


class SessionKeysModel(BaseModel):
    session_id: str
    keys: List[str]


class ReportValidationModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    can_export: bool = Field(alias="canExport")
    issues: List[Dict[str, Any]] = Field(default_factory=list)
    corrected_data: Optional[Dict[str, Any]] = Field(default=None, alias="correctedData")
    summary: str = ""
