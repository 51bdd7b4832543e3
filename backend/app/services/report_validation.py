"""
Report data validation and reconciliation — run before a report is exported.

Checks performed on portfolio report data:
  - FCI rating of every building matches its FCI
  - Portfolio FCI matches Total DM / Total CRV
  - Sum of DM by priority equals Total DM (1% tolerance)
  - Each capital-forecast year sums to its projected total (1% tolerance)
  - Building-level DM / CRV roll up to the portfolio totals
  - No unresolved ``${...}`` template variables anywhere in the payload
  - Duplicate UNIFORMAT category rows are dropped

Asset reports get FCI recomputation, duplicate component removal, template
variable detection and negative-cost checks.

FCI (Facility Condition Index) is a 0-1 ratio:
  Good <= 0.05 < Fair <= 0.10 < Poor <= 0.30 < Critical
"""
import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger("bca-api.report-validation")

ROUNDING_TOLERANCE = 0.01        # 1% tolerance for floating point arithmetic
PORTFOLIO_FCI_TOLERANCE = 0.001
CRV_PER_SQFT_FALLBACK = 350      # $/sq ft when an asset has no replacement values
CRV_REPAIR_MULTIPLIER = 10       # last-resort CRV estimate from repair cost

_TEMPLATE_VAR_RE = re.compile(r"\$\{[^}]+\}")


@dataclass
class ValidationIssue:
    severity: str   # error | warning | info
    category: str   # financial | data_quality | consistency | template
    message: str
    field: str = ""
    expected_value: Any = None
    actual_value: Any = None
    fix_action: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity,
            "category": self.category,
            "message": self.message,
            "field": self.field,
            "expectedValue": self.expected_value,
            "actualValue": self.actual_value,
            "fixAction": self.fix_action,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    can_export: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    corrected_data: Optional[Dict[str, Any]] = None

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "canExport": self.can_export,
            "issues": [i.to_dict() for i in self.issues],
            "correctedData": self.corrected_data,
        }


def _num(value: Any) -> float:
    """Coerce a numeric-ish value (number, numeric string, None) to float."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _rows(value: Any) -> List[Any]:
    """Row list of a payload section; anything other than a list counts as empty."""
    return value if isinstance(value, list) else []


def _result(issues: List[ValidationIssue], corrected: Dict[str, Any]) -> ValidationResult:
    has_blocking_errors = any(i.severity == "error" for i in issues)
    return ValidationResult(
        is_valid=not issues,
        can_export=not has_blocking_errors,
        issues=issues,
        corrected_data=corrected,
    )


# ─── FCI helpers ──────────────────────────────────────────────────────────────

def calculate_fci(deferred_maintenance: float, crv: float) -> float:
    """FCI = Deferred Maintenance / Current Replacement Value (0 when CRV <= 0)."""
    if crv <= 0:
        return 0.0
    return deferred_maintenance / crv


def get_fci_rating(fci: float) -> str:
    if fci <= 0.05:
        return "Good"
    if fci <= 0.10:
        return "Fair"
    if fci <= 0.30:
        return "Poor"
    return "Critical"


def fci_to_percentage(fci: float) -> float:
    return fci * 100


# ─── Individual checks ────────────────────────────────────────────────────────

def _check_fci_rating(fci: float, rating: str, entity_name: str) -> Optional[ValidationIssue]:
    expected = get_fci_rating(fci)
    if rating == expected:
        return None
    return ValidationIssue(
        severity="error",
        category="financial",
        message=f"FCI rating mismatch for {entity_name}",
        field="fciRating",
        expected_value=expected,
        actual_value=rating,
        fix_action=f'Update FCI rating to "{expected}" (FCI: {fci_to_percentage(fci):.2f}%)',
    )


def _check_dm_by_priority(cost_by_priority: Dict[str, Any], total_dm: float) -> Optional[ValidationIssue]:
    sum_by_priority = sum(
        _num(cost_by_priority.get(k)) for k in ("immediate", "shortTerm", "mediumTerm", "longTerm")
    )
    difference = abs(sum_by_priority - total_dm)
    if difference <= total_dm * ROUNDING_TOLERANCE:
        return None
    return ValidationIssue(
        severity="error",
        category="consistency",
        message="Sum of DM by priority does not match Total DM",
        field="costByPriority",
        expected_value=total_dm,
        actual_value=sum_by_priority,
        fix_action=f"Recalculate priority costs. Difference: ${difference:.2f}",
    )


def _check_capital_forecast(forecast: List[Dict[str, Any]]) -> List[ValidationIssue]:
    issues = []
    for index, year in enumerate(forecast):
        if not isinstance(year, dict):
            continue
        calculated = sum(
            _num(year.get(k))
            for k in ("immediateNeeds", "shortTermNeeds", "mediumTermNeeds", "longTermNeeds")
        )
        projected = _num(year.get("totalProjectedCost"))
        difference = abs(calculated - projected)
        if difference > projected * ROUNDING_TOLERANCE:
            issues.append(ValidationIssue(
                severity="error",
                category="consistency",
                message=f"Year {index + 1} forecast total mismatch",
                field=f"capitalForecast[{index}].totalProjectedCost",
                expected_value=calculated,
                actual_value=projected,
                fix_action=f"Recalculate year {index + 1} total. Difference: ${difference:.2f}",
            ))
    return issues


def _check_building_rollup(buildings: List[Dict[str, Any]], total_dm: float, total_crv: float) -> List[ValidationIssue]:
    issues = []
    buildings = [b for b in buildings if isinstance(b, dict)]
    sum_dm = sum(_num(b.get("deferredMaintenanceCost")) for b in buildings)
    sum_crv = sum(_num(b.get("currentReplacementValue")) for b in buildings)

    dm_difference = abs(sum_dm - total_dm)
    if dm_difference > total_dm * ROUNDING_TOLERANCE:
        issues.append(ValidationIssue(
            severity="error",
            category="consistency",
            message="Building-level DM does not sum to portfolio total",
            field="totalDeferredMaintenance",
            expected_value=sum_dm,
            actual_value=total_dm,
            fix_action=f"Recalculate portfolio total. Difference: ${dm_difference:.2f}",
        ))

    crv_difference = abs(sum_crv - total_crv)
    if crv_difference > total_crv * ROUNDING_TOLERANCE:
        issues.append(ValidationIssue(
            severity="warning",
            category="consistency",
            message="Building-level CRV does not sum to portfolio total",
            field="totalCurrentReplacementValue",
            expected_value=sum_crv,
            actual_value=total_crv,
            fix_action=f"Recalculate portfolio total. Difference: ${crv_difference:.2f}",
        ))
    return issues


def detect_unresolved_variables(data: Any, path: str = "root") -> List[ValidationIssue]:
    """Find ``${name}`` placeholders left in any string of the payload."""
    issues: List[ValidationIssue] = []

    def scan(obj: Any, current: str) -> None:
        if isinstance(obj, str):
            for match in _TEMPLATE_VAR_RE.findall(obj):
                issues.append(ValidationIssue(
                    severity="error",
                    category="template",
                    message=f"Unresolved template variable: {match}",
                    field=current,
                    actual_value=match,
                    fix_action="Ensure all template variables are resolved before export",
                ))
        elif isinstance(obj, (list, tuple)):
            for index, item in enumerate(obj):
                scan(item, f"{current}[{index}]")
        elif isinstance(obj, dict):
            for key, value in obj.items():
                scan(value, f"{current}.{key}")

    scan(data, path)
    return issues


def _dedupe(rows: List[Dict[str, Any]], key_fields: Tuple[str, str], label: str, field_name) -> Tuple[list, List[ValidationIssue]]:
    seen = set()
    cleaned, duplicates = [], []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            duplicates.append(ValidationIssue(
                severity="warning",
                category="data_quality",
                message=f"Malformed {label} row removed",
                field=field_name(index),
                actual_value=row,
                fix_action="Malformed row removed automatically",
            ))
            continue
        # Compared as text so unhashable values still key correctly
        key = tuple(str(row.get(f) or "unknown") for f in key_fields)
        if key in seen:
            name = row.get(key_fields[1])
            duplicates.append(ValidationIssue(
                severity="warning",
                category="data_quality",
                message=f"Duplicate {label} removed: {name}",
                field=field_name(index),
                actual_value=name,
                fix_action="Duplicate removed automatically",
            ))
            continue
        seen.add(key)
        cleaned.append(row)
    return cleaned, duplicates


# ─── Public entry points ──────────────────────────────────────────────────────

def validate_portfolio_report(data: Dict[str, Any]) -> ValidationResult:
    """
    Validate portfolio report data. The input is not modified; de-duplicated
    category rows are returned in ``corrected_data``.
    """
    corrected = copy.deepcopy(data)
    issues: List[ValidationIssue] = []

    overview = _mapping(corrected.get("overview"))
    buildings = _rows(corrected.get("buildingComparison"))
    total_dm = _num(overview.get("totalDeferredMaintenance"))
    total_crv = _num(overview.get("totalCurrentReplacementValue"))

    for building in buildings:
        if not isinstance(building, dict):
            continue
        issue = _check_fci_rating(
            _num(building.get("fci")), building.get("fciRating", ""), building.get("name", "Unknown")
        )
        if issue:
            issues.append(issue)

    portfolio_fci = calculate_fci(total_dm, total_crv)
    reported_fci = _num(overview.get("portfolioFCI"))
    if abs(portfolio_fci - reported_fci) > PORTFOLIO_FCI_TOLERANCE:
        issues.append(ValidationIssue(
            severity="error",
            category="financial",
            message="Portfolio FCI calculation mismatch",
            field="overview.portfolioFCI",
            expected_value=portfolio_fci,
            actual_value=reported_fci,
            fix_action=f"Recalculate portfolio FCI: {fci_to_percentage(portfolio_fci):.2f}%",
        ))

    cost_by_priority = corrected.get("costByPriority")
    if isinstance(cost_by_priority, dict):
        issue = _check_dm_by_priority(cost_by_priority, total_dm)
        if issue:
            issues.append(issue)

    forecast = _rows(corrected.get("capitalForecast"))
    if forecast:
        issues.extend(_check_capital_forecast(forecast))

    issues.extend(_check_building_rollup(buildings, total_dm, total_crv))
    issues.extend(detect_unresolved_variables(data))

    categories = corrected.get("categoryCostBreakdown")
    if categories is not None:
        cleaned, duplicates = _dedupe(
            _rows(categories), ("categoryCode", "category"), "category", lambda _: "categoryCostBreakdown"
        )
        issues.extend(duplicates)
        corrected["categoryCostBreakdown"] = cleaned

    result = _result(issues, corrected)
    logger.info(
        f"Portfolio report validation: {len(result.errors)} error(s), "
        f"{len(result.warnings)} warning(s), can_export={result.can_export}"
    )
    return result


def validate_asset_report(data: Dict[str, Any]) -> ValidationResult:
    """Validate single-asset report data and attach recomputed metrics."""
    corrected = copy.deepcopy(data)
    issues: List[ValidationIssue] = []
    asset = _mapping(corrected.get("asset"))
    assessments = _rows(corrected.get("assessments"))
    valid_rows = [a for a in assessments if isinstance(a, dict)]

    total_repair = sum(
        _num(a.get("estimatedRepairCost") or a.get("repairCost")) for a in valid_rows
    )
    total_replacement = sum(
        _num(a.get("replacementValue") or a.get("replacementCost")) for a in valid_rows
    )
    if total_replacement > 0:
        estimated_crv = total_replacement
    elif asset.get("grossFloorArea"):
        estimated_crv = _num(asset.get("grossFloorArea")) * CRV_PER_SQFT_FALLBACK
    else:
        estimated_crv = total_repair * CRV_REPAIR_MULTIPLIER

    fci = calculate_fci(total_repair, estimated_crv)

    if asset.get("fci") is not None and asset.get("fciRating"):
        issue = _check_fci_rating(_num(asset["fci"]), asset["fciRating"], asset.get("name", "Unknown"))
        if issue:
            issues.append(issue)

    cleaned, duplicates = _dedupe(
        assessments, ("assetId", "componentName"), "component", lambda i: f"assessments[{i}]"
    )
    issues.extend(duplicates)
    issues.extend(detect_unresolved_variables(data))

    for index, assessment in enumerate(assessments):
        if not isinstance(assessment, dict):
            continue
        cost = _num(assessment.get("estimatedRepairCost"))
        if cost < 0:
            issues.append(ValidationIssue(
                severity="error",
                category="data_quality",
                message=f"Negative repair cost in assessment: {assessment.get('componentName')}",
                field=f"assessments[{index}].estimatedRepairCost",
                actual_value=cost,
                fix_action="Correct negative cost value",
            ))

    corrected["assessments"] = cleaned
    corrected["calculatedMetrics"] = {
        "totalRepairCost": total_repair,
        "totalReplacementValue": total_replacement,
        "estimatedCRV": estimated_crv,
        "fci": fci,
        "fciRating": get_fci_rating(fci),
    }
    return _result(issues, corrected)


def format_validation_report(result: ValidationResult) -> str:
    """Plain-text summary of a validation result for display or logs."""
    if result.is_valid:
        return "✓ All validation checks passed. Report is ready for export."

    errors, warnings = result.errors, result.warnings
    lines = [
        "Validation Report:",
        f"- Errors: {len(errors)}",
        f"- Warnings: {len(warnings)}",
        f"- Can Export: {'Yes' if result.can_export else 'No'}",
        "",
    ]
    if errors:
        lines.append("ERRORS (must be fixed):")
        for n, issue in enumerate(errors, 1):
            lines.append(f"{n}. {issue.message}")
            if issue.fix_action:
                lines.append(f"   Fix: {issue.fix_action}")
        lines.append("")
    if warnings:
        lines.append("WARNINGS (recommended to fix):")
        for n, issue in enumerate(warnings, 1):
            lines.append(f"{n}. {issue.message}")
            if issue.fix_action:
                lines.append(f"   Fix: {issue.fix_action}")
    return "\n".join(lines) + "\n"
