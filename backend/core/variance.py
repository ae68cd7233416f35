"""
Variance detection and classification.

Keg-level helpers (expected pints, variance status), the percentage threshold
evaluator, the multi-category variance analyzer and the heuristic keg
investigation report.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from core.constants import (
    KEG_DEPOSIT,
    KEG_SIZES,
    REPORTING_THRESHOLDS,
    RETURN_LOCATION_TOKENS,
    SEVERITY_BANDS,
    VARIANCE_BASELINES,
    VARIANCE_THRESHOLDS,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keg helpers
# ---------------------------------------------------------------------------

def calculate_expected_pints(keg_size: str) -> int:
    info = KEG_SIZES.get(keg_size)
    if info is None:
        raise ValueError(f"Unknown keg size: {keg_size}")
    return int(info["expected_pints"])


def calculate_variance_status(variance: float) -> str:
    abs_variance = abs(variance)
    if abs_variance <= VARIANCE_THRESHOLDS["NORMAL"]:
        return "NORMAL"
    if abs_variance <= VARIANCE_THRESHOLDS["WARNING"]:
        return "WARNING"
    return "CRITICAL"


def calculate_keg_deposit(keg_size: str) -> float:
    if keg_size not in KEG_SIZES:
        raise ValueError(f"Unknown keg size: {keg_size}")
    return KEG_DEPOSIT


def parse_abv(abv: float) -> int:
    """Display ABV (6.5) to stored ABV (65)."""
    return int(round(abv * 10))


def format_abv(abv: int) -> str:
    return f"{abv / 10:.1f}%"


# ---------------------------------------------------------------------------
# Threshold evaluator
# ---------------------------------------------------------------------------

@dataclass
class VarianceEvaluation:
    """Outcome of comparing one metric against its baseline."""
    current: float
    expected: float
    variance: float
    variance_percentage: float
    severity: str
    confidence: float
    reportable: bool


def classify_severity(variance_percentage: float) -> str:
    magnitude = abs(variance_percentage)
    for floor, severity in SEVERITY_BANDS:
        if magnitude >= floor:
            return severity
    return "low"


def calculate_confidence(variance_percentage: float, data_points: int) -> float:
    magnitude_score = min(abs(variance_percentage) / 50.0, 1.0)
    sample_score = min(max(data_points, 0) / 100.0, 1.0)
    return round((magnitude_score + sample_score) / 2.0, 2)


def evaluate(
    current: float,
    expected: float,
    sensitivity: str = "medium",
    data_points: int = 0,
) -> VarianceEvaluation:
    """
    Compare a current value against its expected baseline.

    Args:
        current: Observed value
        expected: Baseline value, must be positive
        sensitivity: 'low' | 'medium' | 'high'; only moves the reporting threshold
        data_points: Number of records behind ``current``

    Returns:
        VarianceEvaluation with severity, confidence and whether it should be reported
    """
    if expected is None or expected <= 0:
        raise ValueError("expected must be a positive number")
    threshold = REPORTING_THRESHOLDS.get((sensitivity or "").lower())
    if threshold is None:
        raise ValueError(f"Unknown sensitivity: {sensitivity}")

    variance = float(current) - float(expected)
    variance_percentage = variance / float(expected) * 100.0

    return VarianceEvaluation(
        current=float(current),
        expected=float(expected),
        variance=variance,
        variance_percentage=variance_percentage,
        severity=classify_severity(variance_percentage),
        confidence=calculate_confidence(variance_percentage, data_points),
        reportable=abs(variance_percentage) >= threshold,
    )


# ---------------------------------------------------------------------------
# Multi-category analyzer
# ---------------------------------------------------------------------------

@dataclass
class VarianceAlert:
    """An operational anomaly found by the analyzer."""
    type: str
    severity: str
    title: str
    description: str
    current_value: float
    expected_value: float
    variance: float
    variance_percentage: float
    impact: str
    recommendations: List[str]
    confidence: float
    detected_at: datetime
    status: str = "new"
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "current_value": round(self.current_value, 2),
            "expected_value": round(self.expected_value, 2),
            "variance": round(self.variance, 2),
            "variance_percentage": round(self.variance_percentage, 2),
            "impact": self.impact,
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "detected_at": self.detected_at,
            "status": self.status,
        }


@dataclass
class _Metric:
    type: str
    actual: float
    data_points: int


CATEGORY_RULES: Dict[str, Dict[str, Any]] = {
    "inventory": {
        "title": "Keg Status Distribution Anomaly",
        "description": "Keg active rate is {actual:.1f}%, expected ~{expected:.0f}%",
        "impact": "Potential inventory management issues",
        "recommendations": [
            "Review keg return processes",
            "Check delivery scheduling efficiency",
            "Analyze keg lifecycle patterns",
        ],
    },
    "lifecycle": {
        "title": "Keg Lifecycle Duration Variance",
        "description": "Kegs are retired after {actual:.1f} days on average, expected ~{expected:.0f} days",
        "impact": "Keg fleet turnover and deposit float are affected",
        "recommendations": [
            "Review slow-moving styles at each restaurant",
            "Check for kegs left untapped in cold storage",
            "Compare retirement dates against POS sales velocity",
        ],
    },
    "delivery": {
        "title": "Delivery Time Variance",
        "higher_is_worse": True,
        "description": "Average delivery delay is {actual:.1f} hours, expected ~{expected} hours",
        "impact": "Customer satisfaction and operational efficiency at risk",
        "recommendations": [
            "Review route optimization",
            "Check driver scheduling accuracy",
            "Analyze traffic pattern impacts",
        ],
    },
    "volume": {
        "title": "Delivery Volume Variance",
        "description": "Deliveries carry {actual:.1f} kegs on average, expected ~{expected:.0f}",
        "impact": "Route cost per keg is drifting from plan",
        "recommendations": [
            "Consolidate small deliveries on shared routes",
            "Review restaurant order minimums",
            "Check for split deliveries caused by stock shortages",
        ],
    },
    "product_mix": {
        "title": "Product Mix Concentration",
        "higher_is_worse": True,
        "description": "The most common style makes up {actual:.1f}% of kegs, expected ~{expected:.0f}%",
        "impact": "Portfolio concentration increases exposure to demand swings",
        "recommendations": [
            "Review production plan against restaurant demand",
            "Check whether slow styles are being dropped by restaurants",
            "Analyze seasonal style preferences",
        ],
    },
    "quality": {
        "title": "High Keg Return Rate",
        "higher_is_worse": True,
        "description": "Keg return rate is {actual:.1f}%, expected ~{expected:.0f}%",
        "impact": "Product quality and customer satisfaction concerns",
        "recommendations": [
            "Investigate keg cleaning processes",
            "Review quality control procedures",
            "Check temperature monitoring systems",
        ],
    },
}

CRITICAL_ESCALATION = "Escalate to operations management for immediate review"


def _hours_between(start: datetime, end: datetime) -> float:
    return abs((end - start).total_seconds()) / 3600.0


def _inventory_metric(kegs: List[Any]) -> Optional[_Metric]:
    if not kegs:
        return None
    active = sum(1 for k in kegs if not getattr(k, "is_empty", False))
    return _Metric("inventory", active / len(kegs) * 100.0, len(kegs))


def _lifecycle_metric(kegs: List[Any]) -> Optional[_Metric]:
    durations = []
    for k in kegs:
        created = getattr(k, "created_at", None)
        retired = getattr(k, "retired_at", None)
        if getattr(k, "is_empty", False) and created and retired:
            durations.append((retired - created).total_seconds() / 86400.0)
    if not durations:
        return None
    return _Metric("lifecycle", sum(durations) / len(durations), len(durations))


def _delivery_timing_metric(deliveries: List[Any]) -> Optional[_Metric]:
    delays = [
        _hours_between(d.scheduled_at, d.accepted_at)
        for d in deliveries
        if getattr(d, "scheduled_at", None) and getattr(d, "accepted_at", None)
    ]
    if not delays:
        return None
    return _Metric("delivery", sum(delays) / len(delays), len(delays))


def _delivery_volume_metric(deliveries: List[Any]) -> Optional[_Metric]:
    if not deliveries:
        return None
    total_kegs = sum(len(getattr(d, "keg_ids", None) or []) for d in deliveries)
    return _Metric("volume", total_kegs / len(deliveries), len(deliveries))


def _product_mix_metric(kegs: List[Any]) -> Optional[_Metric]:
    counts: Dict[str, int] = {}
    for k in kegs:
        style = (getattr(k, "type", None) or "Other").strip()
        counts[style] = counts.get(style, 0) + 1
    if not counts:
        return None
    top = max(counts.values())
    return _Metric("product_mix", top / len(kegs) * 100.0, len(kegs))


def _quality_metric(scans: List[Any]) -> Optional[_Metric]:
    if not scans:
        return None
    returns = 0
    for s in scans:
        location = (getattr(s, "location", None) or "").lower()
        if any(token in location for token in RETURN_LOCATION_TOKENS):
            returns += 1
    return _Metric("quality", returns / len(scans) * 100.0, len(scans))


def _build_alert(metric: _Metric, result: VarianceEvaluation, detected_at: datetime) -> VarianceAlert:
    rules = CATEGORY_RULES[metric.type]
    recommendations = list(rules["recommendations"])
    if result.severity == "critical":
        recommendations.append(CRITICAL_ESCALATION)
    return VarianceAlert(
        type=metric.type,
        severity=result.severity,
        title=rules["title"],
        description=rules["description"].format(actual=metric.actual, expected=result.expected),
        current_value=result.current,
        expected_value=result.expected,
        variance=result.variance,
        variance_percentage=result.variance_percentage,
        impact=rules["impact"],
        recommendations=recommendations,
        confidence=result.confidence,
        detected_at=detected_at,
    )


def detect_variances(
    kegs: Iterable[Any],
    deliveries: Iterable[Any],
    scans: Iterable[Any],
    sensitivity: str = "medium",
    baselines: Optional[Dict[str, float]] = None,
    now: Optional[datetime] = None,
) -> List[VarianceAlert]:
    """
    Run every metric category over already-fetched records.

    Args:
        kegs: Keg records (is_empty, type, created_at, retired_at)
        deliveries: Delivery records (scheduled_at, accepted_at, keg_ids)
        scans: Keg scan records (location)
        sensitivity: Reporting sensitivity passed to ``evaluate``
        baselines: Per-category expected values overriding the defaults
        now: Detection timestamp

    Returns:
        Reportable alerts, in category order
    """
    kegs = list(kegs or [])
    deliveries = list(deliveries or [])
    scans = list(scans or [])
    expected_by_type = dict(VARIANCE_BASELINES)
    expected_by_type.update(baselines or {})
    detected_at = now or datetime.utcnow()

    metrics = [
        _inventory_metric(kegs),
        _lifecycle_metric(kegs),
        _delivery_timing_metric(deliveries),
        _delivery_volume_metric(deliveries),
        _product_mix_metric(kegs),
        _quality_metric(scans),
    ]

    alerts: List[VarianceAlert] = []
    for metric in metrics:
        if metric is None:
            continue
        result = evaluate(metric.actual, expected_by_type[metric.type], sensitivity, metric.data_points)
        if not result.reportable:
            continue
        # one-sided categories only alert when the value moves the bad way
        if CATEGORY_RULES[metric.type].get("higher_is_worse") and result.variance <= 0:
            continue
        alerts.append(_build_alert(metric, result, detected_at))

    logger.info(f"Variance detection completed: {len(alerts)} alerts ({sensitivity} sensitivity)")
    return alerts


def summarize_alerts(alerts: List[VarianceAlert]) -> Dict[str, Any]:
    by_severity = {s: 0 for s in ("critical", "high", "medium", "low")}
    for a in alerts:
        by_severity[a.severity] = by_severity.get(a.severity, 0) + 1
    avg_confidence = sum(a.confidence for a in alerts) / len(alerts) if alerts else 0.0
    return {
        "total": len(alerts),
        **by_severity,
        "avg_confidence": round(avg_confidence, 2),
    }


# ---------------------------------------------------------------------------
# Keg investigation report
# ---------------------------------------------------------------------------

@dataclass
class AIAnalysisResult:
    summary: str
    required_actions: List[str]
    time_windows: List[str]
    staff_to_interview: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "required_actions": list(self.required_actions),
            "time_windows": list(self.time_windows),
            "staff_to_interview": list(self.staff_to_interview),
        }


def format_time_window(start: Any, days_offset: int) -> str:
    if isinstance(start, datetime):
        moment = start
    elif isinstance(start, date):
        moment = datetime.combine(start, datetime.min.time())
    else:
        moment = datetime.fromisoformat(str(start))
    moment = moment + timedelta(days=days_offset)
    return moment.strftime("%b %d, %Y %I:%M %p")


def analyze_keg_variance(keg: Any, variance: float, scans: Optional[List[Any]] = None) -> AIAnalysisResult:
    """
    Build an investigation report for a retired keg.

    ``variance`` is expected minus sold, so a positive value is a shortage.
    The scan history only widens the time windows when it is available.
    """
    abs_variance = abs(variance)
    is_under = variance > 0
    status = calculate_variance_status(variance)
    brew_date = getattr(keg, "brew_date", None) or getattr(keg, "created_at", None) or datetime.utcnow()

    if status == "NORMAL":
        return AIAnalysisResult(
            summary=f"The {abs_variance:g}-pint variance is within normal range and likely due to foam waste and measurement variations.",
            required_actions=[
                "Document variance for trend analysis",
                "Verify tap lines are properly cleaned",
                "Ensure staff are trained on proper pouring technique",
            ],
            time_windows=["No specific investigation needed"],
            staff_to_interview=[],
        )

    if status == "WARNING":
        cause = "spillage, improper pours, or staff consumption" if is_under else "measurement errors or POS misconfiguration"
        return AIAnalysisResult(
            summary=f"The {abs_variance:g}-pint {'shortage' if is_under else 'overage'} suggests possible {cause}.",
            required_actions=[
                "Review security footage during peak serving hours",
                "Verify POS system is correctly recording all sales",
                "Check tap equipment for leaks or malfunction",
            ],
            time_windows=[
                f"{format_time_window(brew_date, 3)} - First 3 days after installation",
                f"{format_time_window(brew_date, 7)} - Peak sales period",
            ],
            staff_to_interview=[
                "Bartenders on duty during installation",
                "Closing staff on high-volume nights",
            ],
        )

    cause = (
        "theft, significant spillage, or unauthorized consumption"
        if is_under
        else "POS system malfunction or duplicate transaction recording"
    )
    last_seen = getattr(keg, "last_scan", None)
    if scans:
        last_seen = getattr(scans[-1], "timestamp", None) or last_seen
    return AIAnalysisResult(
        summary=(
            f"The {abs_variance:g}-pint {'shortage' if is_under else 'overage'} indicates a serious issue "
            f"requiring immediate investigation for possible {cause}."
        ),
        required_actions=[
            "URGENT: Review all security footage from keg installation to retirement",
            "Audit POS transaction logs for anomalies or missing entries",
            "Inspect keg and tap equipment for tampering or malfunction",
        ],
        time_windows=[
            f"{format_time_window(brew_date, 0)} - Delivery and installation",
            f"{format_time_window(brew_date, 1)} - First 24 hours (highest risk period)",
            f"{format_time_window(last_seen or brew_date, 0)} - Last scan to retirement",
        ],
        staff_to_interview=[
            "All staff with access during keg lifetime",
            "Delivery driver who brought the keg",
            "Manager who installed keg on tap",
            "Bartenders who worked majority of shifts",
        ],
    )


def format_analysis_report(analysis: AIAnalysisResult) -> str:
    lines = [
        "VARIANCE ANALYSIS REPORT",
        "",
        f"Summary: {analysis.summary}",
        "",
        "Required Actions:",
    ]
    lines += [f"{i}. {action}" for i, action in enumerate(analysis.required_actions, start=1)]
    lines += ["", "Critical Time Windows for Security Footage Review:"]
    lines += [f"{i}. {window}" for i, window in enumerate(analysis.time_windows, start=1)]
    if analysis.staff_to_interview:
        lines += ["", "Staff to Interview:"]
        lines += [f"{i}. {staff}" for i, staff in enumerate(analysis.staff_to_interview, start=1)]
    return "\n".join(lines)
