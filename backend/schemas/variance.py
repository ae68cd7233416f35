from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

Sensitivity = Literal["low", "medium", "high"]
AlertStatus = Literal["new", "investigating", "resolved", "false_positive"]


class VarianceAlertRead(BaseModel):
    id: UUID
    type: str
    severity: str
    title: str
    description: Optional[str] = None
    current_value: float
    expected_value: float
    variance: float
    variance_percentage: float
    impact: Optional[str] = None
    recommendations: List[str]
    confidence: float
    status: str
    notes: Optional[str] = None
    resolution_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None
    keg_id: Optional[str] = None
    restaurant_id: Optional[UUID] = None
    detected_at: datetime
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class VarianceSummary(BaseModel):
    total: int
    critical: int
    high: int
    medium: int
    low: int
    avg_confidence: float


class VarianceTrendPoint(BaseModel):
    date: date
    total: int
    critical: int
    resolved: int
    avg_variance_percentage: float


class VarianceAnalysisResponse(BaseModel):
    variances: List[VarianceAlertRead]
    summary: VarianceSummary
    trends: List[VarianceTrendPoint]


class VarianceRunRequest(BaseModel):
    trigger_analysis: bool = False
    analysis_type: str = "full"
    days: int = Field(7, ge=1, le=365)
    sensitivity: Optional[Sensitivity] = None


class VarianceRunResponse(BaseModel):
    message: str
    analysis_type: str
    timestamp: datetime
    results: Dict[str, List[VarianceAlertRead]]
    recommendations: List[str]


class VarianceAlertUpdate(BaseModel):
    status: Optional[AlertStatus] = None
    notes: Optional[str] = None
    resolution_notes: Optional[str] = None
    assigned_to: Optional[str] = None
    priority: Optional[str] = None


class VarianceReportRead(BaseModel):
    id: UUID
    keg_id: str
    variance_amount: int
    status: str
    ai_analysis: Dict[str, Any]
    resolved: bool
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class KegAnalysisResponse(BaseModel):
    message: str
    report: VarianceReportRead
    analysis: Dict[str, Any]
    report_text: str
