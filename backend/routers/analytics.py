import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.auth import require_brewer_or_manager
from core.config import settings
from core.converters import alert_to_schema
from core.variance import VarianceAlert, detect_variances, summarize_alerts
from db.database import (
    get_async_session,
    Delivery as DeliveryModel,
    Keg as KegModel,
    KegScan as KegScanModel,
    VarianceAction as VarianceActionModel,
    VarianceAlert as VarianceAlertModel,
)
from db.users import UserRole
from schemas.variance import (
    Sensitivity,
    VarianceAlertRead,
    VarianceAlertUpdate,
    VarianceAnalysisResponse,
    VarianceRunRequest,
    VarianceRunResponse,
    VarianceSummary,
    VarianceTrendPoint,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DELETABLE_STATUSES = ("false_positive", "resolved")


async def _run_detection(db: AsyncSession, days: int, sensitivity: str) -> List[VarianceAlert]:
    since = datetime.utcnow() - timedelta(days=days)

    kegs_res = await db.execute(select(KegModel))
    deliveries_res = await db.execute(
        select(DeliveryModel).options(selectinload(DeliveryModel.items)).where(DeliveryModel.created_at >= since)
    )
    scans_res = await db.execute(select(KegScanModel).where(KegScanModel.timestamp >= since))

    return detect_variances(
        kegs_res.scalars().all(),
        deliveries_res.scalars().all(),
        scans_res.scalars().all(),
        sensitivity=sensitivity,
        baselines=settings.variance_baselines,
    )


async def _build_trends(db: AsyncSession, days: int) -> List[VarianceTrendPoint]:
    today = datetime.utcnow().date()
    first_day = today - timedelta(days=days - 1)
    res = await db.execute(
        select(VarianceAlertModel).where(
            VarianceAlertModel.detected_at >= datetime.combine(first_day, datetime.min.time())
        )
    )
    by_day: Dict = defaultdict(list)
    for a in res.scalars().all():
        by_day[a.detected_at.date()].append(a)

    trends: List[VarianceTrendPoint] = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        rows = by_day.get(day, [])
        avg_pct = sum(abs(r.variance_percentage) for r in rows) / len(rows) if rows else 0.0
        trends.append(
            VarianceTrendPoint(
                date=day,
                total=len(rows),
                critical=sum(1 for r in rows if r.severity == "critical"),
                resolved=sum(1 for r in rows if r.status == "resolved"),
                avg_variance_percentage=round(avg_pct, 2),
            )
        )
    return trends


async def _get_alert_or_404(db: AsyncSession, variance_id: UUID) -> VarianceAlertModel:
    res = await db.execute(select(VarianceAlertModel).where(VarianceAlertModel.id == variance_id))
    a = res.scalar_one_or_none()
    if not a:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variance not found")
    return a


@router.get("/variance", response_model=VarianceAnalysisResponse)
async def get_variance_analysis(
    type_filter: Optional[str] = Query("all", alias="type"),
    severity: Optional[str] = Query("all"),
    days: int = Query(7, ge=1, le=365),
    sensitivity: Optional[Sensitivity] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    alerts = await _run_detection(db, days, sensitivity or settings.variance_sensitivity)

    filtered = alerts
    if type_filter and type_filter != "all":
        filtered = [a for a in filtered if a.type == type_filter]
    if severity and severity != "all":
        filtered = [a for a in filtered if a.severity == severity]

    return VarianceAnalysisResponse(
        variances=[VarianceAlertRead(**a.to_dict()) for a in filtered],
        summary=VarianceSummary(**summarize_alerts(alerts)),
        trends=await _build_trends(db, days),
    )


@router.post("/variance", response_model=VarianceRunResponse)
async def run_variance_analysis(
    payload: VarianceRunRequest,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    if not payload.trigger_analysis:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Analysis not triggered")

    alerts = await _run_detection(db, payload.days, payload.sensitivity or settings.variance_sensitivity)

    rows = []
    for a in alerts:
        data = a.to_dict()
        rows.append(VarianceAlertModel(**data))
    db.add_all(rows)
    await db.commit()
    logger.info(f"Stored {len(rows)} variance alerts ({payload.analysis_type} analysis by {role.id})")

    results: Dict[str, List[VarianceAlertRead]] = defaultdict(list)
    recommendations: List[str] = []
    for m in rows:
        results[m.type].append(VarianceAlertRead(**alert_to_schema(m)))
        for rec in m.recommendations or []:
            if rec not in recommendations:
                recommendations.append(rec)

    return VarianceRunResponse(
        message="Variance analysis completed",
        analysis_type=payload.analysis_type,
        timestamp=datetime.utcnow(),
        results=dict(results),
        recommendations=recommendations,
    )


@router.get("/variance/{variance_id}", response_model=VarianceAlertRead)
async def get_variance(
    variance_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    a = await _get_alert_or_404(db, variance_id)
    return VarianceAlertRead(**alert_to_schema(a))


@router.patch("/variance/{variance_id}", response_model=VarianceAlertRead)
async def update_variance(
    variance_id: UUID,
    payload: VarianceAlertUpdate,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    a = await _get_alert_or_404(db, variance_id)
    old_status = a.status

    data = payload.model_dump(exclude_unset=True)
    now = datetime.utcnow()
    if data.get("status") is not None:
        a.status = data["status"]
        if a.status == "resolved" and old_status != "resolved":
            a.resolved_at = now
    for field in ("notes", "resolution_notes", "assigned_to", "priority"):
        if field in data:
            setattr(a, field, data[field])
    a.updated_at = now

    await db.commit()
    await db.refresh(a)
    updated = VarianceAlertRead(**alert_to_schema(a))

    try:
        db.add(
            VarianceActionModel(
                variance_id=a.id,
                action_type="status_update",
                action_details={
                    "old_status": old_status,
                    "new_status": a.status,
                    "notes": data.get("notes"),
                    "updated_by": str(role.id),
                },
            )
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Failed to log variance action for {variance_id}: {e}")

    return updated


@router.delete("/variance/{variance_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_variance(
    variance_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    res = await db.execute(
        select(VarianceAlertModel)
        .options(selectinload(VarianceAlertModel.actions))
        .where(VarianceAlertModel.id == variance_id)
    )
    a = res.scalar_one_or_none()
    if not a:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variance not found")
    if a.status not in DELETABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only resolved or false positive variances can be deleted",
        )
    await db.delete(a)
    await db.commit()
    return None
