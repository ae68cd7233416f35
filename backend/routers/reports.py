from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_brewer_or_manager
from core.converters import report_to_schema
from db.database import get_async_session, Keg as KegModel, VarianceReport as VarianceReportModel
from db.users import UserRole
from schemas.variance import VarianceReportRead

router = APIRouter()


def _scope(stmt, role: UserRole):
    """Brewers see their brewery's kegs, managers the kegs they hold."""
    stmt = stmt.join(KegModel, KegModel.id == VarianceReportModel.keg_id)
    if role.role == "BREWER":
        return stmt.where(KegModel.brewery_id == role.brewery_id)
    return stmt.where(KegModel.current_holder == role.id)


@router.get("/", response_model=List[VarianceReportRead])
async def list_reports(
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    stmt = _scope(select(VarianceReportModel), role).order_by(VarianceReportModel.created_at.desc())
    res = await db.execute(stmt)
    return [VarianceReportRead(**report_to_schema(r)) for r in res.scalars().all()]


@router.patch("/{report_id}/resolve", response_model=VarianceReportRead)
async def resolve_report(
    report_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    role: UserRole = Depends(require_brewer_or_manager),
):
    res = await db.execute(_scope(select(VarianceReportModel), role).where(VarianceReportModel.id == report_id))
    r = res.scalar_one_or_none()
    if not r:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")

    r.resolved = True
    r.resolved_at = datetime.utcnow()
    await db.commit()
    await db.refresh(r)
    return VarianceReportRead(**report_to_schema(r))
